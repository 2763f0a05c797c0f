"""Content indexer: turns tasks and source trees into stored embeddings.

Every content unit (a task or a file) is hashed first. Unchanged units are
skipped unless ``force`` is set; changed units are chunked, embedded, and
replace whatever was stored for them before. Failures are counted per unit in
:class:`IndexStats` so one bad file never aborts a run.
"""

from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import yaml

from prdvec.errors import ProviderError, ValidationError, VectorError
from prdvec.tasks import TaskSource, compose_task_text
from prdvec.utils.walker import walk_files
from prdvec.vectors.chunker import Chunk, TextChunker
from prdvec.vectors.embedder import EmbeddingProvider
from prdvec.vectors.schema import PREVIEW_LENGTH, ContentType
from prdvec.vectors.store import VectorStore

logger = logging.getLogger(__name__)


CODE_EXTENSIONS = frozenset({
    "rs", "ts", "tsx", "js", "jsx", "py", "go", "java", "c", "cpp", "h", "hpp",
    "cs", "rb", "php", "swift", "kt", "scala", "vue", "svelte",
})
DOC_EXTENSIONS = frozenset({"md", "txt", "rst", "adoc", "yaml", "yml", "json", "toml"})

PARTIAL_HASH_PREFIX = "partial:"


@dataclass
class IndexStats:
    """Counters for one indexing run."""
    items_indexed: int = 0
    items_skipped: int = 0
    chunks_created: int = 0
    errors: int = 0
    duration_ms: int = 0

    def merge(self, other: IndexStats) -> None:
        """Add another run's counters into this one."""
        self.items_indexed += other.items_indexed
        self.items_skipped += other.items_skipped
        self.chunks_created += other.chunks_created
        self.errors += other.errors
        self.duration_ms += other.duration_ms


def hash_content(content: str) -> str:
    """SHA-256 hex digest of a content unit's text."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def create_preview(content: str, max_len: int = PREVIEW_LENGTH) -> str:
    """Single-line excerpt of the first ``max_len`` characters."""
    preview = content[:max_len].replace("\n", " ").replace("  ", " ").strip()
    if len(content) > max_len:
        return f"{preview}..."
    return preview


def is_indexable_file(path: Path, content_type: ContentType) -> bool:
    """Whether a file's extension belongs to the allowlist of a content type."""
    ext = path.suffix.lstrip(".").lower()
    if content_type == ContentType.CODE:
        return ext in CODE_EXTENSIONS
    if content_type == ContentType.DOC:
        return ext in DOC_EXTENSIONS
    return False


def matches_patterns(path: Path, patterns: Sequence[str], root: Path | None = None) -> bool:
    """Match a file against glob patterns by file name or path relative to root."""
    candidates = [path.name]
    if root is not None:
        try:
            candidates.append(path.relative_to(root).as_posix())
        except ValueError:
            pass
    return any(
        fnmatch.fnmatch(candidate, pattern)
        for pattern in patterns
        for candidate in candidates
    )


def extract_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter and body from markdown content.

    Returns (frontmatter_dict, body_text).
    """
    if not content.startswith("---"):
        return {}, content

    parts = content.split("---", 2)
    if len(parts) < 3:
        return {}, content

    try:
        fm = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError:
        fm = {}
    if not isinstance(fm, dict):
        fm = {}

    body = parts[2].lstrip("\n")
    return fm, body


def _frontmatter_tags(content: str) -> list[str]:
    fm, _ = extract_frontmatter(content)
    tags = fm.get("tags", [])
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",")]
    if not isinstance(tags, list):
        return []
    return [str(t) for t in tags if str(t).strip()]


class ContentIndexer:
    """Indexes tasks and files into a :class:`VectorStore`."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: VectorStore,
        task_source: TaskSource | None = None,
        chunker: TextChunker | None = None,
        preview_length: int = PREVIEW_LENGTH,
    ):
        self.embedder = embedder
        self.store = store
        self.task_source = task_source
        self.chunker = chunker or TextChunker()
        self.preview_length = preview_length

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def index_tasks(self, force: bool = False) -> IndexStats:
        """Index every non-cancelled task as a single chunk."""
        if self.task_source is None:
            raise ValueError("No task source configured for task indexing")

        start = time.perf_counter()
        stats = IndexStats()

        for task in self.task_source.list_tasks():
            content_id = task.content_id
            criteria = self.task_source.list_acceptance_criteria(task)
            text = compose_task_text(task, criteria)
            content_hash = hash_content(text)

            if not force and self.store.get_content_hash(ContentType.TASK, content_id) == content_hash:
                logger.debug("Task %s unchanged, skipping", content_id)
                stats.items_skipped += 1
                continue

            metadata = json.dumps({"task_id": task.id, "display_id": task.display_id})
            try:
                embedding = self.embedder.embed_one(text)
                self.store.delete_embeddings(ContentType.TASK, content_id)
                self.store.store_embedding(
                    ContentType.TASK,
                    content_id,
                    0,
                    create_preview(text, self.preview_length),
                    content_hash,
                    embedding,
                    metadata,
                )
            except VectorError as e:
                logger.warning("Error indexing task %s: %s", content_id, e)
                stats.errors += 1
                continue
            stats.items_indexed += 1
            stats.chunks_created += 1

        stats.duration_ms = _elapsed_ms(start)
        self._record_stats(ContentType.TASK, stats)
        logger.info(
            "Indexed %d tasks (%d skipped, %d errors) in %dms",
            stats.items_indexed, stats.items_skipped, stats.errors, stats.duration_ms,
        )
        return stats

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def index_directory(
        self,
        path: Path,
        content_type: ContentType,
        patterns: Sequence[str] = (),
        force: bool = False,
    ) -> IndexStats:
        """Index every matching file under ``path``.

        Only files in the extension allowlist of ``content_type`` are
        indexed. ``patterns``, when given, narrow that selection further.

        Raises:
            FileNotFoundError: ``path`` does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Path does not exist: {path}")

        start = time.perf_counter()
        stats = IndexStats()

        def on_walk_error(err: OSError) -> None:
            logger.warning("Error walking directory: %s", err)
            stats.errors += 1

        for file_path in walk_files(path, on_error=on_walk_error):
            if patterns and not matches_patterns(file_path, patterns, root=path):
                continue
            if not is_indexable_file(file_path, content_type):
                continue

            try:
                stats.merge(self._index_file(file_path, content_type, force))
            except (sqlite3.Error, OSError, VectorError) as e:
                logger.warning("Error indexing %s: %s", file_path, e)
                stats.errors += 1

        stats.duration_ms = _elapsed_ms(start)
        self._record_stats(content_type, stats)
        logger.info(
            "Indexed %d %s files (%d skipped, %d chunks, %d errors) in %dms",
            stats.items_indexed, content_type, stats.items_skipped,
            stats.chunks_created, stats.errors, stats.duration_ms,
        )
        return stats

    def index_file(
        self,
        path: Path,
        content_type: ContentType,
        force: bool = False,
    ) -> IndexStats:
        """Index a single file and record the run in the type's statistics."""
        start = time.perf_counter()
        stats = self._index_file(Path(path), content_type, force)
        stats.duration_ms = _elapsed_ms(start)
        self._record_stats(content_type, stats)
        return stats

    def _index_file(self, path: Path, content_type: ContentType, force: bool) -> IndexStats:
        stats = IndexStats()

        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.debug("Skipping non-text file %s", path)
            stats.items_skipped += 1
            return stats
        except OSError as e:
            logger.warning("Failed to read file %s: %s", path, e)
            stats.errors += 1
            return stats

        if not content:
            stats.items_skipped += 1
            return stats

        content_id = str(path)
        content_hash = hash_content(content)

        if not force and self.store.get_content_hash(content_type, content_id) == content_hash:
            logger.debug("File %s unchanged, skipping", content_id)
            stats.items_skipped += 1
            return stats

        extension = path.suffix.lstrip(".")
        if content_type == ContentType.CODE:
            chunks = self.chunker.chunk_code(content, extension)
        else:
            chunks = self.chunker.chunk(content)

        tags = _frontmatter_tags(content) if extension.lower() == "md" else []

        embedded, failures = self._embed_chunks(chunks, label=content_id)
        stats.errors += failures
        if not embedded:
            return stats
        # An incomplete file must not match its hash, or failed chunks are never retried.
        stored_hash = f"{PARTIAL_HASH_PREFIX}{content_hash}" if failures else content_hash

        # Chunk count may change between versions, so replace everything.
        self.store.delete_embeddings(content_type, content_id)
        for chunk, embedding in embedded:
            metadata: dict[str, Any] = {
                "file_path": content_id,
                "file_type": extension,
                "line_start": chunk.line_start,
                "line_end": chunk.line_end,
                "char_start": chunk.start_char,
                "char_end": chunk.end_char,
            }
            if tags:
                metadata["tags"] = tags
            self.store.store_embedding(
                content_type,
                content_id,
                chunk.index,
                create_preview(chunk.text, self.preview_length),
                stored_hash,
                embedding,
                json.dumps(metadata),
            )
            stats.chunks_created += 1

        if stats.chunks_created > 0:
            stats.items_indexed = 1
        return stats

    def _embed_chunks(
        self, chunks: list[Chunk], label: str
    ) -> tuple[list[tuple[Chunk, list[float]]], int]:
        """Embed chunks in one batch, falling back to one call per chunk on failure.

        Returns the successfully embedded chunks and the number of failures.
        """
        if not chunks:
            return [], 0
        try:
            vectors = self.embedder.embed_batch([c.text for c in chunks])
            return list(zip(chunks, vectors)), 0
        except (ProviderError, ValidationError) as e:
            logger.debug("Batch embedding failed for %s, retrying per chunk: %s", label, e)

        embedded = []
        failures = 0
        for chunk in chunks:
            try:
                embedded.append((chunk, self.embedder.embed_one(chunk.text)))
            except (ProviderError, ValidationError) as e:
                logger.warning("Error embedding chunk %d of %s: %s", chunk.index, label, e)
                failures += 1
        return embedded, failures

    def _record_stats(self, content_type: ContentType, stats: IndexStats) -> None:
        self.store.update_stats(
            content_type,
            stats.items_indexed,
            stats.chunks_created,
            stats.duration_ms,
        )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
