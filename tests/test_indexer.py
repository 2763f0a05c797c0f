"""Tests for the content indexer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from prdvec.tasks import SqliteTaskSource
from prdvec.vectors.chunker import TextChunker
from prdvec.vectors.indexer import (
    ContentIndexer,
    IndexStats,
    create_preview,
    extract_frontmatter,
    hash_content,
    is_indexable_file,
    matches_patterns,
)
from prdvec.vectors.schema import ContentType
from prdvec.vectors.store import VectorStore

from conftest import BrokenProvider, KeywordProvider


class TestHelpers:
    def test_hash_is_sha256_hex(self):
        assert hash_content("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        assert hash_content("a") != hash_content("b")

    def test_preview_short(self):
        assert create_preview("line one\nline two") == "line one line two"

    def test_preview_truncates(self):
        text = "word " * 100
        preview = create_preview(text)
        assert preview.endswith("...")
        assert len(preview) <= 203

    def test_preview_collapses_double_spaces(self):
        assert create_preview("a\n\nb") == "a b"

    def test_indexable_extensions(self):
        assert is_indexable_file(Path("main.rs"), ContentType.CODE)
        assert is_indexable_file(Path("App.TSX"), ContentType.CODE)
        assert not is_indexable_file(Path("README.md"), ContentType.CODE)
        assert is_indexable_file(Path("README.md"), ContentType.DOC)
        assert is_indexable_file(Path("pyproject.toml"), ContentType.DOC)
        assert not is_indexable_file(Path("logo.png"), ContentType.DOC)
        assert not is_indexable_file(Path("main.py"), ContentType.TASK)

    def test_patterns_match_name_or_relative_path(self, tmp_path: Path):
        f = tmp_path / "src" / "api" / "routes.py"
        assert matches_patterns(f, ["*.py"], root=tmp_path)
        assert matches_patterns(f, ["src/api/*"], root=tmp_path)
        assert not matches_patterns(f, ["*.rs"], root=tmp_path)

    def test_frontmatter(self):
        fm, body = extract_frontmatter("---\ntags: [auth, db]\n---\n\n# Title\n")
        assert fm == {"tags": ["auth", "db"]}
        assert body == "# Title\n"

    def test_frontmatter_absent_or_invalid(self):
        assert extract_frontmatter("# Title") == ({}, "# Title")
        fm, _ = extract_frontmatter("---\n: : [\n---\nbody")
        assert fm == {}

    def test_stats_merge(self):
        a = IndexStats(items_indexed=1, items_skipped=2, chunks_created=3, errors=0, duration_ms=5)
        a.merge(IndexStats(items_indexed=1, items_skipped=0, chunks_created=4, errors=2, duration_ms=5))
        assert a == IndexStats(items_indexed=2, items_skipped=2, chunks_created=7, errors=2, duration_ms=10)


class TestIndexTasks:
    def test_indexes_live_tasks(self, store: VectorStore, embedder: KeywordProvider, task_source: SqliteTaskSource):
        indexer = ContentIndexer(embedder, store, task_source=task_source)
        stats = indexer.index_tasks()

        assert stats.items_indexed == 3
        assert stats.chunks_created == 3
        assert stats.errors == 0
        ids = [r.content_id for r, _ in store.get_all_embeddings(ContentType.TASK)]
        assert ids == ["#1", "#2", "#3"]

        record, _ = store.get_embedding(ContentType.TASK, "#1")
        assert json.loads(record.metadata) == {"task_id": "t-1", "display_id": 1}
        assert record.content_preview.startswith("Task: Add login form Description:")

    def test_unchanged_tasks_are_skipped(self, store: VectorStore, embedder: KeywordProvider, task_source: SqliteTaskSource):
        indexer = ContentIndexer(embedder, store, task_source=task_source)
        indexer.index_tasks()
        before = store.get_embedding(ContentType.TASK, "#2")

        stats = indexer.index_tasks()
        assert stats.items_skipped == 3
        assert stats.items_indexed == 0
        after = store.get_embedding(ContentType.TASK, "#2")
        assert after[0].content_hash == before[0].content_hash
        assert after[0].updated_at == before[0].updated_at
        assert after[1] == before[1]

    def test_force_reindexes(self, store: VectorStore, embedder: KeywordProvider, task_source: SqliteTaskSource):
        indexer = ContentIndexer(embedder, store, task_source=task_source)
        indexer.index_tasks()
        stats = indexer.index_tasks(force=True)
        assert stats.items_indexed == 3
        assert stats.items_skipped == 0
        assert store.count_embeddings(ContentType.TASK) == 3

    def test_changed_task_is_reindexed(self, conn, store: VectorStore, embedder: KeywordProvider, task_source: SqliteTaskSource):
        indexer = ContentIndexer(embedder, store, task_source=task_source)
        indexer.index_tasks()
        conn.execute("UPDATE tasks SET title = 'Parse network packets' WHERE id = 't-3'")
        stats = indexer.index_tasks()
        assert stats.items_indexed == 1
        assert stats.items_skipped == 2

    def test_provider_failure_counts_errors(self, store: VectorStore, task_source: SqliteTaskSource):
        indexer = ContentIndexer(KeywordProvider(fail_on="charts"), store, task_source=task_source)
        stats = indexer.index_tasks()
        assert stats.items_indexed == 2
        assert stats.errors == 1
        assert store.get_embedding(ContentType.TASK, "#3") is None

    def test_records_stats(self, store: VectorStore, embedder: KeywordProvider, task_source: SqliteTaskSource):
        ContentIndexer(embedder, store, task_source=task_source).index_tasks()
        task_stats = next(s for s in store.get_stats() if s.content_type == ContentType.TASK)
        assert task_stats.total_items == 3
        assert task_stats.total_chunks == 3
        assert task_stats.last_indexed_at is not None

    def test_requires_task_source(self, store: VectorStore, embedder: KeywordProvider):
        with pytest.raises(ValueError):
            ContentIndexer(embedder, store).index_tasks()


class TestIndexFile:
    def test_single_chunk_file(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        f = tmp_path / "auth.py"
        f.write_text("def login(password):\n    return check(password)\n")
        stats = ContentIndexer(embedder, store).index_file(f, ContentType.CODE)

        assert stats.items_indexed == 1
        assert stats.chunks_created == 1
        record, _ = store.get_embedding(ContentType.CODE, str(f))
        meta = json.loads(record.metadata)
        assert meta["file_path"] == str(f)
        assert meta["file_type"] == "py"
        assert (meta["line_start"], meta["line_end"]) == (1, 2)
        assert (meta["char_start"], meta["char_end"]) == (0, len(f.read_text()))

    def test_multi_chunk_file_and_shrink(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        indexer = ContentIndexer(embedder, store, chunker=TextChunker(max_size=100, overlap=10))
        f = tmp_path / "notes.md"
        f.write_text("database query notes. " * 20)
        stats = indexer.index_file(f, ContentType.DOC)
        assert stats.chunks_created > 1
        assert store.count_embeddings(ContentType.DOC) == stats.chunks_created

        f.write_text("short")
        stats = indexer.index_file(f, ContentType.DOC)
        assert stats.chunks_created == 1
        assert store.count_embeddings(ContentType.DOC) == 1

    def test_unchanged_file_skipped(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        indexer = ContentIndexer(embedder, store)
        f = tmp_path / "a.txt"
        f.write_text("render")
        indexer.index_file(f, ContentType.DOC)
        calls = len(embedder.calls)

        stats = indexer.index_file(f, ContentType.DOC)
        assert stats.items_skipped == 1
        assert stats.items_indexed == 0
        assert len(embedder.calls) == calls

    def test_empty_file_skipped(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        f = tmp_path / "empty.py"
        f.write_text("")
        stats = ContentIndexer(embedder, store).index_file(f, ContentType.CODE)
        assert stats.items_skipped == 1
        assert store.count_embeddings() == 0

    def test_binary_file_skipped(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        f = tmp_path / "blob.txt"
        f.write_bytes(b"\xff\xfe\x00\x81binary")
        stats = ContentIndexer(embedder, store).index_file(f, ContentType.DOC)
        assert stats.items_skipped == 1
        assert stats.errors == 0

    def test_missing_file_is_error(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        stats = ContentIndexer(embedder, store).index_file(tmp_path / "gone.py", ContentType.CODE)
        assert stats.errors == 1
        assert stats.items_indexed == 0

    def test_partial_chunk_failure(self, tmp_path: Path, store: VectorStore):
        embedder = KeywordProvider(fail_on="BROKEN")
        indexer = ContentIndexer(embedder, store, chunker=TextChunker(max_size=50, overlap=0))
        f = tmp_path / "doc.txt"
        f.write_text("auth " * 10 + "BROKEN " * 10 + "query " * 10)
        stats = indexer.index_file(f, ContentType.DOC)

        assert stats.errors >= 1
        assert stats.chunks_created >= 1
        assert stats.items_indexed == 1
        stored = store.get_all_embeddings(ContentType.DOC)
        assert len(stored) == stats.chunks_created
        assert all("BROKEN" not in (r.content_preview or "") for r, _ in stored)

    def test_partial_failure_is_retried(self, tmp_path: Path, store: VectorStore):
        f = tmp_path / "doc.txt"
        f.write_text("auth " * 10 + "BROKEN " * 10 + "query " * 10)
        chunker = TextChunker(max_size=50, overlap=0)
        ContentIndexer(KeywordProvider(fail_on="BROKEN"), store, chunker=chunker).index_file(f, ContentType.DOC)
        assert store.get_content_hash(ContentType.DOC, str(f)) != hash_content(f.read_text())

        stats = ContentIndexer(KeywordProvider(), store, chunker=chunker).index_file(f, ContentType.DOC)
        assert stats.items_indexed == 1
        assert stats.errors == 0
        assert store.get_content_hash(ContentType.DOC, str(f)) == hash_content(f.read_text())
        assert any("BROKEN" in (r.content_preview or "") for r, _ in store.get_all_embeddings(ContentType.DOC))

    def test_provider_down_keeps_success_with_errors(self, tmp_path: Path, store: VectorStore):
        f = tmp_path / "a.md"
        f.write_text("hello")
        stats = ContentIndexer(BrokenProvider(KeywordProvider.DIMENSION), store).index_file(f, ContentType.DOC)
        assert stats.items_indexed == 0
        assert stats.errors == 1
        assert store.count_embeddings() == 0

    def test_markdown_tags_in_metadata(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        f = tmp_path / "guide.md"
        f.write_text("---\ntags: [auth, login]\n---\n\n# Login guide\n")
        ContentIndexer(embedder, store).index_file(f, ContentType.DOC)
        record, _ = store.get_embedding(ContentType.DOC, str(f))
        assert json.loads(record.metadata)["tags"] == ["auth", "login"]


class TestIndexDirectory:
    @pytest.fixture
    def tree(self, tmp_path: Path) -> Path:
        root = tmp_path / "repo"
        (root / "src").mkdir(parents=True)
        (root / "docs").mkdir()
        (root / "build").mkdir()
        (root / "src" / "auth.py").write_text("def login(password):\n    pass\n")
        (root / "src" / "db.rs").write_text("fn query() {}\n")
        (root / "src" / "logo.png").write_bytes(b"\x89PNG")
        (root / "docs" / "guide.md").write_text("# Guide\n\nRender the network.\n")
        (root / "build" / "gen.py").write_text("def generated(): pass\n")
        (root / ".gitignore").write_text("build/\n")
        return root

    def test_missing_root_raises(self, tmp_path: Path, store: VectorStore, embedder: KeywordProvider):
        with pytest.raises(FileNotFoundError):
            ContentIndexer(embedder, store).index_directory(tmp_path / "nope", ContentType.CODE)

    def test_code_allowlist_and_ignore(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        stats = ContentIndexer(embedder, store).index_directory(tree, ContentType.CODE)
        assert stats.items_indexed == 2
        ids = sorted(r.content_id for r, _ in store.get_all_embeddings(ContentType.CODE))
        assert ids == sorted([str(tree / "src" / "auth.py"), str(tree / "src" / "db.rs")])

    def test_doc_allowlist(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        stats = ContentIndexer(embedder, store).index_directory(tree, ContentType.DOC)
        assert stats.items_indexed == 1
        assert store.get_embedding(ContentType.DOC, str(tree / "docs" / "guide.md")) is not None

    def test_patterns_narrow_allowlist(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        stats = ContentIndexer(embedder, store).index_directory(tree, ContentType.CODE, patterns=["*.rs"])
        assert stats.items_indexed == 1
        assert store.get_embedding(ContentType.CODE, str(tree / "src" / "db.rs")) is not None

    def test_wildcard_pattern_keeps_allowlist(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        ContentIndexer(embedder, store).index_directory(tree, ContentType.CODE, patterns=["*"])
        ids = sorted(r.content_id for r, _ in store.get_all_embeddings(ContentType.CODE))
        assert ids == sorted([str(tree / "src" / "auth.py"), str(tree / "src" / "db.rs")])
        assert str(tree / "src" / "logo.png") not in ids

    def test_code_pattern_indexes_no_docs(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        indexer = ContentIndexer(embedder, store)
        indexer.index_directory(tree, ContentType.CODE, patterns=["*.py"])
        stats = indexer.index_directory(tree, ContentType.DOC, patterns=["*.py"])
        assert stats.items_indexed == 0
        assert store.get_all_embeddings(ContentType.DOC) == []
        assert store.count_embeddings(ContentType.CODE) == 1

    def test_second_run_skips(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        indexer = ContentIndexer(embedder, store)
        indexer.index_directory(tree, ContentType.CODE)
        stats = indexer.index_directory(tree, ContentType.CODE)
        assert stats.items_indexed == 0
        assert stats.items_skipped == 2

    def test_stats_persisted(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        ContentIndexer(embedder, store).index_directory(tree, ContentType.CODE)
        code = next(s for s in store.get_stats() if s.content_type == ContentType.CODE)
        assert code.total_items == 2
        assert code.total_chunks == 2
        assert code.index_duration_ms is not None

    def test_bad_file_does_not_abort_run(self, tree: Path, store: VectorStore, embedder: KeywordProvider):
        (tree / "src" / "bad.py").write_bytes(b"\xff\xfe\xfd")
        stats = ContentIndexer(embedder, store).index_directory(tree, ContentType.CODE)
        assert stats.items_indexed == 2
        assert stats.items_skipped == 1
