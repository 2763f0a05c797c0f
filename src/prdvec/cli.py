"""prdvec CLI main entry point.

Commands:
  index     Index tasks, code and docs for semantic search
  search    Semantic search across indexed content
  similar   Find content similar to an indexed item
  stats     Show indexing statistics
  clear     Clear vector indexes
  config    View and update project settings
"""

from __future__ import annotations

import argparse
import json
import logging
import sqlite3
import sys
from pathlib import Path

from rich.console import Console

from prdvec.config import (
    DEFAULT_SETTINGS,
    PrdvecSettings,
    coerce_setting,
    load_json_file,
    load_settings,
    save_settings,
    validate_settings,
)
from prdvec.db import connect
from prdvec.render import SIMILAR_COLOR_CUTOFFS, Renderer
from prdvec.tasks import SqliteTaskSource
from prdvec.utils.paths import get_project_root, get_project_settings_path, resolve_db_path
from prdvec.vectors.chunker import TextChunker
from prdvec.vectors.embedder import SentenceTransformerProvider, create_provider
from prdvec.vectors.indexer import ContentIndexer, IndexStats
from prdvec.vectors.schema import ContentType
from prdvec.vectors.search import VectorSearch
from prdvec.vectors.store import VectorStore

logger = logging.getLogger(__name__)

INDEX_TARGETS = ("tasks", "code", "docs", "all")
TYPE_NAMES = ("task", "tasks", "code", "doc", "docs")


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="prdvec",
        description="prdvec: semantic indexing and search for tasks, code and docs",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    # index
    index_parser = subparsers.add_parser("index", help="Index content for semantic search")
    index_parser.add_argument(
        "content", nargs="?", default="all", type=str.lower, choices=INDEX_TARGETS,
        help="What to index",
    )
    index_parser.add_argument("-p", "--path", help="Directory to index (for code/docs)")
    index_parser.add_argument(
        "-i", "--include", dest="patterns", action="append", default=[],
        help="File pattern to include (e.g. '*.py'); repeatable",
    )
    index_parser.add_argument("--force", action="store_true", help="Re-index unchanged content")

    # search
    search_parser = subparsers.add_parser("search", help="Semantic search across indexed content")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("-t", "--type", type=str.lower, choices=TYPE_NAMES, help="Filter by type")
    search_parser.add_argument("-l", "--limit", type=positive_int, help="Number of results")
    search_parser.add_argument("--threshold", type=float, help="Minimum similarity (0.0-1.0)")

    # similar
    similar_parser = subparsers.add_parser("similar", help="Find content similar to an indexed item")
    similar_parser.add_argument("id", help="Task number, task id, or file path")
    similar_parser.add_argument(
        "-t", "--type", type=str.lower, choices=TYPE_NAMES, default="task",
        help="Type of the source item",
    )
    similar_parser.add_argument("--code", action="store_true", help="Include code matches")
    similar_parser.add_argument("--docs", action="store_true", help="Include doc matches")
    similar_parser.add_argument("-l", "--limit", type=positive_int, help="Number of results")
    similar_parser.add_argument("--threshold", type=float, help="Minimum similarity (0.0-1.0)")

    # stats
    subparsers.add_parser("stats", help="Show indexing statistics")

    # clear
    clear_parser = subparsers.add_parser("clear", help="Clear vector indexes")
    clear_parser.add_argument(
        "content", nargs="?", type=str.lower, choices=INDEX_TARGETS,
        help="Type to clear (all when omitted)",
    )

    # config
    config_parser = subparsers.add_parser("config", help="View and update project settings")
    config_parser.add_argument(
        "action", choices=["show", "get", "set"], help="Action to perform"
    )
    config_parser.add_argument("key", nargs="?", help="Setting key (for get/set)")
    config_parser.add_argument("value", nargs="?", help="Setting value (for set)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        project_root = get_project_root()
        settings = load_settings(project_root)
        _configure_logging(settings, args.verbose)

        if args.command == "config":
            return cmd_config(args, project_root)

        errors = validate_settings(settings)
        if errors:
            for err in errors:
                print(f"Settings error: {err}", file=sys.stderr)
            return 1

        if args.command == "index":
            return cmd_index(args, project_root, settings)
        elif args.command == "search":
            return cmd_search(args, project_root, settings)
        elif args.command == "similar":
            return cmd_similar(args, project_root, settings)
        elif args.command == "stats":
            return cmd_stats(args, project_root, settings)
        elif args.command == "clear":
            return cmd_clear(args, project_root, settings)
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _error_renderer().render_error(str(e))
        return 1


def _configure_logging(settings: PrdvecSettings, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, str(settings.log_level).upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("prdvec").setLevel(level)


def _error_renderer() -> Renderer:
    return Renderer(Console(stderr=True))


def _open_store(project_root: Path, settings: PrdvecSettings) -> tuple[sqlite3.Connection, VectorStore]:
    conn = connect(resolve_db_path(project_root, settings.db_path))
    store = VectorStore(conn, dimension=settings.dimension)
    store.ensure_schema()
    return conn, store


def cmd_index(args: argparse.Namespace, project_root: Path, settings: PrdvecSettings) -> int:
    """Index tasks, code and docs."""
    renderer = Renderer()
    conn, store = _open_store(project_root, settings)
    try:
        embedder = create_provider(settings)
        if isinstance(embedder, SentenceTransformerProvider):
            renderer.render_info("⏳ Loading embedding model (first run may download ~100MB)...")

        task_source = SqliteTaskSource(conn)
        indexer = ContentIndexer(
            embedder,
            store,
            task_source=task_source,
            chunker=TextChunker(settings.max_chunk_size, settings.chunk_overlap),
            preview_length=settings.preview_length,
        )

        content = args.content
        total = IndexStats()

        if content in ("all", "tasks"):
            if task_source.available():
                renderer.render_index_start(ContentType.TASK)
                stats = indexer.index_tasks(force=args.force)
                renderer.render_index_stats(ContentType.TASK, stats)
                total.merge(stats)
            elif content == "tasks":
                _error_renderer().render_error("No task tables found in the database.")
                return 1
            else:
                renderer.render_warning("No task tables found; skipping tasks.")

        root = Path(args.path) if args.path else Path(".")
        for target, content_type in (("code", ContentType.CODE), ("docs", ContentType.DOC)):
            if content not in ("all", target):
                continue
            renderer.render_index_start(content_type, str(root))
            stats = indexer.index_directory(
                root, content_type, patterns=args.patterns, force=args.force
            )
            renderer.render_index_stats(content_type, stats)
            total.merge(stats)

        renderer.render_index_total(total)
        return 0
    finally:
        conn.close()


def cmd_search(args: argparse.Namespace, project_root: Path, settings: PrdvecSettings) -> int:
    """Semantic search across indexed content."""
    renderer = Renderer()
    content_type = ContentType.from_str(args.type) if args.type else None
    limit = args.limit if args.limit is not None else settings.search_limit
    threshold = args.threshold if args.threshold is not None else settings.search_threshold

    conn, store = _open_store(project_root, settings)
    try:
        if store.count_embeddings(content_type) == 0:
            renderer.render_warning("Nothing indexed yet. Try indexing first with: prdvec index")
            return 0
        search = VectorSearch(store, create_provider(settings))
        renderer.console.print(f"🔍 Searching for: \"{args.query}\"", markup=False, highlight=False)
        results = search.search_text(args.query, content_type, limit, threshold)
    finally:
        conn.close()

    if not results:
        renderer.render_warning("No results found.")
        return 0

    renderer.console.print(f"\n{len(results)} results:\n")
    renderer.render_results(results)
    return 0


def normalize_content_id(raw: str, content_type: ContentType) -> str:
    """Turn a bare task number like ``42`` into the indexed id ``#42``."""
    if content_type == ContentType.TASK and raw.isdigit():
        return f"#{raw}"
    return raw


def cmd_similar(args: argparse.Namespace, project_root: Path, settings: PrdvecSettings) -> int:
    """Find content similar to an indexed item."""
    renderer = Renderer()
    content_type = ContentType.from_str(args.type)
    content_id = normalize_content_id(args.id, content_type)
    limit = args.limit if args.limit is not None else settings.similar_limit
    threshold = args.threshold if args.threshold is not None else settings.similar_threshold

    search_types = None
    if args.code or args.docs:
        search_types = []
        if args.code:
            search_types.append(ContentType.CODE)
        if args.docs:
            search_types.append(ContentType.DOC)
        # Similar tasks are always included
        search_types.append(ContentType.TASK)

    conn, store = _open_store(project_root, settings)
    try:
        renderer.console.print(
            f"🔍 Finding content similar to {content_type} {content_id}",
            markup=False,
            highlight=False,
        )
        results = VectorSearch(store).find_similar(
            content_type, content_id, search_types, limit, threshold
        )
    finally:
        conn.close()

    if not results:
        renderer.render_warning("No similar content found. Try indexing first with: prdvec index")
        return 0

    renderer.console.print(f"\n{len(results)} similar items:\n")
    renderer.render_results(results, cutoffs=SIMILAR_COLOR_CUTOFFS, show_type=False)
    return 0


def cmd_stats(args: argparse.Namespace, project_root: Path, settings: PrdvecSettings) -> int:
    """Show indexing statistics."""
    conn, store = _open_store(project_root, settings)
    try:
        stats = store.get_stats()
    finally:
        conn.close()
    Renderer().render_stats(stats)
    return 0


def cmd_clear(args: argparse.Namespace, project_root: Path, settings: PrdvecSettings) -> int:
    """Clear one or all vector indexes."""
    renderer = Renderer()
    content_type = None
    if args.content and args.content != "all":
        content_type = ContentType.from_str(args.content)

    conn, store = _open_store(project_root, settings)
    try:
        if content_type is not None:
            deleted = store.delete_all_by_type(content_type)
            renderer.render_success(f"Cleared {deleted} embeddings from {content_type} index")
        else:
            deleted = sum(store.delete_all_by_type(ct) for ct in ContentType)
            renderer.render_success(f"Cleared {deleted} embeddings from all indexes")
    finally:
        conn.close()
    return 0


ALLOWED_CONFIG_KEYS = set(DEFAULT_SETTINGS)


def cmd_config(args: argparse.Namespace, project_root: Path) -> int:
    """View and update project settings."""
    action = args.action

    if action == "show":
        settings = load_settings(project_root)
        print(json.dumps(settings.to_dict(), indent=2))
        return 0

    if action == "get":
        if not args.key:
            print("Usage: prdvec config get <key>", file=sys.stderr)
            return 1
        if args.key not in ALLOWED_CONFIG_KEYS:
            print(
                f"Unknown key: {args.key}. "
                f"Allowed keys: {', '.join(sorted(ALLOWED_CONFIG_KEYS))}",
                file=sys.stderr,
            )
            return 1
        settings = load_settings(project_root)
        value = getattr(settings, args.key)
        print(value if value is not None else "")
        return 0

    if action == "set":
        if not args.key or args.value is None:
            print("Usage: prdvec config set <key> <value>", file=sys.stderr)
            return 1
        if args.key not in ALLOWED_CONFIG_KEYS:
            print(
                f"Unknown key: {args.key}. "
                f"Allowed keys: {', '.join(sorted(ALLOWED_CONFIG_KEYS))}",
                file=sys.stderr,
            )
            return 1

        try:
            value = coerce_setting(args.key, args.value)
        except ValueError:
            kind = type(DEFAULT_SETTINGS[args.key]).__name__
            print(f"{args.key} must be of type {kind}", file=sys.stderr)
            return 1

        # Validate by building a settings object from merged data
        test_settings = load_settings(project_root)
        setattr(test_settings, args.key, value)
        errors = validate_settings(test_settings)
        if errors:
            for err in errors:
                print(f"Validation error: {err}", file=sys.stderr)
            return 1

        settings_path = get_project_settings_path(project_root)
        data = load_json_file(settings_path)
        data[args.key] = value
        save_settings(data, settings_path)
        print(f"{args.key} = {value}")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
