"""Rich terminal rendering for prdvec command output."""

from __future__ import annotations

from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from prdvec.vectors.indexer import IndexStats
from prdvec.vectors.schema import ContentType, SearchResult, VectorStats

# (strong, medium) percentage cutoffs for colouring similarity scores
SEARCH_COLOR_CUTOFFS = (80, 60)
SIMILAR_COLOR_CUTOFFS = (70, 50)

PREVIEW_DISPLAY_WIDTH = 80


def similarity_style(pct: int, cutoffs: tuple[int, int]) -> str:
    strong, medium = cutoffs
    if pct >= strong:
        return "bold green"
    if pct >= medium:
        return "yellow"
    return "dim"


def trim_preview(preview: str, width: int = PREVIEW_DISPLAY_WIDTH) -> str:
    if len(preview) > width:
        return f"{preview[:width - 3]}..."
    return preview


class Renderer:
    """Renders indexing runs, search results and statistics."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_info(self, message: str) -> None:
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def render_warning(self, message: str) -> None:
        self.console.print(f"[yellow]{escape(message)}[/yellow]")

    def render_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def render_success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def render_index_start(self, content_type: ContentType, location: str | None = None) -> None:
        label = {ContentType.TASK: "tasks", ContentType.CODE: "code", ContentType.DOC: "docs"}[content_type]
        where = f" in {escape(location)}" if location else ""
        self.console.print(f"{content_type.icon} Indexing {label}{where}...")

    def render_index_stats(self, content_type: ContentType, stats: IndexStats) -> None:
        noun = "tasks" if content_type == ContentType.TASK else "files"
        line = (
            f"  [green]✓[/green] {stats.items_indexed} {noun} indexed, "
            f"{stats.items_skipped} skipped, {stats.chunks_created} chunks"
        )
        if stats.errors:
            line += f", [red]{stats.errors} errors[/red]"
        self.console.print(line)

    def render_index_total(self, total: IndexStats) -> None:
        self.console.print()
        self.console.print("[bold green]Indexing complete![/bold green]")
        line = (
            f"Total: [bold cyan]{total.items_indexed}[/bold cyan] items, "
            f"[bold cyan]{total.chunks_created}[/bold cyan] chunks"
        )
        if total.errors:
            line += f", [red]{total.errors} errors[/red]"
        self.console.print(line)

    def render_results(
        self,
        results: Sequence[SearchResult],
        cutoffs: tuple[int, int] = SEARCH_COLOR_CUTOFFS,
        show_type: bool = True,
    ) -> None:
        """Print ranked results with coloured similarity and a trimmed preview."""
        for result in results:
            record = result.record
            pct = int(result.similarity * 100)
            style = similarity_style(pct, cutoffs)
            line = Text.assemble(
                f"{result.rank}. {record.content_type.icon} ",
                (record.content_id, "cyan"),
                " [",
                (f"{pct}%", style),
                "]",
            )
            if show_type:
                line.append(f" {record.content_type}")
            self.console.print(line, highlight=False)
            if record.content_preview:
                self.console.print(
                    f"   {trim_preview(record.content_preview)}",
                    style="dim",
                    markup=False,
                    highlight=False,
                )
            self.console.print()

    def render_stats(self, stats: Sequence[VectorStats]) -> None:
        table = Table(title="Vector Index Statistics")
        table.add_column("Type")
        table.add_column("Items", justify="right")
        table.add_column("Chunks", justify="right")
        table.add_column("Last indexed")
        table.add_column("Duration", justify="right")
        for stat in stats:
            table.add_row(
                f"{stat.content_type.icon} {stat.content_type}",
                str(stat.total_items),
                str(stat.total_chunks),
                stat.last_indexed_at or "never",
                f"{stat.index_duration_ms}ms" if stat.index_duration_ms is not None else "-",
            )
        self.console.print(table)
