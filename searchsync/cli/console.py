"""Console output for the CLI.

Provides a Console class that wraps rich for consistent output. All CLI
output should go through this module.
"""

from typing import Any

from rich.console import Console as RichConsole
from rich.table import Table

from searchsync.domain.index.model.lock import LockStatus
from searchsync.domain.index.model.result import ReindexResult
from searchsync.domain.shared.job import JobCounts

# Error lines printed before the rest are summarised
MAX_ERROR_LINES = 20


class Console:
    """CLI output manager wrapping rich.

    Status messages go to stdout, errors to stderr. Quiet mode drops the
    informational lines only.
    """

    def __init__(
        self,
        *,
        force_terminal: bool | None = None,
        quiet: bool = False,
    ) -> None:
        self._console = RichConsole(force_terminal=force_terminal, stderr=False)
        self._err_console = RichConsole(force_terminal=force_terminal, stderr=True)
        self._quiet = quiet

    # -------------------------------------------------------------------------
    # Status messages
    # -------------------------------------------------------------------------

    def success(self, message: str) -> None:
        self._console.print(f"[green]✓[/green] {message}")

    def error(self, message: str, *, hint: str | None = None) -> None:
        """Print an error message to stderr."""
        self._err_console.print(f"[red]✗[/red] {message}")
        if hint:
            self._err_console.print(f"  [dim]{hint}[/dim]")

    def warning(self, message: str) -> None:
        self._console.print(f"[yellow]⚠[/yellow] {message}")

    def info(self, message: str) -> None:
        """Print an info message (suppressed in quiet mode)."""
        if not self._quiet:
            self._console.print(f"[dim]{message}[/dim]")

    def print(self, *args: Any, **kwargs: Any) -> None:
        self._console.print(*args, **kwargs)

    def table(
        self,
        rows: list[dict[str, Any]],
        columns: list[tuple[str, str]],  # (key, header)
        *,
        title: str | None = None,
    ) -> None:
        table = Table(title=title, show_header=True, header_style="bold")
        for _, header in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*(str(row.get(key, "")) for key, _ in columns))
        self._console.print(table)

    def status(self, message: str):
        """Return a spinner context manager for long operations."""
        return self._console.status(message)

    # -------------------------------------------------------------------------
    # Reindex output
    # -------------------------------------------------------------------------

    def reindex_result(self, backend: str, result: ReindexResult, *, queued: bool) -> None:
        """Summary line plus one line per error."""
        if queued:
            summary = (
                f"{backend}: queued {result.jobs_enqueued} jobs "
                f"({result.records_enqueued} records) across {result.entities_processed} entities"
            )
        else:
            summary = (
                f"{backend}: indexed {result.records_indexed} records "
                f"across {result.entities_processed} entities"
            )
        if result.records_dropped:
            summary += f", dropped {result.records_dropped}"

        if result.success and not result.errors:
            self.success(summary)
        elif result.success:
            self.warning(f"{summary} with {len(result.errors)} errors")
        else:
            self.error(f"{summary}, failed")

        for entry in result.errors[:MAX_ERROR_LINES]:
            self._err_console.print(f"  [red]-[/red] {entry.entity_id}: {entry.error}")
        if len(result.errors) > MAX_ERROR_LINES:
            self._err_console.print(
                f"  [dim]... and {len(result.errors) - MAX_ERROR_LINES} more[/dim]"
            )

    def lock_status(
        self, backend: str, status: LockStatus | None, counts: JobCounts | None
    ) -> None:
        queue = ""
        if counts is not None:
            queue = (
                f" [dim](queue: {counts.pending} pending, {counts.claimed} claimed, "
                f"{counts.failed} failed)[/dim]"
            )

        if status is None:
            self._console.print(f"{backend}: [green]idle[/green]{queue}")
            return

        lock = status.lock
        progress = f"{lock.processed_count}/{lock.total_count or '?'}"
        self._console.print(
            f"{backend}: [yellow]locked[/yellow] by '{lock.action}' "
            f"for {status.elapsed_minutes:.1f} min, {progress} processed{queue}"
        )


_default: Console | None = None


def get_console() -> Console:
    """Get the default console instance."""
    global _default
    if _default is None:
        _default = Console()
    return _default
