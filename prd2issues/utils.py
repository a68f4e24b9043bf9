"""Shared utility functions for prd2issues.

Provides JSON I/O, Rich-based progress reporting and the console observer
that renders core events. Every public function is designed to be safe and
side-effect-free where possible, with clear error messages when something
goes wrong.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.rule import Rule
from rich.table import Table

from .events import EventKind, EventLevel, PipelineEvent

console = Console()

# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> dict[str, Any]:
    """Load and parse a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    file_path = Path(path)
    raw = file_path.read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        return {"_root": data}
    return data


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> Path:
    """Save data as pretty-printed JSON.

    Parent directories are created automatically.  The write itself is
    performed in a thread-pool executor to avoid blocking the event loop.

    Args:
        data: Serialisable data (dict or list).
        path: Destination file path.

    Returns:
        The path that was written.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str)

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, file_path.write_text, content, "utf-8")
    return file_path


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


def first_line(text: str) -> str:
    """Return the first line of a (possibly multi-line) error message."""
    return text.strip().splitlines()[0] if text.strip() else ""


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STEP_COLORS: dict[int, str] = {
    1: "bright_cyan",
    2: "bright_green",
    3: "bright_yellow",
    4: "bright_magenta",
    5: "bright_blue",
}


def print_step_header(step: int, name: str) -> None:
    """Print a prominent step header using Rich.

    Args:
        step: Step number, used to pick a colour.
        name: Step display name.
    """
    color = STEP_COLORS.get(step, "white")
    console.print()
    console.print(
        Rule(
            f"[bold {color}] Step {step}: {name.upper()} [/bold {color}]",
            style=color,
        )
    )
    console.print()


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")


def create_progress() -> Progress:
    """Create a Rich spinner for long-running remote calls.

    Returns:
        A ``Progress`` instance suitable for use as a context manager.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


# ---------------------------------------------------------------------------
# Console observer
# ---------------------------------------------------------------------------

_LEVEL_STYLES: dict[EventLevel, tuple[str, str]] = {
    EventLevel.DEBUG: ("dim", "->"),
    EventLevel.INFO: ("cyan", "i"),
    EventLevel.SUCCESS: ("green", "+"),
    EventLevel.WARNING: ("yellow", "!"),
}


class ConsoleReporter:
    """Observer that renders ``PipelineEvent``s and mirrors them to a log file.

    Debug-level events are only shown when *verbose* is set, but every event
    is written to the log file when one is configured.
    """

    def __init__(
        self,
        verbose: bool = False,
        log_file: str | Path | None = None,
        out: Console | None = None,
    ) -> None:
        self.verbose = verbose
        self.log_file = Path(log_file) if log_file else None
        self.console = out or console
        self.events: list[PipelineEvent] = []
        if self.log_file is not None:
            self._start_session(self.log_file)

    def _start_session(self, log_file: Path) -> None:
        marker = (
            f"\n\n=== New Session: {utc_timestamp()} ===\n"
            if log_file.exists()
            else f"=== Log Started: {utc_timestamp()} ===\n"
        )
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with log_file.open("a", encoding="utf-8") as fh:
                fh.write(marker)
        except OSError:
            self.log_file = None

    def log(self, level: EventLevel, message: str) -> None:
        """Write a free-form message through the same channel as events."""
        self(PipelineEvent(kind=EventKind.MESSAGE, message=message, level=level))

    def __call__(self, event: PipelineEvent) -> None:
        self.events.append(event)
        self._write_file(event)
        if event.level is EventLevel.DEBUG and not self.verbose:
            return
        style, marker = _LEVEL_STYLES[event.level]
        self.console.print(f"  [{style}]{marker}[/{style}] {event.message}", highlight=False)

    def _write_file(self, event: PipelineEvent) -> None:
        if self.log_file is None:
            return
        line = f"[{utc_timestamp()}] [{event.level.value.upper()}] {event.message}\n"
        try:
            with self.log_file.open("a", encoding="utf-8") as fh:
                fh.write(line)
        except OSError:
            # Losing the log file must not abort a run that is mutating the tracker.
            self.log_file = None
