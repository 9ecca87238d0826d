"""
Progress Reporting

The stream engine calls a reporter with (completed, total) after every
chunk. Reporters have no effect on the transfer itself.

TerminalProgress draws a rich progress bar with an ETA, redrawing at most
twice a second. The final (completed == total) update is always drawn.
"""

import time
from datetime import timedelta
from typing import Callable, Optional, Protocol

from rich.console import Console
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from .session import Role


class ProgressReporter(Protocol):
    def __call__(self, completed: int, total: int) -> None:
        ...


# (role, filename) -> reporter; the receiver learns the filename mid-session
ProgressFactory = Callable[[Role, str], ProgressReporter]


def estimate_eta(elapsed: float, completed: int, total: int) -> Optional[timedelta]:
    """
    Remaining time, assuming the pace so far holds.

    Returns:
        Whole-second timedelta, or None before the first chunk
    """
    if completed <= 0:
        return None
    remaining = elapsed / completed * (total - completed)
    return timedelta(seconds=int(max(remaining, 0)))


class NullProgress:
    """Reporter that ignores every update."""

    def __call__(self, completed: int, total: int) -> None:
        pass


def null_progress_factory(role: Role, filename: str) -> ProgressReporter:
    return NullProgress()


class TerminalProgress:
    """
    Rate-limited progress bar on a rich console.

    Args:
        label: Shown before the bar, e.g. "Sending"
        done_message: Printed in green once completed == total
        console: Console to draw on (shared with the log handler)
        min_interval: Seconds between redraws
        bar_length: Bar width in terminal cells
        clock: Monotonic time source
    """

    def __init__(self, label: str, done_message: str,
                 console: Optional[Console] = None,
                 min_interval: float = 0.5,
                 bar_length: int = 40,
                 clock: Callable[[], float] = time.monotonic):
        self.label = label
        self.done_message = done_message
        self.console = console or Console()
        self.min_interval = min_interval
        self.bar_length = bar_length
        self.clock = clock

        self.start_time = clock()
        self.last_render_time: Optional[float] = None
        self.finished = False
        self._live: Optional[Live] = None

    def __call__(self, completed: int, total: int) -> None:
        if self.finished:
            return

        if completed >= total:
            self._finish()
            return

        now = self.clock()
        if (self.last_render_time is not None and
                now - self.last_render_time < self.min_interval):
            return

        self.last_render_time = now
        self._render(completed, total, now - self.start_time)

    def renderable(self, completed: int, total: int, elapsed: float) -> Table:
        """Label, bar and ETA as one row."""
        eta = estimate_eta(elapsed, completed, total)

        row = Table.grid(padding=(0, 1))
        row.add_column()
        row.add_column(width=self.bar_length)
        row.add_column()
        row.add_row(
            Text(f"{self.label}..."),
            ProgressBar(total=total, completed=completed, width=self.bar_length),
            Text(f" eta {eta if eta is not None else ''}", style="dim"),
        )
        return row

    def _render(self, completed: int, total: int, elapsed: float):
        row = self.renderable(completed, total, elapsed)
        if self._live is None:
            self._live = Live(row, console=self.console, transient=True,
                              auto_refresh=False)
            self._live.start()
        self._live.update(row, refresh=True)

    def _finish(self):
        self.finished = True
        self.close()
        self.console.print(Text(self.done_message, style="bright_green"))

    def close(self):
        """Stop the live display, leaving the cursor visible."""
        if self._live is not None:
            self._live.stop()
            self._live = None


def terminal_progress_factory(console: Console, min_interval: float = 0.5,
                              bar_length: int = 40) -> ProgressFactory:
    """Factory drawing "Sending"/"Receiving" bars on console."""

    def factory(role: Role, filename: str) -> ProgressReporter:
        if role is Role.SENDER:
            label, done = "Sending", f"\"{filename}\" sent!"
        else:
            label, done = "Receiving", f"\"{filename}\" received!"
        return TerminalProgress(label, done, console=console,
                                min_interval=min_interval, bar_length=bar_length)

    return factory
