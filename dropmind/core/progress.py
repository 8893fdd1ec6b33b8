"""
Step tracking for long running CLI commands.

``dictate`` waits on a transcription service and on the silence timer, so it
shows a rich status line for the step in progress and prints a checkmark,
with the time the step took, whenever a step finishes.
"""

import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from rich.console import Console
from rich.status import Status


class StepTracker:
    """
    One status line plus a log of finished steps.

    Commands share the module level ``tracker`` instead of handing a console
    and a status object down every call.
    """

    def __init__(self, clock=time.perf_counter):
        self._clock = clock
        self._console: Optional[Console] = None
        self._status: Optional[Status] = None
        self._current: Optional[str] = None
        self._started_at = 0.0
        self.finished: List[Tuple[str, float]] = []

    @contextmanager
    def track(self, console: Console, first_step: str) -> Iterator["StepTracker"]:
        """
        Show a status line while the block runs.

        The step still open when the block exits is finished automatically,
        unless the block raised.
        """
        self._console = console
        self.finished = []
        self._begin(first_step)
        with console.status(self._render(first_step)) as status:
            self._status = status
            try:
                yield self
                self.finish()
            finally:
                self._status = None
                self._current = None

    def advance(self, message: str) -> None:
        """Finish the current step and start the next one."""
        self.finish()
        self._begin(message)
        self.update(message)

    def update(self, message: str) -> None:
        """Replace the status text, e.g. with a live transcript preview."""
        if self._status is not None:
            self._status.update(self._render(message))

    def finish(self, message: Optional[str] = None) -> None:
        """Record the current step as done, optionally under a different message."""
        if self._current is None:
            return
        elapsed = self._clock() - self._started_at
        label = message or self._current
        self.finished.append((label, elapsed))
        self._current = None
        self._print(f"[green]✓[/green] [dim]{label} ({elapsed:.1f}s)[/dim]")

    def note(self, message: str) -> None:
        """Print an indented detail line under the last finished step."""
        self._print(f"  [green]•[/green] [dim]{message}[/dim]")

    def _begin(self, message: str) -> None:
        self._current = message
        self._started_at = self._clock()

    def _print(self, markup: str) -> None:
        if self._console is not None:
            self._console.print(markup)

    @staticmethod
    def _render(message: str) -> str:
        return f"[dim]{message}[/dim]"


tracker = StepTracker()
