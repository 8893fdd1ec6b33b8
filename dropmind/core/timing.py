"""
Timing output for DM_DEBUG runs.

``timer`` wraps whole calls such as classify and clean_text, ``stage_timer``
wraps a block such as one normalization stage. Both are free when DM_DEBUG is
not set to 1 at import time.
"""

import functools
import os
import time
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

DEBUG_ENABLED = os.getenv("DM_DEBUG") == "1"


def _report(label: str, started: float) -> None:
    elapsed_ms = (time.perf_counter() - started) * 1000
    print(f"[DM_DEBUG] {label}: {elapsed_ms:.2f}ms")


def timer(func: Callable[P, R]) -> Callable[P, R]:
    """
    Print how long each call to func takes.

    Args:
        func: Function to measure

    Returns:
        func itself when debugging is off, a timing wrapper otherwise
    """
    if not DEBUG_ENABLED:
        return func

    @functools.wraps(func)
    def timed(*args: P.args, **kwargs: P.kwargs) -> R:
        started = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            _report(func.__name__, started)

    return timed


@contextmanager
def stage_timer(label: str) -> Iterator[None]:
    """Print how long the block takes under the given label."""
    if not DEBUG_ENABLED:
        yield
        return

    started = time.perf_counter()
    try:
        yield
    finally:
        _report(label, started)
