"""Time sources for delayed work: a real clock and a manual one."""

from __future__ import annotations

import threading
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Anything that can report the current time in epoch seconds.

    The work queue measures ``add_after`` delays against it and the event
    recorder stamps events with it.
    """

    def now(self) -> float: ...


class SystemClock:
    """Real time, immune to wall-clock jumps.

    ``time.time()`` is sampled once to anchor the epoch; after that the
    reading advances with ``time.monotonic()``.
    """

    def __init__(self):
        self._anchor = time.time() - time.monotonic()

    def now(self) -> float:
        return self._anchor + time.monotonic()


class SimClock:
    """Manually advanced clock for tests and simulations.

    Nothing moves until :meth:`step` or :meth:`set_time` is called, so an
    eight hour repair interval is one ``step(8 * 3600)`` away.  Safe to
    read from worker threads while the test thread advances it.

    Args:
        start_epoch: Reading before the first step.
    """

    def __init__(self, start_epoch: float = 1_000_000.0):
        self._start_epoch = start_epoch
        self._now = start_epoch
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def step(self, dt: float) -> None:
        """Move time forward by *dt* seconds.

        Raises:
            ValueError: *dt* is negative.
        """
        if dt < 0:
            raise ValueError(f"cannot step a clock backwards (dt={dt})")
        with self._lock:
            self._now += dt

    def set_time(self, epoch_time: float) -> None:
        """Jump to *epoch_time*.

        Raises:
            ValueError: *epoch_time* precedes the start epoch.
        """
        if epoch_time < self._start_epoch:
            raise ValueError(f"epoch_time {epoch_time} precedes start_epoch {self._start_epoch}")
        with self._lock:
            self._now = epoch_time

    @property
    def start_epoch(self) -> float:
        return self._start_epoch
