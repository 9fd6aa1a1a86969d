"""Deduplicating, delaying, rate-limited work queue.

Semantics follow the usual controller work queue contract:

- an item that is already waiting is not queued twice;
- an item being processed is never handed to a second consumer; if it is
  re-added meanwhile, it is queued again once :meth:`done` is called;
- :meth:`add_after` holds an item back until the clock passes its due time;
- :meth:`add_rate_limited` delays by a per-item exponential backoff that
  :meth:`forget` resets.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from collections.abc import Hashable

from nsalloc.core.clock import Clock, SystemClock


class ExponentialBackoff:
    """Per-item exponential backoff: ``base * 2**failures``, capped."""

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0) -> None:
        if base_delay <= 0:
            raise ValueError(f"base_delay must be > 0, got {base_delay}")
        if max_delay < base_delay:
            raise ValueError(f"max_delay {max_delay} must be >= base_delay {base_delay}")
        self._base = base_delay
        self._max = max_delay
        self._failures: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        """Delay for the next retry of *item*; counts one more failure."""
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1
        # cap the exponent
        if exp >= 64:
            return self._max
        return min(self._base * (2**exp), self._max)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class RateLimitingQueue:
    """Thread-safe work queue.

    Args:
        clock: Time source for delayed items.  Defaults to the system clock.
        rate_limiter: Backoff policy for :meth:`add_rate_limited`.
        poll_interval_s: Upper bound on how long a blocked :meth:`get`
            sleeps before re-checking delayed items; keeps simulated clocks
            responsive.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        rate_limiter: ExponentialBackoff | None = None,
        poll_interval_s: float = 0.5,
    ) -> None:
        self._clock = clock or SystemClock()
        self._rate_limiter = rate_limiter or ExponentialBackoff()
        self._poll_interval_s = poll_interval_s
        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._seq = itertools.count()
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Basic queue
    # ------------------------------------------------------------------

    def add(self, item: Hashable) -> None:
        with self._cond:
            self._add_locked(item)

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def get(self, timeout: float | None = None) -> Hashable | None:
        """Next ready item, or ``None`` on timeout or shutdown.

        *timeout* is wall-clock seconds; ``timeout=0`` polls without
        blocking.  Delayed items whose due time
        has passed are promoted before the queue is inspected.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                self._promote_ready_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._processing.add(item)
                    self._dirty.discard(item)
                    return item
                wait = self._poll_interval_s
                if self._waiting:
                    wait = min(wait, max(self._waiting[0][0] - self._clock.now(), 0.0))
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = min(wait, remaining)
                self._cond.wait(wait)

    def done(self, item: Hashable) -> None:
        """Mark *item* finished; requeue it if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    # ------------------------------------------------------------------
    # Delaying
    # ------------------------------------------------------------------

    def add_after(self, item: Hashable, delay: float) -> None:
        """Queue *item* once *delay* seconds have passed on the clock."""
        with self._cond:
            if self._shutting_down:
                return
            if delay <= 0:
                self._add_locked(item)
                return
            heapq.heappush(self._waiting, (self._clock.now() + delay, next(self._seq), item))
            self._cond.notify()

    @property
    def pending_delayed(self) -> int:
        with self._cond:
            return len(self._waiting)

    def next_ready_at(self) -> float | None:
        """Due time of the earliest delayed item, if any."""
        with self._cond:
            return self._waiting[0][0] if self._waiting else None

    def _promote_ready_locked(self) -> None:
        now = self._clock.now()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, item = heapq.heappop(self._waiting)
            self._add_locked(item)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    def add_rate_limited(self, item: Hashable) -> None:
        self.add_after(item, self._rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        self._rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self._rate_limiter.num_requeues(item)
