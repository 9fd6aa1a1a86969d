"""NamespaceAllocationController: drives repair and allocation.

Startup waits for the namespace cache to sync, then repeats repair until
it succeeds once (bounded in time).  After that a single worker thread
drains the work queue: namespace keys are allocated with exponential
backoff on failure, and an internal tick re-runs repair every few hours.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from structlog.contextvars import bound_contextvars

from nsalloc.cluster.informer import NamespaceEventHandler, NamespaceInformer
from nsalloc.controller.allocation import AllocationEngine
from nsalloc.controller.config import ControllerConfig
from nsalloc.controller.repair import RepairEngine, RepairResult
from nsalloc.controller.workqueue import ExponentialBackoff, RateLimitingQueue
from nsalloc.core.clock import Clock
from nsalloc.core.errors import (
    ConflictError,
    NotFoundError,
    RangeExhaustedError,
    RangeMismatchError,
    RepairTimeoutError,
)
from nsalloc.core.types import ControllerState, Namespace, NamespaceKey, RepairTick
from nsalloc.security.uid import Block

logger = logging.getLogger(__name__)


@dataclass
class ControllerStats:
    """Counters for the controller loop."""

    repairs: int = 0
    repair_failures: int = 0
    syncs: int = 0
    sync_failures: int = 0

    def to_dict(self) -> dict:
        return {
            "repairs": self.repairs,
            "repair_failures": self.repair_failures,
            "syncs": self.syncs,
            "sync_failures": self.sync_failures,
        }

    def reset(self) -> None:
        self.repairs = 0
        self.repair_failures = 0
        self.syncs = 0
        self.sync_failures = 0


class NamespaceAllocationController:
    """Keeps every namespace annotated with a unique UID block.

    Args:
        engine: Allocates blocks for unannotated namespaces.
        repair: Rebuilds the allocation record.
        informer: Namespace cache and change feed.  The caller starts it;
            :meth:`run` waits until it has synced.
        config: Loop timing.  Defaults to :class:`ControllerConfig`.
        clock: Time source for delayed queue items.
        queue: Work queue; built from *config* and *clock* if omitted.
    """

    def __init__(
        self,
        engine: AllocationEngine,
        repair: RepairEngine,
        informer: NamespaceInformer,
        config: ControllerConfig | None = None,
        clock: Clock | None = None,
        queue: RateLimitingQueue | None = None,
    ) -> None:
        self._engine = engine
        self._repair = repair
        self._informer = informer
        self._config = config or ControllerConfig()
        if queue is None:
            queue = RateLimitingQueue(
                clock=clock,
                rate_limiter=ExponentialBackoff(self._config.backoff_base_s, self._config.backoff_max_s),
            )
        self._queue = queue
        self._lock = threading.Lock()
        self._state = ControllerState.STOPPED
        self._last_repair: RepairResult | None = None
        self._error: BaseException | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._worker: threading.Thread | None = None
        self.stats = ControllerStats()

        informer.add_event_handler(
            NamespaceEventHandler(
                on_add=self.enqueue_namespace,
                on_update=lambda old, new: self.enqueue_namespace(new),
            )
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        with self._lock:
            return self._state

    @property
    def queue(self) -> RateLimitingQueue:
        return self._queue

    @property
    def engine(self) -> AllocationEngine:
        return self._engine

    @property
    def error(self) -> BaseException | None:
        """Exception that ended a background :meth:`start`, if any."""
        with self._lock:
            return self._error

    @property
    def last_repair(self) -> RepairResult | None:
        with self._lock:
            return self._last_repair

    def _set_state(self, state: ControllerState) -> None:
        with self._lock:
            self._state = state
        logger.debug("Controller state -> %s", state.value)

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def enqueue_namespace(self, ns: Namespace) -> None:
        self._queue.add(NamespaceKey(ns.name))

    def add_next_periodic_repair(self) -> None:
        self._queue.add_after(RepairTick(), self._config.repair_interval_s)

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def run_repair(self) -> RepairResult:
        """Run one repair pass; invalidate the engine cache on success."""
        try:
            result = self._repair.repair()
        except Exception:
            self.stats.repair_failures += 1
            raise
        self._engine.invalidate()
        self.stats.repairs += 1
        with self._lock:
            self._last_repair = result
        return result

    def wait_for_repair(self, stop_event: threading.Event) -> bool:
        """Repeat repair until it succeeds once.

        Tries immediately, then every ``startup_repair_poll_s`` seconds.
        Returns ``False`` if *stop_event* is set first; no attempt is made
        once it is set.

        Raises:
            RepairTimeoutError: No attempt succeeded within
                ``startup_repair_timeout_s`` seconds.
        """
        deadline = time.monotonic() + self._config.startup_repair_timeout_s
        attempts = 0
        while True:
            if stop_event.is_set():
                return False
            attempts += 1
            try:
                self.run_repair()
                return True
            except Exception as exc:
                logger.warning("Startup repair attempt %d failed: %s", attempts, exc)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise RepairTimeoutError(
                    f"unable to repair the UID allocation after {attempts} attempts "
                    f"in {self._config.startup_repair_timeout_s:g}s"
                )
            if stop_event.wait(min(self._config.startup_repair_poll_s, remaining)):
                return False

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def sync_namespace(self, name: str) -> Block | None:
        """Allocate a block for *name* unless it is gone or already done."""
        try:
            ns = self._informer.get(name)
        except NotFoundError:
            return None
        if ns.is_allocated:
            return None
        return self._engine.allocate(ns)

    def process_next_item(self, timeout: float | None = None) -> bool:
        """Handle one queue item.  Returns ``False`` once the queue shut down."""
        item = self._queue.get(timeout)
        if item is None:
            return not self._queue.shutting_down

        if isinstance(item, RepairTick):
            try:
                self.run_repair()
            except Exception:
                logger.exception("Periodic repair failed")
            finally:
                self._queue.done(item)
            self.add_next_periodic_repair()
            return True

        with bound_contextvars(namespace=item.name):
            try:
                self.sync_namespace(item.name)
            except Exception as exc:
                self.stats.sync_failures += 1
                self._log_sync_failure(item, exc)
                self._queue.add_rate_limited(item)
            else:
                self.stats.syncs += 1
                self._queue.forget(item)
            finally:
                self._queue.done(item)
        return True

    def _log_sync_failure(self, item: NamespaceKey, exc: Exception) -> None:
        retries = self._queue.num_requeues(item)
        if isinstance(exc, ConflictError):
            logger.info("Allocation record changed while assigning %s, retrying", item.name)
        elif isinstance(exc, (RangeMismatchError, RangeExhaustedError)):
            logger.error("Cannot allocate UID block for %s (retry %d): %s", item.name, retries, exc)
        else:
            logger.warning("Error syncing namespace %s (retry %d): %s", item.name, retries, exc)

    def _worker_loop(self) -> None:
        while self.process_next_item():
            pass
        logger.debug("Controller worker exiting")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self, stop_event: threading.Event) -> None:
        """Run the controller until *stop_event* is set.

        Raises:
            RepairTimeoutError: Startup repair never succeeded.
        """
        logger.info("Starting namespace allocation controller")
        self._set_state(ControllerState.SYNCING)
        try:
            while not self._informer.wait_for_sync(0.1):
                if stop_event.is_set():
                    return

            self._set_state(ControllerState.REPAIRING)
            if not self.wait_for_repair(stop_event):
                return

            self.add_next_periodic_repair()
            self._set_state(ControllerState.RUNNING)
            self._worker = threading.Thread(
                target=self._worker_loop,
                name="nsalloc-worker",
                daemon=True,
            )
            self._worker.start()
            logger.info("Namespace allocation controller running")
            stop_event.wait()
        finally:
            self._queue.shut_down()
            if self._worker is not None:
                self._worker.join(timeout=5.0)
                self._worker = None
            self._set_state(ControllerState.STOPPED)
            logger.info("Shutting down namespace allocation controller")

    def start(self) -> None:
        """Run the controller on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        with self._lock:
            self._error = None
        self._thread = threading.Thread(
            target=self._run_background,
            name="nsalloc-controller",
            daemon=True,
        )
        self._thread.start()

    def _run_background(self) -> None:
        try:
            self.run(self._stop_event)
        except Exception as exc:
            logger.error("Controller stopped: %s", exc)
            with self._lock:
                self._error = exc

    def stop(self) -> None:
        self._stop_event.set()
        self._queue.shut_down()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self._thread = None

    def status(self) -> dict[str, Any]:
        last = self.last_repair
        return {
            "state": self.state.value,
            "queue_depth": len(self._queue),
            "delayed": self._queue.pending_delayed,
            "controller": self.stats.to_dict(),
            "allocation": self._engine.stats.to_dict(),
            "last_repair": last.to_dict() if last is not None else None,
        }
