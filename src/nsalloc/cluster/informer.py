"""Cached namespace change feed.

The informer lists every namespace once to fill its cache, then follows
the cluster's watch events.  Registered handlers are told about adds,
updates and deletes; a periodic resync redelivers an update for every
cached namespace so that missed work is eventually picked up.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from nsalloc.core.errors import NotFoundError
from nsalloc.core.types import Namespace, WatchEventType

logger = logging.getLogger(__name__)


@dataclass
class NamespaceEventHandler:
    """Callbacks for namespace changes. Any of them may be omitted."""

    on_add: Callable[[Namespace], None] | None = None
    on_update: Callable[[Namespace, Namespace], None] | None = None
    on_delete: Callable[[Namespace], None] | None = None


def _version(ns: Namespace) -> int:
    try:
        return int(ns.resource_version)
    except ValueError:
        return 0


class NamespaceInformer:
    """Watch-driven namespace cache implementing ``NamespaceLister``.

    Args:
        source: Object with ``list_namespaces()``, ``add_watch()`` and
            ``remove_watch()`` (e.g. :class:`SimulatedCluster`).
        resync_period_s: Seconds between resyncs; ``0`` disables them.
    """

    def __init__(self, source, resync_period_s: float = 600.0) -> None:
        self._source = source
        self._resync_period_s = resync_period_s
        self._lock = threading.Lock()
        self._cache: dict[str, Namespace] = {}
        self._handlers: list[NamespaceEventHandler] = []
        self._synced = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lister
    # ------------------------------------------------------------------

    def get(self, name: str) -> Namespace:
        with self._lock:
            ns = self._cache.get(name)
            if ns is None:
                raise NotFoundError("Namespace", name)
            return ns.deep_copy()

    def list(self) -> list[Namespace]:
        with self._lock:
            return [ns.deep_copy() for ns in sorted(self._cache.values(), key=lambda n: n.name)]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_event_handler(self, handler: NamespaceEventHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    @property
    def has_synced(self) -> bool:
        return self._synced.is_set()

    def wait_for_sync(self, timeout: float | None = None) -> bool:
        return self._synced.wait(timeout)

    def start(self) -> None:
        """Subscribe to watch events, fill the cache, start resyncing."""
        self._stop_event.clear()
        self._source.add_watch(self._on_watch_event)
        for ns in self._source.list_namespaces():
            self._apply(WatchEventType.ADDED, ns)
        self._synced.set()
        logger.debug("Namespace informer synced (%d namespaces)", len(self._cache))

        if self._resync_period_s > 0 and (self._thread is None or not self._thread.is_alive()):
            self._thread = threading.Thread(
                target=self._resync_loop,
                name="nsalloc-informer-resync",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._source.remove_watch(self._on_watch_event)
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        self._synced.clear()

    def resync(self) -> int:
        """Redeliver an update for every cached namespace. Returns the count."""
        with self._lock:
            cached = [ns.deep_copy() for ns in self._cache.values()]
            handlers = list(self._handlers)
        for ns in cached:
            for handler in handlers:
                if handler.on_update is not None:
                    self._call(handler.on_update, ns, ns)
        return len(cached)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resync_loop(self) -> None:
        while not self._stop_event.wait(self._resync_period_s):
            count = self.resync()
            logger.debug("Informer resync delivered %d namespaces", count)

    def _on_watch_event(self, event: WatchEventType, ns: Namespace) -> None:
        self._apply(event, ns)

    def _apply(self, event: WatchEventType, ns: Namespace) -> None:
        with self._lock:
            old = self._cache.get(ns.name)
            if event is WatchEventType.DELETED:
                if old is None:
                    return
                del self._cache[ns.name]
            else:
                if old is not None and _version(ns) < _version(old):
                    # a stale event delivered out of order
                    return
                self._cache[ns.name] = ns.deep_copy()
            handlers = list(self._handlers)

        for handler in handlers:
            if event is WatchEventType.DELETED:
                if handler.on_delete is not None:
                    self._call(handler.on_delete, ns)
            elif old is None:
                if handler.on_add is not None:
                    self._call(handler.on_add, ns)
            elif handler.on_update is not None:
                self._call(handler.on_update, old, ns)

    @staticmethod
    def _call(callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Namespace event handler error")
