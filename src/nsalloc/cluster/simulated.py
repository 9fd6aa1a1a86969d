"""In-process simulated cluster store.

Holds namespaces and range allocation records with per-object version
counters, enforces optimistic concurrency on updates, delivers watch
events, and can inject faults (one-shot errors or a random unavailability
rate) for realistic testing without a real API server.
"""

from __future__ import annotations

import logging
import random
import threading
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from nsalloc.cluster.patch import apply_merge_patch
from nsalloc.core.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    UnavailableError,
)
from nsalloc.core.types import Namespace, RangeAllocation, WatchEventType

logger = logging.getLogger(__name__)

WatchCallback = Callable[[WatchEventType, Namespace], None]

OPERATIONS = (
    "namespace.get",
    "namespace.list",
    "namespace.patch",
    "range.get",
    "range.create",
    "range.update",
)


# ---------------------------------------------------------------------------
# Fault profile
# ---------------------------------------------------------------------------


@dataclass
class FaultProfile:
    """Random store unavailability."""

    unavailable_rate: float = 0.0

    def should_fail(self, rng: random.Random) -> bool:
        return rng.random() < self.unavailable_rate


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@dataclass
class ClusterStats:
    """Request counters for the simulated store."""

    range_reads: int = 0
    range_writes: int = 0
    range_conflicts: int = 0
    namespace_reads: int = 0
    namespace_patches: int = 0
    faults: int = 0

    def to_dict(self) -> dict:
        return {
            "range_reads": self.range_reads,
            "range_writes": self.range_writes,
            "range_conflicts": self.range_conflicts,
            "namespace_reads": self.namespace_reads,
            "namespace_patches": self.namespace_patches,
            "faults": self.faults,
        }

    def reset(self) -> None:
        self.range_reads = 0
        self.range_writes = 0
        self.range_conflicts = 0
        self.namespace_reads = 0
        self.namespace_patches = 0
        self.faults = 0


# ---------------------------------------------------------------------------
# SimulatedCluster
# ---------------------------------------------------------------------------


class SimulatedCluster:
    """Thread-safe versioned object store.

    Every write bumps the object's version by one.  Updates to range
    allocations must carry the current version; anything else is rejected
    with :class:`ConflictError`.  Watch callbacks run after the lock is
    released.
    """

    def __init__(self, profile: FaultProfile | None = None, seed: int = 42) -> None:
        self._lock = threading.Lock()
        self._namespaces: dict[str, Namespace] = {}
        self._ranges: dict[str, RangeAllocation] = {}
        self._watchers: list[WatchCallback] = []
        self._faults: dict[str, deque[Exception]] = defaultdict(deque)
        self._profile = profile or FaultProfile()
        self._rng = random.Random(seed)
        self.stats = ClusterStats()

    @property
    def profile(self) -> FaultProfile:
        return self._profile

    @profile.setter
    def profile(self, value: FaultProfile) -> None:
        self._profile = value

    # --- Fault injection ---

    def inject_fault(self, operation: str, error: Exception, times: int = 1) -> None:
        """Make the next *times* calls of *operation* raise *error*."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation {operation!r}; expected one of {OPERATIONS}")
        with self._lock:
            for _ in range(times):
                self._faults[operation].append(error)

    def clear_faults(self) -> None:
        with self._lock:
            self._faults.clear()

    def _maybe_fail(self, operation: str) -> None:
        """Raise a pending injected fault (caller holds lock)."""
        pending = self._faults.get(operation)
        if pending:
            self.stats.faults += 1
            raise pending.popleft()
        if self._profile.should_fail(self._rng):
            self.stats.faults += 1
            raise UnavailableError(f"simulated outage during {operation}")

    # --- Watch ---

    def add_watch(self, callback: WatchCallback) -> None:
        with self._lock:
            self._watchers.append(callback)

    def remove_watch(self, callback: WatchCallback) -> None:
        with self._lock:
            if callback in self._watchers:
                self._watchers.remove(callback)

    def _notify(self, event: WatchEventType, ns: Namespace) -> None:
        with self._lock:
            watchers = list(self._watchers)
        for callback in watchers:
            try:
                callback(event, ns.deep_copy())
            except Exception:
                logger.exception("Watch callback error on %s %s", event.value, ns.name)

    # --- Namespaces (test / operator side, no faults) ---

    def create_namespace(
        self,
        name: str,
        annotations: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> Namespace:
        with self._lock:
            if name in self._namespaces:
                raise AlreadyExistsError("Namespace", name)
            ns = Namespace(
                name=name,
                annotations=dict(annotations or {}),
                labels=dict(labels or {}),
                resource_version="1",
            )
            self._namespaces[name] = ns
            result = ns.deep_copy()
        self._notify(WatchEventType.ADDED, result)
        return result

    def update_namespace(
        self,
        name: str,
        annotations: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> Namespace:
        """Replace annotations and/or labels wholesale, as a user edit would."""
        with self._lock:
            ns = self._namespaces.get(name)
            if ns is None:
                raise NotFoundError("Namespace", name)
            if annotations is not None:
                ns.annotations = dict(annotations)
            if labels is not None:
                ns.labels = dict(labels)
            ns.resource_version = str(int(ns.resource_version) + 1)
            result = ns.deep_copy()
        self._notify(WatchEventType.MODIFIED, result)
        return result

    def delete_namespace(self, name: str) -> None:
        with self._lock:
            ns = self._namespaces.pop(name, None)
        if ns is None:
            raise NotFoundError("Namespace", name)
        self._notify(WatchEventType.DELETED, ns)

    # --- Namespaces (client side) ---

    def get_namespace(self, name: str) -> Namespace:
        with self._lock:
            self._maybe_fail("namespace.get")
            self.stats.namespace_reads += 1
            ns = self._namespaces.get(name)
            if ns is None:
                raise NotFoundError("Namespace", name)
            return ns.deep_copy()

    def list_namespaces(self) -> list[Namespace]:
        with self._lock:
            self._maybe_fail("namespace.list")
            self.stats.namespace_reads += 1
            return [ns.deep_copy() for ns in sorted(self._namespaces.values(), key=lambda n: n.name)]

    def patch_namespace(self, name: str, patch: dict[str, Any]) -> Namespace:
        with self._lock:
            self._maybe_fail("namespace.patch")
            ns = self._namespaces.get(name)
            if ns is None:
                raise NotFoundError("Namespace", name)
            doc = apply_merge_patch(ns.to_dict(), patch)
            patched = Namespace.from_dict(doc)
            patched.resource_version = str(int(ns.resource_version) + 1)
            self._namespaces[name] = patched
            self.stats.namespace_patches += 1
            result = patched.deep_copy()
        self._notify(WatchEventType.MODIFIED, result)
        return result

    # --- Range allocations ---

    def get_range(self, name: str) -> RangeAllocation:
        with self._lock:
            self._maybe_fail("range.get")
            self.stats.range_reads += 1
            record = self._ranges.get(name)
            if record is None:
                raise NotFoundError("RangeAllocation", name)
            return record.deep_copy()

    def create_range(self, allocation: RangeAllocation) -> RangeAllocation:
        with self._lock:
            self._maybe_fail("range.create")
            if allocation.name in self._ranges:
                raise AlreadyExistsError("RangeAllocation", allocation.name)
            stored = allocation.deep_copy()
            stored.resource_version = "1"
            self._ranges[stored.name] = stored
            self.stats.range_writes += 1
            return stored.deep_copy()

    def update_range(self, allocation: RangeAllocation) -> RangeAllocation:
        with self._lock:
            self._maybe_fail("range.update")
            current = self._ranges.get(allocation.name)
            if current is None:
                raise NotFoundError("RangeAllocation", allocation.name)
            if allocation.resource_version != current.resource_version:
                self.stats.range_conflicts += 1
                raise ConflictError(
                    f"RangeAllocation {allocation.name!r}: the object has been modified "
                    f"(have version {allocation.resource_version!r}, current {current.resource_version!r})"
                )
            stored = allocation.deep_copy()
            stored.resource_version = str(int(current.resource_version) + 1)
            self._ranges[stored.name] = stored
            self.stats.range_writes += 1
            return stored.deep_copy()

    def put_range(self, allocation: RangeAllocation) -> RangeAllocation:
        """Blind overwrite, bypassing version checks (simulates manual edits)."""
        with self._lock:
            current = self._ranges.get(allocation.name)
            stored = allocation.deep_copy()
            stored.resource_version = str(int(current.resource_version) + 1) if current else "1"
            self._ranges[stored.name] = stored
            return stored.deep_copy()

    def delete_range(self, name: str) -> None:
        with self._lock:
            if self._ranges.pop(name, None) is None:
                raise NotFoundError("RangeAllocation", name)

    # --- Protocol views ---

    def range_allocations(self) -> SimulatedRangeAllocationClient:
        return SimulatedRangeAllocationClient(self)

    def namespaces(self) -> SimulatedNamespaceClient:
        return SimulatedNamespaceClient(self)


class SimulatedRangeAllocationClient:
    """:class:`RangeAllocationClient` view over a :class:`SimulatedCluster`."""

    def __init__(self, cluster: SimulatedCluster) -> None:
        self._cluster = cluster

    def get(self, name: str) -> RangeAllocation:
        return self._cluster.get_range(name)

    def create(self, allocation: RangeAllocation) -> RangeAllocation:
        return self._cluster.create_range(allocation)

    def update(self, allocation: RangeAllocation) -> RangeAllocation:
        return self._cluster.update_range(allocation)


class SimulatedNamespaceClient:
    """:class:`NamespaceClient` and :class:`NamespaceLister` view that reads
    straight from the store (no cache)."""

    def __init__(self, cluster: SimulatedCluster) -> None:
        self._cluster = cluster

    def get(self, name: str) -> Namespace:
        return self._cluster.get_namespace(name)

    def list(self) -> list[Namespace]:
        return self._cluster.list_namespaces()

    def patch(self, name: str, patch: dict[str, Any]) -> Namespace:
        return self._cluster.patch_namespace(name, patch)
