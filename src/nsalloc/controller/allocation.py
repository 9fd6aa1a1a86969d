"""Assigns one UID block per namespace.

The engine claims the lowest free block in the shared allocation record
with a version-checked update, then writes the block (and an optional MCS
label) onto the namespace as annotations.  The record is cached between
calls; any failed attempt drops the cache so the next one starts from a
fresh read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from nsalloc.cluster.interfaces import NamespaceClient, RangeAllocationClient
from nsalloc.cluster.patch import create_merge_patch
from nsalloc.core.errors import (
    ConflictError,
    NotFoundError,
    RangeExhaustedError,
    RangeMismatchError,
)
from nsalloc.core.events import EventSink
from nsalloc.core.types import (
    MCS_ANNOTATION,
    RANGE_NAME,
    SUPPLEMENTAL_GROUPS_ANNOTATION,
    UID_RANGE_ANNOTATION,
    EventType,
    Namespace,
    RangeAllocation,
)
from nsalloc.security.bitmap import BitVector
from nsalloc.security.mcs import LabelAllocationFunc
from nsalloc.security.uid import Block, GlobalRange

logger = logging.getLogger(__name__)


@dataclass
class AllocationStats:
    """Counters for allocation attempts."""

    allocations: int = 0
    conflicts: int = 0
    exhausted: int = 0
    mismatches: int = 0
    record_reads: int = 0

    def to_dict(self) -> dict:
        return {
            "allocations": self.allocations,
            "conflicts": self.conflicts,
            "exhausted": self.exhausted,
            "mismatches": self.mismatches,
            "record_reads": self.record_reads,
        }

    def reset(self) -> None:
        self.allocations = 0
        self.conflicts = 0
        self.exhausted = 0
        self.mismatches = 0
        self.record_reads = 0


class AllocationEngine:
    """Allocate UID blocks from the durable range record.

    Not safe to call concurrently for the same namespace; the controller
    serializes calls through its single worker.

    Args:
        uid_range: The configured range.  The stored record must match it.
        range_client: Versioned access to the allocation record.
        namespace_client: Used to patch annotations onto namespaces.
        label_allocation: Optional block-to-label function for the MCS
            annotation.
        recorder: Audit sink for ``CreatedSCCRanges`` events.
        range_name: Name of the allocation record.
    """

    def __init__(
        self,
        uid_range: GlobalRange,
        range_client: RangeAllocationClient,
        namespace_client: NamespaceClient,
        label_allocation: LabelAllocationFunc | None = None,
        recorder: EventSink | None = None,
        range_name: str = RANGE_NAME,
    ) -> None:
        self._range = uid_range
        self._ranges = range_client
        self._namespaces = namespace_client
        self._label_allocation = label_allocation
        self._recorder = recorder
        self._range_name = range_name
        self._cached: RangeAllocation | None = None
        self.stats = AllocationStats()

    @property
    def uid_range(self) -> GlobalRange:
        return self._range

    @property
    def cached_allocation(self) -> RangeAllocation | None:
        return self._cached

    def invalidate(self) -> None:
        """Drop the cached record; the next allocation re-reads it."""
        self._cached = None

    # ------------------------------------------------------------------

    def allocate(self, namespace: Namespace) -> Block | None:
        """Ensure *namespace* carries a UID block.

        Returns the newly assigned block, or ``None`` if the namespace was
        already annotated or disappeared before it could be patched.

        Raises:
            NotFoundError: The allocation record does not exist yet.
            RangeMismatchError: The record was written for another range.
            RangeExhaustedError: Every block is taken.
            ConflictError: The record changed since it was read.
        """
        if namespace.is_allocated:
            return None

        success = False
        try:
            block = self._allocate(namespace)
            success = True
            return block
        finally:
            if not success:
                self.invalidate()

    def _allocate(self, namespace: Namespace) -> Block | None:
        record = self._cached
        if record is None:
            record = self._ranges.get(self._range_name)
            self.stats.record_reads += 1

        try:
            stored = GlobalRange.parse(record.range)
        except ValueError:
            self.stats.mismatches += 1
            raise RangeMismatchError(self._range, record.range or "<empty>") from None
        if stored != self._range:
            self.stats.mismatches += 1
            raise RangeMismatchError(self._range, stored)

        bits = BitVector.from_bytes(record.data, self._range.block_count)
        index = bits.find_first_free(self._range.block_count)
        if index is None:
            self.stats.exhausted += 1
            raise RangeExhaustedError("uid range exceeded")
        bits.set(index)

        claimed = record.deep_copy()
        claimed.data = bits.to_bytes()
        try:
            self._cached = self._ranges.update(claimed)
        except ConflictError:
            self.stats.conflicts += 1
            raise

        block = self._range.block_at(index)
        assert block is not None

        desired = namespace.deep_copy()
        desired.annotations[UID_RANGE_ANNOTATION] = str(block)
        desired.annotations[SUPPLEMENTAL_GROUPS_ANNOTATION] = str(block)
        if MCS_ANNOTATION not in desired.annotations and self._label_allocation is not None:
            label = self._label_allocation(block)
            if label is not None:
                desired.annotations[MCS_ANNOTATION] = str(label)

        patch = create_merge_patch(namespace.to_dict(), desired.to_dict())
        try:
            self._namespaces.patch(namespace.name, patch)
        except NotFoundError:
            # the block stays marked until the next repair releases it
            logger.info("Namespace %s deleted before UID block %s was recorded", namespace.name, block)
            self.invalidate()
            return None

        self.stats.allocations += 1
        logger.debug("Assigned UID block %s to namespace %s", block, namespace.name)
        if self._recorder is not None:
            self._recorder.record(
                "Namespace",
                namespace.name,
                EventType.NORMAL,
                "CreatedSCCRanges",
                "created SCC ranges",
            )
        return block
