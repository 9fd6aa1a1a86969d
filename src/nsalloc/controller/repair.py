"""Rebuilds the allocation record from the namespaces that exist.

Repair replays every namespace's uid-range annotation into a fresh
allocator and writes the result back with a version-checked update (or a
create, the first time).  Blocks that were marked but are no longer
claimed by any namespace are released this way, and a missing or damaged
record is recreated.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from nsalloc.cluster.interfaces import NamespaceLister, RangeAllocationClient
from nsalloc.core.errors import (
    BlockAlreadyAllocatedError,
    BlockNotInRangeError,
    NotFoundError,
    RangeFullError,
)
from nsalloc.core.events import EventSink
from nsalloc.core.types import RANGE_NAME, UID_RANGE_ANNOTATION, EventType, RangeAllocation
from nsalloc.security.uid import Block, GlobalRange
from nsalloc.security.uidallocator import BlockAllocator

logger = logging.getLogger(__name__)

AllocatorFactory = Callable[[GlobalRange], BlockAllocator]


@dataclass
class RepairResult:
    """Outcome of one repair pass."""

    allocated: int = 0
    out_of_range: int = 0
    conflicts: int = 0
    invalid: int = 0
    created: bool = False
    bits: str = ""

    def to_dict(self) -> dict:
        return {
            "allocated": self.allocated,
            "out_of_range": self.out_of_range,
            "conflicts": self.conflicts,
            "invalid": self.invalid,
            "created": self.created,
            "bits": self.bits,
        }


class RepairEngine:
    """Recompute the allocation record from namespace annotations.

    Args:
        uid_range: The configured range.
        range_client: Versioned access to the allocation record.
        lister: Source of the namespaces to replay.
        recorder: Audit sink for the ``UIDRangeFull`` warning.
        range_name: Name of the allocation record.
        allocator_factory: Builds the scratch allocator; defaults to a
            :class:`BlockAllocator` covering the whole range.
    """

    def __init__(
        self,
        uid_range: GlobalRange,
        range_client: RangeAllocationClient,
        lister: NamespaceLister,
        recorder: EventSink | None = None,
        range_name: str = RANGE_NAME,
        allocator_factory: AllocatorFactory = BlockAllocator,
    ) -> None:
        self._range = uid_range
        self._ranges = range_client
        self._lister = lister
        self._recorder = recorder
        self._range_name = range_name
        self._allocator_factory = allocator_factory

    def repair(self) -> RepairResult:
        """Run one repair pass.

        Raises:
            RangeFullError: The namespaces claim more blocks than fit.
            ConflictError: The record changed during the pass; retry.
        """
        # The record read and the namespace list are not taken at one
        # consistent point in time.  If another allocator writes between
        # them, a double allocation can go unnoticed until the next pass.
        result = RepairResult()
        try:
            latest = self._ranges.get(self._range_name)
        except NotFoundError:
            latest = RangeAllocation(name=self._range_name)
            result.created = True

        allocator = self._allocator_factory(self._range)
        for ns in self._lister.list():
            value = ns.annotations.get(UID_RANGE_ANNOTATION)
            if value is None:
                continue
            try:
                block = Block.parse(value)
            except ValueError:
                result.invalid += 1
                continue

            try:
                allocator.allocate(block)
            except BlockNotInRangeError:
                result.out_of_range += 1
                logger.debug("Namespace %s holds block %s outside %s", ns.name, block, self._range)
            except BlockAlreadyAllocatedError:
                result.conflicts += 1
                logger.warning("Namespace %s holds block %s that is already assigned", ns.name, block)
            except RangeFullError:
                if self._recorder is not None:
                    self._recorder.record(
                        "RangeAllocation",
                        self._range_name,
                        EventType.WARNING,
                        "UIDRangeFull",
                        f"the UID range {self._range} is full; you must widen the range in order to allocate more UIDs",
                    )
                raise RangeFullError(f"the UID range {self._range} is full") from None
            else:
                result.allocated += 1

        latest.range, latest.data = allocator.snapshot()
        if result.created:
            self._ranges.create(latest)
        else:
            self._ranges.update(latest)

        result.bits = allocator.to_bit_string()
        logger.info(
            "Repaired %s: %d blocks in use (%d out of range, %d conflicting, %d invalid)",
            self._range_name,
            result.allocated,
            result.out_of_range,
            result.conflicts,
            result.invalid,
        )
        return result
