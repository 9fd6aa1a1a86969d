"""In-memory block allocator over a :class:`GlobalRange`.

Used by repair to replay the blocks namespaces already claim into a fresh
bitmap and to snapshot the result into the durable record format.
"""

from __future__ import annotations

import threading

from nsalloc.core.errors import (
    BlockAlreadyAllocatedError,
    BlockNotInRangeError,
    RangeFullError,
)
from nsalloc.security.bitmap import BitVector
from nsalloc.security.uid import Block, GlobalRange


class BlockAllocator:
    """Thread-safe bitmap allocator for UID blocks.

    Args:
        uid_range: Range the blocks are drawn from.
        capacity: Maximum number of blocks that may be marked.  Defaults
            to every block in the range.
    """

    def __init__(self, uid_range: GlobalRange, capacity: int | None = None) -> None:
        self._range = uid_range
        self._max = uid_range.block_count if capacity is None else min(capacity, uid_range.block_count)
        self._bits = BitVector(uid_range.block_count)
        self._lock = threading.Lock()

    def allocate(self, block: Block) -> None:
        """Mark *block* as allocated.

        Raises:
            BlockNotInRangeError: *block* is not one of the range's blocks.
            BlockAlreadyAllocatedError: *block* is already marked.
            RangeFullError: No room is left for another block.
        """
        offset = self._range.offset(block)
        if offset is None:
            raise BlockNotInRangeError(f"provided UID range {block} is not in the valid range {self._range}")
        with self._lock:
            if self._bits.get(offset):
                raise BlockAlreadyAllocatedError(f"provided UID range {block} is already allocated")
            if self._bits.count() >= self._max:
                raise RangeFullError(f"range {self._range} is full")
            self._bits.set(offset)

    def snapshot(self) -> tuple[str, bytes]:
        """Range encoding and bitmap bytes for the durable record."""
        with self._lock:
            return str(self._range), self._bits.to_bytes()

    def to_bit_string(self) -> str:
        with self._lock:
            return self._bits.to_bit_string()
