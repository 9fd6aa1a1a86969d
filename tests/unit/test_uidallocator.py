"""Unit tests for BlockAllocator."""

from __future__ import annotations

import threading

import pytest

from nsalloc.core.errors import (
    BlockAlreadyAllocatedError,
    BlockNotInRangeError,
    RangeExhaustedError,
    RangeFullError,
)
from nsalloc.security.uid import Block, GlobalRange
from nsalloc.security.uidallocator import BlockAllocator


@pytest.fixture
def uid_range() -> GlobalRange:
    return GlobalRange(0, 40, 10)


class TestAllocate:
    def test_allocate_marks_block(self, uid_range):
        """Allocating a block sets exactly its bit."""
        alloc = BlockAllocator(uid_range)
        alloc.allocate(Block(10, 19))
        assert alloc.to_bit_string() == "0100"

    def test_not_in_range(self, uid_range):
        """Blocks past the end or misaligned are rejected."""
        alloc = BlockAllocator(uid_range)
        with pytest.raises(BlockNotInRangeError):
            alloc.allocate(Block(40, 49))
        with pytest.raises(BlockNotInRangeError):
            alloc.allocate(Block(5, 14))

    def test_already_allocated(self, uid_range):
        alloc = BlockAllocator(uid_range)
        alloc.allocate(Block(0, 9))
        with pytest.raises(BlockAlreadyAllocatedError):
            alloc.allocate(Block(0, 9))

    def test_capacity_limit_raises_full(self, uid_range):
        """A capacity below block_count makes the allocator fill early."""
        alloc = BlockAllocator(uid_range, capacity=1)
        alloc.allocate(Block(0, 9))
        with pytest.raises(RangeFullError):
            alloc.allocate(Block(10, 19))

    def test_every_block_then_full(self, uid_range):
        alloc = BlockAllocator(uid_range)
        for i in range(uid_range.block_count):
            alloc.allocate(uid_range.block_at(i))
        assert alloc.to_bit_string() == "1111"

    def test_full_is_a_kind_of_exhausted(self):
        assert issubclass(RangeFullError, RangeExhaustedError)

    def test_concurrent_allocations_unique(self):
        """Racing threads never both succeed on the same block."""
        uid_range = GlobalRange(0, 200, 1)
        alloc = BlockAllocator(uid_range)
        won: list[Block] = []
        lock = threading.Lock()

        def worker():
            for i in range(uid_range.block_count):
                try:
                    alloc.allocate(uid_range.block_at(i))
                except BlockAlreadyAllocatedError:
                    continue
                with lock:
                    won.append(uid_range.block_at(i))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(won) == 200
        assert len(set(won)) == 200


class TestSnapshot:
    def test_snapshot_format(self, uid_range):
        """Snapshot carries the range string and big-endian bitmap bytes."""
        alloc = BlockAllocator(uid_range)
        alloc.allocate(Block(0, 9))
        alloc.allocate(Block(20, 29))
        range_string, data = alloc.snapshot()
        assert range_string == "0-39/10"
        assert data == b"\x05"

    def test_empty_snapshot(self, uid_range):
        assert BlockAllocator(uid_range).snapshot() == ("0-39/10", b"")
