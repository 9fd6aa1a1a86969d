"""Fixed-capacity bit vector over block indices.

One bit per block of the global range, ``1`` meaning "assigned".  The
durable form is the big-endian byte encoding of the non-negative integer
whose bit ``i`` equals bit ``i`` of the vector, with leading zero bytes
stripped (an empty vector encodes to ``b""``).
"""

from __future__ import annotations

import numpy as np


class BitVector:
    """Bitmap backed by a numpy boolean array.

    Allocation scans ascend from index 0, so the lowest free block is
    always the one handed out next.
    """

    __slots__ = ("_bits",)

    def __init__(self, capacity: int) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._bits = np.zeros(capacity, dtype=bool)

    # ------------------------------------------------------------------
    # Bit access
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return int(self._bits.size)

    def get(self, index: int) -> bool:
        self._check_index(index)
        return bool(self._bits[index])

    def set(self, index: int) -> None:
        self._check_index(index)
        self._bits[index] = True

    def clear(self, index: int) -> None:
        self._check_index(index)
        self._bits[index] = False

    def count(self) -> int:
        """Number of set bits."""
        return int(np.count_nonzero(self._bits))

    def allocated(self) -> list[int]:
        """Ascending indices of all set bits."""
        return [int(i) for i in np.flatnonzero(self._bits)]

    def find_first_free(self, limit: int | None = None) -> int | None:
        """Lowest index in ``[0, limit)`` whose bit is clear.

        *limit* defaults to, and is clamped at, the capacity.  Returns
        ``None`` when every bit in the window is set.
        """
        if limit is None or limit > self.capacity:
            limit = self.capacity
        if limit <= 0:
            return None
        free = np.flatnonzero(~self._bits[:limit])
        if free.size == 0:
            return None
        return int(free[0])

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        """Minimal big-endian encoding of the bitmap integer."""
        # little bit order packs bit 8k..8k+7 into byte k, least significant first
        packed = np.packbits(self._bits, bitorder="little")
        return packed[::-1].tobytes().lstrip(b"\x00")

    @classmethod
    def from_bytes(cls, data: bytes, capacity: int) -> BitVector:
        """Decode the big-endian integer bytes into a vector of *capacity* bits.

        Bits at or beyond *capacity* are discarded.
        """
        vec = cls(capacity)
        if not data:
            return vec
        raw = np.frombuffer(bytes(data), dtype=np.uint8)[::-1]
        bits = np.unpackbits(raw, bitorder="little").astype(bool)
        n = min(capacity, int(bits.size))
        vec._bits[:n] = bits[:n]
        return vec

    def to_bit_string(self) -> str:
        """Bits rendered index-ascending, e.g. ``"1110"``."""
        return "".join("1" if b else "0" for b in self._bits)

    # ------------------------------------------------------------------

    def copy(self) -> BitVector:
        vec = BitVector(0)
        vec._bits = self._bits.copy()
        return vec

    def __len__(self) -> int:
        return self.capacity

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BitVector):
            return NotImplemented
        return bool(np.array_equal(self._bits, other._bits))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BitVector(capacity={self.capacity}, set={self.count()})"

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.capacity:
            raise IndexError(f"bit index {index} out of range [0, {self.capacity})")
