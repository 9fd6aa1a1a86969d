"""UID blocks and the global UID range.

A :class:`GlobalRange` splits ``[base, base + size)`` into fixed-size
blocks; block index ``i`` maps to ``[base + i*block_size,
base + (i+1)*block_size - 1]``.  The string forms are storage formats and
must not change:

- block: ``"<start>/<size>"`` (``"<start>-<end>"`` is accepted on parse)
- range: ``"<base>-<end>/<block_size>"``
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from nsalloc.core.errors import InvalidBlockError, InvalidRangeError

MAX_UID = 2**32 - 1

_BLOCK_SIZE_RE = re.compile(r"^\s*(\d+)/(\d+)\s*$")
_BLOCK_SPAN_RE = re.compile(r"^\s*(\d+)-(\d+)\s*$")
_RANGE_RE = re.compile(r"^\s*(\d+)-(\d+)/(\d+)\s*$")


@dataclass(frozen=True)
class Block:
    """Contiguous inclusive span of UIDs."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end > MAX_UID:
            raise InvalidBlockError(f"block {self.start}-{self.end} outside uint32 space")
        if self.end < self.start:
            raise InvalidBlockError(f"block end {self.end} is before start {self.start}")

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def range_string(self) -> str:
        return f"{self.start}-{self.end}"

    def __str__(self) -> str:
        return f"{self.start}/{self.size}"

    @classmethod
    def parse(cls, value: str) -> Block:
        """Parse ``"<start>/<size>"`` or ``"<start>-<end>"``.

        Raises:
            InvalidBlockError: If *value* matches neither form.
        """
        m = _BLOCK_SIZE_RE.match(value)
        if m is not None:
            start, size = int(m.group(1)), int(m.group(2))
            if size == 0:
                raise InvalidBlockError(f"block size must be positive: {value!r}")
            return cls(start, start + size - 1)
        m = _BLOCK_SPAN_RE.match(value)
        if m is not None:
            return cls(int(m.group(1)), int(m.group(2)))
        raise InvalidBlockError(
            f"block not in the format \"<start>/<size>\" or \"<start>-<end>\": {value!r}"
        )


@dataclass(frozen=True)
class GlobalRange:
    """The UID space this process may allocate blocks from.

    Compared by value; a stored range that is not equal to the configured
    one is a configuration mismatch.
    """

    base: int
    size: int
    block_size: int

    def __post_init__(self) -> None:
        if self.base < 0:
            raise InvalidRangeError(f"range base must be >= 0, got {self.base}")
        if self.size <= 0:
            raise InvalidRangeError(f"range size must be positive, got {self.size}")
        if self.block_size <= 0:
            raise InvalidRangeError("block size must be a positive integer")
        if self.block_size > self.size:
            raise InvalidRangeError(
                f"block size {self.block_size} must be less than or equal to the range size {self.size}"
            )
        if self.base + self.size - 1 > MAX_UID:
            raise InvalidRangeError(f"range end {self.base + self.size - 1} exceeds {MAX_UID}")

    @classmethod
    def from_bounds(cls, start: int, end: int, block_size: int) -> GlobalRange:
        """Build from inclusive ``start``/``end`` bounds."""
        if end < start:
            raise InvalidRangeError(f"start {start} must be less than end {end}")
        return cls(base=start, size=end - start + 1, block_size=block_size)

    @classmethod
    def parse(cls, value: str) -> GlobalRange:
        """Parse ``"<start>-<end>/<block_size>"``.

        Raises:
            InvalidRangeError: On malformed input or invalid bounds.
        """
        m = _RANGE_RE.match(value)
        if m is None:
            raise InvalidRangeError(
                f"range not in the format \"<start>-<end>/<blockSize>\": {value!r}"
            )
        return cls.from_bounds(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    # ------------------------------------------------------------------

    @property
    def end(self) -> int:
        return self.base + self.size - 1

    @property
    def block_count(self) -> int:
        """Number of whole blocks; one bitmap bit each."""
        return self.size // self.block_size

    def __str__(self) -> str:
        return f"{self.base}-{self.end}/{self.block_size}"

    def block_at(self, index: int) -> Block | None:
        """Block for bitmap *index*, or ``None`` outside ``[0, block_count)``."""
        if not 0 <= index < self.block_count:
            return None
        start = self.base + index * self.block_size
        return Block(start, start + self.block_size - 1)

    def offset(self, block: Block) -> int | None:
        """Bitmap index of *block*, or ``None`` if it is not one of our blocks."""
        if block.start < self.base or block.end > self.end:
            return None
        if block.size != self.block_size:
            return None
        delta = block.start - self.base
        if delta % self.block_size != 0:
            return None
        index = delta // self.block_size
        if index >= self.block_count:
            return None
        return index

    def contains(self, block: Block) -> bool:
        return self.offset(block) is not None
