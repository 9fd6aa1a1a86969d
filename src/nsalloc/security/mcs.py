"""SELinux MCS labels derived from UID blocks.

A :class:`LabelRange` enumerates every label made of ``k`` distinct
categories drawn from ``c0 .. c(n-1)``; offset ``i`` is mapped to a label
through the combinatorial number system, so offsets 0, 1, 2, 3 with
``k=2`` give ``c1,c0``, ``c2,c0``, ``c2,c1``, ``c3,c0``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from math import comb

from nsalloc.core.errors import InvalidLabelError
from nsalloc.security.uid import Block, GlobalRange

MAX_CATEGORIES = 1024


@dataclass(frozen=True)
class Label:
    """MCS label: prefix plus categories in descending order."""

    prefix: str
    categories: tuple[int, ...]

    def __str__(self) -> str:
        return self.prefix + ",".join(f"c{c}" for c in self.categories)


class LabelRange:
    """All labels with *k* categories out of *n*.

    Args:
        prefix: Label prefix, e.g. ``"s0:"``.
        k: Categories per label.
        n: Number of available categories (``c0`` .. ``c(n-1)``).
    """

    def __init__(self, prefix: str, k: int, n: int = MAX_CATEGORIES) -> None:
        if k <= 0:
            raise InvalidLabelError("labels must have at least one category")
        if n <= 0:
            raise InvalidLabelError("categories must be a positive integer")
        if n > MAX_CATEGORIES:
            raise InvalidLabelError(f"categories may not exceed {MAX_CATEGORIES}")
        if k > n:
            raise InvalidLabelError(f"labels may not have more categories ({k}) than available ({n})")
        self._prefix = prefix
        self._k = k
        self._n = n

    @classmethod
    def parse(cls, value: str) -> LabelRange:
        """Parse ``"<prefix>/<k>[,<n>]"``, e.g. ``"s0:/2"``."""
        prefix, sep, size = value.partition("/")
        if not sep:
            raise InvalidLabelError(
                f"range not in the format \"<prefix>/<numLabel>[,<maxCategory>]\": {value!r}"
            )
        k_str, _, n_str = size.partition(",")
        try:
            k = int(k_str)
            n = int(n_str) if n_str else MAX_CATEGORIES
        except ValueError as exc:
            raise InvalidLabelError(f"invalid label range {value!r}: {exc}") from exc
        return cls(prefix, k, n)

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def size(self) -> int:
        """Number of distinct labels, ``C(n, k)``."""
        return comb(self._n, self._k)

    def __str__(self) -> str:
        if self._n == MAX_CATEGORIES:
            return f"{self._prefix}/{self._k}"
        return f"{self._prefix}/{self._k},{self._n}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LabelRange):
            return NotImplemented
        return (self._prefix, self._k, self._n) == (other._prefix, other._k, other._n)

    def __hash__(self) -> int:
        return hash((self._prefix, self._k, self._n))

    def label_at(self, offset: int) -> Label | None:
        """Label at *offset*, or ``None`` past the end of the range."""
        if not 0 <= offset < self.size:
            return None
        categories = []
        remaining = offset
        for i in range(self._k, 0, -1):
            c = i - 1
            while comb(c + 1, i) <= remaining:
                c += 1
            categories.append(c)
            remaining -= comb(c, i)
        return Label(self._prefix, tuple(categories))


LabelAllocationFunc = Callable[[Block], Label | None]


def label_allocation(
    uid_range: GlobalRange,
    label_range: LabelRange,
    labels_per_block: int,
) -> LabelAllocationFunc:
    """Map a block to the label at the block's offset in *uid_range*.

    The offset is multiplied by *labels_per_block* when positive, so each
    namespace skips that many labels in the category space.  Blocks outside
    *uid_range*, or whose scaled offset runs past *label_range*, get no
    label.
    """

    def allocate(block: Block) -> Label | None:
        offset = uid_range.offset(block)
        if offset is None:
            return None
        if labels_per_block > 0:
            offset *= labels_per_block
        return label_range.label_at(offset)

    return allocate
