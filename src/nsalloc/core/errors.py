"""Error taxonomy for UID block allocation.

Store clients raise :class:`NotFoundError`, :class:`ConflictError` and
:class:`UnavailableError`; the allocation and repair engines raise the
range errors.  The controller loop decides which of them are retried.
"""

from __future__ import annotations


class AllocationError(Exception):
    """Base class for all nsalloc errors."""


# ---------------------------------------------------------------------------
# Store / API errors
# ---------------------------------------------------------------------------


class NotFoundError(AllocationError):
    """The requested object does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} {name!r} not found")
        self.kind = kind
        self.name = name


class ConflictError(AllocationError):
    """A write carried a stale version token and was rejected."""


class AlreadyExistsError(ConflictError):
    """A create targeted an object that already exists."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} {name!r} already exists")
        self.kind = kind
        self.name = name


class UnavailableError(AllocationError):
    """Transient store failure; the operation may succeed if retried."""


# ---------------------------------------------------------------------------
# Range errors
# ---------------------------------------------------------------------------


class RangeMismatchError(AllocationError):
    """The stored range encoding differs from the configured range."""

    def __init__(self, expected: object, actual: object) -> None:
        super().__init__(f"conflicting UID range; expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class RangeExhaustedError(AllocationError):
    """No free block is left in the range."""


class RangeFullError(RangeExhaustedError):
    """Repair could not record a valid block because the range is full."""


class BlockNotInRangeError(AllocationError):
    """The block does not belong to the configured range."""


class BlockAlreadyAllocatedError(AllocationError):
    """The block is already marked as allocated."""


class RepairTimeoutError(AllocationError):
    """The startup repair did not succeed within its time bound."""


# ---------------------------------------------------------------------------
# Parse errors
# ---------------------------------------------------------------------------


class InvalidBlockError(AllocationError, ValueError):
    """A block string could not be parsed."""


class InvalidRangeError(AllocationError, ValueError):
    """A range string or range parameters are invalid."""


class InvalidLabelError(AllocationError, ValueError):
    """A security label or label range is invalid."""
