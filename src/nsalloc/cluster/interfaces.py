"""Interfaces to the cluster API used by the allocation controller.

Implementations raise :class:`~nsalloc.core.errors.NotFoundError` for
missing objects and :class:`~nsalloc.core.errors.ConflictError` when an
update carries a stale ``resource_version``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from nsalloc.core.types import Namespace, RangeAllocation


@runtime_checkable
class RangeAllocationClient(Protocol):
    """Versioned get/create/update access to allocation records."""

    def get(self, name: str) -> RangeAllocation:
        """Current record, carrying its version token."""
        ...

    def create(self, allocation: RangeAllocation) -> RangeAllocation:
        """Create a new record. Raises AlreadyExistsError if present."""
        ...

    def update(self, allocation: RangeAllocation) -> RangeAllocation:
        """Replace the record if ``allocation.resource_version`` is current."""
        ...


@runtime_checkable
class NamespaceClient(Protocol):
    """Write access to namespaces."""

    def patch(self, name: str, patch: dict[str, Any]) -> Namespace:
        """Apply a merge patch to the named namespace."""
        ...


@runtime_checkable
class NamespaceLister(Protocol):
    """Read access to (possibly cached) namespaces."""

    def get(self, name: str) -> Namespace: ...

    def list(self) -> list[Namespace]: ...
