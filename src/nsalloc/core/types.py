"""Core data types for the namespace allocation controller."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any

CONTROLLER_NAME = "namespace-security-allocation-controller"
RANGE_NAME = "scc-uid"

UID_RANGE_ANNOTATION = "openshift.io/sa.scc.uid-range"
SUPPLEMENTAL_GROUPS_ANNOTATION = "openshift.io/sa.scc.supplemental-groups"
MCS_ANNOTATION = "openshift.io/sa.scc.mcs"


class EventType(enum.Enum):
    NORMAL = "Normal"
    WARNING = "Warning"


class WatchEventType(enum.Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class ControllerState(enum.Enum):
    """Lifecycle of the allocation controller.

    STOPPED -> SYNCING -> REPAIRING -> RUNNING -> STOPPED
    """

    STOPPED = "stopped"
    SYNCING = "syncing"
    REPAIRING = "repairing"
    RUNNING = "running"


# ---------------------------------------------------------------------------
# Cluster objects
# ---------------------------------------------------------------------------


@dataclass
class Namespace:
    """A cluster namespace as seen by the controller."""

    name: str
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""

    @property
    def is_allocated(self) -> bool:
        return UID_RANGE_ANNOTATION in self.annotations

    def deep_copy(self) -> Namespace:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Object document used for merge patch computation."""
        return {
            "metadata": {
                "name": self.name,
                "annotations": dict(self.annotations),
                "labels": dict(self.labels),
                "resourceVersion": self.resource_version,
            },
        }

    @classmethod
    def from_dict(cls, doc: dict[str, Any]) -> Namespace:
        meta = doc.get("metadata", {}) or {}
        return cls(
            name=str(meta.get("name", "")),
            annotations=dict(meta.get("annotations", {}) or {}),
            labels=dict(meta.get("labels", {}) or {}),
            resource_version=str(meta.get("resourceVersion", "")),
        )


@dataclass
class RangeAllocation:
    """Durable, versioned allocation record.

    ``range`` is the canonical range encoding, ``data`` the big-endian
    bytes of the allocation bitmap, ``resource_version`` the optimistic
    concurrency token returned by the store.
    """

    name: str
    range: str = ""
    data: bytes = b""
    resource_version: str = ""

    def deep_copy(self) -> RangeAllocation:
        return RangeAllocation(
            name=self.name,
            range=self.range,
            data=bytes(self.data),
            resource_version=self.resource_version,
        )


@dataclass
class AuditEvent:
    """Human-facing audit event about an object."""

    kind: str
    name: str
    type: EventType
    reason: str
    message: str
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "type": self.type.value,
            "reason": self.reason,
            "message": self.message,
            "timestamp": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RepairTick:
    """Queue item that triggers a full periodic repair."""

    def __str__(self) -> str:
        return "__internal/periodicRepair"


@dataclass(frozen=True)
class NamespaceKey:
    """Queue item naming a namespace to ensure allocated."""

    name: str

    def __str__(self) -> str:
        return self.name


WorkItem = RepairTick | NamespaceKey
