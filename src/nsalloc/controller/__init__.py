"""Namespace UID block allocation: engines, work queue and controller loop."""

from nsalloc.controller.allocation import AllocationEngine, AllocationStats
from nsalloc.controller.config import AllocationConfig, ControllerConfig
from nsalloc.controller.loop import ControllerStats, NamespaceAllocationController
from nsalloc.controller.repair import RepairEngine, RepairResult
from nsalloc.controller.workqueue import ExponentialBackoff, RateLimitingQueue

__all__ = [
    "AllocationConfig",
    "AllocationEngine",
    "AllocationStats",
    "ControllerConfig",
    "ControllerStats",
    "ExponentialBackoff",
    "NamespaceAllocationController",
    "RateLimitingQueue",
    "RepairEngine",
    "RepairResult",
]
