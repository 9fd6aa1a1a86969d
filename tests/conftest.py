"""Shared pytest fixtures for nsalloc tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from omegaconf import OmegaConf

from nsalloc.cluster.informer import NamespaceInformer
from nsalloc.cluster.simulated import SimulatedCluster
from nsalloc.controller.allocation import AllocationEngine
from nsalloc.controller.repair import RepairEngine
from nsalloc.core.clock import SimClock
from nsalloc.core.events import EventRecorder
from nsalloc.core.types import RANGE_NAME, RangeAllocation
from nsalloc.security.uid import GlobalRange


@pytest.fixture
def project_root() -> Path:
    return Path(__file__).parent.parent


@pytest.fixture
def config_path(project_root: Path) -> Path:
    return project_root / "config" / "default.yaml"


@pytest.fixture
def default_config(config_path: Path):
    return OmegaConf.load(config_path)


@pytest.fixture
def sim_clock() -> SimClock:
    return SimClock()


@pytest.fixture
def small_range() -> GlobalRange:
    """Four blocks of one UID each: 0, 1, 2, 3."""
    return GlobalRange(base=0, size=4, block_size=1)


@pytest.fixture
def cluster() -> SimulatedCluster:
    return SimulatedCluster(seed=7)


@pytest.fixture
def recorder(sim_clock: SimClock) -> EventRecorder:
    return EventRecorder(max_events=100, clock=sim_clock)


@pytest.fixture
def empty_record(cluster: SimulatedCluster, small_range: GlobalRange) -> RangeAllocation:
    """An allocation record with no blocks marked."""
    return cluster.create_range(RangeAllocation(name=RANGE_NAME, range=str(small_range)))


@pytest.fixture
def engine(cluster: SimulatedCluster, small_range: GlobalRange, recorder: EventRecorder) -> AllocationEngine:
    return AllocationEngine(
        small_range,
        cluster.range_allocations(),
        cluster.namespaces(),
        recorder=recorder,
    )


@pytest.fixture
def repair_engine(cluster: SimulatedCluster, small_range: GlobalRange, recorder: EventRecorder) -> RepairEngine:
    return RepairEngine(
        small_range,
        cluster.range_allocations(),
        cluster.namespaces(),
        recorder=recorder,
    )


@pytest.fixture
def informer(cluster: SimulatedCluster):
    inf = NamespaceInformer(cluster, resync_period_s=0)
    yield inf
    inf.stop()


@pytest.fixture(autouse=True)
def _restore_nsalloc_logger():
    """Undo handler changes made by setup_logging so caplog keeps working."""
    root = logging.getLogger("nsalloc")
    level, propagate, handlers = root.level, root.propagate, list(root.handlers)
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate
