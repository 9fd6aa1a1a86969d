"""Unit tests for NamespaceAllocationController."""

from __future__ import annotations

import threading
import time

import pytest
import structlog

from nsalloc.controller.allocation import AllocationEngine
from nsalloc.controller.config import ControllerConfig
from nsalloc.controller.loop import NamespaceAllocationController
from nsalloc.controller.repair import RepairEngine
from nsalloc.controller.workqueue import ExponentialBackoff, RateLimitingQueue
from nsalloc.cluster.simulated import FaultProfile
from nsalloc.core.errors import NotFoundError, RepairTimeoutError, UnavailableError
from nsalloc.core.types import RANGE_NAME, UID_RANGE_ANNOTATION, ControllerState, NamespaceKey, RepairTick


@pytest.fixture
def fast_config() -> ControllerConfig:
    return ControllerConfig(
        repair_interval_s=8 * 3600.0,
        startup_repair_poll_s=0.01,
        startup_repair_timeout_s=2.0,
        backoff_base_s=1.0,
        backoff_max_s=60.0,
    )


@pytest.fixture
def controller(cluster, small_range, informer, recorder, sim_clock, fast_config):
    engine = AllocationEngine(
        small_range, cluster.range_allocations(), cluster.namespaces(), recorder=recorder
    )
    repair = RepairEngine(small_range, cluster.range_allocations(), informer, recorder=recorder)
    queue = RateLimitingQueue(
        clock=sim_clock,
        rate_limiter=ExponentialBackoff(fast_config.backoff_base_s, fast_config.backoff_max_s),
        poll_interval_s=0.01,
    )
    ctrl = NamespaceAllocationController(engine, repair, informer, config=fast_config, queue=queue)
    informer.start()
    yield ctrl
    ctrl.stop()


def _drain(controller):
    while len(controller.queue):
        controller.process_next_item(timeout=0)


class TestConstruction:
    def test_injected_queue_is_used(self, cluster, small_range, informer, sim_clock, fast_config):
        """An empty caller-supplied queue is kept, not replaced."""
        engine = AllocationEngine(small_range, cluster.range_allocations(), cluster.namespaces())
        repair = RepairEngine(small_range, cluster.range_allocations(), informer)
        queue = RateLimitingQueue(clock=sim_clock)
        assert len(queue) == 0
        ctrl = NamespaceAllocationController(engine, repair, informer, config=fast_config, queue=queue)
        assert ctrl.queue is queue
        ctrl.add_next_periodic_repair()
        assert queue.next_ready_at() == pytest.approx(sim_clock.now() + fast_config.repair_interval_s)

    def test_default_queue_built_from_clock(self, cluster, small_range, informer, sim_clock, fast_config):
        engine = AllocationEngine(small_range, cluster.range_allocations(), cluster.namespaces())
        repair = RepairEngine(small_range, cluster.range_allocations(), informer)
        ctrl = NamespaceAllocationController(engine, repair, informer, config=fast_config, clock=sim_clock)
        ctrl.add_next_periodic_repair()
        assert ctrl.queue.next_ready_at() == pytest.approx(sim_clock.now() + 8 * 3600.0)


class TestEventIntake:
    def test_existing_namespaces_enqueued_on_sync(self, cluster, small_range, informer, fast_config):
        cluster.create_namespace("a")
        cluster.create_namespace("b")
        engine = AllocationEngine(small_range, cluster.range_allocations(), cluster.namespaces())
        repair = RepairEngine(small_range, cluster.range_allocations(), informer)
        ctrl = NamespaceAllocationController(engine, repair, informer, config=fast_config)
        informer.start()
        assert len(ctrl.queue) == 2
        ctrl.stop()

    def test_add_and_update_enqueue_once(self, cluster, controller):
        cluster.create_namespace("a")
        cluster.update_namespace("a", labels={"x": "1"})
        assert len(controller.queue) == 1

    def test_delete_not_enqueued(self, cluster, controller):
        cluster.create_namespace("a")
        controller.queue.get(timeout=0)
        cluster.delete_namespace("a")
        assert len(controller.queue) == 0


class TestSyncNamespace:
    def test_missing_namespace_is_noop(self, controller):
        assert controller.sync_namespace("ghost") is None

    def test_allocated_namespace_is_noop(self, cluster, controller):
        cluster.create_namespace("a", annotations={UID_RANGE_ANNOTATION: "0/1"})
        cluster.stats.reset()
        assert controller.sync_namespace("a") is None
        assert cluster.stats.range_reads == 0

    def test_allocates(self, cluster, controller):
        controller.run_repair()
        cluster.create_namespace("a")
        block = controller.sync_namespace("a")
        assert str(block) == "0/1"


class TestProcessNextItem:
    def test_allocates_queued_namespace(self, cluster, controller):
        controller.run_repair()
        cluster.create_namespace("a")
        assert controller.process_next_item(timeout=0)
        assert cluster.get_namespace("a").annotations[UID_RANGE_ANNOTATION] == "0/1"
        assert controller.stats.syncs == 1

    def test_failure_backs_off_then_succeeds(self, cluster, controller, sim_clock):
        # no record yet: allocation fails until repair creates it
        cluster.create_namespace("a")
        key = NamespaceKey("a")
        controller.process_next_item(timeout=0)
        assert controller.stats.sync_failures == 1
        assert controller.queue.num_requeues(key) == 1
        assert len(controller.queue) == 0
        assert controller.queue.pending_delayed == 1

        controller.run_repair()
        sim_clock.step(1.0)
        controller.process_next_item(timeout=0)
        assert cluster.get_namespace("a").is_allocated
        assert controller.queue.num_requeues(key) == 0

    def test_backoff_grows_on_repeated_failure(self, cluster, controller, sim_clock):
        cluster.create_namespace("a")
        controller.process_next_item(timeout=0)
        first = controller.queue.next_ready_at()
        sim_clock.step(1.0)
        controller.process_next_item(timeout=0)
        second = controller.queue.next_ready_at()
        assert second - sim_clock.now() == pytest.approx(2.0)
        assert first is not None

    def test_timeout_without_items(self, controller):
        assert controller.process_next_item(timeout=0) is True

    def test_returns_false_after_shutdown(self, controller):
        controller.queue.shut_down()
        assert controller.process_next_item(timeout=0) is False

    def test_namespace_bound_in_log_context(self, cluster, controller, monkeypatch):
        seen = {}

        def capture(name):
            seen.update(structlog.contextvars.get_contextvars())

        monkeypatch.setattr(controller, "sync_namespace", capture)
        cluster.create_namespace("team-a")
        controller.process_next_item(timeout=0)
        assert seen == {"namespace": "team-a"}
        assert "namespace" not in structlog.contextvars.get_contextvars()


class TestPeriodicRepair:
    def test_tick_runs_repair_and_reschedules(self, cluster, controller, sim_clock):
        controller.add_next_periodic_repair()
        assert controller.process_next_item(timeout=0)
        assert controller.stats.repairs == 0

        sim_clock.step(8 * 3600.0)
        assert controller.process_next_item(timeout=0)
        assert controller.stats.repairs == 1
        assert controller.queue.pending_delayed == 1
        assert controller.queue.next_ready_at() == pytest.approx(sim_clock.now() + 8 * 3600.0)
        assert cluster.get_range(RANGE_NAME).range == "0-3/1"

    def test_failed_tick_still_reschedules(self, cluster, controller):
        cluster.inject_fault("range.get", UnavailableError("down"))
        controller.queue.add(RepairTick())
        controller.process_next_item(timeout=0)
        assert controller.stats.repair_failures == 1
        assert controller.queue.pending_delayed == 1

    def test_repair_invalidates_engine_cache(self, cluster, controller):
        controller.run_repair()
        cluster.create_namespace("a")
        _drain(controller)
        assert controller.engine.cached_allocation is not None
        controller.run_repair()
        assert controller.engine.cached_allocation is None
        assert controller.last_repair.allocated == 1


class TestWaitForRepair:
    def test_succeeds_after_transient_failures(self, cluster, controller):
        cluster.inject_fault("range.get", UnavailableError("down"), times=2)
        assert controller.wait_for_repair(threading.Event())
        assert controller.stats.repair_failures == 2
        assert controller.stats.repairs == 1

    def test_timeout(self, cluster, small_range, informer):
        cfg = ControllerConfig(startup_repair_poll_s=0.01, startup_repair_timeout_s=0.05)
        engine = AllocationEngine(small_range, cluster.range_allocations(), cluster.namespaces())
        repair = RepairEngine(small_range, cluster.range_allocations(), informer)
        ctrl = NamespaceAllocationController(engine, repair, informer, config=cfg)
        cluster.profile = FaultProfile(unavailable_rate=1.0)
        with pytest.raises(RepairTimeoutError):
            ctrl.wait_for_repair(threading.Event())

    def test_stop_event_ends_wait(self, cluster, controller):
        cluster.profile = FaultProfile(unavailable_rate=1.0)
        stop = threading.Event()
        stop.set()
        assert controller.wait_for_repair(stop) is False

    def test_stop_event_set_skips_attempt(self, cluster, controller):
        """No repair runs once the stop event is already set."""
        stop = threading.Event()
        stop.set()
        assert controller.wait_for_repair(stop) is False
        assert controller.stats.repairs == 0
        assert controller.stats.repair_failures == 0
        with pytest.raises(NotFoundError):
            cluster.get_range(RANGE_NAME)


class TestLifecycle:
    def test_run_allocates_and_stops(self, cluster, controller):
        for i in range(3):
            cluster.create_namespace(f"ns-{i}")
        controller.start()
        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline:
            if all(ns.is_allocated for ns in cluster.list_namespaces()):
                break
            time.sleep(0.01)
        assert controller.state is ControllerState.RUNNING
        blocks = {ns.annotations[UID_RANGE_ANNOTATION] for ns in cluster.list_namespaces()}
        assert blocks == {"0/1", "1/1", "2/1"}
        controller.stop()
        assert controller.state is ControllerState.STOPPED
        assert controller.error is None

    def test_background_run_reports_repair_timeout(self, cluster, small_range, informer):
        cfg = ControllerConfig(startup_repair_poll_s=0.01, startup_repair_timeout_s=0.05)
        engine = AllocationEngine(small_range, cluster.range_allocations(), cluster.namespaces())
        repair = RepairEngine(small_range, cluster.range_allocations(), informer)
        ctrl = NamespaceAllocationController(engine, repair, informer, config=cfg)
        informer.start()
        cluster.profile = FaultProfile(unavailable_rate=1.0)
        ctrl.start()
        deadline = time.monotonic() + 5.0
        while ctrl.error is None and time.monotonic() < deadline:
            time.sleep(0.01)
        ctrl.stop()
        assert isinstance(ctrl.error, RepairTimeoutError)
        assert ctrl.state is ControllerState.STOPPED

    def test_status(self, cluster, controller):
        controller.run_repair()
        status = controller.status()
        assert status["state"] == "stopped"
        assert status["queue_depth"] == 0
        assert status["controller"]["repairs"] == 1
        assert status["allocation"]["allocations"] == 0
        assert status["last_repair"]["created"] is True
