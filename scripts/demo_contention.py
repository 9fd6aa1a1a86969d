#!/usr/bin/env python3
"""Demo: two allocation controllers sharing one simulated cluster.

Both controllers watch the same namespaces and race to claim blocks from
the same allocation record.  Version checks on the record turn every lost
race into a retry, so each namespace still ends up with a distinct block.

Usage:
    python scripts/demo_contention.py [--namespaces N] [--outage-rate R] [--verbose]
"""

from __future__ import annotations

import argparse
import sys
import time


def main() -> int:
    parser = argparse.ArgumentParser(description="nsalloc contention demo")
    parser.add_argument("--namespaces", type=int, default=40, help="Namespaces to create")
    parser.add_argument("--outage-rate", type=float, default=0.05, help="Simulated store failure rate")
    parser.add_argument("--verbose", action="store_true", help="Show controller logs")
    args = parser.parse_args()

    # Late imports to verify the package loads cleanly
    from nsalloc.cluster.informer import NamespaceInformer
    from nsalloc.cluster.simulated import FaultProfile, SimulatedCluster
    from nsalloc.controller.allocation import AllocationEngine
    from nsalloc.controller.config import AllocationConfig, ControllerConfig
    from nsalloc.controller.loop import NamespaceAllocationController
    from nsalloc.controller.repair import RepairEngine
    from nsalloc.core.events import EventRecorder
    from nsalloc.core.types import ControllerState, UID_RANGE_ANNOTATION
    from nsalloc.security.uid import Block
    from nsalloc.utils.logging import setup_logging

    setup_logging("DEBUG" if args.verbose else "WARNING")

    print("=" * 70)
    print("  nsalloc: two controllers, one allocation record")
    print("=" * 70)
    print()

    allocation = AllocationConfig(uid_range="1000000000-1000999999/10000")
    uid_range = allocation.global_range()
    cluster = SimulatedCluster(seed=1)
    recorder = EventRecorder()
    controller_cfg = ControllerConfig(startup_repair_poll_s=0.05, backoff_base_s=0.001, backoff_max_s=0.5)

    stacks = []
    for _ in ("alpha", "bravo"):
        informer = NamespaceInformer(cluster, resync_period_s=1.0)
        engine = AllocationEngine(
            uid_range,
            cluster.range_allocations(),
            cluster.namespaces(),
            label_allocation=allocation.label_allocation(),
            recorder=recorder,
        )
        repair = RepairEngine(uid_range, cluster.range_allocations(), informer, recorder=recorder)
        controller = NamespaceAllocationController(engine, repair, informer, config=controller_cfg)
        informer.start()
        controller.start()
        stacks.append((informer, controller))

    for _, controller in stacks:
        while controller.state is not ControllerState.RUNNING:
            if controller.error is not None:
                print(f"startup failed: {controller.error}", file=sys.stderr)
                return 2
            time.sleep(0.01)

    cluster.profile = FaultProfile(unavailable_rate=args.outage_rate)
    t0 = time.monotonic()
    for i in range(args.namespaces):
        cluster.create_namespace(f"project-{i:03d}")

    informer = stacks[0][0]
    while any(not ns.is_allocated for ns in informer.list()):
        if time.monotonic() - t0 > 30.0:
            print("timed out waiting for allocations", file=sys.stderr)
            break
        time.sleep(0.01)
    elapsed = time.monotonic() - t0

    for inf, controller in stacks:
        controller.stop()
        inf.stop()
    cluster.profile = FaultProfile()

    namespaces = cluster.list_namespaces()
    blocks = [Block.parse(ns.annotations[UID_RANGE_ANNOTATION]) for ns in namespaces if ns.is_allocated]
    for ns in namespaces[:5]:
        print(f"  {ns.name:<14} uid={ns.annotations.get(UID_RANGE_ANNOTATION)!s:<18} "
              f"mcs={ns.annotations.get('openshift.io/sa.scc.mcs')}")
    print("  ...")
    print()
    print(f"  allocated        {len(blocks)}/{len(namespaces)} in {elapsed:.2f}s")
    print(f"  distinct blocks  {len(set(blocks))}")
    for name, (_, controller) in zip(("alpha", "bravo"), stacks):
        stats = controller.engine.stats.to_dict()
        print(f"  {name:<6} allocations={stats['allocations']:<4} conflicts={stats['conflicts']}")
    print(f"  store            {cluster.stats.to_dict()}")
    return 0 if len(set(blocks)) == len(blocks) == len(namespaces) else 1


if __name__ == "__main__":
    sys.exit(main())
