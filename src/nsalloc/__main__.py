"""nsalloc CLI entry point.

Runs the allocation controller against a simulated cluster seeded with
namespaces, until every namespace holds a UID block or the timeout
expires, then prints a JSON summary.

Usage:
    python -m nsalloc                               # Default config
    python -m nsalloc --config custom.yaml          # Custom config
    python -m nsalloc -n 50 --uid-range 0-499/10    # 50 namespaces, 50 blocks
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time

from nsalloc.cluster.informer import NamespaceInformer
from nsalloc.cluster.simulated import FaultProfile, SimulatedCluster
from nsalloc.controller.allocation import AllocationEngine
from nsalloc.controller.config import AllocationConfig, ControllerConfig
from nsalloc.controller.loop import NamespaceAllocationController
from nsalloc.controller.repair import RepairEngine
from nsalloc.core.config import AllocatorConfig
from nsalloc.core.errors import RepairTimeoutError
from nsalloc.core.events import EventRecorder
from nsalloc.core.types import UID_RANGE_ANNOTATION
from nsalloc.security.mcs import LabelAllocationFunc
from nsalloc.security.uid import GlobalRange
from nsalloc.utils.logging import setup_logging

logger = logging.getLogger("nsalloc.cli")


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="nsalloc",
        description="Namespace UID block allocation controller (simulated cluster)",
    )
    parser.add_argument(
        "--config",
        "-c",
        default="config/default.yaml",
        help="Path to configuration YAML file (default: config/default.yaml)",
    )
    parser.add_argument(
        "--namespaces",
        "-n",
        type=int,
        default=None,
        help="Override the number of namespaces to create",
    )
    parser.add_argument(
        "--uid-range",
        default=None,
        help='Override the UID range ("<start>-<end>/<block size>")',
    )
    parser.add_argument(
        "--mcs-range",
        default=None,
        help='Override the MCS label range ("<prefix>/<k>[,<n>]")',
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for every namespace to be allocated (default: 30)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level",
    )
    parser.add_argument(
        "--validate-config",
        action="store_true",
        default=False,
        help="Validate config against Pydantic schema before starting",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Path to log file (default: no file logging)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        default=False,
        help="Output logs as JSON instead of human-readable",
    )
    args = parser.parse_args()

    # Load config
    config = AllocatorConfig(args.config)
    try:
        cfg = config.load(validate=args.validate_config)
    except FileNotFoundError:
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: Config validation failed:\n{e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.namespaces is not None:
        config.override("nsalloc.simulation.namespaces", args.namespaces)
    if args.uid_range is not None:
        config.override("nsalloc.allocation.uid_range", args.uid_range)
    if args.mcs_range is not None:
        config.override("nsalloc.allocation.mcs_range", args.mcs_range)

    # Setup logging
    log_level = args.log_level or cfg.nsalloc.system.get("log_level", "INFO")
    log_file = args.log_file or cfg.nsalloc.system.get("log_file", None)
    log_json = args.log_json or cfg.nsalloc.system.get("log_json", False)
    setup_logging(log_level, log_file=log_file, log_json=log_json)

    allocation = AllocationConfig.from_omegaconf(cfg.nsalloc.get("allocation"))
    controller_cfg = ControllerConfig.from_omegaconf(cfg.nsalloc.get("controller"))
    simulation = cfg.nsalloc.get("simulation") or {}
    try:
        uid_range = allocation.global_range()
        labels = allocation.label_allocation()
    except ValueError as e:
        print(f"Error: Invalid allocation settings: {e}", file=sys.stderr)
        return 1

    return run_simulation(
        allocation,
        controller_cfg,
        uid_range=uid_range,
        labels=labels,
        namespaces=int(simulation.get("namespaces", 10)),
        unavailable_rate=float(simulation.get("unavailable_rate", 0.0)),
        seed=int(simulation.get("seed", 42)),
        timeout=args.timeout,
    )


def run_simulation(
    allocation: AllocationConfig,
    controller_cfg: ControllerConfig,
    uid_range: GlobalRange,
    labels: LabelAllocationFunc | None,
    namespaces: int,
    unavailable_rate: float,
    seed: int,
    timeout: float,
) -> int:
    cluster = SimulatedCluster(seed=seed)
    for i in range(namespaces):
        cluster.create_namespace(f"ns-{i:04d}")

    recorder = EventRecorder(max_events=controller_cfg.event_history)
    informer = NamespaceInformer(cluster, resync_period_s=controller_cfg.resync_period_s)
    engine = AllocationEngine(
        uid_range,
        cluster.range_allocations(),
        cluster.namespaces(),
        label_allocation=labels,
        recorder=recorder,
        range_name=allocation.range_name,
    )
    repair = RepairEngine(
        uid_range,
        cluster.range_allocations(),
        informer,
        recorder=recorder,
        range_name=allocation.range_name,
    )
    controller = NamespaceAllocationController(engine, repair, informer, config=controller_cfg)

    informer.start()
    # outages start once the cache is filled
    cluster.profile = FaultProfile(unavailable_rate=unavailable_rate)
    controller.start()

    exit_code = 0
    deadline = time.monotonic() + timeout
    try:
        while True:
            if isinstance(controller.error, RepairTimeoutError):
                logger.error("Startup repair did not succeed: %s", controller.error)
                exit_code = 2
                break
            pending = [ns.name for ns in informer.list() if not ns.is_allocated]
            if not pending:
                break
            if time.monotonic() >= deadline:
                logger.error("%d namespaces still unallocated after %.1fs", len(pending), timeout)
                exit_code = 2
                break
            time.sleep(0.05)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        exit_code = 2
    finally:
        controller.stop()
        informer.stop()
        cluster.profile = FaultProfile()

    summary = {
        "uid_range": str(uid_range),
        "namespaces": namespaces,
        "allocated": {
            ns.name: ns.annotations[UID_RANGE_ANNOTATION]
            for ns in cluster.list_namespaces()
            if ns.is_allocated
        },
        "controller": controller.status(),
        "cluster": cluster.stats.to_dict(),
        "events": len(recorder.events),
    }
    print(json.dumps(summary, indent=2))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
