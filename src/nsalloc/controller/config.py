"""Allocation controller configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from omegaconf import OmegaConf

from nsalloc.core.types import RANGE_NAME
from nsalloc.security.mcs import LabelAllocationFunc, LabelRange, label_allocation
from nsalloc.security.uid import GlobalRange

DEFAULT_UID_RANGE = "1000000000-1999999999/10000"
DEFAULT_MCS_RANGE = "s0:/2"
DEFAULT_MCS_LABELS_PER_PROJECT = 5


def _to_dict(cfg: Any) -> dict:
    if hasattr(cfg, "_metadata"):
        cfg = OmegaConf.to_container(cfg, resolve=True)
    if not isinstance(cfg, dict):
        cfg = dict(cfg)
    return cfg


@dataclass
class AllocationConfig:
    """Which UID range and MCS label space to allocate from."""

    uid_range: str = DEFAULT_UID_RANGE
    mcs_range: str = DEFAULT_MCS_RANGE
    mcs_labels_per_project: int = DEFAULT_MCS_LABELS_PER_PROJECT
    range_name: str = RANGE_NAME

    @classmethod
    def from_omegaconf(cls, cfg: Any) -> AllocationConfig:
        """Build from OmegaConf dict or plain dict."""
        if cfg is None:
            return cls()
        cfg = _to_dict(cfg)
        mcs_range = cfg.get("mcs_range", DEFAULT_MCS_RANGE)
        return cls(
            uid_range=str(cfg.get("uid_range", DEFAULT_UID_RANGE)),
            mcs_range="" if mcs_range is None else str(mcs_range),
            mcs_labels_per_project=int(cfg.get("mcs_labels_per_project", DEFAULT_MCS_LABELS_PER_PROJECT)),
            range_name=str(cfg.get("range_name", RANGE_NAME)),
        )

    def global_range(self) -> GlobalRange:
        return GlobalRange.parse(self.uid_range)

    def label_allocation(self) -> LabelAllocationFunc | None:
        """Label function for the MCS annotation; ``None`` if disabled."""
        if not self.mcs_range:
            return None
        return label_allocation(
            self.global_range(),
            LabelRange.parse(self.mcs_range),
            self.mcs_labels_per_project,
        )


@dataclass
class ControllerConfig:
    """Timing and queueing parameters of the controller loop."""

    repair_interval_s: float = 8 * 3600.0
    startup_repair_poll_s: float = 10.0
    startup_repair_timeout_s: float = 300.0
    resync_period_s: float = 600.0
    backoff_base_s: float = 0.005
    backoff_max_s: float = 1000.0
    event_history: int = 1000

    @classmethod
    def from_omegaconf(cls, cfg: Any) -> ControllerConfig:
        """Build from OmegaConf dict or plain dict."""
        if cfg is None:
            return cls()
        cfg = _to_dict(cfg)
        return cls(
            repair_interval_s=float(cfg.get("repair_interval_s", 8 * 3600.0)),
            startup_repair_poll_s=float(cfg.get("startup_repair_poll_s", 10.0)),
            startup_repair_timeout_s=float(cfg.get("startup_repair_timeout_s", 300.0)),
            resync_period_s=float(cfg.get("resync_period_s", 600.0)),
            backoff_base_s=float(cfg.get("backoff_base_s", 0.005)),
            backoff_max_s=float(cfg.get("backoff_max_s", 1000.0)),
            event_history=int(cfg.get("event_history", 1000)),
        )
