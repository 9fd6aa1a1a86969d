"""Pydantic schema for nsalloc configuration validation.

Mirrors the YAML structure in config/default.yaml. Used when
``validate=True`` is passed to ``AllocatorConfig.load()``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from nsalloc.security.mcs import LabelRange
from nsalloc.security.uid import GlobalRange


class SystemConfig(BaseModel):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: str | None = None
    log_json: bool = False
    validate_config: bool = False


class AllocationSchema(BaseModel):
    uid_range: str = "1000000000-1999999999/10000"
    mcs_range: str | None = "s0:/2"
    mcs_labels_per_project: int = Field(default=5, ge=0)
    range_name: str = Field(default="scc-uid", min_length=1)

    @field_validator("uid_range")
    @classmethod
    def _check_uid_range(cls, v: str) -> str:
        GlobalRange.parse(v)
        return v

    @field_validator("mcs_range")
    @classmethod
    def _check_mcs_range(cls, v: str | None) -> str | None:
        if v:
            LabelRange.parse(v)
        return v


class ControllerSchema(BaseModel):
    repair_interval_s: float = Field(default=28800.0, gt=0)
    startup_repair_poll_s: float = Field(default=10.0, gt=0)
    startup_repair_timeout_s: float = Field(default=300.0, gt=0)
    resync_period_s: float = Field(default=600.0, ge=0)
    backoff_base_s: float = Field(default=0.005, gt=0)
    backoff_max_s: float = Field(default=1000.0, gt=0)
    event_history: int = Field(default=1000, ge=1)


class SimulationSchema(BaseModel):
    namespaces: int = Field(default=10, ge=0)
    unavailable_rate: float = Field(default=0.0, ge=0, lt=1)
    seed: int = 42


class NsallocSection(BaseModel):
    system: SystemConfig = Field(default_factory=SystemConfig)
    allocation: AllocationSchema = Field(default_factory=AllocationSchema)
    controller: ControllerSchema = Field(default_factory=ControllerSchema)
    simulation: SimulationSchema = Field(default_factory=SimulationSchema)


class NsallocConfigSchema(BaseModel):
    nsalloc: NsallocSection = Field(default_factory=NsallocSection)


def validate_config(cfg_dict: dict) -> NsallocConfigSchema:
    """Validate a raw config dict (e.g. from OmegaConf) against the schema.

    Raises ``pydantic.ValidationError`` on invalid config.
    """
    return NsallocConfigSchema.model_validate(cfg_dict)
