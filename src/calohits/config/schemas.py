from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional

class RunCfg(BaseModel):
    """
    Global run controls.

    TOML:

    [run]
    diagnostics_level = 1   # 0=off, 1=minimal, 2=verbose
    """

    diagnostics_level: int = 1

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

class StoreCfg(BaseModel):
    """
    Where per-event hit buffers keep their hits.

    TOML:

    [store]
    allocator = "list"      # "list" | "shm"
    capacity  = 100000      # records, shared-memory store only
    shm_name  = "calo_hits" # optional fixed block name
    """

    allocator: Literal["list", "shm"] = "list"
    capacity: int = 100_000
    shm_name: Optional[str] = None

    @field_validator("capacity")
    def _capacity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("capacity must be a positive number of hits")
        return v

class MergeCfg(BaseModel):
    enabled: bool = True


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    store: StoreCfg = Field(default_factory=StoreCfg)
    merge: MergeCfg = Field(default_factory=MergeCfg)
