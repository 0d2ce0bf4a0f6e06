from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class FieldMap(BaseModel):
    """Move struct field names of the commitment object."""
    model_config = ConfigDict(frozen=True)

    owner: str = "owner"
    category: str = "habit_type"
    deadline: str = "wake_up_time"
    deposit: str = "deposit_amount"
    beneficiary: str = "charity_address"
    active: str = "is_active"
    completed: str = "is_completed"
    event_id: str = "alarm_id"


class DiscoveryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Literal["incremental", "rescan"] = "incremental"
    page_size: int = Field(default=50, ge=1, le=1000)
    max_pages: int = Field(default=20, ge=1)
    store: Literal["memory", "file", "redis"] = "memory"
    state_path: str = "var/discovery.json"
    redis_url: Optional[str] = None
    redis_key: str = "commitwatch:discovery"


class WatcherConfig(BaseModel):
    """Process-wide, read-only configuration."""
    model_config = ConfigDict(frozen=True)

    signing_credential: str = Field(repr=False)
    target_module_id: str
    module_name: str = "alarm"
    creation_event: str = "AlarmCreated"
    settle_function: str = "fail_alarm"
    clock_object_id: str = "0x6"
    rpc_endpoint: str = "https://fullnode.testnet.sui.io:443"
    sweep_interval_minutes: int = Field(default=5, ge=1)
    grace_period_minutes: int = Field(default=60, ge=0)
    max_fee_budget: int = Field(default=10_000_000, gt=0)
    submission_pacing_ms: int = Field(default=1000, ge=0)
    rpc_timeout_seconds: float = Field(default=30.0, gt=0)
    rpc_rate_limit_rps: float = Field(default=10.0, gt=0)
    fetch_concurrency: int = Field(default=8, ge=1)
    dry_run: bool = False
    log_level: str = "INFO"
    metrics_port: int = Field(default=0, ge=0)
    shutdown_grace_seconds: float = Field(default=30.0, ge=0)
    failure_policy: Literal["retry", "backoff", "quarantine"] = "retry"
    escalation_threshold: int = Field(default=5, ge=1)
    backoff_max_sweeps: int = Field(default=12, ge=1)
    terminal_abort_codes: List[int] = Field(default_factory=list)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    field_map: FieldMap = Field(default_factory=FieldMap)

    @field_validator("signing_credential", "target_module_id")
    @classmethod
    def _required(cls, v: str) -> str:
        if not v or not str(v).strip():
            raise ValueError("must not be empty")
        return str(v).strip()

    @field_validator("terminal_abort_codes", mode="before")
    @classmethod
    def _codes(cls, v):
        if isinstance(v, str):
            return [int(x) for x in v.split(",") if x.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def _level(cls, v: str) -> str:
        return str(v).upper()

    @property
    def creation_event_type(self) -> str:
        return f"{self.target_module_id}::{self.module_name}::{self.creation_event}"

    @property
    def grace_period_ms(self) -> int:
        return self.grace_period_minutes * 60 * 1000

    @property
    def sweep_interval_seconds(self) -> float:
        return self.sweep_interval_minutes * 60.0
