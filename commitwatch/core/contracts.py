from __future__ import annotations
from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class Commitment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    owner: str
    category: str = ""
    deadline_ms: int
    deposit_amount: int
    beneficiary: str
    active: bool
    completed: bool

    @property
    def terminal(self) -> bool:
        return (not self.active) or self.completed


UnavailableReason = Literal["not_found", "error", "malformed"]

class Unavailable(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    reason: UnavailableReason
    error: str = ""


Snapshot = Union[Commitment, Unavailable]


class EventId(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_digest: str
    event_seq: str

    def to_rpc(self) -> Dict[str, str]:
        return {"txDigest": self.tx_digest, "eventSeq": self.event_seq}

    @classmethod
    def from_rpc(cls, data: Dict[str, str]) -> "EventId":
        return cls(tx_digest=str(data["txDigest"]), event_seq=str(data["eventSeq"]))


class CreationEvent(BaseModel):
    event_id: EventId
    timestamp_ms: Optional[int] = None
    parsed: Dict = Field(default_factory=dict)


class EventPage(BaseModel):
    events: List[CreationEvent] = Field(default_factory=list)
    next_cursor: Optional[EventId] = None
    has_next_page: bool = False


class MoveCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    package: str
    module: str
    function: str
    arguments: List[str]
    type_arguments: List[str] = Field(default_factory=list)

    @property
    def target(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"


TxErrorClass = Literal["object_missing", "move_abort", "insufficient_gas", "timeout", "transport", "rpc", "execution"]

class TxResult(BaseModel):
    status: Literal["success", "failure"]
    digest: Optional[str] = None
    error: str = ""
    error_class: Optional[TxErrorClass] = None
    abort_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


OutcomeKind = Literal["settled", "noop", "failed", "deferred"]

class SettlementOutcome(BaseModel):
    commitment_id: str
    kind: OutcomeKind
    digest: Optional[str] = None
    error: str = ""
    error_class: Optional[str] = None


class SweepReport(BaseModel):
    """Counters for a single sweep. A fresh report is created per sweep."""

    sweep_id: int
    started_at_ms: int
    finished_at_ms: Optional[int] = None
    dry_run: bool = False
    aborted: Optional[str] = None
    discovered: int = 0
    retired: int = 0
    fetched: int = 0
    unavailable: int = 0
    eligible: int = 0
    settled: int = 0
    noop: int = 0
    failed: int = 0
    deferred: int = 0
    eligible_ids: List[str] = Field(default_factory=list)
    outcomes: List[SettlementOutcome] = Field(default_factory=list)

    def record(self, outcome: SettlementOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.kind == "settled":
            self.settled += 1
        elif outcome.kind == "noop":
            self.noop += 1
        elif outcome.kind == "deferred":
            self.deferred += 1
        else:
            self.failed += 1

    def summary(self) -> str:
        if self.aborted:
            return f"sweep #{self.sweep_id} aborted ({self.aborted})"
        return (
            f"sweep #{self.sweep_id} done: discovered={self.discovered} retired={self.retired} "
            f"fetched={self.fetched} unavailable={self.unavailable} eligible={self.eligible} "
            f"settled={self.settled} noop={self.noop} failed={self.failed} deferred={self.deferred}"
            + (" (dry-run)" if self.dry_run else "")
        )


class DiscoveryState(BaseModel):
    cursor: Optional[EventId] = None
    known_ids: List[str] = Field(default_factory=list)
    retired_ids: List[str] = Field(default_factory=list)
