from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from commitwatch.core.contracts import EventId, EventPage, MoveCall, TxResult


class LedgerClient(ABC):
    name: str

    @abstractmethod
    async def healthcheck(self) -> bool: ...

    @abstractmethod
    async def query_events(self, event_type: str, *, cursor: Optional[EventId], limit: int,
                           descending: bool) -> EventPage: ...

    @abstractmethod
    async def get_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        """Return the object's Move fields, or None when it does not exist (or was deleted)."""

    @abstractmethod
    async def build_move_call(self, call: MoveCall, *, sender: str, gas_budget: int) -> str:
        """Return base64 transaction bytes for a single move call."""

    @abstractmethod
    async def execute_transaction(self, tx_bytes: str, signatures: List[str]) -> TxResult: ...

    @abstractmethod
    async def get_balance(self, owner: str, coin_type: str = "0x2::sui::SUI") -> int: ...

    async def close(self) -> None:
        return None
