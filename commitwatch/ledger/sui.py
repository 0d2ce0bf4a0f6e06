from __future__ import annotations
import asyncio
import re
from typing import Any, Dict, List, Optional, Tuple
import aiohttp
from commitwatch.core.contracts import CreationEvent, EventId, EventPage, MoveCall, TxResult
from commitwatch.core.errors import LedgerRPCError, LedgerTimeout
from commitwatch.common.rate_limiter import TokenBucket
from .base import LedgerClient


_ABORT_RE = re.compile(r"MoveAbort\(.*,\s*(\d+)\)", re.DOTALL)
_MISSING_MARKERS = ("deleted", "notexists", "does not exist", "not found", "objectnotfound")
_GAS_MARKERS = ("insufficientgas", "insufficient gas", "gasbalancetoolow", "insufficientcoinbalance", "gas budget")


def classify_failure(message: str, default: str = "execution") -> Tuple[str, Optional[int]]:
    """Map a node error/effects message to (error_class, abort_code)."""
    m = _ABORT_RE.search(message or "")
    if m:
        return "move_abort", int(m.group(1))
    low = (message or "").lower()
    if any(k in low for k in _GAS_MARKERS):
        return "insufficient_gas", None
    if any(k in low for k in _MISSING_MARKERS):
        return "object_missing", None
    return default, None


class SuiLedgerClient(LedgerClient):
    """Sui full node access over JSON-RPC 2.0."""

    name = "sui"

    def __init__(self, url: str, *, timeout_s: float = 30.0, rate_limit_rps: float = 10.0):
        self._url = url
        self._timeout_s = float(timeout_s)
        self._bucket = TokenBucket(rate_per_sec=rate_limit_rps, burst=int(max(rate_limit_rps * 2, 2)))
        self._session: Optional[aiohttp.ClientSession] = None
        self._req_id = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"Content-Type": "application/json"})
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        session = await self._get_session()
        await self._bucket.acquire()
        self._req_id += 1
        payload = {"jsonrpc": "2.0", "id": self._req_id, "method": method, "params": params}
        try:
            async with session.post(self._url, json=payload, timeout=aiohttp.ClientTimeout(total=self._timeout_s)) as r:
                if r.status >= 400:
                    raise LedgerRPCError(f"{method}: HTTP {r.status}", code=r.status, error_class="transport")
                data = await r.json()
        except asyncio.TimeoutError as e:
            raise LedgerTimeout(f"{method} timed out after {self._timeout_s}s") from e
        except aiohttp.ClientError as e:
            raise LedgerRPCError(f"{method}: {e}", error_class="transport") from e
        err = data.get("error") if isinstance(data, dict) else None
        if err:
            msg = str(err.get("message") or err)
            error_class, abort_code = classify_failure(msg, default="rpc")
            raise LedgerRPCError(msg, code=err.get("code"), error_class=error_class, abort_code=abort_code)
        return data.get("result")

    async def healthcheck(self) -> bool:
        seq = await self._rpc("sui_getLatestCheckpointSequenceNumber", [])
        return int(seq or 0) > 0

    async def query_events(self, event_type: str, *, cursor: Optional[EventId], limit: int,
                           descending: bool) -> EventPage:
        result = await self._rpc("suix_queryEvents", [
            {"MoveEventType": event_type},
            cursor.to_rpc() if cursor else None,
            int(limit),
            bool(descending),
        ]) or {}
        events: List[CreationEvent] = []
        for ev in result.get("data") or []:
            ts = ev.get("timestampMs")
            parsed = ev.get("parsedJson")
            events.append(CreationEvent(
                event_id=EventId.from_rpc(ev["id"]),
                timestamp_ms=int(ts) if ts is not None else None,
                parsed=parsed if isinstance(parsed, dict) else {},
            ))
        nxt = result.get("nextCursor")
        return EventPage(
            events=events,
            next_cursor=EventId.from_rpc(nxt) if nxt else None,
            has_next_page=bool(result.get("hasNextPage")),
        )

    async def get_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        result = await self._rpc("sui_getObject", [object_id, {"showContent": True, "showOwner": True}]) or {}
        err = result.get("error")
        if err:
            code = str(err.get("code") or "")
            if code in ("notExists", "deleted"):
                return None
            raise LedgerRPCError(f"sui_getObject {object_id}: {code or err}")
        content = (result.get("data") or {}).get("content") or {}
        if content.get("dataType") != "moveObject":
            raise LedgerRPCError(f"sui_getObject {object_id}: not a move object")
        return dict(content.get("fields") or {})

    async def build_move_call(self, call: MoveCall, *, sender: str, gas_budget: int) -> str:
        result = await self._rpc("unsafe_moveCall", [
            sender,
            call.package,
            call.module,
            call.function,
            list(call.type_arguments),
            list(call.arguments),
            None,
            str(int(gas_budget)),
            None,
        ]) or {}
        tx_bytes = result.get("txBytes")
        if not tx_bytes:
            raise LedgerRPCError(f"unsafe_moveCall {call.target}: no txBytes in response")
        return tx_bytes

    async def execute_transaction(self, tx_bytes: str, signatures: List[str]) -> TxResult:
        try:
            result = await self._rpc("sui_executeTransactionBlock", [
                tx_bytes,
                signatures,
                {"showEffects": True, "showEvents": True},
                "WaitForLocalExecution",
            ]) or {}
        except LedgerTimeout as e:
            return TxResult(status="failure", error=str(e), error_class="timeout")
        except LedgerRPCError as e:
            return TxResult(status="failure", error=str(e), error_class=e.error_class, abort_code=e.abort_code)
        digest = result.get("digest")
        status = ((result.get("effects") or {}).get("status") or {})
        if status.get("status") == "success":
            return TxResult(status="success", digest=digest)
        msg = str(status.get("error") or "execution failed")
        error_class, abort_code = classify_failure(msg)
        return TxResult(status="failure", digest=digest, error=msg, error_class=error_class, abort_code=abort_code)

    async def get_balance(self, owner: str, coin_type: str = "0x2::sui::SUI") -> int:
        result = await self._rpc("suix_getBalance", [owner, coin_type]) or {}
        return int(result.get("totalBalance") or 0)
