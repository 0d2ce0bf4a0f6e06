import base64
from typing import Any, Callable, Dict, List, Optional, Set, Union
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat

from commitwatch.common.schemas import WatcherConfig
from commitwatch.core.contracts import CreationEvent, EventId, EventPage, MoveCall, TxResult
from commitwatch.ledger.base import LedgerClient
from commitwatch.ledger.signer import Ed25519Signer

PKG = "0xpkg"


def raw_seed(key: Ed25519PrivateKey) -> bytes:
    return key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())


class FakeLedger(LedgerClient):
    """In-memory ledger: an ascending creation-event log plus commitment objects.

    Settling a commitment through `execute_transaction` flips it inactive, like the
    on-chain settle entry function does.
    """

    name = "fake"

    def __init__(self):
        self.events: List[CreationEvent] = []
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.object_errors: Dict[str, Exception] = {}
        self.fail_event_calls: Set[int] = set()
        self.event_calls: List[tuple] = []
        self.get_calls: List[str] = []
        self.built: List[MoveCall] = []
        self.build_errors: Dict[str, Exception] = {}
        self.results: Dict[str, Union[TxResult, BaseException, Callable[[str], TxResult]]] = {}
        self.submitted: List[str] = []
        self.timeline: List[tuple] = []
        self.balance = 5_000_000_000
        self.closed = False

    def add_commitment(self, cid: str, deadline_ms: int, *, active: bool = True, completed: bool = False,
                       emit: bool = True, owner: str = "0xowner") -> None:
        self.objects[cid] = {
            "owner": owner,
            "habit_type": "wake_up",
            "wake_up_time": str(deadline_ms),
            "deposit_amount": "1000000000",
            "charity_address": "0xcharity",
            "is_active": active,
            "is_completed": completed,
        }
        if emit:
            self.emit(cid)

    def emit(self, cid: str) -> None:
        n = len(self.events)
        self.events.append(CreationEvent(
            event_id=EventId(tx_digest=f"tx{n}", event_seq="0"),
            timestamp_ms=1_700_000_000_000 + n,
            parsed={"alarm_id": cid, "owner": "0xowner"},
        ))

    async def healthcheck(self) -> bool:
        return True

    async def query_events(self, event_type: str, *, cursor: Optional[EventId], limit: int,
                           descending: bool) -> EventPage:
        self.event_calls.append((event_type, cursor, limit, descending))
        if len(self.event_calls) in self.fail_event_calls:
            raise RuntimeError("node unavailable")
        seq = list(reversed(self.events)) if descending else list(self.events)
        start = 0
        if cursor is not None:
            start = [e.event_id for e in seq].index(cursor) + 1
        chunk = seq[start:start + limit]
        return EventPage(
            events=chunk,
            next_cursor=chunk[-1].event_id if chunk else cursor,
            has_next_page=start + limit < len(seq),
        )

    async def get_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        self.get_calls.append(object_id)
        if object_id in self.object_errors:
            raise self.object_errors[object_id]
        fields = self.objects.get(object_id)
        return dict(fields) if fields is not None else None

    async def build_move_call(self, call: MoveCall, *, sender: str, gas_budget: int) -> str:
        self.built.append(call)
        cid = call.arguments[0]
        if cid in self.build_errors:
            raise self.build_errors[cid]
        return base64.b64encode(cid.encode()).decode()

    async def execute_transaction(self, tx_bytes: str, signatures: List[str]) -> TxResult:
        cid = base64.b64decode(tx_bytes).decode()
        self.submitted.append(cid)
        self.timeline.append(("submit", cid))
        res = self.results.get(cid)
        if isinstance(res, BaseException):
            raise res
        if callable(res):
            res = res(cid)
        if res is None:
            obj = self.objects.get(cid)
            if obj is None or not obj["is_active"] or obj["is_completed"]:
                return TxResult(status="failure", digest=f"D-{cid}", error="MoveAbort(MoveLocation { module: alarm }, 3)",
                                error_class="move_abort", abort_code=3)
            res = TxResult(status="success", digest=f"D-{cid}")
        if res.ok and cid in self.objects:
            self.objects[cid]["is_active"] = False
        return res

    async def get_balance(self, owner: str, coin_type: str = "0x2::sui::SUI") -> int:
        return self.balance

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def signing_key():
    return Ed25519PrivateKey.generate()


@pytest.fixture
def credential(signing_key):
    return base64.b64encode(raw_seed(signing_key)).decode()


@pytest.fixture
def signer(credential):
    return Ed25519Signer.from_secret(credential)


@pytest.fixture
def make_config(credential):
    def _make(**overrides) -> WatcherConfig:
        base = dict(
            signing_credential=credential,
            target_module_id=PKG,
            submission_pacing_ms=0,
            grace_period_minutes=60,
            terminal_abort_codes=[3],
        )
        base.update(overrides)
        return WatcherConfig(**base)
    return _make


@pytest.fixture
def cfg(make_config):
    return make_config()
