import pytest

from commitwatch.common.schemas import FieldMap
from commitwatch.core.contracts import Commitment, Unavailable
from commitwatch.core.errors import FetchError
from commitwatch.sweep.state_fetcher import StateFetcher, parse_commitment


def test_parse_commitment_reads_u64_strings():
    fields = {
        "owner": "0xo", "habit_type": "gym", "wake_up_time": "1700000000000",
        "deposit_amount": "250", "charity_address": "0xc", "is_active": True, "is_completed": False,
    }
    c = parse_commitment("0x1", fields, FieldMap())
    assert c.deadline_ms == 1_700_000_000_000
    assert c.deposit_amount == 250
    assert c.category == "gym"
    assert c.active and not c.completed and not c.terminal


def test_parse_commitment_custom_field_map():
    fm = FieldMap(deadline="deadline", active="live", completed="done", beneficiary="to")
    fields = {"owner": "0xo", "deadline": 5, "to": "0xc", "live": "true", "done": "false"}
    c = parse_commitment("0x1", fields, fm)
    assert c.deadline_ms == 5 and c.active is True and c.completed is False


def test_parse_commitment_malformed():
    with pytest.raises(FetchError) as ei:
        parse_commitment("0x1", {"owner": "0xo"}, FieldMap())
    assert ei.value.reason == "malformed"


@pytest.mark.asyncio
async def test_fetch_one_not_found(ledger):
    f = StateFetcher(ledger, FieldMap())
    snap = await f.fetch_one("0xmissing")
    assert isinstance(snap, Unavailable) and snap.reason == "not_found"


@pytest.mark.asyncio
async def test_fetch_one_raises_fetch_error(ledger):
    ledger.add_commitment("0x1", 0)
    ledger.object_errors["0x1"] = TimeoutError("slow node")
    f = StateFetcher(ledger, FieldMap())
    with pytest.raises(FetchError):
        await f.fetch_one("0x1")


@pytest.mark.asyncio
async def test_fetch_many_isolates_failures(ledger):
    for cid in ["0x1", "0x2", "0x3"]:
        ledger.add_commitment(cid, 0)
    ledger.object_errors["0x2"] = RuntimeError("boom")
    ledger.objects["0x3"].pop("wake_up_time")
    f = StateFetcher(ledger, FieldMap(), concurrency=2)
    snaps = await f.fetch_many(["0x3", "0x1", "0x2", "0x1"])
    assert list(snaps) == ["0x1", "0x2", "0x3"]
    assert isinstance(snaps["0x1"], Commitment)
    assert snaps["0x2"].reason == "error"
    assert snaps["0x3"].reason == "malformed"
    assert sorted(ledger.get_calls) == ["0x1", "0x2", "0x3"]
