from commitwatch.core.contracts import Commitment, Unavailable
from commitwatch.sweep.eligibility import eligible, grace_period_end_ms, select_eligible

HOUR_MS = 60 * 60 * 1000
NOW = 1_700_000_000_000


def _c(cid="0xa", deadline_ms=NOW, active=True, completed=False):
    return Commitment(id=cid, owner="0xo", deadline_ms=deadline_ms, deposit_amount=1,
                      beneficiary="0xb", active=active, completed=completed)


def test_before_deadline_never_eligible():
    c = _c(deadline_ms=NOW + 1)
    assert eligible(c, NOW, 0) is False
    assert eligible(c, NOW, HOUR_MS) is False


def test_grace_boundary_is_inclusive():
    c = _c(deadline_ms=NOW)
    end = grace_period_end_ms(c, HOUR_MS)
    assert end == NOW + HOUR_MS
    assert eligible(c, end, HOUR_MS) is True
    assert eligible(c, end - 1, HOUR_MS) is False


def test_completed_or_inactive_never_eligible():
    far_future = NOW + 365 * 24 * HOUR_MS
    assert eligible(_c(completed=True), far_future, HOUR_MS) is False
    assert eligible(_c(active=False), far_future, HOUR_MS) is False


def test_monotone_in_now():
    c = _c(deadline_ms=NOW)
    end = grace_period_end_ms(c, HOUR_MS)
    results = [eligible(c, t, HOUR_MS) for t in range(end - 3, end + 4)]
    assert results == [False, False, False, True, True, True, True]


def test_three_commitments_around_now():
    snaps = {
        "0x1": _c("0x1", deadline_ms=NOW - HOUR_MS - 1000),
        "0x2": _c("0x2", deadline_ms=NOW - HOUR_MS),
        "0x3": _c("0x3", deadline_ms=NOW - HOUR_MS + 1000),
    }
    assert select_eligible(snaps, NOW, HOUR_MS) == ["0x1", "0x2"]


def test_select_skips_unavailable_and_sorts():
    snaps = {
        "0xc": _c("0xc", deadline_ms=0),
        "0xa": _c("0xa", deadline_ms=0),
        "0xb": Unavailable(id="0xb", reason="error"),
    }
    assert select_eligible(snaps, NOW, HOUR_MS) == ["0xa", "0xc"]
