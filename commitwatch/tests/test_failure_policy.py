from commitwatch.core.contracts import SettlementOutcome
from commitwatch.execution.failure_policy import FailureTracker


def _failed(cid="0x1"):
    return SettlementOutcome(commitment_id=cid, kind="failed", error_class="insufficient_gas")


def test_retry_always_submits():
    t = FailureTracker("retry", escalation_threshold=2)
    for sweep in range(1, 6):
        assert t.split(["0x1"], sweep) == (["0x1"], [])
        t.observe(_failed(), sweep)
    assert t.failures("0x1") == 5


def test_backoff_doubles_and_caps():
    t = FailureTracker("backoff", escalation_threshold=10, backoff_max_sweeps=2)
    submitted = []
    for sweep in range(1, 12):
        submit, _ = t.split(["0x1"], sweep)
        if submit:
            submitted.append(sweep)
            t.observe(_failed(), sweep)
    # skips 1, 2, then capped at 2
    assert submitted == [1, 3, 6, 9]


def test_success_resets_streak():
    t = FailureTracker("backoff")
    t.observe(_failed(), 1)
    t.observe(SettlementOutcome(commitment_id="0x1", kind="noop"), 2)
    assert t.failures("0x1") == 0
    assert t.split(["0x1"], 2) == (["0x1"], [])


def test_quarantine_after_threshold(caplog):
    t = FailureTracker("quarantine", escalation_threshold=2)
    t.observe(_failed(), 1)
    assert t.split(["0x1", "0x2"], 2) == (["0x1", "0x2"], [])
    with caplog.at_level("ERROR"):
        t.observe(_failed(), 2)
        t.observe(_failed(), 3)
    assert sum("ESCALATION" in r.getMessage() for r in caplog.records) == 1
    assert t.split(["0x1", "0x2"], 4) == (["0x2"], ["0x1"])
    t.forget(["0x1"])
    assert t.split(["0x1"], 5) == (["0x1"], [])
