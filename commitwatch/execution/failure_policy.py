from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple
from commitwatch.core.contracts import SettlementOutcome

logger = logging.getLogger(__name__)


@dataclass
class _Streak:
    failures: int = 0
    skip_until_sweep: int = 0
    escalated: bool = False


class FailureTracker:
    """Consecutive settlement failures per commitment, across sweeps.

    retry      -> reconsider every sweep
    backoff    -> after n consecutive failures skip 2**(n-1) sweeps (capped)
    quarantine -> stop submitting once the escalation threshold is hit
    """

    def __init__(self, policy: str = "retry", escalation_threshold: int = 5, backoff_max_sweeps: int = 12):
        self.policy = policy
        self.threshold = max(1, escalation_threshold)
        self.backoff_max = max(1, backoff_max_sweeps)
        self._streaks: Dict[str, _Streak] = {}

    def failures(self, commitment_id: str) -> int:
        s = self._streaks.get(commitment_id)
        return s.failures if s else 0

    def split(self, ids: Iterable[str], sweep_id: int) -> Tuple[List[str], List[str]]:
        """Return (submit, deferred) preserving order."""
        submit: List[str] = []
        deferred: List[str] = []
        for cid in ids:
            s = self._streaks.get(cid)
            if s is None or self.policy == "retry":
                submit.append(cid)
            elif self.policy == "quarantine" and s.failures >= self.threshold:
                deferred.append(cid)
            elif self.policy == "backoff" and sweep_id < s.skip_until_sweep:
                deferred.append(cid)
            else:
                submit.append(cid)
        return submit, deferred

    def observe(self, outcome: SettlementOutcome, sweep_id: int) -> None:
        cid = outcome.commitment_id
        if outcome.kind in ("settled", "noop"):
            self._streaks.pop(cid, None)
            return
        if outcome.kind != "failed":
            return
        s = self._streaks.setdefault(cid, _Streak())
        s.failures += 1
        skip = min(2 ** (s.failures - 1), self.backoff_max)
        s.skip_until_sweep = sweep_id + 1 + skip
        if s.failures >= self.threshold and not s.escalated:
            s.escalated = True
            logger.error(
                f"ESCALATION: settlement of {cid} failed {s.failures} sweeps in a row "
                f"(last: {outcome.error_class or 'unknown'}); policy={self.policy}"
            )

    def forget(self, ids: Iterable[str]) -> None:
        for cid in ids:
            self._streaks.pop(cid, None)
