from __future__ import annotations
from typing import Dict, List
from commitwatch.core.contracts import Commitment, Snapshot


def grace_period_end_ms(snapshot: Commitment, grace_period_ms: int) -> int:
    return snapshot.deadline_ms + grace_period_ms


def eligible(snapshot: Commitment, now_ms: int, grace_period_ms: int) -> bool:
    """Forced settlement is allowed once the grace window after the deadline has
    elapsed (boundary inclusive) and the deposit is still escrowed."""
    return (
        now_ms >= grace_period_end_ms(snapshot, grace_period_ms)
        and snapshot.active
        and not snapshot.completed
    )


def select_eligible(snapshots: Dict[str, Snapshot], now_ms: int, grace_period_ms: int) -> List[str]:
    """Eligible ids in ascending order. Unavailable entries are never eligible."""
    return sorted(
        cid for cid, snap in snapshots.items()
        if isinstance(snap, Commitment) and eligible(snap, now_ms, grace_period_ms)
    )
