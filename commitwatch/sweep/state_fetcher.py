from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, Iterable
from pydantic import ValidationError
from commitwatch.common.schemas import FieldMap
from commitwatch.core.contracts import Commitment, Snapshot, Unavailable
from commitwatch.core.errors import FetchError
from commitwatch.ledger.base import LedgerClient

logger = logging.getLogger(__name__)


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("true", "1")
    return bool(v)


def parse_commitment(object_id: str, fields: Dict[str, Any], fm: FieldMap) -> Commitment:
    """Map raw Move fields onto a Commitment. u64 values arrive as strings."""
    try:
        return Commitment(
            id=object_id,
            owner=str(fields[fm.owner]),
            category=str(fields.get(fm.category) or ""),
            deadline_ms=int(fields[fm.deadline]),
            deposit_amount=int(fields.get(fm.deposit) or 0),
            beneficiary=str(fields[fm.beneficiary]),
            active=_as_bool(fields[fm.active]),
            completed=_as_bool(fields[fm.completed]),
        )
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        raise FetchError(object_id, f"malformed commitment fields: {e!r}", reason="malformed") from e


class StateFetcher:
    """Best-effort snapshot of many commitments; one failure never blocks the others."""

    def __init__(self, ledger: LedgerClient, field_map: FieldMap, concurrency: int = 8):
        self._ledger = ledger
        self._fm = field_map
        self._sem = asyncio.Semaphore(max(1, concurrency))

    async def fetch_one(self, object_id: str) -> Snapshot:
        """Return a Commitment, or Unavailable(not_found). Raises FetchError otherwise."""
        try:
            fields = await self._ledger.get_object(object_id)
        except Exception as e:
            raise FetchError(object_id, str(e) or e.__class__.__name__) from e
        if fields is None:
            return Unavailable(id=object_id, reason="not_found")
        return parse_commitment(object_id, fields, self._fm)

    async def _guarded(self, object_id: str) -> Snapshot:
        async with self._sem:
            try:
                return await self.fetch_one(object_id)
            except FetchError as e:
                logger.warning(f"Failed to fetch commitment {object_id}: {e}")
                return Unavailable(id=object_id, reason=e.reason, error=str(e))

    async def fetch_many(self, ids: Iterable[str]) -> Dict[str, Snapshot]:
        ordered = sorted(set(ids))
        results = await asyncio.gather(*(self._guarded(i) for i in ordered))
        return dict(zip(ordered, results))
