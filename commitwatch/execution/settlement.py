from __future__ import annotations
import asyncio
import logging
from typing import Optional
from commitwatch.common.schemas import WatcherConfig
from commitwatch.core.contracts import Commitment, MoveCall, SettlementOutcome, TxResult
from commitwatch.core.errors import AlreadySettledConflict, FetchError, LedgerRPCError, LedgerTimeout, SettlementFailure
from commitwatch.ledger.base import LedgerClient
from commitwatch.ledger.signer import Ed25519Signer
from commitwatch.sweep.state_fetcher import StateFetcher

logger = logging.getLogger(__name__)


class SettlementExecutor:
    """Builds, signs and submits one forced-settlement transaction per call.

    No retries: a failed submission is reconsidered by the next sweep.
    """

    def __init__(self, ledger: LedgerClient, signer: Ed25519Signer, cfg: WatcherConfig,
                 fetcher: Optional[StateFetcher] = None):
        self._ledger = ledger
        self._signer = signer
        self._cfg = cfg
        self._fetcher = fetcher or StateFetcher(ledger, cfg.field_map, concurrency=1)
        self._terminal_codes = set(cfg.terminal_abort_codes)

    def build_call(self, commitment_id: str) -> MoveCall:
        return MoveCall(
            package=self._cfg.target_module_id,
            module=self._cfg.module_name,
            function=self._cfg.settle_function,
            arguments=[commitment_id, self._cfg.clock_object_id],
        )

    async def _now_terminal(self, commitment_id: str) -> bool:
        """Re-read the object after a rejected submission. Gone or terminal means the race was lost."""
        try:
            snap = await self._fetcher.fetch_one(commitment_id)
        except FetchError as e:
            logger.warning(f"State re-read for {commitment_id} failed: {e}")
            return False
        return not isinstance(snap, Commitment) or snap.terminal

    async def _classify(self, commitment_id: str, result: TxResult) -> TxResult:
        if result.ok:
            return result
        # object_missing is not trusted on its own: a wrong package id or a missing
        # RPC method reads the same. Only the state read below can confirm the race.
        if result.error_class == "move_abort" and result.abort_code in self._terminal_codes:
            raise AlreadySettledConflict(commitment_id, f"abort code {result.abort_code}")
        if result.error_class != "timeout" and await self._now_terminal(commitment_id):
            raise AlreadySettledConflict(commitment_id, result.error)
        raise SettlementFailure(commitment_id, result.error or "rejected", error_class=result.error_class,
                                digest=result.digest)

    async def execute(self, commitment_id: str) -> TxResult:
        """Submit exactly one settlement. Raises AlreadySettledConflict or SettlementFailure."""
        call = self.build_call(commitment_id)
        try:
            tx_bytes = await self._ledger.build_move_call(call, sender=self._signer.address,
                                                          gas_budget=self._cfg.max_fee_budget)
        except LedgerRPCError as e:
            result = TxResult(status="failure", error=str(e), error_class=e.error_class, abort_code=e.abort_code)
            return await self._classify(commitment_id, result)
        except LedgerTimeout as e:
            result = TxResult(status="failure", error=str(e), error_class="timeout")
            return await self._classify(commitment_id, result)
        signature = self._signer.sign_transaction(tx_bytes)
        try:
            result = await self._ledger.execute_transaction(tx_bytes, [signature])
        except asyncio.CancelledError:
            logger.warning(f"Shutdown while awaiting settlement of {commitment_id}; outcome unknown until next sweep")
            raise
        return await self._classify(commitment_id, result)

    async def settle(self, commitment_id: str) -> SettlementOutcome:
        logger.info(f"Attempting forced settlement of {commitment_id}")
        try:
            result = await self.execute(commitment_id)
        except AlreadySettledConflict as e:
            logger.info(f"Skipped {commitment_id}: already terminal")
            return SettlementOutcome(commitment_id=commitment_id, kind="noop", error=str(e))
        except SettlementFailure as e:
            logger.error(f"Settlement failed for {commitment_id} [{e.error_class}]: {e}")
            return SettlementOutcome(commitment_id=commitment_id, kind="failed", digest=e.digest, error=str(e),
                                     error_class=e.error_class)
        except Exception as e:
            logger.error(f"Error settling {commitment_id}: {e!r}")
            return SettlementOutcome(commitment_id=commitment_id, kind="failed", error=repr(e),
                                     error_class="internal")
        logger.info(f"Settled {commitment_id} (digest {result.digest})")
        return SettlementOutcome(commitment_id=commitment_id, kind="settled", digest=result.digest)
