from __future__ import annotations
import asyncio
import logging
import signal
from typing import Optional
from commitwatch.common.schemas import WatcherConfig
from commitwatch.core.contracts import SweepReport
from commitwatch.core.errors import LedgerError, WatcherError
from commitwatch.execution.failure_policy import FailureTracker
from commitwatch.execution.settlement import SettlementExecutor
from commitwatch.ledger.base import LedgerClient
from commitwatch.ledger.signer import Ed25519Signer
from commitwatch.ledger.sui import SuiLedgerClient
from commitwatch.observability.metrics import SIGNER_BALANCE, start_metrics_server
from commitwatch.orchestrator.driver import SweepDriver
from commitwatch.orchestrator.timer import IntervalTimer
from commitwatch.storage.cursor_store import CursorStore, build_cursor_store
from commitwatch.sweep.discovery import Discovery
from commitwatch.sweep.state_fetcher import StateFetcher

logger = logging.getLogger(__name__)


class WatcherService:
    """Wires the watcher from configuration and owns its lifecycle."""

    def __init__(self, cfg: WatcherConfig, ledger: Optional[LedgerClient] = None,
                 store: Optional[CursorStore] = None, signer: Optional[Ed25519Signer] = None):
        self.cfg = cfg
        self.signer = signer or Ed25519Signer.from_secret(cfg.signing_credential)
        self.ledger = ledger or SuiLedgerClient(cfg.rpc_endpoint, timeout_s=cfg.rpc_timeout_seconds,
                                                rate_limit_rps=cfg.rpc_rate_limit_rps)
        self.store = store or build_cursor_store(cfg.discovery, timeout_s=cfg.rpc_timeout_seconds)
        self.discovery = Discovery(self.ledger, cfg, self.store)
        self.fetcher = StateFetcher(self.ledger, cfg.field_map, concurrency=cfg.fetch_concurrency)
        self.executor = SettlementExecutor(self.ledger, self.signer, cfg, fetcher=self.fetcher)
        self.tracker = FailureTracker(cfg.failure_policy, cfg.escalation_threshold, cfg.backoff_max_sweeps)
        self.driver = SweepDriver(cfg, self.discovery, self.fetcher, self.executor, tracker=self.tracker)
        self._timer: Optional[IntervalTimer] = None

    async def preflight(self) -> Optional[int]:
        """Log the signer address and balance. A failing balance query is not fatal."""
        logger.info(f"Watcher address: {self.signer.address}")
        try:
            balance = await self.ledger.get_balance(self.signer.address)
        except LedgerError as e:
            logger.warning(f"Could not read signer balance: {e}")
            return None
        SIGNER_BALANCE.set(balance)
        logger.info(f"Signer balance: {balance}")
        if balance < self.cfg.max_fee_budget:
            logger.warning(f"Signer balance {balance} is below the fee budget {self.cfg.max_fee_budget}")
        return balance

    async def sweep_once(self) -> SweepReport:
        try:
            await self.preflight()
            report = await self.driver.trigger()
        finally:
            await self.close()
        if report is None:
            raise WatcherError("a sweep is already running")
        return report

    def stop(self) -> None:
        if self._timer:
            self._timer.stop()

    async def run(self) -> None:
        logger.info(
            f"Watching {self.cfg.creation_event_type}: every {self.cfg.sweep_interval_minutes} min, "
            f"grace {self.cfg.grace_period_minutes} min" + (" (dry-run)" if self.cfg.dry_run else "")
        )
        if start_metrics_server(self.cfg.metrics_port):
            logger.info(f"Metrics on :{self.cfg.metrics_port}")
        await self.preflight()
        self._timer = IntervalTimer(self.cfg.sweep_interval_seconds, self.driver.trigger)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                logger.debug(f"signal handler for {sig.name} not supported on this platform")
        try:
            await self._timer.run()
            logger.info("Shutdown requested; waiting for in-flight sweep")
            await self._timer.drain(self.cfg.shutdown_grace_seconds)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except NotImplementedError:
                    pass
            await self.close()
        logger.info("Watcher stopped")

    async def close(self) -> None:
        await self.ledger.close()
        await self.store.close()
