from __future__ import annotations
import logging
import time
from typing import Callable, List, Optional
from commitwatch.common.rate_limiter import Pacer
from commitwatch.common.schemas import WatcherConfig
from commitwatch.core.contracts import Commitment, SettlementOutcome, SweepReport, Unavailable
from commitwatch.core.errors import DiscoveryError
from commitwatch.execution.failure_policy import FailureTracker
from commitwatch.execution.settlement import SettlementExecutor
from commitwatch.observability.metrics import (
    DISCOVERED, FETCH_FAILURES, SETTLEMENTS_TOTAL, SWEEP_DURATION, SWEEPS_TOTAL, TRIGGERS_DROPPED,
)
from commitwatch.orchestrator.timer import SingleFlight
from commitwatch.sweep.discovery import Discovery
from commitwatch.sweep.eligibility import select_eligible
from commitwatch.sweep.state_fetcher import StateFetcher

logger = logging.getLogger(__name__)


def _wall_ms() -> int:
    return int(time.time() * 1000)


class SweepDriver:
    """One sweep = discovery -> fetch -> eligibility -> paced sequential settlement.

    `trigger()` is the scheduled entry point and is single-flight: a trigger that
    arrives while a sweep is running is dropped.
    """

    def __init__(self, cfg: WatcherConfig, discovery: Discovery, fetcher: StateFetcher,
                 executor: SettlementExecutor, *, tracker: Optional[FailureTracker] = None,
                 pacer: Optional[Pacer] = None, clock_ms: Callable[[], int] = _wall_ms):
        self._cfg = cfg
        self._discovery = discovery
        self._fetcher = fetcher
        self._executor = executor
        self._tracker = tracker or FailureTracker(cfg.failure_policy, cfg.escalation_threshold,
                                                  cfg.backoff_max_sweeps)
        self._pacer = pacer or Pacer(cfg.submission_pacing_ms / 1000.0)
        self._clock_ms = clock_ms
        self._flight: SingleFlight[SweepReport] = SingleFlight(self.run_sweep)
        self._seq = 0
        self.last_report: Optional[SweepReport] = None

    @property
    def busy(self) -> bool:
        return self._flight.busy

    @property
    def dropped_triggers(self) -> int:
        return self._flight.dropped

    async def trigger(self) -> Optional[SweepReport]:
        report = await self._flight.run()
        if report is None:
            TRIGGERS_DROPPED.inc()
            logger.warning("Previous sweep still running; trigger dropped")
        return report

    async def run_sweep(self) -> SweepReport:
        self._seq += 1
        report = SweepReport(sweep_id=self._seq, started_at_ms=self._clock_ms(), dry_run=self._cfg.dry_run)
        logger.info(f"Starting sweep #{report.sweep_id}")
        t0 = time.monotonic()
        try:
            await self._sweep(report)
        except Exception as e:
            logger.exception(f"Error during sweep #{report.sweep_id}: {e}")
            report.aborted = f"error: {e!r}"
        finally:
            report.finished_at_ms = self._clock_ms()
            SWEEP_DURATION.observe(max(0.0, time.monotonic() - t0))
        SWEEPS_TOTAL.labels("aborted" if report.aborted else "ok").inc()
        logger.info(report.summary())
        self.last_report = report
        return report

    async def _sweep(self, report: SweepReport) -> None:
        try:
            ids = await self._discovery.discover()
        except DiscoveryError as e:
            logger.error(f"Discovery failed, waiting for next sweep: {e}")
            report.aborted = "discovery"
            return
        report.discovered = len(ids)
        DISCOVERED.set(len(ids))

        candidates = sorted(ids - self._discovery.retired_ids())
        report.retired = len(ids) - len(candidates)
        snapshots = await self._fetcher.fetch_many(candidates)

        finished: List[str] = []
        for cid, snap in snapshots.items():
            if isinstance(snap, Unavailable):
                report.unavailable += 1
                FETCH_FAILURES.labels(snap.reason).inc()
                if snap.reason == "not_found":
                    finished.append(cid)
            else:
                report.fetched += 1
                if snap.terminal:
                    finished.append(cid)
        if finished:
            await self._discovery.retire(finished)
            self._tracker.forget(finished)

        eligible_ids = select_eligible(snapshots, self._clock_ms(), self._cfg.grace_period_ms)
        report.eligible = len(eligible_ids)
        report.eligible_ids = eligible_ids
        for cid in eligible_ids:
            snap = snapshots[cid]
            if isinstance(snap, Commitment):
                logger.info(f"Eligible: {cid} ({snap.category}, deposit {snap.deposit_amount} -> {snap.beneficiary})")
        if not eligible_ids or self._cfg.dry_run:
            return

        submit, deferred = self._tracker.split(eligible_ids, report.sweep_id)
        for cid in deferred:
            logger.info(f"Deferred {cid}: {self._tracker.failures(cid)} consecutive failures ({self._cfg.failure_policy})")
            report.record(SettlementOutcome(commitment_id=cid, kind="deferred"))
        async for cid in self._pacer.sequence(submit):
            outcome = await self._executor.settle(cid)
            report.record(outcome)
            self._tracker.observe(outcome, report.sweep_id)
            SETTLEMENTS_TOTAL.labels(outcome.kind).inc()
