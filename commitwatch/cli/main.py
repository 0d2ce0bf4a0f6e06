from __future__ import annotations
import asyncio
import logging
import time
from typing import Optional
import typer
from dotenv import load_dotenv
from commitwatch.common.config import load_config
from commitwatch.common.schemas import WatcherConfig
from commitwatch.core.contracts import Commitment
from commitwatch.core.errors import ConfigurationError, DiscoveryError, FetchError, LedgerError
from commitwatch.orchestrator.service import WatcherService
from commitwatch.storage.cursor_store import MemoryCursorStore
from commitwatch.sweep.discovery import Discovery
from commitwatch.sweep.eligibility import eligible, grace_period_end_ms

app = typer.Typer(help="commitwatch: forced settlement of lapsed commitments")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _setup(config: Optional[str], dry_run: bool = False) -> WatcherConfig:
    load_dotenv()
    try:
        cfg = load_config(config)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logging.getLogger("commitwatch").error(f"Configuration error: {e}")
        raise typer.Exit(code=1)
    if dry_run and not cfg.dry_run:
        cfg = cfg.model_copy(update={"dry_run": True})
    logging.basicConfig(level=getattr(logging, cfg.log_level, logging.INFO), format=LOG_FORMAT)
    return cfg


def _service(cfg: WatcherConfig) -> WatcherService:
    try:
        return WatcherService(cfg)
    except ConfigurationError as e:
        logging.getLogger("commitwatch").error(f"Configuration error: {e}")
        raise typer.Exit(code=1)


@app.command()
def run(config: Optional[str] = typer.Option(None, help="YAML config path"),
        dry_run: bool = typer.Option(False, "--dry-run", help="Report eligible commitments without submitting")):
    """Sweep on schedule until SIGINT/SIGTERM."""
    svc = _service(_setup(config, dry_run))
    asyncio.run(svc.run())


@app.command()
def sweep(config: Optional[str] = typer.Option(None, help="YAML config path"),
          dry_run: bool = typer.Option(False, "--dry-run", help="Report eligible commitments without submitting")):
    """Run a single sweep and exit."""
    svc = _service(_setup(config, dry_run))
    report = asyncio.run(svc.sweep_once())
    typer.echo(report.summary())
    for cid in report.eligible_ids:
        typer.echo(f"eligible: {cid}")
    if report.aborted:
        raise typer.Exit(code=2)


@app.command()
def balance(config: Optional[str] = typer.Option(None, help="YAML config path")):
    """Show the watcher address and its balance."""
    svc = _service(_setup(config))

    async def _run():
        try:
            return await svc.ledger.get_balance(svc.signer.address)
        finally:
            await svc.close()
    try:
        bal = asyncio.run(_run())
    except LedgerError as e:
        typer.echo(f"balance query failed: {e}", err=True)
        raise typer.Exit(code=2)
    typer.echo(f"{svc.signer.address}: {bal}")


@app.command()
def inspect(commitment_id: Optional[str] = typer.Option(None, "--id", help="Commitment object id"),
            config: Optional[str] = typer.Option(None, help="YAML config path")):
    """List discovered commitments (or one, with --id) and whether each is eligible now. Never submits."""
    cfg = _setup(config)
    svc = _service(cfg)

    async def _run():
        try:
            if commitment_id:
                return {commitment_id: await svc.fetcher.fetch_one(commitment_id)}
            try:
                state = await svc.store.load()
            except Exception as e:
                raise DiscoveryError(f"cursor store unavailable: {e}") from e
            # discover against a copy so the stored cursor never moves
            ids = await Discovery(svc.ledger, cfg, MemoryCursorStore(state)).discover()
            return await svc.fetcher.fetch_many(ids)
        finally:
            await svc.close()
    try:
        snaps = asyncio.run(_run())
    except (DiscoveryError, FetchError) as e:
        typer.echo(f"inspect failed: {e}", err=True)
        raise typer.Exit(code=2)
    now_ms = int(time.time() * 1000)
    typer.echo(f"now: {now_ms}  grace: {cfg.grace_period_minutes} min  commitments: {len(snaps)}")
    for cid, snap in snaps.items():
        if not isinstance(snap, Commitment):
            typer.echo(f"{cid}  unavailable ({snap.reason})")
            continue
        typer.echo(
            f"{cid}  owner={snap.owner} deadline={snap.deadline_ms} "
            f"grace_end={grace_period_end_ms(snap, cfg.grace_period_ms)} active={snap.active} "
            f"completed={snap.completed} eligible={eligible(snap, now_ms, cfg.grace_period_ms)}"
        )


if __name__ == "__main__":
    app()
