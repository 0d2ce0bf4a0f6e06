from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from commitwatch.common.schemas import WatcherConfig
from commitwatch.core.contracts import CreationEvent, DiscoveryState, EventId
from commitwatch.core.errors import DiscoveryError
from commitwatch.ledger.base import LedgerClient
from commitwatch.storage.cursor_store import CursorStore, MemoryCursorStore

logger = logging.getLogger(__name__)


class Discovery:
    """Enumerates every commitment id ever created, from the creation-event log.

    `rescan` walks the log newest-first on every sweep, bounded by the page limit.
    `incremental` walks oldest-first from the stored cursor and merges new ids into
    the accumulated set; the cursor only advances after a fully successful scan.
    Ids observed terminal (or gone) are retired and skipped by later fetches.
    """

    def __init__(self, ledger: LedgerClient, cfg: WatcherConfig, store: Optional[CursorStore] = None):
        self._ledger = ledger
        self._cfg = cfg
        self._store = store or MemoryCursorStore()
        self._state: Optional[DiscoveryState] = None

    @property
    def incremental(self) -> bool:
        return self._cfg.discovery.mode == "incremental"

    def _extract_id(self, ev: CreationEvent) -> Optional[str]:
        parsed: Dict[str, Any] = ev.parsed or {}
        val = parsed.get(self._cfg.field_map.event_id) or parsed.get("id")
        if isinstance(val, dict):
            # UID rendered as {"id": "0x..."}
            val = val.get("id")
        return str(val) if val else None

    async def _load(self) -> DiscoveryState:
        if self._state is None:
            try:
                self._state = await asyncio.wait_for(self._store.load(), timeout=self._cfg.rpc_timeout_seconds)
            except asyncio.TimeoutError as e:
                raise DiscoveryError(f"cursor store did not answer within {self._cfg.rpc_timeout_seconds}s") from e
            except Exception as e:
                raise DiscoveryError(f"cursor store unavailable: {e}") from e
        return self._state

    async def _persist(self, state: DiscoveryState) -> None:
        self._state = state
        try:
            await asyncio.wait_for(self._store.save(state), timeout=self._cfg.rpc_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Timed out persisting discovery state after {self._cfg.rpc_timeout_seconds}s")
        except Exception as e:
            logger.error(f"Failed to persist discovery state: {e}")

    async def _scan(self, cursor: Optional[EventId], descending: bool) -> Tuple[List[str], Optional[EventId], int]:
        dcfg = self._cfg.discovery
        ids: List[str] = []
        last = cursor
        pages = 0
        while pages < dcfg.max_pages:
            try:
                page = await self._ledger.query_events(
                    self._cfg.creation_event_type, cursor=cursor, limit=dcfg.page_size, descending=descending
                )
            except Exception as e:
                raise DiscoveryError(f"event page {pages + 1} fetch failed: {e}") from e
            pages += 1
            for ev in page.events:
                last = ev.event_id
                cid = self._extract_id(ev)
                if cid:
                    ids.append(cid)
                else:
                    logger.debug(f"creation event {ev.event_id.tx_digest}:{ev.event_id.event_seq} carries no id")
            if not page.has_next_page or not page.events:
                break
            cursor = page.next_cursor or last
        else:
            logger.info(f"Discovery stopped at page limit ({dcfg.max_pages} pages)")
        return ids, last, pages

    async def discover(self) -> Set[str]:
        state = await self._load()
        if self.incremental:
            found, last, pages = await self._scan(state.cursor, descending=False)
        else:
            found, last, pages = await self._scan(None, descending=True)
        known = set(state.known_ids)
        new = set(found) - known
        known |= set(found)
        if not found and not known:
            logger.info("No creation events found")
        logger.info(f"Discovered {len(known)} unique commitment ids ({len(new)} new, {pages} page(s) read)")
        if new or (self.incremental and last != state.cursor):
            await self._persist(DiscoveryState(
                cursor=last if self.incremental else state.cursor,
                known_ids=sorted(known),
                retired_ids=list(state.retired_ids),
            ))
        return known

    def retired_ids(self) -> Set[str]:
        return set(self._state.retired_ids) if self._state else set()

    async def retire(self, ids: Iterable[str]) -> None:
        state = await self._load()
        retired = set(state.retired_ids)
        fresh = set(ids) - retired
        if not fresh:
            return
        await self._persist(DiscoveryState(
            cursor=state.cursor,
            known_ids=list(state.known_ids),
            retired_ids=sorted(retired | fresh),
        ))
