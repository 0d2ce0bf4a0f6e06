from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from pydantic import ValidationError
from commitwatch.common.schemas import DiscoveryConfig
from commitwatch.core.contracts import DiscoveryState
from commitwatch.storage.redis_client import RedisClient

logger = logging.getLogger(__name__)


class CursorStore(ABC):
    """Persists the discovery cursor, the accumulated id set and the retired ids between sweeps."""

    @abstractmethod
    async def load(self) -> DiscoveryState: ...

    @abstractmethod
    async def save(self, state: DiscoveryState) -> None: ...

    async def close(self) -> None:
        return None


class MemoryCursorStore(CursorStore):
    def __init__(self, state: Optional[DiscoveryState] = None):
        self._state = state or DiscoveryState()

    async def load(self) -> DiscoveryState:
        return self._state.model_copy(deep=True)

    async def save(self, state: DiscoveryState) -> None:
        self._state = state.model_copy(deep=True)


class FileCursorStore(CursorStore):
    """JSON file, replaced atomically on every save."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _read(self) -> DiscoveryState:
        if not self.path.exists():
            return DiscoveryState()
        try:
            return DiscoveryState.model_validate_json(self.path.read_text())
        except ValidationError as e:
            aside = self.path.with_suffix(".corrupt")
            self.path.replace(aside)
            logger.error(f"Discovery state {self.path} is unreadable, moved to {aside}; starting empty: {e}")
            return DiscoveryState()

    def _write(self, payload: str) -> None:
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(payload)
        tmp.replace(self.path)

    async def load(self) -> DiscoveryState:
        async with self._lock:
            return await asyncio.to_thread(self._read)

    async def save(self, state: DiscoveryState) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, state.model_dump_json())


class RedisCursorStore(CursorStore):
    def __init__(self, redis: RedisClient, key: str):
        self._redis = redis
        self._key = key

    async def load(self) -> DiscoveryState:
        data = await self._redis.get_json(self._key)
        return DiscoveryState.model_validate(data) if data else DiscoveryState()

    async def save(self, state: DiscoveryState) -> None:
        await self._redis.set_json(self._key, state.model_dump(mode="json"))

    async def close(self) -> None:
        await self._redis.close()


def build_cursor_store(cfg: DiscoveryConfig, timeout_s: Optional[float] = None) -> CursorStore:
    if cfg.store == "file":
        return FileCursorStore(cfg.state_path)
    if cfg.store == "redis":
        return RedisCursorStore(RedisClient(cfg.redis_url, timeout_s=timeout_s), cfg.redis_key)
    return MemoryCursorStore()
