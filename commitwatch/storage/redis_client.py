from __future__ import annotations
from typing import Any, Optional
import os
import json
import redis.asyncio as redis


class RedisClient:
    def __init__(self, url: Optional[str] = None, timeout_s: Optional[float] = None):
        self.url = url or os.getenv("REDIS_URL") or "redis://localhost:6379/0"
        self._client: "redis.Redis" = redis.from_url(self.url, decode_responses=True, socket_timeout=timeout_s,
                                                     socket_connect_timeout=timeout_s)

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        v = await self._client.get(key)
        if not v:
            return None
        return json.loads(v)

    async def set_json(self, key: str, value: dict[str, Any], ex: Optional[int] = None) -> None:
        await self._client.set(key, json.dumps(value, separators=(",", ":")), ex=ex)

    async def close(self) -> None:
        await self._client.aclose()
