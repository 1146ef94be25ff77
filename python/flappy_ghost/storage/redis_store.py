from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RedisKeyValueStore:
    """Durable key/value storage for per-player values such as the best score.

    Degrades to an empty, write-discarding store when Redis is not configured or
    not reachable at connect time.
    """

    url: str | None = None
    namespace: str = "flappy"
    _client: Any | None = None

    async def connect(self) -> None:
        if self.url is None:
            self._client = None
            return
        import redis.asyncio as redis

        self._client = redis.from_url(self.url, decode_responses=True)
        try:
            await self._client.ping()
        except Exception as e:
            logger.warning("Redis unavailable at %s: %s", self.url, e)
            self._client = None

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except Exception as e:
            logger.debug("Error closing redis client: %s", e)
        self._client = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:kv:{key}"

    async def read(self, key: str) -> str | None:
        if self._client is None:
            return None
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        return str(raw)

    async def write(self, key: str, value: str) -> None:
        if self._client is None:
            return
        await self._client.set(self._key(key), value)
