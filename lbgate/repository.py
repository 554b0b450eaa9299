"""Storage for rate-limiter state, backed by Redis."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from lbgate.config import RedisConfig

BUCKET_PATTERN = "bucket:*"


class RedisConnectionError(ConnectionError):
    """Raised when the Redis server cannot be reached."""


class RateLimiterRepository(Protocol):
    """What the rate limiter needs from its store."""

    async def eval(self, script: str, keys: Sequence[str], *args: Any) -> Any:
        """Run a Lua script atomically over the given keys."""
        ...

    async def keys(self) -> list[str]:
        """Return the keys of all token buckets."""
        ...


def _as_text(value: Any) -> str:
    return value.decode() if isinstance(value, (bytes, bytearray)) else str(value)


class RedisLimiterRepository:
    """Rate-limiter store on top of an asyncio Redis client."""

    def __init__(self, client) -> None:
        self._client = client

    async def eval(self, script: str, keys: Sequence[str], *args: Any) -> Any:
        """Run a Lua script with the given keys and arguments."""
        key_list = list(keys)
        return await self._client.eval(script, len(key_list), *key_list, *args)

    async def keys(self) -> list[str]:
        """Return every bucket:* key currently stored."""
        found = await self._client.keys(BUCKET_PATTERN)
        return [_as_text(key) for key in found]


@dataclass
class Repository:
    """Bundle of the stores used by the services."""

    rate_limiter: RateLimiterRepository


def make_repository(client) -> Repository:
    """Build the repository bundle around a Redis client."""
    return Repository(rate_limiter=RedisLimiterRepository(client))


async def connect_redis(config: RedisConfig):
    """Open a Redis client for the configured address and check it answers."""
    try:
        port = int(config.port)
    except (TypeError, ValueError) as exc:
        raise RedisConnectionError(
            f"can not connect with Redis: invalid port {config.port!r}"
        ) from exc

    client = aioredis.Redis(
        host=config.host or "localhost",
        port=port,
        db=0,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        await client.connection_pool.disconnect()
        raise RedisConnectionError(f"can not connect with Redis: {exc}") from exc
    return client