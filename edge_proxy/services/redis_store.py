"""
Edge Proxy - Redis Key-Value Store
====================================

What:  KeyValueStore backed by Redis, shared by every worker and instance.
How:   redis-py asyncio client with decode_responses=True; put() is a single
       `SET key value EX ttl`, get() a plain `GET`.
When:  Selected when CACHE_STORE_URL starts with redis://, rediss:// or unix://.

Redis errors are wrapped in StoreError so callers never depend on redis-py's
exception types.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from edge_proxy.exceptions import StoreError
from edge_proxy.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class RedisStore(KeyValueStore):
    """Expiring string store on a Redis server."""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        # from_url does not connect; the pool opens connections on first use
        self.redis = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except redis.RedisError as e:
            raise StoreError(
                message="Redis GET failed",
                context={"key": key, "error": str(e)},
            ) from e

    async def put(self, key: str, value: str, expire_after_seconds: int) -> None:
        try:
            await self.redis.set(key, value, ex=expire_after_seconds)
        except redis.RedisError as e:
            raise StoreError(
                message="Redis SET failed",
                context={"key": key, "error": str(e)},
            ) from e

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Redis store closed")
