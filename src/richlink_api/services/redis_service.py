"""
Async Redis access for the preview service.

Usage:
    ```python
    from richlink_api.services.redis_service import get_redis_service

    async def my_function():
        redis = get_redis_service().async_client
        value = await redis.get("key")
        await redis.set("key", "value", ex=60)
    ```
"""

import logging
from functools import lru_cache

from redis import asyncio as aioredis

from richlink_api.configurations.config import settings

logger = logging.getLogger(__name__)


class RedisService:
    def __init__(self):
        logger.info("Creating async Redis connection pool")

        self.async_pool = aioredis.ConnectionPool(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            decode_responses=True,
            max_connections=10,
        )
        self._async_client = aioredis.Redis(connection_pool=self.async_pool)
        logger.info("Async Redis client initialized successfully")

    @property
    def async_client(self) -> aioredis.Redis:
        return self._async_client

    async def aclose(self):
        """Close the client and its pool; only called during app shutdown."""
        logger.info("Closing async Redis connection pool")
        await self._async_client.aclose()


@lru_cache()
def get_redis_service() -> RedisService:
    logger.info("Initializing RedisService (should happen once)")
    return RedisService()
