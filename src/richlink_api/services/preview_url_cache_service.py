import hashlib
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from richlink_api.models.preview_metadata import (
    PreviewMetadata,
    preview_metadata_adapter,
)

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "richlink:preview:"


def cache_key(url: str) -> str:
    return CACHE_KEY_PREFIX + hashlib.sha256(url.encode("utf-8")).hexdigest()


class PreviewUrlCache:
    """Short-circuits repeated fetches of the same URL across links.

    Entries expire together with the metadata they hold. The cache is
    advisory: any Redis failure is logged and treated as a miss.
    """

    def __init__(
        self,
        redis: Optional[aioredis.Redis],
        enabled: bool = True,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.redis = redis
        self.enabled = enabled and redis is not None
        self.clock = clock

    async def get(self, url: str) -> Optional[PreviewMetadata]:
        if not self.enabled:
            return None
        try:
            raw = await self.redis.get(cache_key(url))
        except RedisError as e:
            logger.warning(f"Preview cache read failed for {url}: {e}")
            return None
        if raw is None:
            return None

        try:
            metadata = preview_metadata_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached preview for {url}: {e}")
            return None
        if metadata.expires_at <= self.clock():
            return None
        return metadata

    async def set(self, url: str, metadata: PreviewMetadata) -> None:
        if not self.enabled:
            return
        ttl_seconds = int((metadata.expires_at - self.clock()).total_seconds())
        if ttl_seconds <= 0:
            return
        try:
            await self.redis.set(
                cache_key(url),
                preview_metadata_adapter.dump_json(metadata),
                ex=ttl_seconds,
            )
        except RedisError as e:
            logger.warning(f"Preview cache write failed for {url}: {e}")

    async def invalidate(self, url: str) -> None:
        if not self.enabled:
            return
        try:
            await self.redis.delete(cache_key(url))
        except RedisError as e:
            logger.warning(f"Preview cache invalidation failed for {url}: {e}")
