import logging
from typing import List, Optional

from fastapi_healthcheck.enum import HealthCheckStatusEnum
from redis.exceptions import RedisError

from richlink_api.services.health_check.async_health_check_interface import (
    HealthCheckProtocol,
)
from richlink_api.services.redis_service import get_redis_service

logger = logging.getLogger(__name__)


class RedisHealthCheck(HealthCheckProtocol):
    """Pings the Redis instance backing the preview URL cache."""

    def __init__(
        self,
        alias: str,
        tags: Optional[List[str]] = None,
    ) -> None:
        self.alias = alias
        self.tags = tags or []

    async def check_health(self) -> HealthCheckStatusEnum:
        try:
            result = await get_redis_service().async_client.ping()
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return HealthCheckStatusEnum.UNHEALTHY

        return HealthCheckStatusEnum.HEALTHY if result else HealthCheckStatusEnum.UNHEALTHY
