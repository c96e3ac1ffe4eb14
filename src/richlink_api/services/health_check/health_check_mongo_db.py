import logging
from typing import List, Optional

from fastapi_healthcheck.enum import HealthCheckStatusEnum
from pymongo.errors import PyMongoError

from richlink_api.persistence.mongo_client import check_mongo_connection
from richlink_api.services.health_check.async_health_check_interface import (
    HealthCheckProtocol,
)

logger = logging.getLogger(__name__)


class MongoHealthCheck(HealthCheckProtocol):
    def __init__(
        self,
        alias: str,
        tags: Optional[List[str]] = None,
    ) -> None:
        self.alias = alias
        self.tags = tags

    async def check_health(self) -> HealthCheckStatusEnum:
        try:
            await check_mongo_connection()
            return HealthCheckStatusEnum.HEALTHY
        except (ConnectionError, PyMongoError) as e:
            logger.error(f"MongoDB health check failed: {e}")
            return HealthCheckStatusEnum.UNHEALTHY
