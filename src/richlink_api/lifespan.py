import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError

from richlink_api.configurations.config import settings
from richlink_api.persistence.mongo import initialize_db
from richlink_api.persistence.mongo_client import (
    close_mongo_client,
    initialize_mongo_client,
)
from richlink_api.services.redis_service import get_redis_service
from richlink_api.services.rich_preview_service import (
    close_rich_preview_service,
    initialize_rich_preview_service,
)
from richlink_api.workers.preview_refresh_worker import (
    cleanup_preview_refresh_task,
    init_preview_refresh_task,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(local_app: FastAPI):
    await initialize_mongo_client()
    await initialize_db()

    redis = get_redis_service().async_client if settings.url_cache_enabled else None
    service = initialize_rich_preview_service(redis)
    preview_refresh_task = init_preview_refresh_task(service)

    yield

    logger.info("Shutting down application")

    await cleanup_preview_refresh_task(preview_refresh_task)
    await close_rich_preview_service()

    if settings.url_cache_enabled:
        try:
            await get_redis_service().aclose()
            logger.info("Redis connections closed successfully")
        except RedisError as e:
            logger.error(f"Error closing Redis connections: {e}")

    await close_mongo_client()

    logger.info("Application shutdown complete")
