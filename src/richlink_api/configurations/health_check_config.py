from fastapi import FastAPI

from richlink_api.configurations.config import settings
from richlink_api.services.health_check.async_health_check_factory import (
    HealthCheckFactory,
)
from richlink_api.services.health_check.async_health_check_route import (
    create_health_check_route,
)
from richlink_api.services.health_check.health_check_mongo_db import MongoHealthCheck
from richlink_api.services.health_check.redis_health_check import RedisHealthCheck


def build_health_checks() -> HealthCheckFactory:
    health_checks = HealthCheckFactory()
    health_checks.add(MongoHealthCheck(alias="mongodb", tags=["database", "mongodb"]))
    if settings.url_cache_enabled:
        health_checks.add(RedisHealthCheck(alias="redis", tags=["cache", "redis"]))
    return health_checks


def setup_health_checks(app: FastAPI) -> None:
    app.add_api_route(
        "/health", endpoint=create_health_check_route(factory=build_health_checks())
    )
