from collections.abc import Awaitable, Callable

from fastapi.responses import JSONResponse
from fastapi_healthcheck.enum import HealthCheckStatusEnum

from richlink_api.services.health_check.async_health_check_factory import (
    HealthCheckFactory,
)


def create_health_check_route(
    factory: HealthCheckFactory,
) -> Callable[[], Awaitable[JSONResponse]]:
    """
    Build the ``/health`` endpoint for ``factory``.

    Responds 503 (Service Unavailable) when any check is unhealthy, 200 otherwise.
    """

    async def endpoint() -> JSONResponse:
        result = await factory.check()
        status_code = (
            200 if result["status"] == HealthCheckStatusEnum.HEALTHY.value else 503
        )
        return JSONResponse(content=result, status_code=status_code)

    return endpoint
