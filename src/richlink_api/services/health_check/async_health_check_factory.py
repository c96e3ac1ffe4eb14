from datetime import datetime
from typing import List

from fastapi_healthcheck.enum import HealthCheckStatusEnum
from fastapi_healthcheck.model import HealthCheckEntityModel, HealthCheckModel

from richlink_api.services.health_check.async_health_check_interface import (
    HealthCheckProtocol,
)


def _status_value(status) -> str:
    return status.value if isinstance(status, HealthCheckStatusEnum) else status


class HealthCheckFactory:
    """Runs registered dependency checks and reports a combined status."""

    def __init__(self) -> None:
        self._health_checks: List[HealthCheckProtocol] = []

    def add(self, item: HealthCheckProtocol) -> None:
        self._health_checks.append(item)

    def _dump(self, model: HealthCheckModel) -> dict:
        return {
            "status": _status_value(model.status),
            "totalTimeTaken": str(model.totalTimeTaken),
            "entities": [
                {
                    "alias": entity.alias,
                    "status": _status_value(entity.status),
                    "timeTaken": str(entity.timeTaken),
                    "tags": entity.tags,
                }
                for entity in model.entities
            ],
        }

    async def check(self) -> dict:
        health = HealthCheckModel()
        total_started = datetime.now()

        for item in self._health_checks:
            entity = HealthCheckEntityModel(
                alias=item.alias, tags=getattr(item, "tags", None) or []
            )

            started = datetime.now()
            entity.status = await item.check_health()
            entity.timeTaken = datetime.now() - started

            # One unhealthy dependency makes the service unhealthy
            if entity.status == HealthCheckStatusEnum.UNHEALTHY:
                health.status = HealthCheckStatusEnum.UNHEALTHY

            health.entities.append(entity)

        health.totalTimeTaken = datetime.now() - total_started
        return self._dump(health)
