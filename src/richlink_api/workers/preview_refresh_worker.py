import asyncio
import logging
from typing import Optional

from richlink_api.configurations.config import settings
from richlink_api.models.link_preview import LinkRef
from richlink_api.services.rich_preview_service import RichPreviewService

logger = logging.getLogger(__name__)


async def sweep_stale_previews(
    service: RichPreviewService, limit: int = settings.preview_sweep_limit
) -> int:
    """Refresh pending, failed and expired previews; returns the number refreshed.

    Stored metadata keeps being served while the sweep runs.
    """
    candidates = await service.store.find_refresh_candidates(limit)
    if not candidates:
        return 0

    logger.info(f"Preview sweep refreshing {len(candidates)} links")
    results = await service.batch_fetch_previews(
        [LinkRef(id=record.link_id, url=record.url) for record in candidates],
        force=False,
    )
    return len(results)


async def process_preview_refresh(
    service: RichPreviewService,
    interval_seconds: float = settings.preview_sweep_interval_seconds,
) -> None:
    while True:
        try:
            await sweep_stale_previews(service)
        except Exception as e:
            logger.error(f"Preview sweep failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)


def init_preview_refresh_task(service: RichPreviewService) -> Optional[asyncio.Task]:
    if not settings.preview_sweep_enabled:
        logger.info("Preview sweep disabled")
        return None
    return asyncio.create_task(process_preview_refresh(service))


async def cleanup_preview_refresh_task(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Preview sweep stopped")
