import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import httpx
from redis import asyncio as aioredis

from richlink_api.common.errors import PreviewErrorCode, PreviewFetchError
from richlink_api.configurations.config import settings
from richlink_api.models.link_preview import LinkRef, PreviewFetchResult
from richlink_api.models.preview_metadata import PreviewMetadata
from richlink_api.persistence import mongo
from richlink_api.services.blog_service import BlogService
from richlink_api.services.external_clients.github_client import (
    GitHubClient,
    RateLimitTracker,
)
from richlink_api.services.og_service import WebpageScraper, validate_url
from richlink_api.services.preview_store_service import PreviewStore
from richlink_api.services.preview_url_cache_service import PreviewUrlCache
from richlink_api.services.url_classifier_service import (
    UrlKind,
    classify_url,
    should_have_rich_preview,
)

logger = logging.getLogger(__name__)


class RichPreviewService:
    """Fetches, persists and refreshes rich previews of user links."""

    def __init__(
        self,
        github_client: GitHubClient,
        blog_service: BlogService,
        webpage_scraper: WebpageScraper,
        store: PreviewStore,
        url_cache: PreviewUrlCache,
        batch_size: int = settings.batch_size,
        batch_delay_seconds: float = settings.batch_delay_seconds,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.github_client = github_client
        self.blog_service = blog_service
        self.webpage_scraper = webpage_scraper
        self.store = store
        self.url_cache = url_cache
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.clock = clock
        self._inflight: Dict[str, asyncio.Task] = {}

    @staticmethod
    def validate_url(url: str) -> bool:
        return validate_url(url)

    async def fetch_preview_metadata(
        self, url: str, use_cache: bool = True
    ) -> PreviewFetchResult:
        """Classify ``url`` and fetch its metadata; never raises for fetch failures."""
        if not validate_url(url):
            logger.warning(f"Rejected URL for preview: {url}")
            return PreviewFetchResult.failure(
                "Invalid or disallowed URL", PreviewErrorCode.INVALID_URL
            )

        if use_cache:
            cached = await self.url_cache.get(url)
            if cached is not None:
                logger.debug(f"Preview cache hit for {url}")
                return PreviewFetchResult(success=True, metadata=cached, cached=True)

        try:
            metadata = await self._fetch_by_kind(url)
        except PreviewFetchError as e:
            logger.warning(f"Preview fetch failed for {url}: {e.code.value} {e.message}")
            return PreviewFetchResult.failure(
                e.message, e.code, e.retryable, e.retry_after
            )
        except Exception as e:
            logger.error(f"Unexpected error fetching preview for {url}: {e}", exc_info=True)
            return PreviewFetchResult.failure(
                "Failed to fetch preview", PreviewErrorCode.NETWORK_ERROR, True
            )

        await self.url_cache.set(url, metadata)
        return PreviewFetchResult(success=True, metadata=metadata)

    async def _fetch_by_kind(self, url: str) -> PreviewMetadata:
        classification = classify_url(url)

        if classification.kind == UrlKind.REPO:
            return await self.github_client.fetch_repo_metadata(url)

        if classification.kind == UrlKind.BLOG:
            try:
                return await self.blog_service.fetch_blog_metadata(
                    url, classification.platform
                )
            except PreviewFetchError as e:
                logger.info(
                    f"{classification.platform.value} adapter failed for {url} "
                    f"({e.code.value}: {e.message}), falling back to webpage scraper"
                )
            except Exception as e:
                logger.error(
                    f"{classification.platform.value} adapter crashed for {url}: {e}, "
                    "falling back to webpage scraper",
                    exc_info=True,
                )

        return await self.webpage_scraper.fetch_webpage_metadata(url)

    async def refresh_link_preview(
        self, link_id: str, url: Optional[str] = None, force: bool = True
    ) -> PreviewFetchResult:
        """Fetch and persist the preview of one link.

        Concurrent calls for the same link share one fetch. ``force`` bypasses
        the URL cache.
        """
        task = self._inflight.get(link_id)
        if task is None:
            task = asyncio.create_task(self._refresh(link_id, url, force))
            self._inflight[link_id] = task
            task.add_done_callback(lambda done: self._forget(link_id, done))
        else:
            logger.debug(f"Joining in-flight refresh for {link_id}")
        return await asyncio.shield(task)

    def _forget(self, link_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(link_id) is task:
            del self._inflight[link_id]

    async def _refresh(
        self, link_id: str, url: Optional[str], force: bool
    ) -> PreviewFetchResult:
        record = await self.store.get_record(link_id)
        if record is None:
            return PreviewFetchResult.failure(
                "Link not found", PreviewErrorCode.NOT_FOUND
            )

        url = url or record.url
        if not should_have_rich_preview(record.category, url):
            logger.info(f"Skipping rich preview for social link {link_id}")
            return PreviewFetchResult.failure(
                "Social media links do not support rich previews",
                PreviewErrorCode.INVALID_URL,
            )

        attempted_at = self.clock()
        if force:
            await self.url_cache.invalidate(url)

        result = await self.fetch_preview_metadata(url, use_cache=not force)
        if result.success:
            await self.store.commit_success(
                link_id, result.metadata, attempted_at=attempted_at
            )
        else:
            await self.store.commit_failure(
                link_id, result.error, result.error_code, attempted_at=attempted_at
            )
        return result

    async def batch_fetch_previews(
        self, links: List[LinkRef], force: bool = True
    ) -> Dict[str, PreviewFetchResult]:
        """Refresh links in waves of ``batch_size``, pausing between waves.

        One link failing never affects the others.
        """
        results: Dict[str, PreviewFetchResult] = {}
        total_waves = (len(links) - 1) // self.batch_size + 1 if links else 0
        logger.info(f"Batch refreshing {len(links)} previews in {total_waves} waves")

        for i in range(0, len(links), self.batch_size):
            wave = links[i : i + self.batch_size]
            logger.debug(
                f"Processing wave {i // self.batch_size + 1}/{total_waves} "
                f"with {len(wave)} links"
            )

            wave_results = await asyncio.gather(
                *(self.refresh_link_preview(link.id, link.url, force) for link in wave),
                return_exceptions=True,
            )
            for link, result in zip(wave, wave_results):
                if isinstance(result, Exception):
                    logger.error(
                        f"Batch refresh failed for link {link.id}: {result}",
                        exc_info=result,
                    )
                    result = PreviewFetchResult.failure(
                        str(result) or "Unknown error",
                        PreviewErrorCode.NETWORK_ERROR,
                        True,
                    )
                results[link.id] = result

            if i + self.batch_size < len(links):
                await asyncio.sleep(self.batch_delay_seconds)

        succeeded = sum(1 for result in results.values() if result.success)
        logger.info(f"Batch completed: {succeeded}/{len(results)} succeeded")
        return results

    async def get_cached_preview(self, link_id: str) -> Optional[PreviewMetadata]:
        return await self.store.get_cached(link_id)

    async def needs_preview_refresh(self, link_id: str) -> bool:
        return await self.store.needs_refresh(link_id)

    async def get_or_refresh_preview(self, link_id: str) -> PreviewFetchResult:
        if await self.store.needs_refresh(link_id):
            return await self.refresh_link_preview(link_id, force=False)

        metadata = await self.store.get_cached(link_id)
        if metadata is None:
            record = await self.store.get_record(link_id)
            if record is not None and record.is_social:
                return PreviewFetchResult.failure(
                    "Social media links do not support rich previews",
                    PreviewErrorCode.INVALID_URL,
                )
            return await self.refresh_link_preview(link_id, force=False)
        return PreviewFetchResult(success=True, metadata=metadata, cached=True)


_http_client: Optional[httpx.AsyncClient] = None
_service: Optional[RichPreviewService] = None


def create_preview_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": settings.user_agent},
        timeout=httpx.Timeout(connect=5.0, read=10.0, write=10.0, pool=30.0),
        follow_redirects=False,
        limits=httpx.Limits(
            max_keepalive_connections=10, max_connections=50, keepalive_expiry=30.0
        ),
    )


def build_rich_preview_service(
    client: httpx.AsyncClient,
    redis: Optional[aioredis.Redis] = None,
    collection: mongo.BaseMongo = mongo.user_links,
) -> RichPreviewService:
    return RichPreviewService(
        github_client=GitHubClient(client, RateLimitTracker()),
        blog_service=BlogService(client),
        webpage_scraper=WebpageScraper(client),
        store=PreviewStore(collection),
        url_cache=PreviewUrlCache(redis, enabled=settings.url_cache_enabled),
    )


def initialize_rich_preview_service(
    redis: Optional[aioredis.Redis] = None,
) -> RichPreviewService:
    global _http_client
    global _service
    if _service is None:
        _http_client = create_preview_http_client()
        _service = build_rich_preview_service(_http_client, redis)
        logger.info("Rich preview service initialized")
    return _service


def get_rich_preview_service() -> RichPreviewService:
    if _service is None:
        raise RuntimeError("Rich preview service is not initialized")
    return _service


async def close_rich_preview_service() -> None:
    global _http_client
    global _service
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = None
    _service = None


async def get_rich_preview_dependency() -> RichPreviewService:
    """FastAPI dependency that provides the shared RichPreviewService"""
    return get_rich_preview_service()
