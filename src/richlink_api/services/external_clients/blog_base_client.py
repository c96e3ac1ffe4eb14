import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import httpx
from bs4 import ParserRejectedMarkup
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from richlink_api.common.errors import (
    PreviewErrorCode,
    PreviewFetchError,
    error_for_status,
)
from richlink_api.configurations.config import settings
from richlink_api.models.preview_metadata import (
    BlogAuthor,
    BlogMetadata,
    BlogPlatform,
    PreviewType,
    stamp_freshness,
)
from richlink_api.services.html_metadata_extractor import (
    HtmlMetadata,
    clean_text,
    extract_html_metadata,
    extract_reading_time,
    parse_datetime,
    regex_extract_basic,
    resolve_url,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = (502, 503, 504)

UNKNOWN_AUTHOR = "Unknown Author"
UNTITLED = "Untitled"

HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


def _is_transient(exc: BaseException) -> bool:
    return (
        isinstance(exc, httpx.HTTPStatusError)
        and exc.response.status_code in TRANSIENT_STATUS_CODES
    )


class BlogBaseClient(ABC):
    """Shared HTTP handling and normalization for blog platform adapters."""

    platform: BlogPlatform = BlogPlatform.OTHER
    source_name: str = "Blog"

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout_seconds: float = settings.blog_timeout_seconds,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=(
            retry_if_exception_type(httpx.TransportError)
            | retry_if_exception(_is_transient)
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _make_http_request(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        response = await self.client.get(
            url,
            headers={"User-Agent": settings.bot_user_agent, **(headers or {})},
            params=params,
            timeout=self.timeout_seconds,
        )
        if response.status_code in TRANSIENT_STATUS_CODES:
            response.raise_for_status()
        return response

    async def _get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[dict] = None,
        allowed_statuses: tuple = (200,),
    ) -> httpx.Response:
        try:
            response = await self._make_http_request(url, headers, params)
        except httpx.HTTPStatusError as e:
            raise error_for_status(e.response.status_code, self.source_name) from e
        except httpx.TransportError as e:
            logger.warning(f"{self.source_name} request to {url} failed: {e}")
            raise PreviewFetchError(
                f"Failed to reach {self.source_name}", PreviewErrorCode.NETWORK_ERROR
            ) from e

        if response.status_code not in allowed_statuses:
            logger.warning(
                f"{self.source_name} returned {response.status_code} for {url}"
            )
            raise error_for_status(response.status_code, self.source_name)
        return response

    def _json(self, response: httpx.Response):
        try:
            return response.json()
        except ValueError as e:
            raise PreviewFetchError(
                f"{self.source_name} returned invalid JSON", PreviewErrorCode.PARSE_ERROR
            ) from e

    async def _fetch_html(self, url: str) -> str:
        response = await self._get(url, headers=HTML_HEADERS)
        return response.text

    def _document_metadata(self, html_content: str, url: str) -> HtmlMetadata:
        try:
            return extract_html_metadata(html_content, url)
        except ParserRejectedMarkup as e:
            logger.warning(f"Falling back to regex extraction for {url}: {e}")
            basic = regex_extract_basic(html_content)
            basic["image"] = resolve_url(basic.get("image"), url)
            return HtmlMetadata(**basic)

    def build_metadata(
        self,
        url: str,
        title: Optional[str],
        author: BlogAuthor,
        **fields,
    ) -> BlogMetadata:
        fetched_at, expires_at = stamp_freshness(PreviewType.BLOG_POST, self.clock())
        fields.setdefault("canonical_url", url)
        fields["description"] = clean_text(fields.get("description"))
        fields.setdefault("excerpt", fields["description"])
        fields["tags"] = [
            tag
            for tag in (
                clean_text(raw) for raw in fields.get("tags") or [] if isinstance(raw, str)
            )
            if tag
        ]
        return BlogMetadata(
            title=clean_text(title) or UNTITLED,
            author=author,
            platform=self.platform,
            url=url,
            fetched_at=fetched_at,
            expires_at=expires_at,
            **fields,
        )

    def from_document(
        self, html_content: str, url: str, html_metadata: HtmlMetadata
    ) -> BlogMetadata:
        """Normalize Open Graph and meta tags, or the regex minimum when absent."""
        if html_metadata.og_title:
            title = html_metadata.og_title
            description = html_metadata.description
            image = html_metadata.image
            author_name = html_metadata.author
            published = html_metadata.published_time
            tags: List[str] = html_metadata.tags
        else:
            basic = regex_extract_basic(html_content)
            title = basic.get("title") or html_metadata.title
            description = basic.get("description")
            image = resolve_url(basic.get("image"), url)
            author_name = basic.get("author")
            published = basic.get("published_time")
            tags = []

        return self.build_metadata(
            url,
            title,
            BlogAuthor(name=clean_text(author_name) or UNKNOWN_AUTHOR),
            description=description,
            featured_image=image,
            published_at=parse_datetime(published),
            reading_time_minutes=extract_reading_time(html_content),
            tags=tags,
            canonical_url=html_metadata.canonical_url or url,
        )

    @abstractmethod
    async def fetch_post(self, url: str) -> BlogMetadata:
        pass
