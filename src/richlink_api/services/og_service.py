import asyncio
import ipaddress
import logging
import re
import socket
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urljoin, urlsplit

import httpx

from richlink_api.common.errors import (
    PreviewErrorCode,
    PreviewFetchError,
    error_for_status,
)
from richlink_api.configurations.config import settings
from richlink_api.models.preview_metadata import (
    PreviewType,
    WebpageMetadata,
    stamp_freshness,
)
from richlink_api.services.html_metadata_extractor import extract_html_metadata

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
HTML_CONTENT_TYPES = ("text/html", "application/xhtml")

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost"}
BLOCKED_NETWORKS = (ipaddress.ip_network("100.64.0.0/10"),)

# Shorthand, decimal, octal and hex IPv4 forms such as 127.1 or 0x7f000001
NUMERIC_HOST_RE = re.compile(
    r"(?:0x[0-9a-f]*|[0-9]+)(?:\.(?:0x[0-9a-f]*|[0-9]+)){0,3}"
)


def _is_blocked_ip(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        if not NUMERIC_HOST_RE.fullmatch(hostname):
            return False
        try:
            address = ipaddress.IPv4Address(socket.inet_aton(hostname))
        except OSError:
            return True
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
        or any(address in network for network in BLOCKED_NETWORKS)
    )


def validate_url(url: str) -> bool:
    """Whether ``url`` may be fetched: http(s) only, no local or private hosts."""
    try:
        parts = urlsplit(url)
        hostname = (parts.hostname or "").lower().rstrip(".")
    except ValueError:
        return False

    if parts.scheme not in ("http", "https") or not hostname:
        return False

    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        return False

    return not _is_blocked_ip(hostname)


def _is_html(content_type: str) -> bool:
    content_type = content_type.lower()
    return any(kind in content_type for kind in HTML_CONTENT_TYPES)


class WebpageScraper:
    """Generic Open Graph / meta tag scraper, the fallback for every URL."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout_seconds: float = settings.webpage_timeout_seconds,
        max_content_bytes: int = settings.webpage_max_content_bytes,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.max_content_bytes = max_content_bytes
        self.clock = clock

    async def fetch_webpage_metadata(self, url: str) -> WebpageMetadata:
        if not validate_url(url):
            raise PreviewFetchError(
                "URL is not allowed for preview", PreviewErrorCode.INVALID_URL
            )

        logger.info(f"Fetching webpage preview for {url}")
        try:
            final_url, html_content = await asyncio.wait_for(
                self._download_html(url), timeout=self.timeout_seconds
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise PreviewFetchError(
                f"Request timed out after {self.timeout_seconds}s",
                PreviewErrorCode.NETWORK_ERROR,
            )
        except httpx.RequestError as e:
            logger.warning(f"Request error while fetching {url}: {e}")
            raise PreviewFetchError(
                "Failed to fetch webpage", PreviewErrorCode.NETWORK_ERROR
            ) from e

        return self.parse_webpage(html_content, final_url)

    async def _download_html(self, url: str) -> tuple[str, str]:
        headers = {
            "User-Agent": settings.bot_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }
        current_url = url
        for _ in range(MAX_REDIRECTS + 1):
            async with self.client.stream(
                "GET", current_url, headers=headers, follow_redirects=False
            ) as response:
                if response.is_redirect:
                    location = response.headers.get("location", "")
                    next_url = urljoin(current_url, location)
                    # Re-validate every hop
                    if not validate_url(next_url):
                        raise PreviewFetchError(
                            "Redirected to a disallowed host",
                            PreviewErrorCode.INVALID_URL,
                        )
                    current_url = next_url
                    continue

                return current_url, await self._read_html(response)

        raise PreviewFetchError(
            "Too many redirects", PreviewErrorCode.NETWORK_ERROR, retryable=False
        )

    async def _read_html(self, response: httpx.Response) -> str:
        if response.status_code != 200:
            raise error_for_status(response.status_code, "Webpage")

        if not _is_html(response.headers.get("content-type", "")):
            raise PreviewFetchError(
                "URL does not point to an HTML page", PreviewErrorCode.INVALID_URL
            )

        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > self.max_content_bytes:
                raise PreviewFetchError(
                    "Content too large", PreviewErrorCode.INVALID_URL
                )

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > self.max_content_bytes:
                raise PreviewFetchError(
                    "Content too large", PreviewErrorCode.INVALID_URL
                )

        encoding = response.encoding or "utf-8"
        return body.decode(encoding, errors="replace")

    def parse_webpage(self, html_content: str, url: str) -> WebpageMetadata:
        if "<html" not in html_content.lower():
            raise PreviewFetchError(
                "Invalid HTML content", PreviewErrorCode.PARSE_ERROR, retryable=False
            )

        parts = urlsplit(url)
        domain = parts.hostname or ""
        html_metadata = extract_html_metadata(html_content, url)

        favicon = html_metadata.favicon or f"{parts.scheme}://{parts.netloc}/favicon.ico"
        fetched_at, expires_at = stamp_freshness(PreviewType.WEBPAGE, self.clock())

        return WebpageMetadata(
            title=html_metadata.title,
            description=html_metadata.description,
            image=html_metadata.image,
            favicon=favicon,
            site_name=html_metadata.site_name,
            domain=domain,
            url=html_metadata.og_url or html_metadata.canonical_url or url,
            fetched_at=fetched_at,
            expires_at=expires_at,
        )
