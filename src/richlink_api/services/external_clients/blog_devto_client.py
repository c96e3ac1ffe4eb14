import logging
import re
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from richlink_api.common.errors import PreviewErrorCode, PreviewFetchError
from richlink_api.configurations.config import settings
from richlink_api.models.preview_metadata import (
    BlogAuthor,
    BlogMetadata,
    BlogPlatform,
)
from richlink_api.services.external_clients.blog_base_client import (
    UNKNOWN_AUTHOR,
    BlogBaseClient,
)
from richlink_api.services.html_metadata_extractor import clean_text, parse_datetime

logger = logging.getLogger(__name__)

DEVTO_URL_RE = re.compile(r"^https?://(?:www\.)?dev\.to/([^/?#]+)/([^/?#]+)")
DEVTO_HEADERS = {"Accept": "application/vnd.forem.api-v1+json"}


def parse_devto_url(url: str) -> Optional[Tuple[str, str]]:
    match = DEVTO_URL_RE.match(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


class BlogDevtoClient(BlogBaseClient):
    platform = BlogPlatform.DEVTO
    source_name = "Dev.to"

    def __init__(self, *args, api_base_url: str = settings.devto_api_base_url, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base_url = api_base_url.rstrip("/")

    async def fetch_post(self, url: str) -> BlogMetadata:
        coordinates = parse_devto_url(url)
        if coordinates is None:
            raise PreviewFetchError(
                "Invalid Dev.to URL format", PreviewErrorCode.INVALID_URL
            )
        username, slug = coordinates

        response = await self._get(
            f"{self.api_base_url}/articles/{username}/{slug}",
            headers=DEVTO_HEADERS,
            allowed_statuses=(200, 404),
        )
        if response.status_code == 200:
            return self._parse_article(self._json(response), url)

        logger.info(
            f"Dev.to article {username}/{slug} not found by path, searching user articles"
        )
        response = await self._get(
            f"{self.api_base_url}/articles",
            headers=DEVTO_HEADERS,
            params={"username": username},
        )
        article = next(
            (
                item
                for item in self._json(response) or []
                if isinstance(item, dict) and item.get("slug") == slug
            ),
            None,
        )
        if article is None:
            raise PreviewFetchError(
                "Article not found on Dev.to", PreviewErrorCode.NOT_FOUND
            )
        return self._parse_article(article, url)

    def _parse_article(self, article: Any, url: str) -> BlogMetadata:
        try:
            return self.to_metadata(article, url)
        except (AttributeError, TypeError, ValidationError) as e:
            logger.error(f"Unexpected Dev.to article payload for {url}: {e}")
            raise PreviewFetchError(
                "Failed to parse Dev.to article", PreviewErrorCode.PARSE_ERROR
            ) from e

    def to_metadata(self, article: Dict[str, Any], url: str) -> BlogMetadata:
        user = article.get("user") or {}
        username = user.get("username")
        tags = article.get("tag_list") or article.get("tags") or []
        if isinstance(tags, str):
            tags = [tag.strip() for tag in tags.split(",") if tag.strip()]

        return self.build_metadata(
            article.get("url") or url,
            article.get("title"),
            BlogAuthor(
                name=clean_text(user.get("name")) or UNKNOWN_AUTHOR,
                username=username,
                avatar=user.get("profile_image_90") or user.get("profile_image"),
                profile_url=f"https://dev.to/{username}" if username else None,
            ),
            description=article.get("description"),
            featured_image=article.get("cover_image") or article.get("social_image"),
            published_at=parse_datetime(
                article.get("published_at") or article.get("created_at")
            ),
            reading_time_minutes=article.get("reading_time_minutes"),
            tags=tags,
            reactions_count=article.get("positive_reactions_count")
            or article.get("public_reactions_count"),
            comments_count=article.get("comments_count"),
            canonical_url=article.get("canonical_url") or article.get("url") or url,
        )
