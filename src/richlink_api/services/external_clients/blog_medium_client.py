import logging
import re
from typing import Any, Dict, List, Optional

from richlink_api.models.preview_metadata import (
    BlogAuthor,
    BlogMetadata,
    BlogPlatform,
)
from richlink_api.services.external_clients.blog_base_client import (
    UNKNOWN_AUTHOR,
    BlogBaseClient,
)
from richlink_api.services.html_metadata_extractor import (
    HtmlMetadata,
    clean_text,
    extract_reading_time,
    find_json_ld,
    parse_datetime,
)

logger = logging.getLogger(__name__)

MEDIUM_TITLE_SUFFIX_RE = re.compile(
    r"(?:\s*\|\s*by\s+[^|]*)?\s*\|\s*Medium\s*$", re.IGNORECASE
)
MEDIUM_AUTHOR_RE = re.compile(r'"name":"([^"]+)"[^}]*"username":"([^"]+)"')
MEDIUM_AUTHOR_IMAGE_RE = re.compile(r'"imageId":"([^"]+)"')
MEDIUM_AVATAR_URL = "https://miro.medium.com/fit/c/96/96/{image_id}"


def strip_medium_suffix(title: Optional[str]) -> Optional[str]:
    if not title:
        return title
    return MEDIUM_TITLE_SUFFIX_RE.sub("", title).strip() or title


def _first_url(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, list) and value:
        return _first_url(value[0])
    if isinstance(value, dict):
        return value.get("url")
    return None


def _first_author(value: Any) -> Dict[str, Any]:
    if isinstance(value, list):
        value = value[0] if value else {}
    if isinstance(value, str):
        return {"name": value}
    return value if isinstance(value, dict) else {}


def _keywords(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []
    keywords = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    # Medium mixes "Tag:python" entries with internal markers
    tagged = [item.split(":", 1)[1] for item in keywords if item.startswith("Tag:")]
    return tagged or [item for item in keywords if ":" not in item]


class BlogMediumClient(BlogBaseClient):
    platform = BlogPlatform.MEDIUM
    source_name = "Medium"

    async def fetch_post(self, url: str) -> BlogMetadata:
        logger.info(f"Fetching Medium post {url}")
        html_content = await self._fetch_html(url)
        return self.parse_post(html_content, url)

    def parse_post(self, html_content: str, url: str) -> BlogMetadata:
        html_metadata = self._document_metadata(html_content, url)
        article = find_json_ld(html_metadata.json_ld)
        if article is not None and (article.get("headline") or article.get("name")):
            metadata = self.from_json_ld(article, html_metadata, url)
        else:
            logger.debug(f"No JSON-LD article for {url}, using meta tags")
            metadata = self.from_document(html_content, url, html_metadata)

        return self._apply_page_patterns(metadata, html_content)

    def from_json_ld(
        self, article: Dict[str, Any], html_metadata: HtmlMetadata, url: str
    ) -> BlogMetadata:
        author = _first_author(article.get("author"))
        return self.build_metadata(
            url,
            article.get("headline") or article.get("name"),
            BlogAuthor(
                name=clean_text(author.get("name")) or UNKNOWN_AUTHOR,
                profile_url=author.get("url"),
            ),
            description=article.get("description") or html_metadata.description,
            featured_image=_first_url(article.get("image")) or html_metadata.image,
            published_at=parse_datetime(
                article.get("datePublished") or html_metadata.published_time
            ),
            tags=_keywords(article.get("keywords")) or html_metadata.tags,
            canonical_url=_first_url(article.get("mainEntityOfPage"))
            or html_metadata.canonical_url
            or url,
        )

    def _apply_page_patterns(
        self, metadata: BlogMetadata, html_content: str
    ) -> BlogMetadata:
        updates: Dict[str, Any] = {"title": strip_medium_suffix(metadata.title)}

        author = metadata.author
        author_match = MEDIUM_AUTHOR_RE.search(html_content)
        if author_match:
            username = author_match.group(2)
            author = author.model_copy(
                update={
                    "name": (
                        author.name
                        if author.name != UNKNOWN_AUTHOR
                        else clean_text(author_match.group(1)) or UNKNOWN_AUTHOR
                    ),
                    "username": username,
                    "profile_url": author.profile_url
                    or f"https://medium.com/@{username}",
                }
            )
        image_match = MEDIUM_AUTHOR_IMAGE_RE.search(html_content)
        if image_match and not author.avatar:
            author = author.model_copy(
                update={
                    "avatar": MEDIUM_AVATAR_URL.format(image_id=image_match.group(1))
                }
            )
        updates["author"] = author

        if metadata.reading_time_minutes is None:
            updates["reading_time_minutes"] = extract_reading_time(html_content)

        return metadata.model_copy(update=updates)
