import logging
from typing import Any, Dict, Optional

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
    clean_text,
    extract_next_data,
    parse_datetime,
)

logger = logging.getLogger(__name__)


def _next_data_post(html_content: str) -> Optional[Dict[str, Any]]:
    data = extract_next_data(html_content) or {}
    post = ((data.get("props") or {}).get("pageProps") or {}).get("post")
    if isinstance(post, dict) and post.get("title"):
        return post
    return None


class BlogHashnodeClient(BlogBaseClient):
    platform = BlogPlatform.HASHNODE
    source_name = "Hashnode"

    async def fetch_post(self, url: str) -> BlogMetadata:
        logger.info(f"Fetching Hashnode post {url}")
        html_content = await self._fetch_html(url)
        return self.parse_post(html_content, url)

    def parse_post(self, html_content: str, url: str) -> BlogMetadata:
        post = _next_data_post(html_content)
        if post is not None:
            return self.from_next_data(post, url)

        logger.debug(f"No __NEXT_DATA__ post for {url}, using meta tags")
        html_metadata = self._document_metadata(html_content, url)
        return self.from_document(html_content, url, html_metadata)

    def from_next_data(self, post: Dict[str, Any], url: str) -> BlogMetadata:
        author = post.get("author") or {}
        username = author.get("username")
        cover_image = post.get("coverImage")
        if isinstance(cover_image, dict):
            cover_image = cover_image.get("url")

        return self.build_metadata(
            url,
            post.get("title"),
            BlogAuthor(
                name=clean_text(author.get("name")) or UNKNOWN_AUTHOR,
                username=username,
                avatar=author.get("profilePicture"),
                profile_url=f"https://hashnode.com/@{username}" if username else None,
            ),
            description=post.get("brief") or post.get("subtitle"),
            featured_image=cover_image or None,
            published_at=parse_datetime(post.get("publishedAt") or post.get("dateAdded")),
            reading_time_minutes=post.get("readTimeInMinutes"),
            tags=[
                tag["name"]
                for tag in post.get("tags") or []
                if isinstance(tag, dict) and tag.get("name")
            ],
            reactions_count=post.get("reactionCount"),
            comments_count=post.get("responseCount"),
            canonical_url=post.get("canonicalUrl") or url,
        )
