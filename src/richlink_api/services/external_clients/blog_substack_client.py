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
    extract_window_json,
    parse_datetime,
)

logger = logging.getLogger(__name__)


def _preloaded_post(html_content: str) -> Optional[Dict[str, Any]]:
    preloads = extract_window_json(html_content, "_preloads") or {}
    post = preloads.get("post")
    if isinstance(post, dict) and post.get("title"):
        return post
    return None


def _publication_url(url: str) -> str:
    return url.split("/p/")[0]


class BlogSubstackClient(BlogBaseClient):
    platform = BlogPlatform.SUBSTACK
    source_name = "Substack"

    async def fetch_post(self, url: str) -> BlogMetadata:
        logger.info(f"Fetching Substack post {url}")
        html_content = await self._fetch_html(url)
        return self.parse_post(html_content, url)

    def parse_post(self, html_content: str, url: str) -> BlogMetadata:
        post = _preloaded_post(html_content)
        if post is not None:
            return self.from_preloads(post, url)

        logger.debug(f"No window._preloads post for {url}, using meta tags")
        html_metadata = self._document_metadata(html_content, url)
        metadata = self.from_document(html_content, url, html_metadata)
        return metadata.model_copy(
            update={
                "author": metadata.author.model_copy(
                    update={"profile_url": _publication_url(url)}
                )
            }
        )

    def from_preloads(self, post: Dict[str, Any], url: str) -> BlogMetadata:
        bylines = post.get("publishedBylines") or []
        byline = bylines[0] if bylines and isinstance(bylines[0], dict) else {}
        handle = byline.get("handle")
        reactions = post.get("reactions")
        reactions_count = (
            sum(count for count in reactions.values() if isinstance(count, int))
            if isinstance(reactions, dict)
            else post.get("reaction_count")
        )

        return self.build_metadata(
            url,
            post.get("title"),
            BlogAuthor(
                name=clean_text(byline.get("name")) or UNKNOWN_AUTHOR,
                username=handle,
                avatar=byline.get("photo_url"),
                profile_url=_publication_url(url),
            ),
            description=post.get("subtitle") or post.get("description"),
            featured_image=post.get("cover_image"),
            published_at=parse_datetime(post.get("post_date")),
            tags=[
                tag["name"]
                for tag in post.get("postTags") or []
                if isinstance(tag, dict) and tag.get("name")
            ],
            reactions_count=reactions_count,
            comments_count=post.get("comment_count"),
            canonical_url=post.get("canonical_url") or url,
        )
