import logging

from richlink_api.models.preview_metadata import BlogMetadata, BlogPlatform
from richlink_api.services.external_clients.blog_base_client import BlogBaseClient

logger = logging.getLogger(__name__)


class BlogGenericClient(BlogBaseClient):
    """Default adapter for Ghost, WordPress and unrecognised blogs."""

    source_name = "Blog"

    def __init__(self, *args, platform: BlogPlatform = BlogPlatform.OTHER, **kwargs):
        super().__init__(*args, **kwargs)
        self.platform = platform

    async def fetch_post(self, url: str) -> BlogMetadata:
        logger.info(f"Fetching {self.platform.value} post {url}")
        html_content = await self._fetch_html(url)
        return self.parse_post(html_content, url)

    def parse_post(self, html_content: str, url: str) -> BlogMetadata:
        html_metadata = self._document_metadata(html_content, url)
        return self.from_document(html_content, url, html_metadata)
