import logging
from typing import Dict, Type

import httpx

from richlink_api.models.preview_metadata import BlogMetadata, BlogPlatform
from richlink_api.services.external_clients.blog_base_client import BlogBaseClient
from richlink_api.services.external_clients.blog_devto_client import BlogDevtoClient
from richlink_api.services.external_clients.blog_generic_client import (
    BlogGenericClient,
)
from richlink_api.services.external_clients.blog_hashnode_client import (
    BlogHashnodeClient,
)
from richlink_api.services.external_clients.blog_medium_client import (
    BlogMediumClient,
)
from richlink_api.services.external_clients.blog_substack_client import (
    BlogSubstackClient,
)

logger = logging.getLogger(__name__)

BLOG_CLIENTS: Dict[BlogPlatform, Type[BlogBaseClient]] = {
    BlogPlatform.DEVTO: BlogDevtoClient,
    BlogPlatform.HASHNODE: BlogHashnodeClient,
    BlogPlatform.MEDIUM: BlogMediumClient,
    BlogPlatform.SUBSTACK: BlogSubstackClient,
}


class BlogService:
    """Dispatches blog URLs to the adapter registered for their platform."""

    def __init__(self, client: httpx.AsyncClient, **client_kwargs):
        self.clients: Dict[BlogPlatform, BlogBaseClient] = {}
        for platform in BlogPlatform:
            client_class = BLOG_CLIENTS.get(platform)
            if client_class is None:
                self.clients[platform] = BlogGenericClient(
                    client, platform=platform, **client_kwargs
                )
            else:
                self.clients[platform] = client_class(client, **client_kwargs)

    def client_for(self, platform: BlogPlatform) -> BlogBaseClient:
        return self.clients.get(platform) or self.clients[BlogPlatform.OTHER]

    async def fetch_blog_metadata(
        self, url: str, platform: BlogPlatform
    ) -> BlogMetadata:
        blog_client = self.client_for(BlogPlatform(platform))
        logger.debug(f"Using {type(blog_client).__name__} for {url}")
        return await blog_client.fetch_post(url)
