from datetime import datetime, timedelta
from enum import StrEnum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter

from richlink_api.configurations.config import settings


class PreviewType(StrEnum):
    GITHUB_REPO = "github_repo"
    BLOG_POST = "blog_post"
    WEBPAGE = "webpage"


class BlogPlatform(StrEnum):
    DEVTO = "dev.to"
    HASHNODE = "hashnode"
    MEDIUM = "medium"
    SUBSTACK = "substack"
    GHOST = "ghost"
    WORDPRESS = "wordpress"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value):
        return cls.OTHER


PREVIEW_TTL = {
    PreviewType.GITHUB_REPO: timedelta(hours=settings.repo_preview_ttl_hours),
    PreviewType.BLOG_POST: timedelta(days=settings.webpage_preview_ttl_days),
    PreviewType.WEBPAGE: timedelta(days=settings.webpage_preview_ttl_days),
}


def stamp_freshness(
    preview_type: PreviewType, now: datetime
) -> Tuple[datetime, datetime]:
    """Return ``(fetched_at, expires_at)`` for metadata fetched at ``now``."""
    return now, now + PREVIEW_TTL[preview_type]


class BasePreviewMetadata(BaseModel):
    fetched_at: datetime
    expires_at: datetime
    error: Optional[str] = None


class RepoLicense(BaseModel):
    name: str
    spdx_id: Optional[str] = None


class RepoOwner(BaseModel):
    login: str
    avatar_url: Optional[str] = None
    type: str = "User"


class RepoMetadata(BasePreviewMetadata):
    type: Literal["github_repo"] = "github_repo"
    repo_name: str
    description: Optional[str] = None
    language: Optional[str] = None
    topics: List[str] = []
    stars: int = 0
    forks: int = 0
    updated_at: Optional[datetime] = None
    avatar_url: Optional[str] = None
    is_private: bool = False
    default_branch: str = "main"
    homepage: Optional[str] = None
    license: Optional[RepoLicense] = None
    owner: RepoOwner


class BlogAuthor(BaseModel):
    name: str
    username: Optional[str] = None
    avatar: Optional[str] = None
    profile_url: Optional[str] = None


class BlogMetadata(BasePreviewMetadata):
    type: Literal["blog_post"] = "blog_post"
    title: str
    description: Optional[str] = None
    excerpt: Optional[str] = None
    featured_image: Optional[str] = None
    author: BlogAuthor
    published_at: Optional[datetime] = None
    reading_time_minutes: Optional[int] = None
    tags: List[str] = []
    platform: BlogPlatform = BlogPlatform.OTHER
    reactions_count: Optional[int] = None
    comments_count: Optional[int] = None
    canonical_url: Optional[str] = None
    url: str


class WebpageMetadata(BasePreviewMetadata):
    type: Literal["webpage"] = "webpage"
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None
    domain: str
    url: str


PreviewMetadata = Annotated[
    Union[RepoMetadata, BlogMetadata, WebpageMetadata], Field(discriminator="type")
]

preview_metadata_adapter: TypeAdapter[PreviewMetadata] = TypeAdapter(PreviewMetadata)
