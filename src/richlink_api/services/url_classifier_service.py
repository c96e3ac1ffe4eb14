import re
from enum import StrEnum
from typing import Optional, Tuple
from urllib.parse import urlsplit

from pydantic import BaseModel

from richlink_api.models.link_preview import SOCIAL_CATEGORY
from richlink_api.models.preview_metadata import BlogPlatform

GITHUB_HOSTS = ("github.com", "www.github.com")

GITHUB_URL_PATTERNS = (
    re.compile(r"^https?://(?:www\.)?github\.com/([^/?#]+)/([^/?#]+)/?(?:[?#].*)?$"),
    re.compile(
        r"^https?://(?:www\.)?github\.com/([^/?#]+)/([^/?#]+)/tree/([^/?#]+)/?(?:[?#].*)?$"
    ),
    re.compile(
        r"^https?://(?:www\.)?github\.com/([^/?#]+)/([^/?#]+)/blob/([^/?#]+)/(.+)$"
    ),
)

# First path segments on github.com that are site pages, not owners
GITHUB_RESERVED_OWNERS = {
    "about",
    "apps",
    "collections",
    "enterprise",
    "explore",
    "features",
    "marketplace",
    "orgs",
    "pricing",
    "settings",
    "sponsors",
    "topics",
    "trending",
}

SOCIAL_MEDIA_DOMAINS = (
    "twitter.com",
    "x.com",
    "facebook.com",
    "instagram.com",
    "linkedin.com",
    "youtube.com",
    "tiktok.com",
    "snapchat.com",
    "discord.com",
    "telegram.org",
    "whatsapp.com",
    "reddit.com",
    "pinterest.com",
    "tumblr.com",
)


class UrlKind(StrEnum):
    REPO = "repo"
    BLOG = "blog"
    WEBPAGE = "webpage"


class UrlClassification(BaseModel):
    kind: UrlKind
    platform: Optional[BlogPlatform] = None


def _hostname(url: str) -> Optional[str]:
    try:
        return (urlsplit(url).hostname or "").lower() or None
    except ValueError:
        return None


def _matches_domain(hostname: str, domain: str) -> bool:
    return hostname == domain or hostname.endswith(f".{domain}")


def extract_repo_coordinates(url: str) -> Optional[Tuple[str, str]]:
    """Return ``(owner, repo)`` for a repository URL, else ``None``."""
    for pattern in GITHUB_URL_PATTERNS:
        match = pattern.match(url.strip())
        if match:
            owner, repo = match.group(1), match.group(2)
            if owner.lower() in GITHUB_RESERVED_OWNERS:
                return None
            if repo.endswith(".git"):
                repo = repo[: -len(".git")]
            return owner, repo
    return None


def is_repo_url(url: str) -> bool:
    return extract_repo_coordinates(url) is not None


def detect_blog_platform(url: str) -> Optional[BlogPlatform]:
    hostname = _hostname(url)
    if not hostname:
        return None
    path = urlsplit(url).path.lower()

    if _matches_domain(hostname, "medium.com"):
        return BlogPlatform.MEDIUM
    if _matches_domain(hostname, "hashnode.dev") or _matches_domain(
        hostname, "hashnode.com"
    ):
        return BlogPlatform.HASHNODE
    if hostname == "dev.to":
        return BlogPlatform.DEVTO
    if hostname.endswith(".substack.com"):
        return BlogPlatform.SUBSTACK
    if "ghost." in hostname or "/ghost/" in path:
        return BlogPlatform.GHOST
    if "wordpress." in hostname or "/wp-content/" in path:
        return BlogPlatform.WORDPRESS

    # Custom "blog." domains are most often Hashnode
    if "/hashnode" in path or "blog" in hostname:
        return BlogPlatform.HASHNODE

    return None


def classify_url(url: str) -> UrlClassification:
    if is_repo_url(url):
        return UrlClassification(kind=UrlKind.REPO)

    platform = detect_blog_platform(url)
    if platform is not None:
        return UrlClassification(kind=UrlKind.BLOG, platform=platform)

    return UrlClassification(kind=UrlKind.WEBPAGE)


def is_social_media_url(url: str) -> bool:
    hostname = _hostname(url)
    if not hostname:
        return False
    return any(_matches_domain(hostname, domain) for domain in SOCIAL_MEDIA_DOMAINS)


def should_have_rich_preview(category: Optional[str], url: str) -> bool:
    """Whether a link takes part in the preview pipeline at all."""
    if category == SOCIAL_CATEGORY:
        return False

    if is_repo_url(url):
        return True

    if detect_blog_platform(url) is not None:
        return True

    return not is_social_media_url(url)
