"""Metadata extraction from untrusted HTML.

All parsing of third-party markup goes through this module so that the
fragile parts (meta tags, embedded JSON blobs, regex fallbacks) live in one
place and are covered by fixture tests.
"""

import html
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_READING_TIME_RE = re.compile(r"(\d+)\s*min(?:ute)?s?\s*read", re.IGNORECASE)
_TITLE_RE = re.compile(r"<title[^>]*>([^<]*)</title>", re.IGNORECASE)
_META_RE = re.compile(
    r"<meta[^>]+(?:property|name)=[\"']([^\"']+)[\"'][^>]*content=[\"']([^\"']*)[\"']",
    re.IGNORECASE,
)


class HtmlMetadata(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None
    canonical_url: Optional[str] = None
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None
    og_url: Optional[str] = None
    og_site_name: Optional[str] = None
    og_type: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    twitter_title: Optional[str] = None
    twitter_description: Optional[str] = None
    twitter_image: Optional[str] = None
    author: Optional[str] = None
    published_time: Optional[str] = None
    tags: List[str] = []
    json_ld: List[Dict[str, Any]] = []


def clean_text(text: Optional[str]) -> Optional[str]:
    """Decode HTML entities and collapse whitespace; empty results become None."""
    if text is None:
        return None
    cleaned = _WHITESPACE_RE.sub(" ", html.unescape(text)).strip()
    return cleaned or None


def resolve_url(value: Optional[str], base_url: str) -> Optional[str]:
    if not value:
        return None
    try:
        return urljoin(base_url, value.strip())
    except ValueError:
        return value


def parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        # Epoch milliseconds are common in embedded page data
        seconds = value / 1000 if value > 10**11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None


def _meta_content(soup: BeautifulSoup, key: str) -> Optional[str]:
    tag = soup.find("meta", property=key) or soup.find("meta", attrs={"name": key})
    if tag is None:
        return None
    return clean_text(tag.get("content"))


def _favicon_href(soup: BeautifulSoup) -> Optional[str]:
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        rel = [value.lower() for value in rel]
        if "icon" in rel:
            return link["href"]
    return None


def _canonical_href(soup: BeautifulSoup) -> Optional[str]:
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "canonical" in [value.lower() for value in rel]:
            return link["href"]
    return None


def _json_ld_blocks(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("Skipping unparsable JSON-LD block")
            continue
        if isinstance(data, list):
            blocks.extend(item for item in data if isinstance(item, dict))
        elif isinstance(data, dict):
            graph = data.get("@graph")
            if isinstance(graph, list):
                blocks.extend(item for item in graph if isinstance(item, dict))
            else:
                blocks.append(data)
    return blocks


def extract_html_metadata(html_content: str, page_url: str) -> HtmlMetadata:
    """Extract title, Open Graph, meta and link metadata from an HTML page.

    Relative image, favicon and canonical URLs are resolved against
    ``page_url``. Unknown or missing tags leave their fields ``None``.
    """
    soup = BeautifulSoup(html_content, "html.parser")

    title_tag = soup.find("title")
    meta_title = clean_text(title_tag.get_text()) if title_tag else None

    og_title = _meta_content(soup, "og:title")
    og_description = _meta_content(soup, "og:description")
    og_image = resolve_url(_meta_content(soup, "og:image"), page_url)
    og_url = resolve_url(_meta_content(soup, "og:url"), page_url)
    og_site_name = _meta_content(soup, "og:site_name")
    og_type = _meta_content(soup, "og:type")
    meta_description = _meta_content(soup, "description")
    twitter_title = _meta_content(soup, "twitter:title")
    twitter_description = _meta_content(soup, "twitter:description")
    twitter_image = resolve_url(_meta_content(soup, "twitter:image"), page_url)

    tags = [
        cleaned
        for tag in soup.find_all("meta", property="article:tag")
        if (cleaned := clean_text(tag.get("content")))
    ]

    return HtmlMetadata(
        title=og_title or meta_title or twitter_title,
        description=og_description or meta_description or twitter_description,
        image=og_image or twitter_image,
        favicon=resolve_url(_favicon_href(soup), page_url),
        site_name=og_site_name,
        canonical_url=resolve_url(_canonical_href(soup), page_url),
        og_title=og_title,
        og_description=og_description,
        og_image=og_image,
        og_url=og_url,
        og_site_name=og_site_name,
        og_type=og_type,
        meta_title=meta_title,
        meta_description=meta_description,
        twitter_title=twitter_title,
        twitter_description=twitter_description,
        twitter_image=twitter_image,
        author=_meta_content(soup, "author") or _meta_content(soup, "article:author"),
        published_time=_meta_content(soup, "article:published_time"),
        tags=tags,
        json_ld=_json_ld_blocks(soup),
    )


def extract_next_data(html_content: str) -> Optional[Dict[str, Any]]:
    """Return the Next.js ``__NEXT_DATA__`` payload embedded in a page."""
    soup = BeautifulSoup(html_content, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is not None:
        try:
            return json.loads(script.string or script.get_text())
        except ValueError:
            logger.debug("Unparsable __NEXT_DATA__ script tag")
    return extract_window_json(html_content, "__NEXT_DATA__")


def extract_window_json(html_content: str, variable: str) -> Optional[Dict[str, Any]]:
    """Return the JSON object assigned to ``window.<variable>`` in an inline script.

    Handles both object literals and ``JSON.parse("...")`` string payloads.
    """
    pattern = re.compile(
        rf"window\.{re.escape(variable)}\s*=\s*(JSON\.parse\()?", re.IGNORECASE
    )
    match = pattern.search(html_content)
    if not match:
        return None

    decoder = json.JSONDecoder()
    try:
        value, _ = decoder.raw_decode(html_content, match.end())
        if match.group(1) and isinstance(value, str):
            value = json.loads(value)
    except ValueError:
        logger.debug(f"Unparsable window.{variable} payload")
        return None
    return value if isinstance(value, dict) else None


def extract_reading_time(html_content: str) -> Optional[int]:
    match = _READING_TIME_RE.search(html_content)
    return int(match.group(1)) if match else None


def regex_extract_basic(html_content: str) -> Dict[str, Optional[str]]:
    """Last-resort title/description/image/author extraction.

    Used by blog adapters when neither embedded data nor a parsed document
    yields a title.
    """
    found: Dict[str, Optional[str]] = {}
    title_match = _TITLE_RE.search(html_content)
    found["title"] = clean_text(title_match.group(1)) if title_match else None

    for key, content in _META_RE.findall(html_content):
        key = key.lower()
        if key in ("og:title", "twitter:title") and not found.get("meta_title"):
            found["meta_title"] = clean_text(content)
        elif key in ("og:description", "description") and not found.get(
            "description"
        ):
            found["description"] = clean_text(content)
        elif key in ("og:image", "twitter:image") and not found.get("image"):
            found["image"] = content.strip() or None
        elif key == "author" and not found.get("author"):
            found["author"] = clean_text(content)
        elif key == "article:published_time" and not found.get("published_time"):
            found["published_time"] = content.strip() or None

    found["title"] = found.pop("meta_title", None) or found["title"]
    return found


def find_json_ld(
    blocks: List[Dict[str, Any]], types: tuple = ("Article", "BlogPosting", "NewsArticle")
) -> Optional[Dict[str, Any]]:
    for block in blocks:
        block_type = block.get("@type")
        block_types = block_type if isinstance(block_type, list) else [block_type]
        if any(t in types for t in block_types):
            return block
    return None
