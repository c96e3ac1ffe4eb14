"""Shared fixtures: in-memory user_links collection, fake HTTP upstreams, fixed clock."""

import copy
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List

import httpx
import pytest
from pymongo.errors import DuplicateKeyError

from richlink_api.services.blog_service import BlogService
from richlink_api.services.external_clients.github_client import (
    GitHubClient,
    RateLimitTracker,
)
from richlink_api.services.og_service import WebpageScraper
from richlink_api.services.preview_store_service import PreviewStore
from richlink_api.services.preview_url_cache_service import PreviewUrlCache
from richlink_api.services.rich_preview_service import RichPreviewService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and any(key.startswith("$") for key in condition):
        for operator, operand in condition.items():
            if operator == "$ne" and value == operand:
                return False
            if operator == "$in" and value not in operand:
                return False
            if operator == "$nin" and value in operand:
                return False
            if operator == "$exists" and (value is not None) != operand:
                return False
            if operator in ("$lt", "$lte", "$gt", "$gte"):
                if value is None:
                    return False
                if operator == "$lt" and not value < operand:
                    return False
                if operator == "$lte" and not value <= operand:
                    return False
                if operator == "$gt" and not value > operand:
                    return False
                if operator == "$gte" and not value >= operand:
                    return False
        return True
    return value == condition


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, sub_query) for sub_query in condition):
                return False
        elif key == "$and":
            if not all(matches(document, sub_query) for sub_query in condition):
                return False
        elif not _matches_condition(document.get(key), condition):
            return False
    return True


class FakeCollection:
    """In-memory stand-in for ``BaseMongo`` covering the queries the store issues."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    async def find_one(self, query, sort=None, session=None):
        for document in self.documents.values():
            if matches(document, query):
                return copy.deepcopy(document)
        return None

    async def insert_one(self, document, session=None):
        if document["_id"] in self.documents:
            raise DuplicateKeyError(f"duplicate _id {document['_id']}")
        self.documents[document["_id"]] = copy.deepcopy(document)
        return SimpleNamespace(inserted_id=document["_id"])

    async def update_one(self, query, new_state, upsert=False, session=None):
        for document in self.documents.values():
            if matches(document, query):
                document.update(copy.deepcopy(new_state.get("$set", {})))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, query, session=None):
        for key, document in list(self.documents.items()):
            if matches(document, query):
                del self.documents[key]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def find_all(self, query, sort=None, limit=0):
        found = [
            copy.deepcopy(document)
            for document in self.documents.values()
            if matches(document, query)
        ]
        return found[:limit] if limit else found

    async def count_documents(self, filter):
        return len(await self.find_all(filter))


def html_response(body: str, status_code: int = 200, **headers) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/html; charset=utf-8", **headers},
        text=body,
    )


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class UpstreamRoutes:
    """Maps ``host + path`` to canned responses and records every request."""

    def __init__(self):
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, url: str, response) -> None:
        self.routes[url] = response if callable(response) else (lambda _: response)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)


def page(title: str, description: str = "A page", extra_head: str = "") -> str:
    return (
        "<!DOCTYPE html><html><head>"
        f"<title>{title}</title>"
        f'<meta property="og:title" content="{title}">'
        f'<meta property="og:description" content="{description}">'
        f"{extra_head}"
        "</head><body><p>Hello</p></body></html>"
    )


def github_repo_payload(full_name: str = "octocat/Hello-World") -> Dict[str, Any]:
    owner, _ = full_name.split("/")
    return {
        "full_name": full_name,
        "description": "My first repository on GitHub!",
        "language": "Python",
        "topics": ["demo", "octocat"],
        "stargazers_count": 2500,
        "forks_count": 1900,
        "updated_at": "2026-02-20T10:00:00Z",
        "private": False,
        "default_branch": "master",
        "homepage": "https://github.com",
        "license": {"name": "MIT License", "spdx_id": "MIT"},
        "owner": {
            "login": owner,
            "avatar_url": "https://avatars.githubusercontent.com/u/583231",
            "type": "User",
        },
    }


def rate_limit_headers(remaining: int = 4999, reset: int = 1772370000) -> Dict[str, str]:
    return {
        "x-ratelimit-limit": "5000",
        "x-ratelimit-remaining": str(remaining),
        "x-ratelimit-reset": str(reset),
        "x-ratelimit-used": str(5000 - remaining),
    }


class FakeRedis:
    """Async dict-backed subset of the redis client used by the URL cache."""

    def __init__(self):
        self.values: Dict[str, Any] = {}
        self.expiries: Dict[str, int] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        self.expiries[key] = ex
        return True

    async def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def store(collection, clock) -> PreviewStore:
    return PreviewStore(collection, clock=clock)


@pytest.fixture
def upstream() -> UpstreamRoutes:
    return UpstreamRoutes()


@pytest.fixture
def http_client(upstream) -> httpx.AsyncClient:
    return mock_client(upstream)


@pytest.fixture
def make_service(http_client, store, clock):
    def factory(url_cache: PreviewUrlCache = None, **kwargs) -> RichPreviewService:
        return RichPreviewService(
            github_client=GitHubClient(
                http_client, RateLimitTracker(clock=clock), token=None, clock=clock
            ),
            blog_service=BlogService(http_client, clock=clock),
            webpage_scraper=WebpageScraper(http_client, clock=clock),
            store=store,
            url_cache=url_cache or PreviewUrlCache(None, enabled=False),
            batch_delay_seconds=kwargs.pop("batch_delay_seconds", 0),
            clock=clock,
            **kwargs,
        )

    return factory
