import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from richlink_api.common.errors import PreviewErrorCode, PreviewFetchError
from richlink_api.configurations.config import settings
from richlink_api.models.preview_metadata import (
    PreviewType,
    RepoLicense,
    RepoMetadata,
    RepoOwner,
    stamp_freshness,
)
from richlink_api.services.url_classifier_service import extract_repo_coordinates

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = (502, 503, 504)


class RateLimitSnapshot(BaseModel):
    limit: int
    remaining: int
    reset: datetime
    used: int = 0


class RateLimitTracker:
    """Advisory view of the GitHub API budget.

    Updated from the ``x-ratelimit-*`` headers of every response and
    re-verified against ``/rate_limit`` when the snapshot is older than
    ``check_interval``. Last response wins; a stale "has budget" answer only
    surfaces as an upstream error, never as bad data.
    """

    def __init__(
        self,
        check_interval: timedelta = timedelta(
            seconds=settings.github_rate_limit_check_interval_seconds
        ),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.check_interval = check_interval
        self.clock = clock
        self.snapshot: Optional[RateLimitSnapshot] = None
        self.last_checked: Optional[datetime] = None

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        limit = headers.get("x-ratelimit-limit")
        remaining = headers.get("x-ratelimit-remaining")
        reset = headers.get("x-ratelimit-reset")
        if not (limit and remaining and reset):
            return
        try:
            self.snapshot = RateLimitSnapshot(
                limit=int(limit),
                remaining=int(remaining),
                reset=datetime.fromtimestamp(int(reset), tz=timezone.utc),
                used=int(headers.get("x-ratelimit-used") or 0),
            )
        except ValueError:
            logger.warning(f"Ignoring malformed rate limit headers: {dict(headers)}")
            return
        self.last_checked = self.clock()

    def update_from_payload(self, payload: Dict[str, Any]) -> None:
        rate = payload.get("rate") or {}
        self.snapshot = RateLimitSnapshot(
            limit=rate["limit"],
            remaining=rate["remaining"],
            reset=datetime.fromtimestamp(rate["reset"], tz=timezone.utc),
            used=rate.get("used", 0),
        )
        self.last_checked = self.clock()

    def mark_checked(self) -> None:
        self.last_checked = self.clock()

    def is_stale(self) -> bool:
        if self.last_checked is None:
            return True
        return self.clock() - self.last_checked >= self.check_interval

    def raise_if_exhausted(self) -> None:
        snapshot = self.snapshot
        if snapshot is None or snapshot.remaining > 0:
            return
        if self.clock() < snapshot.reset:
            raise PreviewFetchError(
                f"GitHub API rate limit exceeded. Resets at {snapshot.reset.isoformat()}",
                PreviewErrorCode.RATE_LIMITED,
                retry_after=snapshot.reset,
            )


def _is_transient(exc: BaseException) -> bool:
    return (
        isinstance(exc, httpx.HTTPStatusError)
        and exc.response.status_code in TRANSIENT_STATUS_CODES
    )


class GitHubClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        rate_limit_tracker: RateLimitTracker,
        token: Optional[str] = settings.github_token,
        api_base_url: str = settings.github_api_base_url,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.client = client
        self.rate_limit_tracker = rate_limit_tracker
        self.token = token
        self.api_base_url = api_base_url.rstrip("/")
        self.clock = clock

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": settings.user_agent,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def ensure_budget(self) -> None:
        """Fail fast when the cached budget is exhausted, re-verifying it if stale."""
        if not self.rate_limit_tracker.is_stale():
            self.rate_limit_tracker.raise_if_exhausted()
            return

        try:
            response = await self.client.get(
                f"{self.api_base_url}/rate_limit",
                headers=self._headers(),
                timeout=settings.github_timeout_seconds,
            )
            if response.status_code == 200:
                self.rate_limit_tracker.update_from_payload(response.json())
            else:
                self.rate_limit_tracker.mark_checked()
                logger.warning(
                    f"GitHub rate limit check returned {response.status_code}"
                )
        except (httpx.HTTPError, ValueError, KeyError, ValidationError) as e:
            self.rate_limit_tracker.mark_checked()
            logger.warning(f"Failed to check GitHub rate limit: {e}")

        self.rate_limit_tracker.raise_if_exhausted()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=(
            retry_if_exception_type(httpx.TransportError)
            | retry_if_exception(_is_transient)
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_repository(self, owner: str, repo: str) -> httpx.Response:
        response = await self.client.get(
            f"{self.api_base_url}/repos/{owner}/{repo}",
            headers=self._headers(),
            timeout=settings.github_timeout_seconds,
        )
        self.rate_limit_tracker.update_from_headers(response.headers)
        if response.status_code in TRANSIENT_STATUS_CODES:
            response.raise_for_status()
        return response

    async def fetch_repo_metadata(self, url: str) -> RepoMetadata:
        coordinates = extract_repo_coordinates(url)
        if coordinates is None:
            raise PreviewFetchError("Invalid GitHub URL", PreviewErrorCode.INVALID_URL)
        owner, repo = coordinates

        await self.ensure_budget()

        try:
            response = await self._get_repository(owner, repo)
        except httpx.HTTPStatusError as e:
            raise PreviewFetchError(
                f"GitHub API returned {e.response.status_code}",
                PreviewErrorCode.NETWORK_ERROR,
            ) from e
        except httpx.TransportError as e:
            logger.warning(f"GitHub request for {owner}/{repo} failed: {e}")
            raise PreviewFetchError(
                "Failed to fetch GitHub repository data",
                PreviewErrorCode.NETWORK_ERROR,
            ) from e

        self._raise_for_status(response)

        try:
            return self.to_metadata(response.json())
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Unexpected GitHub payload for {owner}/{repo}: {e}")
            raise PreviewFetchError(
                "Failed to parse GitHub repository data", PreviewErrorCode.PARSE_ERROR
            ) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        status_code = response.status_code
        if status_code == 200:
            return
        if status_code == 404:
            raise PreviewFetchError("Repository not found", PreviewErrorCode.NOT_FOUND)
        if status_code == 429 or (
            status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"
        ):
            snapshot = self.rate_limit_tracker.snapshot
            raise PreviewFetchError(
                "GitHub API rate limit exceeded",
                PreviewErrorCode.RATE_LIMITED,
                retry_after=snapshot.reset if snapshot else None,
            )
        if status_code in (401, 403):
            raise PreviewFetchError(
                "Repository is private or access is restricted",
                PreviewErrorCode.PRIVATE_REPO,
            )
        raise PreviewFetchError(
            f"GitHub API returned {status_code}", PreviewErrorCode.NETWORK_ERROR
        )

    def to_metadata(self, payload: Dict[str, Any]) -> RepoMetadata:
        owner = payload["owner"]
        license_data = payload.get("license")
        fetched_at, expires_at = stamp_freshness(PreviewType.GITHUB_REPO, self.clock())

        return RepoMetadata(
            repo_name=payload["full_name"],
            description=payload.get("description"),
            language=payload.get("language"),
            topics=payload.get("topics") or [],
            stars=payload.get("stargazers_count", 0),
            forks=payload.get("forks_count", 0),
            updated_at=payload.get("updated_at"),
            avatar_url=owner.get("avatar_url"),
            is_private=payload.get("private", False),
            default_branch=payload.get("default_branch") or "main",
            homepage=payload.get("homepage") or None,
            license=(
                RepoLicense(
                    name=license_data["name"], spdx_id=license_data.get("spdx_id")
                )
                if license_data
                else None
            ),
            owner=RepoOwner(
                login=owner["login"],
                avatar_url=owner.get("avatar_url"),
                type=owner.get("type") or "User",
            ),
            fetched_at=fetched_at,
            expires_at=expires_at,
        )
