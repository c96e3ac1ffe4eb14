from datetime import datetime
from enum import StrEnum
from typing import Optional


class PreviewErrorCode(StrEnum):
    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    PRIVATE_REPO = "PRIVATE_REPO"
    ACCESS_DENIED = "ACCESS_DENIED"
    INVALID_URL = "INVALID_URL"
    PARSE_ERROR = "PARSE_ERROR"


_RETRYABLE_BY_DEFAULT = {
    PreviewErrorCode.NETWORK_ERROR: True,
    PreviewErrorCode.RATE_LIMITED: True,
    PreviewErrorCode.NOT_FOUND: False,
    PreviewErrorCode.PRIVATE_REPO: True,
    PreviewErrorCode.ACCESS_DENIED: True,
    PreviewErrorCode.INVALID_URL: False,
    PreviewErrorCode.PARSE_ERROR: True,
}

NON_RETRYABLE_ERROR_CODES = frozenset(
    code for code, retryable in _RETRYABLE_BY_DEFAULT.items() if not retryable
)


class PreviewFetchError(Exception):
    """Expected failure while fetching preview metadata.

    Callers branch on ``code`` and ``retryable`` rather than on the message.
    ``retry_after`` is set for rate-limit failures when the upstream reports
    its reset time.
    """

    def __init__(
        self,
        message: str,
        code: PreviewErrorCode,
        retryable: Optional[bool] = None,
        retry_after: Optional[datetime] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = (
            _RETRYABLE_BY_DEFAULT[code] if retryable is None else retryable
        )
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"PreviewFetchError(code={self.code.value}, message={self.message!r})"


def error_for_status(status_code: int, source: str) -> PreviewFetchError:
    """Map an upstream HTTP status onto the preview error taxonomy."""
    if status_code == 404:
        return PreviewFetchError(f"{source} returned 404", PreviewErrorCode.NOT_FOUND)
    if status_code == 429:
        return PreviewFetchError(
            f"{source} rate limit exceeded", PreviewErrorCode.RATE_LIMITED
        )
    if status_code in (401, 403):
        return PreviewFetchError(
            f"{source} access restricted ({status_code})",
            PreviewErrorCode.ACCESS_DENIED,
        )
    return PreviewFetchError(
        f"{source} returned {status_code}", PreviewErrorCode.NETWORK_ERROR
    )
