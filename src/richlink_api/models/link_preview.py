from datetime import datetime
from enum import StrEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from richlink_api.common.errors import PreviewErrorCode
from richlink_api.models.preview_metadata import PreviewMetadata

SOCIAL_CATEGORY = "social"

ICON_OVERRIDE_FIELDS = (
    "custom_icon_url",
    "uploaded_icon_url",
    "icon_variant",
    "use_custom_icon",
    "icon_selection_type",
    "platform_detected",
)


class PreviewStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    EXPIRED = "expired"


class LinkPreviewRecord(BaseModel):
    """A user link as stored in the ``user_links`` collection."""

    model_config = ConfigDict(populate_by_name=True)

    link_id: str = Field(alias="_id")
    user_id: Optional[str] = None
    url: str
    category: str = "general"
    metadata: Optional[PreviewMetadata] = None
    preview_status: PreviewStatus = PreviewStatus.PENDING
    preview_fetched_at: Optional[datetime] = None
    preview_expires_at: Optional[datetime] = None
    preview_error: Optional[str] = None
    preview_error_code: Optional[PreviewErrorCode] = None
    preview_attempted_at: Optional[datetime] = None

    # Icon overrides are owned by the link editor, never by preview writes
    custom_icon_url: Optional[str] = None
    uploaded_icon_url: Optional[str] = None
    icon_variant: str = "default"
    use_custom_icon: bool = False
    icon_selection_type: str = "default"
    platform_detected: Optional[str] = None

    @property
    def is_social(self) -> bool:
        return self.category == SOCIAL_CATEGORY

    def is_expired(self, now: datetime) -> bool:
        return self.preview_expires_at is not None and self.preview_expires_at <= now

    def effective_status(self, now: datetime) -> PreviewStatus:
        if self.preview_status == PreviewStatus.SUCCESS and (
            self.metadata is None or self.is_expired(now)
        ):
            return PreviewStatus.EXPIRED
        return self.preview_status


class LinkRef(BaseModel):
    id: str
    url: str


class PreviewFetchResult(BaseModel):
    success: bool
    metadata: Optional[PreviewMetadata] = None
    error: Optional[str] = None
    error_code: Optional[PreviewErrorCode] = None
    retryable: bool = False
    retry_after: Optional[datetime] = None
    cached: bool = False

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: Optional[PreviewErrorCode] = None,
        retryable: bool = False,
        retry_after: Optional[datetime] = None,
    ) -> "PreviewFetchResult":
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            retryable=retryable,
            retry_after=retry_after,
        )


class PreviewStatsCounts(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    pending: int = 0
    expired: int = 0
    github: int = 0
    blog: int = 0
    webpage: int = 0
    recently_updated: int = 0
    needs_refresh: int = 0


class PreviewStats(BaseModel):
    stats: PreviewStatsCounts
    percentages: Dict[str, int]
    recommendations: List[str]
