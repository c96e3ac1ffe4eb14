import asyncio
import logging
import weakref
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from richlink_api.common.errors import NON_RETRYABLE_ERROR_CODES, PreviewErrorCode
from richlink_api.models.link_preview import (
    SOCIAL_CATEGORY,
    LinkPreviewRecord,
    PreviewStats,
    PreviewStatsCounts,
    PreviewStatus,
)
from richlink_api.models.preview_metadata import (
    PreviewMetadata,
    PreviewType,
    WebpageMetadata,
)
from richlink_api.persistence.mongo import BaseMongo

logger = logging.getLogger(__name__)

FAILED_PREVIEW_TITLE = "Preview Failed"
RECENT_WINDOW = timedelta(hours=24)
OUTDATED_WINDOW = timedelta(days=7)


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole > 0 else 0


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def build_recommendations(stats: PreviewStatsCounts) -> List[str]:
    recommendations = []

    if stats.failed > 0:
        recommendations.append(
            f"You have {stats.failed} failed "
            f"{_plural(stats.failed, 'preview', 'previews')}. Try refreshing them."
        )
    if stats.pending > 0:
        recommendations.append(
            f"{stats.pending} {_plural(stats.pending, 'preview is', 'previews are')} "
            "still loading."
        )
    if stats.needs_refresh > 0:
        recommendations.append(
            f"{stats.needs_refresh} "
            f"{_plural(stats.needs_refresh, 'preview', 'previews')} might be outdated "
            "and could benefit from a refresh."
        )
    if stats.github > stats.webpage and stats.github > 0:
        recommendations.append(
            "You have more GitHub repositories than other links. "
            "Consider adding more diverse content."
        )
    if stats.total < 5:
        recommendations.append("Add more links to create a comprehensive profile.")

    if not recommendations:
        recommendations.append(
            "Your link previews are looking great! All previews are up to date."
        )
    return recommendations


class PreviewStore:
    """Preview state of user links in the ``user_links`` collection.

    Writes for one link are serialized by a per-link lock and guarded by the
    ``preview_attempted_at`` stamp, so a result from an older attempt never
    replaces the result of a newer one. Preview writes only ``$set`` preview
    fields; icon overrides on the same document are left alone.
    """

    def __init__(
        self,
        collection: BaseMongo,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.collection = collection
        self.clock = clock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, link_id: str) -> asyncio.Lock:
        lock = self._locks.get(link_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[link_id] = lock
        return lock

    async def register_link(
        self,
        link_id: str,
        user_id: Optional[str],
        url: str,
        category: str = "general",
    ) -> LinkPreviewRecord:
        record = LinkPreviewRecord(
            link_id=link_id,
            user_id=user_id,
            url=url,
            category=category,
            preview_status=PreviewStatus.PENDING,
        )
        document = record.model_dump(by_alias=True)
        document["created_at"] = self.clock()
        await self.collection.insert_one(document)
        logger.info(f"Registered link {link_id} ({category}) for user {user_id}")
        return record

    async def get_record(self, link_id: str) -> Optional[LinkPreviewRecord]:
        document = await self.collection.find_one({"_id": link_id})
        if document is None:
            return None
        return LinkPreviewRecord.model_validate(document)

    async def list_user_records(self, user_id: str) -> List[LinkPreviewRecord]:
        documents = await self.collection.find_all({"user_id": user_id})
        return [LinkPreviewRecord.model_validate(document) for document in documents]

    async def get_cached(self, link_id: str) -> Optional[PreviewMetadata]:
        """Metadata of a successful, unexpired preview, else ``None``."""
        record = await self.get_record(link_id)
        if record is None:
            return None
        if record.effective_status(self.clock()) != PreviewStatus.SUCCESS:
            return None
        return record.metadata

    async def needs_refresh(self, link_id: str) -> bool:
        record = await self.get_record(link_id)
        if record is None:
            return True
        if record.is_social:
            return False
        return record.effective_status(self.clock()) != PreviewStatus.SUCCESS

    def _newer_than_stored(self, link_id: str, attempted_at: datetime) -> Dict[str, Any]:
        return {
            "_id": link_id,
            "category": {"$ne": SOCIAL_CATEGORY},
            "$or": [
                {"preview_attempted_at": None},
                {"preview_attempted_at": {"$lte": attempted_at}},
            ],
        }

    async def commit_success(
        self,
        link_id: str,
        metadata: PreviewMetadata,
        attempted_at: Optional[datetime] = None,
    ) -> bool:
        """Store fresh metadata; returns False when the write was skipped."""
        attempted_at = attempted_at or metadata.fetched_at
        async with self._lock_for(link_id):
            result = await self.collection.update_one(
                self._newer_than_stored(link_id, attempted_at),
                {
                    "$set": {
                        "metadata": metadata.model_dump(),
                        "preview_status": PreviewStatus.SUCCESS.value,
                        "preview_fetched_at": metadata.fetched_at,
                        "preview_expires_at": metadata.expires_at,
                        "preview_error": None,
                        "preview_error_code": None,
                        "preview_attempted_at": attempted_at,
                    }
                },
            )
        if result.matched_count == 0:
            logger.warning(
                f"Skipped preview commit for {link_id}: missing, social or superseded"
            )
            return False

        logger.info(f"Committed {metadata.type} preview for {link_id}")
        return True

    async def commit_failure(
        self,
        link_id: str,
        error_message: str,
        error_code: Optional[PreviewErrorCode] = None,
        attempted_at: Optional[datetime] = None,
    ) -> bool:
        """Record a failed fetch, keeping any last-known-good metadata."""
        now = self.clock()
        attempted_at = attempted_at or now
        async with self._lock_for(link_id):
            record = await self.get_record(link_id)
            if record is None or record.is_social:
                logger.warning(
                    f"Skipped failure commit for {link_id}: missing or social link"
                )
                return False

            if record.metadata is not None:
                metadata = record.metadata.model_copy(update={"error": error_message})
            else:
                metadata = WebpageMetadata(
                    title=FAILED_PREVIEW_TITLE,
                    description=error_message,
                    domain=urlsplit(record.url).hostname or "",
                    url=record.url,
                    fetched_at=now,
                    expires_at=now,
                    error=error_message,
                )

            result = await self.collection.update_one(
                self._newer_than_stored(link_id, attempted_at),
                {
                    "$set": {
                        "metadata": metadata.model_dump(),
                        "preview_status": PreviewStatus.FAILED.value,
                        "preview_error": error_message,
                        "preview_error_code": error_code.value if error_code else None,
                        "preview_attempted_at": attempted_at,
                    }
                },
            )
        if result.matched_count == 0:
            logger.warning(f"Skipped failure commit for {link_id}: superseded")
            return False

        logger.info(
            f"Committed failed preview for {link_id} "
            f"({error_code.value if error_code else 'unknown'}): {error_message}"
        )
        return True

    async def reset_preview(self, link_id: str) -> bool:
        async with self._lock_for(link_id):
            result = await self.collection.update_one(
                {"_id": link_id},
                {
                    "$set": {
                        "metadata": None,
                        "preview_status": PreviewStatus.PENDING.value,
                        "preview_fetched_at": None,
                        "preview_expires_at": None,
                        "preview_error": None,
                        "preview_error_code": None,
                        "preview_attempted_at": self.clock(),
                    }
                },
            )
        return result.matched_count > 0

    async def find_refresh_candidates(self, limit: int) -> List[LinkPreviewRecord]:
        documents = await self.collection.find_all(
            {
                "category": {"$ne": SOCIAL_CATEGORY},
                "$or": [
                    {"preview_status": PreviewStatus.PENDING.value},
                    {
                        "preview_status": PreviewStatus.FAILED.value,
                        "preview_error_code": {
                            "$nin": [code.value for code in NON_RETRYABLE_ERROR_CODES]
                        },
                    },
                    {
                        "preview_status": PreviewStatus.SUCCESS.value,
                        "preview_expires_at": {"$lte": self.clock()},
                    },
                ],
            },
            limit=limit,
        )
        return [LinkPreviewRecord.model_validate(document) for document in documents]

    async def get_stats(self, user_id: str) -> PreviewStats:
        now = self.clock()
        records = await self.list_user_records(user_id)
        stats = PreviewStatsCounts(total=len(records))

        for record in records:
            status = record.effective_status(now)
            if status == PreviewStatus.SUCCESS:
                stats.success += 1
                if record.metadata.type == PreviewType.GITHUB_REPO:
                    stats.github += 1
                elif record.metadata.type == PreviewType.BLOG_POST:
                    stats.blog += 1
                else:
                    stats.webpage += 1
            elif status == PreviewStatus.FAILED:
                stats.failed += 1
            elif status == PreviewStatus.EXPIRED:
                stats.expired += 1
            else:
                stats.pending += 1

            fetched_at = record.preview_fetched_at
            if fetched_at is not None and fetched_at > now - RECENT_WINDOW:
                stats.recently_updated += 1
            if fetched_at is None or fetched_at < now - OUTDATED_WINDOW:
                stats.needs_refresh += 1

        percentages = {
            "success_rate": _percent(stats.success, stats.total),
            "failure_rate": _percent(stats.failed, stats.total),
            "github_ratio": _percent(stats.github, stats.success),
            "blog_ratio": _percent(stats.blog, stats.success),
            "webpage_ratio": _percent(stats.webpage, stats.success),
        }
        return PreviewStats(
            stats=stats,
            percentages=percentages,
            recommendations=build_recommendations(stats),
        )
