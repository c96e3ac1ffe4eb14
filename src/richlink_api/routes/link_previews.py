import logging
import uuid
from typing import Annotated, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, Request
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from richlink_api.configurations.config import settings
from richlink_api.models.link_preview import (
    LinkPreviewRecord,
    LinkRef,
    PreviewFetchResult,
    PreviewStats,
)
from richlink_api.services.og_service import validate_url
from richlink_api.services.rich_preview_service import (
    RichPreviewService,
    get_rich_preview_dependency,
)
from richlink_api.services.url_classifier_service import should_have_rich_preview

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/link-previews",
    tags=["link-previews"],
    responses={404: {"description": "Not found"}},
)


class RegisterLinkRequest(BaseModel):
    url: str
    category: str = "general"
    link_id: Optional[str] = None


class FetchPreviewRequest(BaseModel):
    url: str


class BatchRefreshRequest(BaseModel):
    link_ids: List[str] = Field(min_length=1)


class PreviewResponse(PreviewFetchResult):
    refreshed: bool = False


class BatchRefreshResponse(BaseModel):
    success: bool = True
    results: Dict[str, PreviewFetchResult]
    processed: int
    total: int


def get_user_id(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing x-user-id header")
    return user_id


async def _get_owned_record(
    service: RichPreviewService, link_id: str, user_id: str
) -> LinkPreviewRecord:
    record = await service.store.get_record(link_id)
    if record is None or record.user_id != user_id:
        raise HTTPException(status_code=404, detail="Link not found")
    return record


def _to_response(result: PreviewFetchResult) -> PreviewResponse:
    return PreviewResponse(**result.model_dump(), refreshed=not result.cached)


@router.post(
    "",
    response_model=LinkPreviewRecord,
    response_model_by_alias=False,
    status_code=201,
    operation_id="register_link",
)
async def register_link(
    register_request: RegisterLinkRequest,
    background_tasks: BackgroundTasks,
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[RichPreviewService, Depends(get_rich_preview_dependency)],
):
    if not validate_url(register_request.url):
        raise HTTPException(status_code=400, detail="Invalid URL")

    link_id = register_request.link_id or str(uuid.uuid4())
    try:
        record = await service.store.register_link(
            link_id, user_id, register_request.url, register_request.category
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Link already exists")

    if should_have_rich_preview(record.category, record.url):
        background_tasks.add_task(service.refresh_link_preview, link_id, record.url)

    return record


@router.get("/stats", response_model=PreviewStats, operation_id="get_preview_stats")
async def get_preview_stats(
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[RichPreviewService, Depends(get_rich_preview_dependency)],
):
    return await service.store.get_stats(user_id)


@router.post(
    "/fetch", response_model=PreviewFetchResult, operation_id="fetch_preview"
)
async def fetch_preview(
    fetch_request: FetchPreviewRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[RichPreviewService, Depends(get_rich_preview_dependency)],
):
    return await service.fetch_preview_metadata(fetch_request.url)


@router.put(
    "/batch", response_model=BatchRefreshResponse, operation_id="batch_refresh_previews"
)
async def batch_refresh_previews(
    batch_request: BatchRefreshRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[RichPreviewService, Depends(get_rich_preview_dependency)],
):
    if len(batch_request.link_ids) > settings.batch_max_links:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {settings.batch_max_links} links per batch",
        )

    requested = set(batch_request.link_ids)
    links = [
        LinkRef(id=record.link_id, url=record.url)
        for record in await service.store.list_user_records(user_id)
        if record.link_id in requested and validate_url(record.url)
    ]
    results = await service.batch_fetch_previews(links)

    return BatchRefreshResponse(
        results=results,
        processed=len(links),
        total=len(batch_request.link_ids),
    )


@router.get(
    "/{link_id}", response_model=PreviewResponse, operation_id="get_link_preview"
)
async def get_link_preview(
    link_id: Annotated[str, Path()],
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[RichPreviewService, Depends(get_rich_preview_dependency)],
):
    await _get_owned_record(service, link_id, user_id)
    result = await service.get_or_refresh_preview(link_id)
    return _to_response(result)


@router.post(
    "/{link_id}/refresh",
    response_model=PreviewResponse,
    operation_id="refresh_link_preview",
)
async def refresh_link_preview(
    link_id: Annotated[str, Path()],
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[RichPreviewService, Depends(get_rich_preview_dependency)],
):
    record = await _get_owned_record(service, link_id, user_id)
    if not validate_url(record.url):
        raise HTTPException(status_code=400, detail="Invalid URL")

    result = await service.refresh_link_preview(link_id, record.url, force=True)
    return _to_response(result)


@router.delete("/{link_id}", response_model=dict, operation_id="clear_link_preview")
async def clear_link_preview(
    link_id: Annotated[str, Path()],
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[RichPreviewService, Depends(get_rich_preview_dependency)],
):
    record = await _get_owned_record(service, link_id, user_id)
    await service.store.reset_preview(link_id)
    await service.url_cache.invalidate(record.url)
    return {"success": True}
