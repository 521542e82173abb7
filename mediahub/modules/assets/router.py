import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File, Form, status
from sqlalchemy.ext.asyncio import AsyncSession

from mediahub.core.config import settings
from mediahub.core.db import get_session
from mediahub.core.errors import RecordNotFound
from mediahub.modules.assets.expansion import parse_expand
from mediahub.modules.assets.lifecycle import TRANSITIONS
from mediahub.modules.assets.query import AssetQuery
from mediahub.modules.assets.schemas import (
    AssetCreate, AssetUpdate, AssetOut, AssetPage, VideoMetadataCreate, VideoMetadataOut,
    ViewCreate, ViewOut, ViewCountOut, ViewStatsOut, TopViewedOut,
)
from mediahub.modules.assets.service import MediaAssetService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> MediaAssetService:
    return MediaAssetService(session)

@router.get("", response_model=AssetPage)
async def list_assets(
    file_name: str | None = None,
    title: str | None = None,
    min_file_size_bytes: int | None = None,
    max_file_size_bytes: int | None = None,
    uploaded_after: datetime | None = None,
    uploaded_before: datetime | None = None,
    user_id: uuid.UUID | None = None,
    is_public: bool | None = None,
    sort_by: str = "uploaded_at",
    sort_descending: bool = True,
    page: int = 1,
    page_size: int | None = None,
    expand: str | None = Query(default=None, description="Comma-separated: owner,video_metadata"),
    service: MediaAssetService = Depends(svc),
):
    params = dict(
        file_name=file_name, title=title,
        min_file_size_bytes=min_file_size_bytes, max_file_size_bytes=max_file_size_bytes,
        uploaded_after=uploaded_after, uploaded_before=uploaded_before,
        user_id=user_id, is_public=is_public,
        sort_by=sort_by, sort_descending=sort_descending,
        page=page, expand=expand,
    )
    if page_size is not None:
        params["page_size"] = page_size
    query = AssetQuery(**params)
    result = await service.list(query)
    return AssetPage(
        items=[AssetOut.from_asset(a, query.expand) for a in result.items],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        is_first_page=result.is_first_page,
        is_last_page=result.is_last_page,
    )

@router.get("/stats/top-viewed", response_model=list[TopViewedOut])
async def top_viewed(start: datetime, end: datetime, limit: int = Query(default=10, ge=1, le=100),
                     service: MediaAssetService = Depends(svc)):
    rows = await service.top_viewed(start, end, limit)
    return [TopViewedOut(asset_id=a, views=n) for a, n in rows]

@router.get("/{asset_id}", response_model=AssetOut)
async def get_asset(asset_id: uuid.UUID, expand: str | None = None, service: MediaAssetService = Depends(svc)):
    wanted = parse_expand(expand)
    obj = await service.get(asset_id, wanted)
    if not obj:
        raise HTTPException(status_code=404, detail=f"Media asset with ID {asset_id} not found")
    return AssetOut.from_asset(obj, wanted)

@router.post("", response_model=AssetOut, status_code=status.HTTP_201_CREATED)
async def create_asset(payload: AssetCreate, service: MediaAssetService = Depends(svc)):
    obj = await service.create(payload)
    return AssetOut.from_asset(obj)

@router.post("/upload", response_model=AssetOut, status_code=status.HTTP_201_CREATED)
async def upload_asset(
    file: UploadFile = File(...),
    title: str | None = Form(default=None),
    user_id: uuid.UUID | None = Form(default=None),
    service: MediaAssetService = Depends(svc),
):
    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File too large (>{settings.MAX_UPLOAD_BYTES} bytes)")
    data = await file.read()
    obj = await service.upload(
        data=data, file_name=file.filename or "", content_type=file.content_type, title=title, user_id=user_id,
    )
    return AssetOut.from_asset(obj)

@router.patch("/{asset_id}", response_model=AssetOut)
async def update_asset(asset_id: uuid.UUID, payload: AssetUpdate, service: MediaAssetService = Depends(svc)):
    obj = await service.update(asset_id, payload)
    if not obj:
        raise RecordNotFound(asset_id)
    return AssetOut.from_asset(obj)

@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def purge_asset(asset_id: uuid.UUID, service: MediaAssetService = Depends(svc)):
    await service.purge(asset_id)

@router.post("/{asset_id}/lifecycle/{action}", response_model=AssetOut)
async def change_lifecycle(asset_id: uuid.UUID, action: str, service: MediaAssetService = Depends(svc)):
    if action not in TRANSITIONS:
        raise HTTPException(status_code=404, detail=f"Unknown action '{action}'. Allowed: {', '.join(TRANSITIONS)}")
    obj = await service.transition(asset_id, action)
    return AssetOut.from_asset(obj)

# ---- Views ----

@router.post("/{asset_id}/views", response_model=ViewOut, status_code=status.HTTP_202_ACCEPTED)
async def record_view(asset_id: uuid.UUID, payload: ViewCreate | None = None, service: MediaAssetService = Depends(svc)):
    return await service.record_view(asset_id, user_id=payload.user_id if payload else None)

@router.delete("/views/{view_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_view(view_id: int, service: MediaAssetService = Depends(svc)):
    if not await service.remove_view(view_id):
        raise HTTPException(status_code=404, detail="View not found")

@router.post("/{asset_id}/view-count/reconcile", response_model=ViewCountOut)
async def reconcile_view_count(asset_id: uuid.UUID, service: MediaAssetService = Depends(svc)):
    value = await service.reconcile_view_count(asset_id)
    return ViewCountOut(asset_id=asset_id, view_count=value)

@router.get("/{asset_id}/views/stats", response_model=ViewStatsOut)
async def view_stats(asset_id: uuid.UUID, start: datetime, end: datetime, service: MediaAssetService = Depends(svc)):
    n = await service.view_stats(asset_id, start, end)
    return ViewStatsOut(asset_id=asset_id, start=start, end=end, views=n)

# ---- Video metadata ----

@router.post("/{asset_id}/video-metadata", response_model=VideoMetadataOut, status_code=status.HTTP_201_CREATED)
async def attach_video_metadata(asset_id: uuid.UUID, payload: VideoMetadataCreate, service: MediaAssetService = Depends(svc)):
    return await service.attach_video_metadata(asset_id, payload)
