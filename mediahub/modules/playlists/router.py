import uuid
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from mediahub.core.db import get_session
from mediahub.modules.playlists.query import PlaylistQuery, parse_expand
from mediahub.modules.playlists.schemas import (
    PlaylistCreate, PlaylistUpdate, PlaylistItemCreate, PlaylistOut, PlaylistItemOut, PlaylistPage,
)
from mediahub.modules.playlists.service import PlaylistService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> PlaylistService:
    return PlaylistService(session)

# No auth layer: callers identify themselves and ownership is checked against it.
ActingUser = Header(..., alias="X-User-Id")

@router.get("", response_model=PlaylistPage)
async def list_playlists(
    user_id: uuid.UUID | None = None,
    is_public: bool | None = None,
    name: str | None = None,
    sort_by: str = "created_at",
    sort_descending: bool = True,
    page: int = 1,
    page_size: int | None = None,
    expand: str | None = Query(default=None, description="Comma-separated: owner,items"),
    service: PlaylistService = Depends(svc),
):
    params = dict(
        user_id=user_id, is_public=is_public, name=name,
        sort_by=sort_by, sort_descending=sort_descending,
        page=page, expand=expand,
    )
    if page_size is not None:
        params["page_size"] = page_size
    query = PlaylistQuery(**params)
    result = await service.list(query)
    return PlaylistPage(
        items=[PlaylistOut.from_playlist(p, query.expand) for p in result.items],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        is_first_page=result.is_first_page,
        is_last_page=result.is_last_page,
    )

@router.get("/{playlist_id}", response_model=PlaylistOut)
async def get_playlist(playlist_id: uuid.UUID, expand: str | None = None, service: PlaylistService = Depends(svc)):
    wanted = parse_expand(expand)
    obj = await service.get(playlist_id, wanted)
    if not obj:
        raise HTTPException(status_code=404, detail=f"Playlist with ID {playlist_id} not found")
    return PlaylistOut.from_playlist(obj, wanted)

@router.post("", response_model=PlaylistOut, status_code=status.HTTP_201_CREATED)
async def create_playlist(payload: PlaylistCreate, acting_user: uuid.UUID = ActingUser,
                          service: PlaylistService = Depends(svc)):
    obj = await service.create(payload, acting_user)
    return PlaylistOut.from_playlist(obj)

@router.patch("/{playlist_id}", response_model=PlaylistOut)
async def update_playlist(playlist_id: uuid.UUID, payload: PlaylistUpdate, acting_user: uuid.UUID = ActingUser,
                          service: PlaylistService = Depends(svc)):
    obj = await service.update(playlist_id, payload, acting_user)
    return PlaylistOut.from_playlist(obj)

@router.delete("/{playlist_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playlist(playlist_id: uuid.UUID, acting_user: uuid.UUID = ActingUser,
                          service: PlaylistService = Depends(svc)):
    await service.delete(playlist_id, acting_user)

@router.post("/{playlist_id}/items", response_model=PlaylistItemOut, status_code=status.HTTP_201_CREATED)
async def add_item(playlist_id: uuid.UUID, payload: PlaylistItemCreate, acting_user: uuid.UUID = ActingUser,
                   service: PlaylistService = Depends(svc)):
    item = await service.add_asset(playlist_id, payload.asset_id, acting_user)
    return PlaylistItemOut.from_item(item)

@router.delete("/{playlist_id}/items/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_item(playlist_id: uuid.UUID, asset_id: uuid.UUID, acting_user: uuid.UUID = ActingUser,
                      service: PlaylistService = Depends(svc)):
    if not await service.remove_asset(playlist_id, asset_id, acting_user):
        raise HTTPException(status_code=404, detail=f"Asset {asset_id} is not in playlist {playlist_id}")
