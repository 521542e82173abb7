import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from mediahub.modules.assets.schemas import OwnerOut
from mediahub.modules.playlists.models import Playlist, PlaylistItem
from mediahub.modules.playlists.query import PlaylistExpand

class PlaylistCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    is_public: bool = True

class PlaylistUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    is_public: bool | None = None

class PlaylistItemCreate(BaseModel):
    asset_id: uuid.UUID

class AssetSummaryOut(BaseModel):
    id: uuid.UUID
    title: str
    file_name: str
    mime_type: str
    file_size_bytes: int
    view_count: int

    model_config = ConfigDict(from_attributes=True)

class PlaylistItemOut(BaseModel):
    id: int
    playlist_id: uuid.UUID
    asset_id: uuid.UUID
    added_at: datetime
    asset: AssetSummaryOut | None = None

    @classmethod
    def from_item(cls, item: PlaylistItem, with_asset: bool = False) -> "PlaylistItemOut":
        return cls(
            id=item.id,
            playlist_id=item.playlist_id,
            asset_id=item.asset_id,
            added_at=item.added_at,
            asset=AssetSummaryOut.model_validate(item.asset) if with_asset else None,
        )

class PlaylistOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    description: str | None
    is_public: bool
    created_at: datetime
    updated_at: datetime
    item_count: int

    # present only when requested via ?expand=
    owner: OwnerOut | None = None
    items: list[PlaylistItemOut] | None = None

    @classmethod
    def from_playlist(cls, playlist: Playlist, expand: frozenset[PlaylistExpand] = frozenset()) -> "PlaylistOut":
        out = cls(
            id=playlist.id,
            user_id=playlist.user_id,
            name=playlist.name,
            description=playlist.description,
            is_public=playlist.is_public,
            created_at=playlist.created_at,
            updated_at=playlist.updated_at,
            item_count=playlist.item_count,
        )
        if PlaylistExpand.OWNER in expand:
            out.owner = OwnerOut.model_validate(playlist.owner)
        if PlaylistExpand.ITEMS in expand:
            out.items = [PlaylistItemOut.from_item(i, with_asset=True) for i in playlist.items]
        return out

class PlaylistPage(BaseModel):
    items: list[PlaylistOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    is_first_page: bool
    is_last_page: bool
