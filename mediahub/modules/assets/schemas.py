import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from mediahub.modules.assets.expansion import ExpandOption
from mediahub.modules.assets.models import MediaAsset, AssetLifecycle

class AssetCreate(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    original_file_name: str | None = Field(default=None, max_length=255)
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    file_size_bytes: int = Field(..., ge=0)
    mime_type: str = Field(default="application/octet-stream", max_length=128)
    content_hash: str = Field(..., min_length=64, max_length=64, pattern="^[0-9a-fA-F]{64}$")
    tags: list[str] = Field(default_factory=list)
    storage_path: str = ""
    user_id: uuid.UUID | None = None
    is_public: bool = True
    # backfills may carry the original upload time
    uploaded_at: datetime | None = None

class AssetUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    tags: list[str] | None = None
    is_public: bool | None = None

class VideoMetadataCreate(BaseModel):
    duration_seconds: int = Field(..., ge=0)
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)
    frame_rate: float = Field(..., gt=0)
    codec: str | None = None
    bitrate_kbps: int | None = Field(default=None, ge=0)
    audio_codec: str | None = None

class ViewCreate(BaseModel):
    user_id: uuid.UUID | None = None

class OwnerOut(BaseModel):
    id: uuid.UUID
    username: str

    model_config = ConfigDict(from_attributes=True)

class VideoMetadataOut(BaseModel):
    duration_seconds: int
    width: int
    height: int
    frame_rate: float
    codec: str | None
    bitrate_kbps: int | None
    audio_codec: str | None

    model_config = ConfigDict(from_attributes=True)

class AssetOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID | None
    file_name: str
    original_file_name: str
    title: str
    description: str | None
    file_size_bytes: int
    mime_type: str
    content_hash: str
    tags: list[str]
    lifecycle: AssetLifecycle
    is_public: bool
    uploaded_at: datetime
    last_viewed_at: datetime | None
    view_count: int

    # present only when requested via ?expand=
    owner: OwnerOut | None = None
    video_metadata: VideoMetadataOut | None = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_asset(cls, asset: MediaAsset, expand: frozenset[ExpandOption] = frozenset()) -> "AssetOut":
        # Relations are lazy="raise"; touch only the ones the read loaded.
        out = cls.model_validate({
            name: getattr(asset, name)
            for name in cls.model_fields
            if name not in ("owner", "video_metadata")
        })
        if ExpandOption.OWNER in expand and asset.owner is not None:
            out.owner = OwnerOut.model_validate(asset.owner)
        if ExpandOption.VIDEO_METADATA in expand and asset.video_metadata is not None:
            out.video_metadata = VideoMetadataOut.model_validate(asset.video_metadata)
        return out

class AssetPage(BaseModel):
    items: list[AssetOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    is_first_page: bool
    is_last_page: bool

class ViewOut(BaseModel):
    id: int
    asset_id: uuid.UUID
    user_id: uuid.UUID | None
    viewed_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ViewCountOut(BaseModel):
    asset_id: uuid.UUID
    view_count: int

class ViewStatsOut(BaseModel):
    asset_id: uuid.UUID
    start: datetime
    end: datetime
    views: int

class TopViewedOut(BaseModel):
    asset_id: uuid.UUID
    views: int
