import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, BigInteger, Integer, Numeric, Boolean, ForeignKey, Index, JSON, Enum, event, inspect, text,
)
from mediahub.core.base import Base, TimestampedMixin, UTCDateTime, utcnow
from mediahub.core.errors import ValidationError
from mediahub.modules.users.models import User

class AssetLifecycle(str, enum.Enum):
    ACTIVE = "active"                  # normal, visible, usable
    ORPHANED = "orphaned"              # owner removed, asset retained
    ARCHIVED = "archived"              # hidden but preserved
    PENDING_DELETE = "pending_delete"  # marked for cleanup
    DELETED = "deleted"                # logically deleted; storage may or may not be reclaimed yet

# Maintained only by ViewCounter's atomic UPDATEs, never through attribute diffs.
COUNTER_FIELDS = ("view_count", "last_viewed_at")

class MediaAsset(Base, TimestampedMixin):
    __tablename__ = "media_assets"
    __table_args__ = (
        Index("ix_media_assets_is_public_user_id", "is_public", "user_id"),
        # fingerprint uniqueness holds among live rows only; retired rows keep their hash
        Index(
            "uq_media_assets_content_hash_live", "content_hash", unique=True,
            postgresql_where=text("lifecycle <> 'deleted'"),
            sqlite_where=text("lifecycle <> 'deleted'"),
        ),
    )

    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    file_name: Mapped[str] = mapped_column(String(255))
    original_file_name: Mapped[str] = mapped_column(String(255))
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, index=True)
    mime_type: Mapped[str] = mapped_column(String(128), default="application/octet-stream")
    # sha256 hex of the uploaded bytes
    content_hash: Mapped[str] = mapped_column(String(64))
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    storage_path: Mapped[str] = mapped_column(String(512), default="")

    lifecycle: Mapped[AssetLifecycle] = mapped_column(
        Enum(AssetLifecycle, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        default=AssetLifecycle.ACTIVE,
    )
    lifecycle_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)

    uploaded_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)
    last_viewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    # lazy="raise": relations load only through the expansion resolver's options
    owner: Mapped[User | None] = relationship(User, lazy="raise")
    video_metadata: Mapped["VideoMetadata | None"] = relationship(
        back_populates="asset", uselist=False, lazy="raise", passive_deletes=True,
    )

class VideoMetadata(Base, TimestampedMixin):
    """Technical metadata, 1:0..1 with its asset; only video uploads carry one."""
    __tablename__ = "video_metadata"

    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("media_assets.id", ondelete="CASCADE"), unique=True)
    duration_seconds: Mapped[int] = mapped_column(Integer)
    width: Mapped[int] = mapped_column(Integer)
    height: Mapped[int] = mapped_column(Integer)
    frame_rate: Mapped[float] = mapped_column(Numeric(7, 3, asdecimal=False))
    codec: Mapped[str | None] = mapped_column(String(32), nullable=True)  # h264, hevc, ...
    bitrate_kbps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    audio_codec: Mapped[str | None] = mapped_column(String(32), nullable=True)  # aac, mp3, ...

    asset: Mapped[MediaAsset] = relationship(back_populates="video_metadata", lazy="raise")

class AssetView(Base):
    """One view of an asset. Append-only; high volume relative to assets."""
    __tablename__ = "asset_views"
    __table_args__ = (
        Index("ix_asset_views_asset_id_viewed_at", "asset_id", "viewed_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("media_assets.id", ondelete="CASCADE"))
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )  # null for anonymous views
    viewed_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)

@event.listens_for(MediaAsset, "before_update")
def _reject_counter_writes(mapper, connection, target: MediaAsset):
    state = inspect(target)
    for name in COUNTER_FIELDS:
        if state.attrs[name].history.has_changes():
            raise ValidationError(f"'{name}' is maintained by the view counter and cannot be updated directly", field=name)
