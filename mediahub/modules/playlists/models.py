import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship, column_property
from sqlalchemy import String, Text, Boolean, Integer, ForeignKey, Index, UniqueConstraint, select, func
from mediahub.core.base import Base, TimestampedMixin, UTCDateTime, utcnow
from mediahub.modules.assets.models import MediaAsset, AssetLifecycle
from mediahub.modules.users.models import User

class Playlist(Base, TimestampedMixin):
    __tablename__ = "playlists"
    __table_args__ = (
        Index("ix_playlists_user_id_is_public", "user_id", "is_public"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)

    owner: Mapped[User] = relationship(User, lazy="raise")
    items: Mapped[list["PlaylistItem"]] = relationship(
        back_populates="playlist", lazy="raise", passive_deletes=True,
        order_by=lambda: [PlaylistItem.added_at, PlaylistItem.id],
    )

class PlaylistItem(Base):
    """One asset in one playlist; an asset appears at most once per playlist."""
    __tablename__ = "playlist_items"
    __table_args__ = (
        UniqueConstraint("playlist_id", "asset_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    playlist_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("playlists.id", ondelete="CASCADE"))
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("media_assets.id", ondelete="CASCADE"), index=True)
    added_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    playlist: Mapped[Playlist] = relationship(back_populates="items", lazy="raise")
    asset: Mapped[MediaAsset] = relationship(MediaAsset, lazy="raise")

# Deleted assets stay referenced until purged but are not counted.
Playlist.item_count = column_property(
    select(func.count(PlaylistItem.id))
    .join(MediaAsset, MediaAsset.id == PlaylistItem.asset_id)
    .where(
        PlaylistItem.playlist_id == Playlist.id,
        MediaAsset.lifecycle != AssetLifecycle.DELETED,
    )
    .correlate_except(PlaylistItem, MediaAsset)
    .scalar_subquery()
)
