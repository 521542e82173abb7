import logging
import uuid
from typing import Iterable

from sqlalchemy import select, delete, func, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from mediahub.core.errors import ConflictError, RecordNotFound, StorageError, ValidationError
from mediahub.core.paging import PagedResult
from mediahub.modules.assets.models import MediaAsset, AssetLifecycle
from mediahub.modules.playlists.models import Playlist, PlaylistItem
from mediahub.modules.playlists.query import PlaylistExpand, PlaylistQuery, compile_filters, compile_ordering, resolve_loader_options
from mediahub.modules.users.models import User

log = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "description", "is_public"})

class PlaylistRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, playlist_id: uuid.UUID, expand: Iterable[PlaylistExpand] = ()) -> Playlist | None:
        q = (
            select(Playlist)
            .where(Playlist.id == playlist_id)
            .options(*resolve_loader_options(expand, Playlist))
            .execution_options(populate_existing=True)
        )
        try:
            res = await self.session.execute(q)
        except SQLAlchemyError as e:
            raise StorageError("Failed to load playlist", details={"playlist_id": str(playlist_id)}) from e
        return res.unique().scalar_one_or_none()

    async def find_by_filter(self, query: PlaylistQuery) -> PagedResult[Playlist]:
        """Same single-statement shape as the asset listing: total and page share one snapshot."""
        filtered = select(Playlist).where(*compile_filters(query, Playlist))
        window = (
            filtered.order_by(*compile_ordering(query, Playlist))
            .offset(query.offset)
            .limit(query.limit)
            .subquery("page")
        )
        totals = (
            select(func.count().label("total_count"))
            .select_from(filtered.subquery("matched"))
            .subquery("totals")
        )
        page_playlist = aliased(Playlist, window)
        stmt = (
            select(totals.c.total_count, page_playlist)
            .select_from(totals)
            .outerjoin(window, true())
            .options(*resolve_loader_options(query.expand, page_playlist))
            .order_by(*compile_ordering(query, page_playlist))
            .execution_options(populate_existing=True)
        )
        try:
            rows = (await self.session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise StorageError("Failed to query playlists") from e
        total = rows[0].total_count if rows else 0
        items = [r[1] for r in rows if r[1] is not None]
        return PagedResult(items, total, query.page, query.page_size)

    async def insert(self, **data) -> Playlist:
        owner = await self.session.execute(select(User.id).where(User.id == data.get("user_id")))
        if owner.scalar_one_or_none() is None:
            raise RecordNotFound(data.get("user_id"), kind="User")
        obj = Playlist(**data)
        try:
            self.session.add(obj)
            await self.session.flush()
        except SQLAlchemyError as e:
            raise StorageError("Failed to insert playlist") from e
        return obj

    async def update_fields(self, playlist: Playlist, **data) -> Playlist:
        refused = sorted(set(data) - UPDATABLE_FIELDS)
        if refused:
            raise ValidationError(
                f"Field(s) not updatable: {', '.join(refused)}",
                field=refused[0],
                details={"allowed": sorted(UPDATABLE_FIELDS)},
            )
        for k, v in data.items():
            setattr(playlist, k, v)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise StorageError("Failed to write playlist") from e
        return playlist

    async def delete(self, playlist_id: uuid.UUID) -> bool:
        # items go with it via ON DELETE CASCADE
        try:
            res = await self.session.execute(
                delete(Playlist)
                .where(Playlist.id == playlist_id)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise StorageError("Failed to delete playlist", details={"playlist_id": str(playlist_id)}) from e
        return res.rowcount == 1

    async def add_asset(self, playlist_id: uuid.UUID, asset_id: uuid.UUID) -> PlaylistItem:
        """Append a live asset; adding one that is already present raises ``ConflictError``."""
        live = await self.session.execute(
            select(MediaAsset.id).where(MediaAsset.id == asset_id, MediaAsset.lifecycle != AssetLifecycle.DELETED)
        )
        if live.scalar_one_or_none() is None:
            raise RecordNotFound(asset_id)
        item = PlaylistItem(playlist_id=playlist_id, asset_id=asset_id)
        try:
            async with self.session.begin_nested():
                self.session.add(item)
                await self.session.flush()
        except IntegrityError as e:
            log.info("Asset %s already in playlist %s", asset_id, playlist_id)
            raise ConflictError(
                f"Asset {asset_id} is already in playlist {playlist_id}",
                details={"playlist_id": str(playlist_id), "asset_id": str(asset_id)},
            ) from e
        except SQLAlchemyError as e:
            raise StorageError("Failed to add asset to playlist") from e
        return item

    async def remove_asset(self, playlist_id: uuid.UUID, asset_id: uuid.UUID) -> bool:
        try:
            res = await self.session.execute(
                delete(PlaylistItem)
                .where(PlaylistItem.playlist_id == playlist_id, PlaylistItem.asset_id == asset_id)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise StorageError("Failed to remove asset from playlist") from e
        return res.rowcount == 1
