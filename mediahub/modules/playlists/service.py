from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from mediahub.core.db import unit_of_work
from mediahub.core.errors import PermissionDenied, RecordNotFound
from mediahub.core.paging import PagedResult
from mediahub.modules.events.outbox import OutboxService
from mediahub.modules.playlists.models import Playlist, PlaylistItem
from mediahub.modules.playlists.query import PlaylistExpand, PlaylistQuery
from mediahub.modules.playlists.repository import PlaylistRepository
from mediahub.modules.playlists.schemas import PlaylistCreate, PlaylistUpdate

log = logging.getLogger(__name__)

class PlaylistService:
    """Playlist reads and owner-only writes.

    Writes take the acting user's id; anyone but the playlist's owner gets
    ``PermissionDenied``. Each write is its own unit of work.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = PlaylistRepository(session)
        self.outbox = OutboxService(session)

    async def _owned(self, playlist_id: uuid.UUID, acting_user_id: uuid.UUID) -> Playlist:
        obj = await self.repo.find_by_id(playlist_id)
        if obj is None:
            raise RecordNotFound(playlist_id, kind="Playlist")
        if obj.user_id != acting_user_id:
            raise PermissionDenied(
                f"User {acting_user_id} does not own playlist {playlist_id}",
                details={"playlist_id": str(playlist_id)},
            )
        return obj

    # ---- reads ----

    async def get(self, playlist_id: uuid.UUID, expand: frozenset[PlaylistExpand] = frozenset()) -> Playlist | None:
        return await self.repo.find_by_id(playlist_id, expand)

    async def list(self, query: PlaylistQuery) -> PagedResult[Playlist]:
        return await self.repo.find_by_filter(query)

    # ---- writes ----

    async def create(self, payload: PlaylistCreate, acting_user_id: uuid.UUID) -> Playlist:
        async with unit_of_work(self.session):
            obj = await self.repo.insert(user_id=acting_user_id, **payload.model_dump())
            await self.outbox.enqueue("playlist.created", "playlist", obj.id, {"name": obj.name, "user_id": str(acting_user_id)})
        log.info("Created playlist %s for user %s", obj.id, acting_user_id)
        # reload so the derived item count is populated
        return await self.repo.find_by_id(obj.id)

    async def update(self, playlist_id: uuid.UUID, payload: PlaylistUpdate, acting_user_id: uuid.UUID) -> Playlist:
        async with unit_of_work(self.session):
            obj = await self._owned(playlist_id, acting_user_id)
            await self.repo.update_fields(obj, **payload.model_dump(exclude_unset=True))
        return await self.repo.find_by_id(playlist_id)

    async def delete(self, playlist_id: uuid.UUID, acting_user_id: uuid.UUID) -> bool:
        async with unit_of_work(self.session):
            await self._owned(playlist_id, acting_user_id)
            removed = await self.repo.delete(playlist_id)
            await self.outbox.enqueue("playlist.deleted", "playlist", playlist_id, {})
        return removed

    async def add_asset(self, playlist_id: uuid.UUID, asset_id: uuid.UUID, acting_user_id: uuid.UUID) -> PlaylistItem:
        async with unit_of_work(self.session):
            await self._owned(playlist_id, acting_user_id)
            item = await self.repo.add_asset(playlist_id, asset_id)
            await self.outbox.enqueue("playlist.asset_added", "playlist", playlist_id, {"asset_id": str(asset_id)})
        return item

    async def remove_asset(self, playlist_id: uuid.UUID, asset_id: uuid.UUID, acting_user_id: uuid.UUID) -> bool:
        async with unit_of_work(self.session):
            await self._owned(playlist_id, acting_user_id)
            removed = await self.repo.remove_asset(playlist_id, asset_id)
            if removed:
                await self.outbox.enqueue("playlist.asset_removed", "playlist", playlist_id, {"asset_id": str(asset_id)})
        return removed
