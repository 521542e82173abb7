from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from mediahub.core.base import utcnow
from mediahub.core.db import unit_of_work
from mediahub.core.errors import RecordNotFound, ValidationError
from mediahub.core.paging import PagedResult
from mediahub.modules.assets import lifecycle
from mediahub.modules.assets.expansion import ExpandOption
from mediahub.modules.assets.models import MediaAsset, AssetView, VideoMetadata, AssetLifecycle
from mediahub.modules.assets.query import AssetQuery
from mediahub.modules.assets.repository import MediaAssetRepository
from mediahub.modules.assets.schemas import AssetCreate, AssetUpdate, VideoMetadataCreate
from mediahub.modules.events.outbox import OutboxService
from mediahub.platform.provider_registry import registry

log = logging.getLogger(__name__)

PURGEABLE = {AssetLifecycle.PENDING_DELETE, AssetLifecycle.DELETED}

def _asset_event(asset: MediaAsset) -> dict:
    return {
        "title": asset.title,
        "content_hash": asset.content_hash,
        "file_size_bytes": asset.file_size_bytes,
        "lifecycle": asset.lifecycle.value if asset.lifecycle else None,
        "user_id": str(asset.user_id) if asset.user_id else None,
    }

class MediaAssetService:
    """Unit-of-work boundary around the asset repository.

    Every public method either commits all of its writes or rolls all of
    them back, including when the awaiting task is cancelled.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = MediaAssetRepository(session)
        self.views = self.repo.views
        self.outbox = OutboxService(session)

    def _unit_of_work(self):
        return unit_of_work(self.session)

    # ---- reads ----

    async def get(self, asset_id: uuid.UUID, expand: frozenset[ExpandOption] = frozenset()) -> MediaAsset | None:
        return await self.repo.find_by_id(asset_id, expand)

    async def list(self, query: AssetQuery) -> PagedResult[MediaAsset]:
        return await self.repo.find_by_filter(query)

    async def get_by_content_hash(self, content_hash: str) -> MediaAsset | None:
        return await self.repo.find_by_content_hash(content_hash.strip().lower())

    # ---- writes ----

    async def create(self, payload: AssetCreate) -> MediaAsset:
        data = payload.model_dump(exclude_unset=True)
        if data.get("uploaded_at") is None:
            data.pop("uploaded_at", None)
        if not data.get("original_file_name"):
            data["original_file_name"] = payload.file_name
        async with self._unit_of_work():
            obj = await self.repo.insert(**data)
            await self.outbox.enqueue("media_asset.created", "media_asset", obj.id, _asset_event(obj))
        log.info("Created media asset %s (%s bytes)", obj.id, obj.file_size_bytes)
        return obj

    async def upload(self, *, data: bytes, file_name: str, content_type: str | None, title: str | None = None,
                     user_id: uuid.UUID | None = None, tags: list[str] | None = None, prefix: str = "uploads/") -> MediaAsset:
        size = len(data)
        sha = hashlib.sha256(data).hexdigest()

        ext = ""
        if file_name and "." in file_name:
            ext = file_name.rsplit(".", 1)[1].lower()
        key = f"{prefix}{sha[:2]}/{sha}{('.' + ext) if ext else ''}"
        mime = content_type or "application/octet-stream"

        async with self._unit_of_work():
            obj = await self.repo.insert(
                file_name=f"{sha}{('.' + ext) if ext else ''}",
                original_file_name=file_name or key,
                title=title or (file_name.rsplit(".", 1)[0] if file_name else sha[:12]),
                file_size_bytes=size,
                mime_type=mime,
                content_hash=sha,
                storage_path=key,
                user_id=user_id,
                tags=tags or [],
            )
            await self.outbox.enqueue("media_asset.created", "media_asset", obj.id, _asset_event(obj))

        # blob write happens only after the record is durable
        storage = registry.object_storage()
        await storage.put_bytes(key, data, content_type=mime)
        log.info("Stored %s bytes for asset %s at %s", size, obj.id, key)
        return obj

    async def update(self, asset_id: uuid.UUID, payload: AssetUpdate) -> MediaAsset | None:
        async with self._unit_of_work():
            obj = await self.repo.update_fields(asset_id, **payload.model_dump(exclude_unset=True))
        return obj

    # ---- views ----

    async def record_view(self, asset_id: uuid.UUID, user_id: uuid.UUID | None = None, viewed_at: datetime | None = None) -> AssetView:
        async with self._unit_of_work():
            view = await self.repo.record_occurrence(asset_id, user_id=user_id, viewed_at=viewed_at)
        return view

    async def remove_view(self, view_id: int) -> bool:
        async with self._unit_of_work():
            removed = await self.views.remove(view_id)
        return removed

    async def reconcile_view_count(self, asset_id: uuid.UUID) -> int:
        async with self._unit_of_work():
            value = await self.views.reconcile(asset_id)
        return value

    async def view_stats(self, asset_id: uuid.UUID, start: datetime, end: datetime) -> int:
        return await self.views.count_between(asset_id, start, end)

    async def top_viewed(self, start: datetime, end: datetime, limit: int = 10) -> list[tuple[uuid.UUID, int]]:
        return await self.views.top_viewed(start, end, limit)

    # ---- lifecycle ----

    async def transition(self, asset_id: uuid.UUID, action: str) -> MediaAsset:
        fn = lifecycle.TRANSITIONS.get(action)
        if fn is None:
            raise ValidationError(
                f"Unknown lifecycle action '{action}'", field="action",
                details={"allowed": sorted(lifecycle.TRANSITIONS)},
            )
        async with self._unit_of_work():
            # deleted assets are reachable here only to report the illegal move
            obj = await self.repo.find_by_id(asset_id, include_deleted=True)
            if obj is None:
                raise RecordNotFound(asset_id)
            before = obj.lifecycle
            changed = fn(obj)
            if changed:
                await self.repo.flush()
                await self.outbox.enqueue(
                    "media_asset.lifecycle_changed", "media_asset", obj.id,
                    {"from": before.value, "to": obj.lifecycle.value, "action": action},
                )
        if changed:
            log.info("Asset %s lifecycle %s -> %s", obj.id, before.value, obj.lifecycle.value)
        return obj

    async def archive(self, asset_id: uuid.UUID) -> MediaAsset:
        return await self.transition(asset_id, "archive")

    async def restore(self, asset_id: uuid.UUID) -> MediaAsset:
        return await self.transition(asset_id, "restore")

    async def mark_orphaned(self, asset_id: uuid.UUID) -> MediaAsset:
        return await self.transition(asset_id, "orphan")

    async def mark_for_deletion(self, asset_id: uuid.UUID) -> MediaAsset:
        return await self.transition(asset_id, "mark-for-deletion")

    async def mark_deleted(self, asset_id: uuid.UUID) -> MediaAsset:
        return await self.transition(asset_id, "delete")

    async def purge(self, asset_id: uuid.UUID) -> bool:
        """Physically remove an asset already retired by the lifecycle, plus its dependents and blob."""
        async with self._unit_of_work():
            obj = await self.repo.find_by_id(asset_id, include_deleted=True)
            if obj is None:
                raise RecordNotFound(asset_id)
            if obj.lifecycle not in PURGEABLE:
                raise ValidationError(
                    f"Asset must be pending_delete or deleted to purge (is {obj.lifecycle.value})",
                    field="lifecycle",
                    details={"current": obj.lifecycle.value, "allowed": sorted(s.value for s in PURGEABLE)},
                )
            key = obj.storage_path
            removed = await self.repo.hard_delete(asset_id)
            await self.outbox.enqueue(
                "media_asset.purged", "media_asset", asset_id,
                {"content_hash": obj.content_hash, "storage_path": key, "purged_at": utcnow().isoformat()},
            )
        if removed and key:
            await registry.object_storage().delete(key)
        return removed

    async def attach_video_metadata(self, asset_id: uuid.UUID, payload: VideoMetadataCreate) -> VideoMetadata:
        async with self._unit_of_work():
            obj = await self.repo.attach_video_metadata(asset_id, **payload.model_dump())
        return obj
