import logging
import re
import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import select, delete, func, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from mediahub.core.errors import (
    ConflictError, DuplicateContentError, RecordNotFound, StorageError, ValidationError,
)
from mediahub.core.paging import PagedResult
from mediahub.modules.assets.counters import ViewCounter
from mediahub.modules.assets.expansion import ExpandOption, resolve_loader_options
from mediahub.modules.assets.models import MediaAsset, VideoMetadata, AssetView, AssetLifecycle, COUNTER_FIELDS
from mediahub.modules.assets.query import AssetQuery, compile_filters, compile_ordering

log = logging.getLogger(__name__)

CONTENT_HASH_RE = re.compile(r"^[0-9a-f]{64}$")

# Columns the general update path may touch. Counter fields, identity and
# lifecycle have their own code paths.
UPDATABLE_FIELDS = frozenset({"title", "description", "tags", "is_public", "file_name", "mime_type", "user_id"})

def normalize_content_hash(value: str) -> str:
    h = (value or "").strip().lower()
    if not CONTENT_HASH_RE.match(h):
        raise ValidationError("content_hash must be a 64-character hex SHA-256 digest", field="content_hash")
    return h

class MediaAssetRepository:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.views = ViewCounter(session)

    async def find_by_id(self, asset_id: uuid.UUID, expand: Iterable[ExpandOption] = (), *, include_deleted: bool = False) -> MediaAsset | None:
        q = (
            select(MediaAsset)
            .where(MediaAsset.id == asset_id)
            .options(*resolve_loader_options(expand, MediaAsset))
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            q = q.where(MediaAsset.lifecycle != AssetLifecycle.DELETED)
        try:
            res = await self.session.execute(q)
        except SQLAlchemyError as e:
            raise StorageError("Failed to load media asset", details={"asset_id": str(asset_id)}) from e
        return res.scalar_one_or_none()

    async def find_by_filter(self, query: AssetQuery) -> PagedResult[MediaAsset]:
        """Filter, sort, window and expand in a single statement.

        The count subquery is outer-joined to the windowed rows, so the total
        and the page come from one snapshot and a page past the end still
        yields one row carrying the total (with a NULL asset).
        """
        filtered = select(MediaAsset).where(*compile_filters(query, MediaAsset))
        window = (
            filtered.order_by(*compile_ordering(query, MediaAsset))
            .offset(query.offset)
            .limit(query.limit)
            .subquery("page")
        )
        totals = (
            select(func.count().label("total_count"))
            .select_from(filtered.subquery("matched"))
            .subquery("totals")
        )
        page_asset = aliased(MediaAsset, window)
        stmt = (
            select(totals.c.total_count, page_asset)
            .select_from(totals)
            .outerjoin(window, true())
            .options(*resolve_loader_options(query.expand, page_asset))
            .order_by(*compile_ordering(query, page_asset))
            .execution_options(populate_existing=True)
        )
        try:
            rows = (await self.session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise StorageError("Failed to query media assets") from e
        total = rows[0].total_count if rows else 0
        items = [r[1] for r in rows if r[1] is not None]
        return PagedResult(items, total, query.page, query.page_size)

    async def find_by_content_hash(self, content_hash: str) -> MediaAsset | None:
        q = select(MediaAsset).where(
            MediaAsset.content_hash == content_hash,
            MediaAsset.lifecycle != AssetLifecycle.DELETED,
        )
        try:
            res = await self.session.execute(q)
        except SQLAlchemyError as e:
            raise StorageError("Failed to look up content hash") from e
        return res.scalar_one_or_none()

    async def insert(self, **data) -> MediaAsset:
        for name in COUNTER_FIELDS:
            if name in data:
                raise ValidationError(f"'{name}' cannot be set on insert", field=name)
        content_hash = normalize_content_hash(data.pop("content_hash", ""))

        # Friendly pre-check; the unique index below is the real guarantee.
        existing = await self.find_by_content_hash(content_hash)
        if existing is not None:
            raise DuplicateContentError(existing.id, content_hash)

        obj = MediaAsset(content_hash=content_hash, **data)
        try:
            async with self.session.begin_nested():
                self.session.add(obj)
                await self.session.flush()
        except IntegrityError as e:
            holder = await self.find_by_content_hash(content_hash)
            if holder is not None:
                log.info("Concurrent insert lost fingerprint race for %s to asset %s", content_hash, holder.id)
                raise DuplicateContentError(holder.id, content_hash) from e
            raise StorageError("Failed to insert media asset") from e
        except SQLAlchemyError as e:
            raise StorageError("Failed to insert media asset") from e
        return obj

    async def record_occurrence(self, asset_id: uuid.UUID, user_id: uuid.UUID | None = None, viewed_at: datetime | None = None) -> AssetView:
        """Append one view and bump the cached counter in the same transaction.

        Raises ``RecordNotFound`` for a missing or deleted asset.
        """
        return await self.views.append(asset_id, user_id=user_id, viewed_at=viewed_at)

    async def update_fields(self, asset_id: uuid.UUID, **data) -> MediaAsset | None:
        refused = sorted(set(data) - UPDATABLE_FIELDS)
        if refused:
            raise ValidationError(
                f"Field(s) not updatable: {', '.join(refused)}",
                field=refused[0],
                details={"allowed": sorted(UPDATABLE_FIELDS)},
            )
        obj = await self.find_by_id(asset_id)
        if not obj:
            return None
        for k, v in data.items():
            setattr(obj, k, v)
        await self.flush()
        return obj

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise StorageError("Failed to write media asset") from e

    async def hard_delete(self, asset_id: uuid.UUID) -> bool:
        # video metadata and views go with it via ON DELETE CASCADE
        try:
            res = await self.session.execute(
                delete(MediaAsset)
                .where(MediaAsset.id == asset_id)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise StorageError("Failed to delete media asset", details={"asset_id": str(asset_id)}) from e
        return res.rowcount == 1

    async def attach_video_metadata(self, asset_id: uuid.UUID, **data) -> VideoMetadata:
        if await self.find_by_id(asset_id) is None:
            raise RecordNotFound(asset_id)
        obj = VideoMetadata(asset_id=asset_id, **data)
        try:
            async with self.session.begin_nested():
                self.session.add(obj)
                await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Asset {asset_id} already has video metadata", details={"asset_id": str(asset_id)}
            ) from e
        except SQLAlchemyError as e:
            raise StorageError("Failed to store video metadata") from e
        return obj
