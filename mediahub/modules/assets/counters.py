"""Cached view counter on ``MediaAsset``.

Every view append or removal adjusts ``view_count`` with a single atomic
UPDATE in the same transaction as the event row, so concurrent viewers never
lose increments and reads never aggregate the views table.
"""
import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update, delete, func, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mediahub.core.base import as_utc, utcnow
from mediahub.core.errors import ConsistencyViolation, RecordNotFound, StorageError
from mediahub.modules.assets.models import MediaAsset, AssetView, AssetLifecycle
from mediahub.modules.events.outbox import OutboxService

log = logging.getLogger("assets.counters")

class ViewCounter:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.outbox = OutboxService(session)

    async def _asset_is_live(self, asset_id: uuid.UUID) -> bool:
        q = select(MediaAsset.id).where(
            MediaAsset.id == asset_id,
            MediaAsset.lifecycle != AssetLifecycle.DELETED,
        )
        return (await self.session.execute(q)).scalar_one_or_none() is not None

    async def append(self, asset_id: uuid.UUID, user_id: uuid.UUID | None = None, viewed_at: datetime | None = None) -> AssetView:
        """Record one view. Each call is a new occurrence; callers dedupe retries."""
        try:
            if not await self._asset_is_live(asset_id):
                raise RecordNotFound(asset_id)
            ts = as_utc(viewed_at) if viewed_at else utcnow()
            view = AssetView(asset_id=asset_id, user_id=user_id, viewed_at=ts)
            self.session.add(view)
            await self.session.flush()
            res = await self.session.execute(
                update(MediaAsset)
                .where(MediaAsset.id == asset_id)
                .values(
                    view_count=MediaAsset.view_count + 1,
                    last_viewed_at=case(
                        (MediaAsset.last_viewed_at.is_(None), ts),
                        (MediaAsset.last_viewed_at < ts, ts),
                        else_=MediaAsset.last_viewed_at,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise StorageError("Failed to record view", details={"asset_id": str(asset_id)}) from e
        if res.rowcount != 1:
            # asset vanished between the check and the update (hard delete race)
            await self._flag(asset_id, "increment matched no asset row")
        return view

    async def remove(self, view_id: int) -> bool:
        """Delete one view and decrement its asset's counter, floored at zero."""
        try:
            asset_id = (
                await self.session.execute(select(AssetView.asset_id).where(AssetView.id == view_id))
            ).scalar_one_or_none()
            if asset_id is None:
                return False
            await self.session.execute(delete(AssetView).where(AssetView.id == view_id))
            res = await self.session.execute(
                update(MediaAsset)
                .where(MediaAsset.id == asset_id, MediaAsset.view_count > 0)
                .values(view_count=MediaAsset.view_count - 1)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise StorageError("Failed to remove view", details={"view_id": view_id}) from e
        if res.rowcount != 1:
            await self._flag(asset_id, "decrement would drive view_count below zero")
        return True

    async def _flag(self, asset_id: uuid.UUID, reason: str) -> None:
        # The view write itself is valid, so the transaction carries on; the
        # drift is queued for reconcile() instead.
        err = ConsistencyViolation(
            f"View counter drift on asset {asset_id}: {reason}",
            details={"asset_id": str(asset_id), "reason": reason},
        )
        log.warning("%s", err.message, extra={"asset_id": str(asset_id)})
        await self.outbox.enqueue(
            "media_asset.counter_drift", "media_asset", asset_id, {"reason": reason},
        )

    async def reconcile(self, asset_id: uuid.UUID) -> int:
        """Reset ``view_count`` from a server-side COUNT of live view rows."""
        counted = (
            select(func.count(AssetView.id))
            .where(AssetView.asset_id == asset_id)
            .scalar_subquery()
        )
        try:
            res = await self.session.execute(
                update(MediaAsset)
                .where(MediaAsset.id == asset_id)
                .values(view_count=counted)
                .returning(MediaAsset.view_count)
                .execution_options(synchronize_session=False)
            )
            value = res.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("Failed to reconcile view count", details={"asset_id": str(asset_id)}) from e
        if value is None:
            raise RecordNotFound(asset_id)
        log.info("Reconciled view_count for asset %s to %s", asset_id, value)
        return value

    async def count_between(self, asset_id: uuid.UUID, start: datetime, end: datetime) -> int:
        q = select(func.count(AssetView.id)).where(
            AssetView.asset_id == asset_id,
            AssetView.viewed_at >= start,
            AssetView.viewed_at <= end,
        )
        return (await self.session.execute(q)).scalar_one()

    async def top_viewed(self, start: datetime, end: datetime, limit: int = 10) -> list[tuple[uuid.UUID, int]]:
        n = func.count(AssetView.id).label("n")
        q = (
            select(AssetView.asset_id, n)
            .where(AssetView.viewed_at >= start, AssetView.viewed_at <= end)
            .group_by(AssetView.asset_id)
            .order_by(n.desc(), AssetView.asset_id)
            .limit(limit)
        )
        rows = (await self.session.execute(q)).all()
        return [(r.asset_id, r.n) for r in rows]
