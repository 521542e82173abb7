import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Text, JSON, select, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediahub.core.base import Base, TimestampedMixin, UTCDateTime
from mediahub.platform.ports.event_bus import EventBusPort
from mediahub.platform.provider_registry import registry

log = logging.getLogger("event.outbox")

TOPIC = "mediahub.events"

class EventOutbox(Base, TimestampedMixin):
    __tablename__ = "event_outbox"

    event_type: Mapped[str] = mapped_column(String(64))
    subject_type: Mapped[str] = mapped_column(String(32))
    subject_id: Mapped[str] = mapped_column(String(64))
    payload: Mapped[dict] = mapped_column(JSON)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime())

    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending | processing | sent
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(UTCDateTime())
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

class OutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def enqueue(self, *, event_type: str, subject_type: str, subject_id: str, payload: dict, occurred_at: datetime | None = None) -> EventOutbox:
        now = datetime.now(timezone.utc)
        obj = EventOutbox(
            event_type=event_type,
            subject_type=subject_type,
            subject_id=str(subject_id),
            payload=payload,
            occurred_at=occurred_at or now,
            status="pending",
            attempts=0,
            next_attempt_at=now,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def claim_batch(self, limit: int = 50) -> list[EventOutbox]:
        # SELECT ... FOR UPDATE SKIP LOCKED (no-op on sqlite)
        q = (
            select(EventOutbox)
            .where(
                and_(
                    EventOutbox.status == "pending",
                    EventOutbox.next_attempt_at <= datetime.now(timezone.utc),
                )
            )
            .order_by(EventOutbox.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        res = await self.session.execute(q)
        rows = list(res.scalars().all())
        for r in rows:
            r.status = "processing"
        await self.session.flush()
        return rows

    async def mark_sent(self, obj: EventOutbox):
        obj.status = "sent"
        obj.last_error = None
        await self.session.flush()

    async def mark_failed(self, obj: EventOutbox, error: str):
        obj.status = "pending"  # retry
        obj.attempts = (obj.attempts or 0) + 1
        backoff = min(60, 2 ** min(obj.attempts, 6))  # 2,4,8,16,32,60s
        obj.next_attempt_at = datetime.now(timezone.utc) + timedelta(seconds=backoff)
        obj.last_error = error[:2000]
        await self.session.flush()

class OutboxService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = OutboxRepository(session)

    async def enqueue(self, event_type: str, subject_type: str, subject_id, payload: dict, occurred_at: datetime | None = None) -> EventOutbox:
        return await self.repo.enqueue(event_type=event_type, subject_type=subject_type, subject_id=str(subject_id), payload=payload, occurred_at=occurred_at)

# ---- Background relay ----

async def relay_once(session: AsyncSession, bus: EventBusPort, limit: int = 50) -> int:
    """Publish one claimed batch; returns how many events were sent."""
    repo = OutboxRepository(session)
    batch = await repo.claim_batch(limit=limit)
    sent = 0
    for ev in batch:
        try:
            await bus.publish(topic=TOPIC, key=ev.subject_id or "-", value={
                "event_type": ev.event_type,
                "subject": {"type": ev.subject_type, "id": ev.subject_id},
                "payload": ev.payload,
                "occurred_at": ev.occurred_at.isoformat(),
                "outbox_id": str(ev.id),
            })
            await repo.mark_sent(ev)
            sent += 1
        except Exception as ex:  # noqa: BLE001 - any publish failure is retried
            log.exception("Publish failed for outbox event %s", ev.id)
            await repo.mark_failed(ev, error=str(ex))
    await session.commit()
    return sent

async def run_outbox_relay(session_factory: async_sessionmaker[AsyncSession], poll_interval_seconds: float = 1.0):
    bus = registry.event_bus()
    log.info("Outbox relay started with bus=%s", bus.__class__.__name__)
    try:
        while True:
            async with session_factory() as session:
                try:
                    sent = await relay_once(session, bus)
                except Exception:
                    log.exception("Outbox relay iteration failed")
                    await session.rollback()
                    sent = 0
            await asyncio.sleep(0 if sent else poll_interval_seconds)
    except asyncio.CancelledError:
        log.info("Outbox relay cancelled; shutting down")
        raise
