import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import DeclarativeBase, declared_attr, Mapped, mapped_column
from sqlalchemy import text, TIMESTAMP, MetaData
from sqlalchemy.types import TypeDecorator

# Deterministic constraint/index names so migrations don't churn
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

class UTCDateTime(TypeDecorator):
    """TIMESTAMP WITH TIME ZONE that always binds and returns UTC.

    SQLite has no zone-aware type and stores the wall-clock digits as text, so
    offsets must be folded into UTC before binding for comparisons and
    ordering to hold.
    """
    impl = TIMESTAMP
    cache_ok = True

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("timezone", True)
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        if isinstance(value, datetime):
            return as_utc(value)
        return value

    def process_result_value(self, value, dialect):
        if isinstance(value, datetime):
            return as_utc(value)
        return value

class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

class TimestampedMixin:
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, server_default=text("CURRENT_TIMESTAMP"), onupdate=utcnow
    )

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()
