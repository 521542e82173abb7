from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from .config import settings
from .base import Base
from .errors import StorageError

# execution option a session sets on its connection before a write transaction
WRITE_INTENT = "write_intent"

def build_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    eng = create_async_engine(url, pool_pre_ping=True, echo=settings.DB_ECHO if echo is None else echo)
    if eng.dialect.name == "sqlite":
        # pysqlite's implicit transaction handling breaks SAVEPOINT and never
        # enforces foreign keys; take over BEGIN ourselves.
        @event.listens_for(eng.sync_engine, "connect")
        def _sqlite_connect(dbapi_conn, _):
            dbapi_conn.isolation_level = None
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys = ON")
            # readers see a snapshot and never block the single writer
            cur.execute("PRAGMA journal_mode = WAL")
            cur.execute(f"PRAGMA busy_timeout = {settings.SQLITE_BUSY_TIMEOUT_MS}")
            cur.close()

        @event.listens_for(eng.sync_engine, "begin")
        def _sqlite_begin(conn):
            # Units of work that will write ask for IMMEDIATE so the write lock
            # is taken up front; a deferred reader upgrading mid-transaction can
            # fail with SQLITE_BUSY without waiting.
            if conn.get_execution_options().get(WRITE_INTENT):
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")
    return eng

def build_sessionmaker(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(eng, expire_on_commit=False, class_=AsyncSession)

engine = build_engine()
SessionLocal = build_sessionmaker(engine)

async def get_session():
    async with SessionLocal() as session:
        yield session

@asynccontextmanager
async def unit_of_work(session: AsyncSession):
    """Commit everything written inside the block, or roll all of it back.

    A block that opens the session's transaction marks it write-intent.
    """
    if not session.in_transaction():
        # SQLite opens this transaction with BEGIN IMMEDIATE
        await session.connection(execution_options={WRITE_INTENT: True})
    try:
        yield
        try:
            await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("Failed to commit") from e
    except BaseException:
        # BaseException so task cancellation also rolls back
        await session.rollback()
        raise

async def create_all(eng: AsyncEngine) -> None:
    # import for side effect: registers every mapped table on Base.metadata
    from mediahub.modules import registry  # noqa: F401
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def init_models():
    ## In dev-only "create_all" mode, build the schema; otherwise, migrations own it.
    if settings.DB_MANAGE == "create_all":
        await create_all(engine)
