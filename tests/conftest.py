import hashlib
import os
import uuid

# Settings are read at import time; point them at sqlite before anything loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-mediahub.db")
os.environ.setdefault("OUTBOX_RELAY_ENABLED", "false")
os.environ.setdefault("DB_MANAGE", "migrations")
os.environ.setdefault("EVENT_BUS_PROVIDER", "noop")

import pytest

from mediahub.core.db import build_engine, build_sessionmaker, create_all
from mediahub.modules.assets.schemas import AssetCreate
from mediahub.platform.adapters.bus_noop import NoopEventBus
from mediahub.platform.adapters.storage_local import LocalFilesystemStorage
from mediahub.platform.provider_registry import registry


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend, tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'mediahub.db'}", echo=False)
    await create_all(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def session(anyio_backend, session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def storage(tmp_path):
    return LocalFilesystemStorage(str(tmp_path / "blobs"))


@pytest.fixture
def bus():
    return NoopEventBus()


@pytest.fixture(autouse=True)
def providers(storage, bus):
    registry.override(object_storage=storage, event_bus=bus)
    yield
    registry.reset()


def fingerprint(seed: str | None = None) -> str:
    return hashlib.sha256((seed or uuid.uuid4().hex).encode()).hexdigest()


def asset_payload(**overrides) -> AssetCreate:
    data = {
        "file_name": "clip.mp4",
        "title": "Clip",
        "file_size_bytes": 1024,
        "mime_type": "video/mp4",
        "content_hash": fingerprint(),
    }
    data.update(overrides)
    return AssetCreate(**data)


@pytest.fixture
def make_payload():
    return asset_payload
