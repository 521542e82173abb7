import asyncio
import hashlib
import os
import uuid

import pytest
from sqlalchemy import func, select

from mediahub.core.errors import DuplicateContentError, InvalidTransition, RecordNotFound, ValidationError
from mediahub.modules.assets.expansion import ExpandOption
from mediahub.modules.assets.models import AssetLifecycle, MediaAsset
from mediahub.modules.assets.query import AssetQuery
from mediahub.modules.assets.schemas import AssetUpdate, VideoMetadataCreate
from mediahub.modules.assets.service import MediaAssetService
from mediahub.modules.events.outbox import EventOutbox


async def _events(session, event_type: str) -> list[EventOutbox]:
    q = select(EventOutbox).where(EventOutbox.event_type == event_type).order_by(EventOutbox.created_at)
    return list((await session.execute(q)).scalars().all())


@pytest.mark.anyio
async def test_create_enqueues_event(session, make_payload):
    obj = await MediaAssetService(session).create(make_payload(title="Launch"))
    assert obj.original_file_name == obj.file_name
    (ev,) = await _events(session, "media_asset.created")
    assert ev.subject_id == str(obj.id)
    assert ev.payload["title"] == "Launch"


@pytest.mark.anyio
async def test_lifecycle_change_is_persisted(session_factory, make_payload):
    async with session_factory() as s:
        obj = await MediaAssetService(s).create(make_payload())
        await MediaAssetService(s).archive(obj.id)

    async with session_factory() as s:
        got = await MediaAssetService(s).get(obj.id)
        assert got.lifecycle is AssetLifecycle.ARCHIVED
        assert got.is_public is False
        assert got.lifecycle_changed_at is not None
        (ev,) = await _events(s, "media_asset.lifecycle_changed")
        assert ev.payload == {"from": "active", "to": "archived", "action": "archive"}


@pytest.mark.anyio
async def test_repeated_archive_is_idempotent(session, make_payload):
    svc = MediaAssetService(session)
    obj = await svc.create(make_payload())
    await svc.archive(obj.id)
    again = await svc.archive(obj.id)
    assert again.lifecycle is AssetLifecycle.ARCHIVED
    assert len(await _events(session, "media_asset.lifecycle_changed")) == 1


@pytest.mark.anyio
async def test_illegal_transition_changes_nothing(session, make_payload):
    svc = MediaAssetService(session)
    asset_id = (await svc.create(make_payload())).id
    # a failed unit of work rolls back and expires loaded instances, so keep ids only
    with pytest.raises(InvalidTransition):
        await svc.mark_deleted(asset_id)
    assert (await svc.get(asset_id)).lifecycle is AssetLifecycle.ACTIVE

    with pytest.raises(ValidationError):
        await svc.transition(asset_id, "resurrect")
    with pytest.raises(RecordNotFound):
        await svc.archive(uuid.uuid4())


@pytest.mark.anyio
async def test_orphan_then_retire(session, make_payload):
    svc = MediaAssetService(session)
    asset_id = (await svc.create(make_payload())).id
    await svc.mark_orphaned(asset_id)
    with pytest.raises(InvalidTransition):
        await svc.restore(asset_id)
    await svc.mark_for_deletion(asset_id)
    done = await svc.mark_deleted(asset_id)
    assert done.lifecycle is AssetLifecycle.DELETED
    assert await svc.get(asset_id) is None


@pytest.mark.anyio
async def test_update(session, make_payload):
    svc = MediaAssetService(session)
    obj = await svc.create(make_payload(title="draft"))
    got = await svc.update(obj.id, AssetUpdate(title="final", tags=["a", "b"]))
    assert got.title == "final"
    assert got.tags == ["a", "b"]
    assert await svc.update(uuid.uuid4(), AssetUpdate(title="x")) is None


@pytest.mark.anyio
async def test_upload_stores_blob_after_commit(session, storage):
    data = b"\x00\x01fake-mp4-bytes"
    sha = hashlib.sha256(data).hexdigest()
    svc = MediaAssetService(session)

    obj = await svc.upload(data=data, file_name="Holiday.MP4", content_type="video/mp4")
    assert obj.content_hash == sha
    assert obj.file_size_bytes == len(data)
    assert obj.storage_path == f"uploads/{sha[:2]}/{sha}.mp4"
    assert obj.title == "Holiday"
    assert obj.original_file_name == "Holiday.MP4"
    with open(storage._path(obj.storage_path), "rb") as f:
        assert f.read() == data

    asset_id = obj.id
    with pytest.raises(DuplicateContentError) as exc:
        await svc.upload(data=data, file_name="copy.mp4", content_type="video/mp4")
    assert exc.value.existing_id == asset_id


@pytest.mark.anyio
async def test_purge_requires_retirement(session, make_payload, storage):
    svc = MediaAssetService(session)
    obj = await svc.upload(data=b"purge-me", file_name="p.bin", content_type=None)
    asset_id, key = obj.id, obj.storage_path
    path = storage._path(key)
    assert os.path.exists(path)

    with pytest.raises(ValidationError):
        await svc.purge(asset_id)

    await svc.mark_for_deletion(asset_id)
    assert await svc.purge(asset_id) is True
    assert not os.path.exists(path)
    assert await svc.get(asset_id) is None
    (ev,) = await _events(session, "media_asset.purged")
    assert ev.payload["storage_path"] == key

    with pytest.raises(RecordNotFound):
        await svc.purge(asset_id)


@pytest.mark.anyio
async def test_cancelled_create_rolls_back(session, make_payload, monkeypatch):
    svc = MediaAssetService(session)

    async def cancelled(*args, **kwargs):
        raise asyncio.CancelledError()

    monkeypatch.setattr(svc.outbox, "enqueue", cancelled)
    payload = make_payload()
    with pytest.raises(asyncio.CancelledError):
        await svc.create(payload)
    monkeypatch.undo()

    assert (await session.execute(select(func.count()).select_from(MediaAsset))).scalar_one() == 0
    # the fingerprint was never claimed
    assert (await svc.create(payload)).content_hash == payload.content_hash


@pytest.mark.anyio
async def test_attach_video_metadata(session, make_payload):
    svc = MediaAssetService(session)
    obj = await svc.create(make_payload())
    meta = await svc.attach_video_metadata(
        obj.id, VideoMetadataCreate(duration_seconds=12, width=1280, height=720, frame_rate=30, codec="h264"),
    )
    assert meta.asset_id == obj.id
    got = await svc.get(obj.id, frozenset({ExpandOption.VIDEO_METADATA}))
    assert got.video_metadata.codec == "h264"


@pytest.mark.anyio
async def test_open_read_transaction_does_not_block_writers(session_factory, make_payload):
    async with session_factory() as reader, session_factory() as writer:
        await MediaAssetService(reader).list(AssetQuery())
        assert reader.in_transaction()

        created_id = (await MediaAssetService(writer).create(make_payload(title="Written"))).id

        # the reader keeps its snapshot until it ends its transaction
        assert (await MediaAssetService(reader).list(AssetQuery())).total_count == 0
        await reader.rollback()
        assert (await MediaAssetService(reader).get(created_id)).title == "Written"


@pytest.mark.anyio
async def test_write_after_read_in_same_session(session, make_payload):
    svc = MediaAssetService(session)
    first_id = (await svc.create(make_payload())).id
    assert (await svc.get(first_id)) is not None
    assert session.in_transaction()
    await svc.update(first_id, AssetUpdate(title="Renamed"))
    assert (await svc.get(first_id)).title == "Renamed"
