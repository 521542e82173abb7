import hashlib
import uuid

import httpx
import pytest

from mediahub.core.db import get_session
from mediahub.main import app

BASE = "/api/v1/media-assets"


@pytest.fixture
async def client(anyio_backend, session_factory):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def _body(**overrides) -> dict:
    body = {
        "file_name": "intro.mp4",
        "title": "Intro",
        "file_size_bytes": 2048,
        "mime_type": "video/mp4",
        "content_hash": hashlib.sha256(uuid.uuid4().bytes).hexdigest(),
    }
    body.update(overrides)
    return body


@pytest.mark.anyio
async def test_health(client):
    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_create_and_fetch(client):
    r = await client.post(BASE, json=_body(title="Keynote"))
    assert r.status_code == 201, r.text
    created = r.json()
    assert created["view_count"] == 0
    assert created["lifecycle"] == "active"
    assert created["owner"] is None

    r = await client.get(f"{BASE}/{created['id']}")
    assert r.status_code == 200
    assert r.json()["title"] == "Keynote"


@pytest.mark.anyio
async def test_duplicate_content_is_409(client):
    body = _body()
    first = (await client.post(BASE, json=body)).json()
    r = await client.post(BASE, json=_body(content_hash=body["content_hash"], title="Again"))
    assert r.status_code == 409
    assert r.json()["code"] == "duplicate_content"
    assert r.json()["details"]["existing_id"] == first["id"]


@pytest.mark.anyio
async def test_bad_hash_is_422(client):
    r = await client.post(BASE, json=_body(content_hash="xyz"))
    assert r.status_code == 422


@pytest.mark.anyio
async def test_list_paging(client):
    for i in range(3):
        await client.post(BASE, json=_body(title=f"t{i}"))

    r = await client.get(BASE, params={"page_size": 2, "sort_by": "title", "sort_descending": "false"})
    assert r.status_code == 200
    page = r.json()
    assert [a["title"] for a in page["items"]] == ["t0", "t1"]
    assert page["total_count"] == 3
    assert page["total_pages"] == 2
    assert page["is_first_page"] and not page["is_last_page"]

    r = await client.get(BASE, params={"page": 9, "page_size": 2})
    assert r.json()["items"] == []
    assert r.json()["total_count"] == 3


@pytest.mark.anyio
@pytest.mark.parametrize(
    "params,field",
    [({"page": 0}, "page"), ({"page_size": 0}, "page_size"), ({"sort_by": "rating"}, "sort_by")],
)
async def test_invalid_query_is_422(client, params, field):
    r = await client.get(BASE, params=params)
    assert r.status_code == 422
    assert r.json()["details"]["field"] == field


@pytest.mark.anyio
async def test_unknown_expand_lists_allowed_values(client):
    created = (await client.post(BASE, json=_body())).json()
    for url in (BASE, f"{BASE}/{created['id']}"):
        r = await client.get(url, params={"expand": "owner,comments"})
        assert r.status_code == 422
        assert r.json()["code"] == "invalid_specification"
        assert r.json()["details"]["allowed"] == ["owner", "video_metadata"]


@pytest.mark.anyio
async def test_expand_video_metadata(client):
    created = (await client.post(BASE, json=_body())).json()
    r = await client.post(
        f"{BASE}/{created['id']}/video-metadata",
        json={"duration_seconds": 90, "width": 1920, "height": 1080, "frame_rate": 24},
    )
    assert r.status_code == 201

    plain = (await client.get(f"{BASE}/{created['id']}")).json()
    assert plain["video_metadata"] is None
    full = (await client.get(f"{BASE}/{created['id']}", params={"expand": "videoMetadata"})).json()
    assert full["video_metadata"]["height"] == 1080


@pytest.mark.anyio
async def test_missing_asset_is_404(client):
    assert (await client.get(f"{BASE}/{uuid.uuid4()}")).status_code == 404
    assert (await client.post(f"{BASE}/{uuid.uuid4()}/views")).status_code == 404


@pytest.mark.anyio
async def test_views_update_counter(client):
    created = (await client.post(BASE, json=_body())).json()
    r = await client.post(f"{BASE}/{created['id']}/views", json={})
    assert r.status_code == 202
    view = r.json()
    await client.post(f"{BASE}/{created['id']}/views")

    assert (await client.get(f"{BASE}/{created['id']}")).json()["view_count"] == 2

    assert (await client.delete(f"{BASE}/views/{view['id']}")).status_code == 204
    assert (await client.delete(f"{BASE}/views/{view['id']}")).status_code == 404
    got = (await client.get(f"{BASE}/{created['id']}")).json()
    assert got["view_count"] == 1
    assert got["last_viewed_at"] is not None

    r = await client.post(f"{BASE}/{created['id']}/view-count/reconcile")
    assert r.json() == {"asset_id": created["id"], "view_count": 1}


@pytest.mark.anyio
async def test_lifecycle_actions(client):
    created = (await client.post(BASE, json=_body())).json()
    r = await client.post(f"{BASE}/{created['id']}/lifecycle/archive")
    assert r.status_code == 200
    assert r.json()["lifecycle"] == "archived"
    assert r.json()["is_public"] is False

    r = await client.post(f"{BASE}/{created['id']}/lifecycle/delete")
    assert r.status_code == 422
    assert r.json()["code"] == "invalid_transition"

    assert (await client.post(f"{BASE}/{created['id']}/lifecycle/explode")).status_code == 404

    assert (await client.delete(f"{BASE}/{created['id']}")).status_code == 422
    await client.post(f"{BASE}/{created['id']}/lifecycle/mark-for-deletion")
    assert (await client.delete(f"{BASE}/{created['id']}")).status_code == 204
    assert (await client.get(f"{BASE}/{created['id']}")).status_code == 404


@pytest.mark.anyio
async def test_upload(client):
    files = {"file": ("trailer.webm", b"webm-bytes", "video/webm")}
    r = await client.post(f"{BASE}/upload", files=files, data={"title": "Trailer"})
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["title"] == "Trailer"
    assert body["mime_type"] == "video/webm"
    assert body["content_hash"] == hashlib.sha256(b"webm-bytes").hexdigest()

    r = await client.post(f"{BASE}/upload", files=files)
    assert r.status_code == 409
