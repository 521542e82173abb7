import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import sqlite

from mediahub.core.config import settings
from mediahub.core.errors import InvalidSpecification
from mediahub.modules.assets.expansion import ExpandOption
from mediahub.modules.assets.models import MediaAsset, AssetLifecycle
from mediahub.modules.assets.query import AssetQuery, AssetSortBy, compile_filters, compile_ordering


def _sql(clauses) -> list[str]:
    return [str(c.compile(dialect=sqlite.dialect())) for c in clauses]


def test_defaults():
    q = AssetQuery()
    assert q.sort_by is AssetSortBy.UPLOADED_AT
    assert q.sort_descending is True
    assert q.page == 1
    assert q.page_size == settings.DEFAULT_PAGE_SIZE
    assert q.expand == frozenset()
    assert (q.offset, q.limit) == (0, settings.DEFAULT_PAGE_SIZE)


def test_window_for_later_page():
    q = AssetQuery(page=3, page_size=25)
    assert q.offset == 50
    assert q.limit == 25


@pytest.mark.parametrize("raw", ["fileName", "file_name", "FILE-NAME", "FileName"])
def test_sort_key_is_normalized(raw):
    assert AssetQuery(sort_by=raw).sort_by is AssetSortBy.FILE_NAME


def test_unknown_sort_key_lists_allowed_values():
    with pytest.raises(InvalidSpecification) as exc:
        AssetQuery(sort_by="popularity")
    assert exc.value.field == "sort_by"
    assert "uploaded_at" in exc.value.details["allowed"]


@pytest.mark.parametrize("kwargs", [{"page": 0}, {"page": -2}, {"page_size": 0}, {"page_size": 10_000}])
def test_page_bounds(kwargs):
    with pytest.raises(InvalidSpecification):
        AssetQuery(**kwargs)


def test_type_errors_surface_as_invalid_specification():
    with pytest.raises(InvalidSpecification) as exc:
        AssetQuery(min_file_size_bytes="lots")
    assert exc.value.details["errors"][0]["field"] == "min_file_size_bytes"


def test_expand_accepts_string_and_aliases():
    q = AssetQuery(expand="User, videoMetadata")
    assert q.expand == frozenset({ExpandOption.OWNER, ExpandOption.VIDEO_METADATA})


def test_unknown_expand_is_rejected():
    with pytest.raises(InvalidSpecification) as exc:
        AssetQuery(expand="owner,comments")
    assert exc.value.details["invalid"] == ["comments"]
    assert exc.value.details["allowed"] == ["owner", "video_metadata"]


def test_upload_bounds_are_normalized_to_utc():
    q = AssetQuery(uploaded_after=datetime(2024, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2))))
    assert q.uploaded_after == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert q.uploaded_after.utcoffset() == timedelta(0)


def test_query_is_immutable():
    q = AssetQuery()
    with pytest.raises(Exception):
        q.page = 2


def test_empty_query_only_hides_deleted():
    sql = _sql(compile_filters(AssetQuery()))
    assert len(sql) == 1
    assert "lifecycle !=" in sql[0]


def test_include_deleted_drops_lifecycle_predicate():
    assert compile_filters(AssetQuery(include_deleted=True)) == []


def test_explicit_lifecycle_wins():
    sql = _sql(compile_filters(AssetQuery(lifecycle=AssetLifecycle.ARCHIVED)))
    assert len(sql) == 1
    assert "lifecycle =" in sql[0]


def test_blank_text_filters_are_ignored():
    assert len(compile_filters(AssetQuery(file_name="   ", title=""))) == 1


def test_every_filter_contributes_a_predicate():
    q = AssetQuery(
        file_name="clip",
        title="Holiday",
        min_file_size_bytes=1,
        max_file_size_bytes=10,
        uploaded_after=datetime(2024, 1, 1, tzinfo=timezone.utc),
        uploaded_before=datetime(2024, 2, 1, tzinfo=timezone.utc),
        user_id=uuid.uuid4(),
        is_public=True,
    )
    sql = " AND ".join(_sql(compile_filters(q)))
    assert "lower(media_assets.file_name) LIKE lower(" in sql
    assert "lower(media_assets.title) LIKE lower(" in sql
    assert "media_assets.file_size_bytes >=" in sql
    assert "media_assets.file_size_bytes <=" in sql
    assert "media_assets.uploaded_at >=" in sql
    assert "media_assets.uploaded_at <=" in sql
    assert "media_assets.user_id =" in sql
    assert "media_assets.is_public IS" in sql


def test_inverted_range_is_kept(caplog):
    caplog.set_level("DEBUG", logger="mediahub.modules.assets.query")
    conds = compile_filters(AssetQuery(min_file_size_bytes=100, max_file_size_bytes=10))
    assert len(conds) == 3
    assert "inverted size range" in caplog.text


def test_like_wildcards_are_escaped():
    (clause,) = [c for c in compile_filters(AssetQuery(file_name="50%_off")) if "file_name" in str(c)]
    params = clause.compile(dialect=sqlite.dialect()).params
    assert "%50\\%\\_off%" in params.values()


def test_ordering_appends_id_in_same_direction():
    desc_sql = _sql(compile_ordering(AssetQuery(sort_by="title")))
    assert desc_sql == ["media_assets.title DESC", "media_assets.id DESC"]
    asc_sql = _sql(compile_ordering(AssetQuery(sort_by="file_size_bytes", sort_descending=False)))
    assert asc_sql == ["media_assets.file_size_bytes ASC", "media_assets.id ASC"]


def test_ordering_targets_given_entity():
    from sqlalchemy.orm import aliased

    alias = aliased(MediaAsset, name="page")
    assert _sql(compile_ordering(AssetQuery(), alias)) == ["page.uploaded_at DESC", "page.id DESC"]
