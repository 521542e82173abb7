"""Query specification for media assets and the compilers that turn it into SQL.

``AssetQuery`` is validated when it is built: bad page bounds, unknown sort
keys and unknown expansion flags raise ``InvalidSpecification`` before any
compiler sees them. The compilers themselves never fail.
"""
import enum
import logging
import uuid
from datetime import datetime

from pydantic import field_validator
from sqlalchemy import asc, desc, ColumnElement

from mediahub.core.base import as_utc
from mediahub.core.querying import PagedQuery, contains_pattern, match_choice
from mediahub.modules.assets.expansion import ExpandOption, parse_expand
from mediahub.modules.assets.models import MediaAsset, AssetLifecycle

log = logging.getLogger(__name__)

class AssetSortBy(str, enum.Enum):
    UPLOADED_AT = "uploaded_at"
    FILE_NAME = "file_name"
    FILE_SIZE_BYTES = "file_size_bytes"
    TITLE = "title"

class AssetQuery(PagedQuery):
    # filters; None means unconstrained
    file_name: str | None = None
    title: str | None = None
    min_file_size_bytes: int | None = None
    max_file_size_bytes: int | None = None
    uploaded_after: datetime | None = None
    uploaded_before: datetime | None = None
    user_id: uuid.UUID | None = None
    is_public: bool | None = None
    lifecycle: AssetLifecycle | None = None
    include_deleted: bool = False

    sort_by: AssetSortBy = AssetSortBy.UPLOADED_AT
    sort_descending: bool = True

    expand: frozenset[ExpandOption] = frozenset()

    @field_validator("sort_by", mode="before")
    @classmethod
    def _parse_sort_by(cls, v):
        if v is None:
            return AssetSortBy.UPLOADED_AT
        return match_choice(v, AssetSortBy, "sort_by")

    @field_validator("expand", mode="before")
    @classmethod
    def _parse_expand(cls, v):
        return parse_expand(v)

    @field_validator("uploaded_after", "uploaded_before")
    @classmethod
    def _to_utc(cls, v):
        return as_utc(v) if v is not None else v

# ---- Filter compiler ----

def compile_filters(query: AssetQuery, entity=MediaAsset) -> list[ColumnElement[bool]]:
    """Predicates for ``query``, to be AND-ed. An empty list means no constraint."""
    cond: list[ColumnElement[bool]] = []
    if query.file_name and query.file_name.strip():
        cond.append(entity.file_name.ilike(contains_pattern(query.file_name), escape="\\"))
    if query.title and query.title.strip():
        cond.append(entity.title.ilike(contains_pattern(query.title), escape="\\"))
    if query.min_file_size_bytes is not None:
        cond.append(entity.file_size_bytes >= query.min_file_size_bytes)
    if query.max_file_size_bytes is not None:
        cond.append(entity.file_size_bytes <= query.max_file_size_bytes)
    if query.uploaded_after is not None:
        cond.append(entity.uploaded_at >= query.uploaded_after)
    if query.uploaded_before is not None:
        cond.append(entity.uploaded_at <= query.uploaded_before)
    if query.user_id is not None:
        cond.append(entity.user_id == query.user_id)
    if query.is_public is not None:
        cond.append(entity.is_public.is_(query.is_public))

    if query.lifecycle is not None:
        cond.append(entity.lifecycle == query.lifecycle)
    elif not query.include_deleted:
        cond.append(entity.lifecycle != AssetLifecycle.DELETED)

    # Inverted ranges are allowed through and simply match nothing.
    if (
        query.min_file_size_bytes is not None
        and query.max_file_size_bytes is not None
        and query.min_file_size_bytes > query.max_file_size_bytes
    ):
        log.debug("inverted size range %s..%s", query.min_file_size_bytes, query.max_file_size_bytes)
    if query.uploaded_after and query.uploaded_before and query.uploaded_after > query.uploaded_before:
        log.debug("inverted upload-time range %s..%s", query.uploaded_after, query.uploaded_before)
    return cond

# ---- Sort compiler ----

def compile_ordering(query: AssetQuery, entity=MediaAsset) -> list[ColumnElement]:
    """ORDER BY clauses; ``id`` breaks ties so page boundaries don't shift between requests."""
    direction = desc if query.sort_descending else asc
    column = getattr(entity, query.sort_by.value)
    return [direction(column), direction(entity.id)]
