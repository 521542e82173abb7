"""Query model and SQL compilers for playlists."""
import enum
import uuid

from pydantic import field_validator
from sqlalchemy import asc, desc, select, ColumnElement
from sqlalchemy.orm import joinedload, raiseload, selectinload
from sqlalchemy.orm.interfaces import LoaderOption

from mediahub.core.querying import PagedQuery, contains_pattern, match_choice, parse_options
from mediahub.modules.assets.models import MediaAsset, AssetLifecycle
from mediahub.modules.playlists.models import Playlist, PlaylistItem

class PlaylistSortBy(str, enum.Enum):
    CREATED_AT = "created_at"
    NAME = "name"
    IS_PUBLIC = "is_public"

class PlaylistExpand(str, enum.Enum):
    OWNER = "owner"
    ITEMS = "items"

class PlaylistQuery(PagedQuery):
    user_id: uuid.UUID | None = None
    is_public: bool | None = None
    name: str | None = None

    sort_by: PlaylistSortBy = PlaylistSortBy.CREATED_AT
    sort_descending: bool = True

    expand: frozenset[PlaylistExpand] = frozenset()

    @field_validator("sort_by", mode="before")
    @classmethod
    def _parse_sort_by(cls, v):
        if v is None:
            return PlaylistSortBy.CREATED_AT
        return match_choice(v, PlaylistSortBy, "sort_by")

    @field_validator("expand", mode="before")
    @classmethod
    def _parse_expand(cls, v):
        return parse_expand(v)

def parse_expand(raw) -> frozenset[PlaylistExpand]:
    return parse_options(raw, PlaylistExpand, field="expand", aliases={"user": PlaylistExpand.OWNER})

def compile_filters(query: PlaylistQuery, entity=Playlist) -> list[ColumnElement[bool]]:
    cond: list[ColumnElement[bool]] = []
    if query.user_id is not None:
        cond.append(entity.user_id == query.user_id)
    if query.is_public is not None:
        cond.append(entity.is_public.is_(query.is_public))
    if query.name and query.name.strip():
        cond.append(entity.name.ilike(contains_pattern(query.name), escape="\\"))
    return cond

def compile_ordering(query: PlaylistQuery, entity=Playlist) -> list[ColumnElement]:
    direction = desc if query.sort_descending else asc
    column = getattr(entity, query.sort_by.value)
    return [direction(column), direction(entity.id)]

def resolve_loader_options(expand, entity) -> list[LoaderOption]:
    """Owner joins into the main SELECT; items (with their assets) come from one extra IN query."""
    expand = frozenset(expand)
    opts: list[LoaderOption] = []
    opts.append(joinedload(entity.owner) if PlaylistExpand.OWNER in expand else raiseload(entity.owner))
    if PlaylistExpand.ITEMS in expand:
        live = entity.items.and_(
            PlaylistItem.asset_id.in_(select(MediaAsset.id).where(MediaAsset.lifecycle != AssetLifecycle.DELETED))
        )
        opts.append(selectinload(live).joinedload(PlaylistItem.asset))
    else:
        opts.append(raiseload(entity.items))
    return opts
