"""Relation expansion for media asset reads.

Callers name the relations they want (``?expand=owner,video_metadata``); the
resolver turns that set into loader options for the same SELECT that fetches
the assets. The view counter is a column on the asset, so nothing extra is
loaded to serve it.
"""
import enum
from typing import Iterable

from sqlalchemy.orm import joinedload, raiseload
from sqlalchemy.orm.interfaces import LoaderOption

from mediahub.core.querying import parse_options

class ExpandOption(str, enum.Enum):
    OWNER = "owner"
    VIDEO_METADATA = "video_metadata"

# the older API spelled these "user" and "videoMetadata"
_ALIASES = {"user": ExpandOption.OWNER}

def parse_expand(raw: str | Iterable[str | ExpandOption] | None) -> frozenset[ExpandOption]:
    return parse_options(raw, ExpandOption, field="expand", aliases=_ALIASES)

def resolve_loader_options(expand: Iterable[ExpandOption], entity) -> list[LoaderOption]:
    """Loader options for ``entity`` (the mapped class or an alias of it).

    Requested relations are joined into the same statement; touching any
    other relation raises instead of issuing a per-row fetch.
    """
    expand = frozenset(expand)
    opts: list[LoaderOption] = []
    opts.append(joinedload(entity.owner) if ExpandOption.OWNER in expand else raiseload(entity.owner))
    opts.append(
        joinedload(entity.video_metadata) if ExpandOption.VIDEO_METADATA in expand else raiseload(entity.video_metadata)
    )
    return opts
