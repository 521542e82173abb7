"""Shared pieces of the paged query models.

Query models are frozen pydantic models; every validation failure, whether
pydantic's own or raised by a validator, surfaces as ``InvalidSpecification``.
"""
import enum
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from mediahub.core.config import settings
from mediahub.core.errors import InvalidSpecification
from mediahub.core.paging import page_window

E = TypeVar("E", bound=enum.Enum)

def squash(value: str) -> str:
    return value.replace("_", "").replace("-", "").lower()

def match_choice(value: Any, choices: type[E], field: str) -> E:
    """Resolve ``value`` to a member of ``choices`` ignoring case and separators."""
    if isinstance(value, choices):
        return value
    wanted = squash(str(value))
    for member in choices:
        if squash(member.value) == wanted:
            return member
    raise InvalidSpecification(
        f"Invalid sort key '{value}'" if field == "sort_by" else f"Invalid value '{value}' for {field}",
        field=field,
        details={"allowed": [m.value for m in choices]},
    )

def contains_pattern(value: str) -> str:
    """LIKE pattern for a literal substring; use with ``escape='\\\\'``."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"

class PagedQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = 1
    page_size: int = Field(default_factory=lambda: settings.DEFAULT_PAGE_SIZE)

    @model_validator(mode="wrap")
    @classmethod
    def _as_invalid_specification(cls, data: Any, handler):
        try:
            return handler(data)
        except PydanticValidationError as exc:
            errors = [
                {"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
                for e in exc.errors()
            ]
            first = errors[0] if errors else {"field": None, "message": "invalid query"}
            raise InvalidSpecification(
                f"Invalid value for '{first['field']}': {first['message']}",
                field=first["field"] or None,
                details={"errors": errors},
            ) from None

    @model_validator(mode="after")
    def _check_page_bounds(self):
        if self.page < 1:
            raise InvalidSpecification("page must be >= 1", field="page", details={"min": 1})
        if not 1 <= self.page_size <= settings.MAX_PAGE_SIZE:
            raise InvalidSpecification(
                f"page_size must be between 1 and {settings.MAX_PAGE_SIZE}",
                field="page_size",
                details={"min": 1, "max": settings.MAX_PAGE_SIZE},
            )
        return self

    @property
    def offset(self) -> int:
        return page_window(self.page, self.page_size)[0]

    @property
    def limit(self) -> int:
        return page_window(self.page, self.page_size)[1]

def parse_options(raw: str | Iterable[Any] | None, choices: type[E], *, field: str = "expand",
                  aliases: Mapping[str, E] | None = None) -> frozenset[E]:
    """Accept a comma-separated string or any iterable; case and separators don't matter.

    Unknown names raise ``InvalidSpecification`` listing every accepted value.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raw = raw.split(",")
    lookup = {squash(m.value): m for m in choices}
    for name, member in (aliases or {}).items():
        lookup[squash(name)] = member
    picked: set[E] = set()
    invalid: list[str] = []
    for item in raw:
        if isinstance(item, choices):
            picked.add(item)
            continue
        if not str(item).strip():
            continue
        opt = lookup.get(squash(str(item).strip()))
        if opt is None:
            invalid.append(str(item))
        else:
            picked.add(opt)
    if invalid:
        allowed = [m.value for m in choices]
        raise InvalidSpecification(
            f"Invalid {field} value(s): {', '.join(invalid)}. Allowed values are: {', '.join(allowed)}",
            field=field,
            details={"invalid": invalid, "allowed": allowed},
        )
    return frozenset(picked)
