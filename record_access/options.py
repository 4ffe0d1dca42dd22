"""
Read options for the accessor.

Field lists, ordering and grouping may be given as column names
("id, user_id", ["id", "user_id"], "id desc") or as SQLAlchemy expressions
(func.count().label("total"), User.id.desc()). Column names are validated
against the target table; nothing else is spliced into SQL.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from sqlalchemy.sql import ColumnElement, FromClause

from record_access.conditions import ConditionsLike
from record_access.models.entity import resolve_column
from shared.config.settings import get_settings
from shared.utils.exceptions import InvalidOptionsError

Columns = Union[str, ColumnElement, Sequence[Union[str, ColumnElement]], None]

RowT = TypeVar("RowT")

_DIRECTIONS = {"asc", "desc"}


@dataclass
class QueryOptions:
    """Options shared by every read."""

    # Columns to load; None loads the whole row
    fields: Columns = None
    # "id desc", ["created_at desc", "id"], or SQLAlchemy expressions
    order_by: Columns = None
    # Skip the default visibility predicate for this call
    include_deleted: bool = False


@dataclass
class SearchOptions(QueryOptions):
    """Options for free-form searches."""

    group_by: Columns = None
    having: ConditionsLike | ColumnElement = None
    offset: int = 0
    limit: int | None = None
    # Also compute the number of matches ignoring offset/limit
    with_total: bool = False

    def __post_init__(self):
        """Validate pagination and grouping."""
        if self.offset < 0:
            raise InvalidOptionsError("offset must not be negative", offset=self.offset)
        if self.limit is not None:
            if self.limit < 0:
                raise InvalidOptionsError("limit must not be negative", limit=self.limit)
            if self.limit == 0:
                self.limit = None
            else:
                # Opt-in cap; unlimited unless MAX_PAGE_SIZE is configured
                max_page_size = get_settings().max_page_size
                if max_page_size is not None and self.limit > max_page_size:
                    raise InvalidOptionsError(
                        "limit exceeds max page size",
                        limit=self.limit,
                        max_page_size=max_page_size,
                    )
        if self.having is not None and not self.group_by:
            raise InvalidOptionsError("having requires group_by")


@dataclass
class SearchResult(Generic[RowT]):
    """Rows of one page plus, when requested, the unpaginated total."""

    rows: list[RowT] = field(default_factory=list)
    total: int | None = None

    def __iter__(self) -> Iterator[RowT]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> RowT:
        return self.rows[index]


def _split(spec: Columns) -> list[Any]:
    if spec is None:
        return []
    if isinstance(spec, str):
        return [part.strip() for part in spec.split(",") if part.strip()]
    # Mapped attributes (User.id) expose __clause_element__ rather than
    # being ColumnElements themselves
    if isinstance(spec, ColumnElement) or hasattr(spec, "__clause_element__"):
        return [spec]
    items: list[Any] = []
    for item in spec:
        items.extend(_split(item))
    return items


def resolve_fields(selectable: FromClause, fields: Columns) -> list[ColumnElement]:
    """Column names become table columns; expressions pass through."""
    return [
        item if not isinstance(item, str) else resolve_column(selectable, item)
        for item in _split(fields)
    ]


def field_names(fields: Columns) -> list[str]:
    """Plain column names in a field list (expressions are skipped)."""
    return [item for item in _split(fields) if isinstance(item, str)]


def resolve_order(selectable: FromClause, order_by: Columns) -> list[ColumnElement]:
    """Parse "col [asc|desc]" items into ordering clauses."""
    clauses = []
    for item in _split(order_by):
        if not isinstance(item, str):
            clauses.append(item)
            continue

        parts = item.split()
        direction = parts[1].lower() if len(parts) == 2 else "asc"
        if len(parts) > 2 or direction not in _DIRECTIONS:
            raise InvalidOptionsError(f"invalid ordering {item!r}", order_by=item)

        col = resolve_column(selectable, parts[0])
        clauses.append(col.desc() if direction == "desc" else col.asc())
    return clauses
