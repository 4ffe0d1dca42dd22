"""
Entity helpers: resolve the table behind a target and read primary keys.

A target is anything the accessor can address:
- a mapped class (self-describing table),
- a mapped instance (its class's table, plus its primary key value),
- a SQLAlchemy Table,
- a plain table name ("user" or "schema.user").
"""

from __future__ import annotations

import re
from typing import Any, Union

from sqlalchemy import Table, column, inspect as sa_inspect, table
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper
from sqlalchemy.sql import ColumnElement, FromClause, TableClause

from shared.utils.exceptions import InvalidPredicateError

Target = Union[type, Table, str, Any]

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Primary key assumed for tables addressed only by name
DEFAULT_PRIMARY_KEY = "id"


def is_identifier(name: str) -> bool:
    return bool(IDENTIFIER.match(name))


def _mapper(target: Any) -> Mapper | None:
    if isinstance(target, (str, FromClause)):
        return None
    try:
        insp = sa_inspect(target)
    except NoInspectionAvailable:
        return None
    if isinstance(insp, Mapper):
        return insp
    return getattr(insp, "mapper", None)


def is_mapped_class(target: Any) -> bool:
    return isinstance(target, type) and _mapper(target) is not None


def is_mapped_instance(target: Any) -> bool:
    return not isinstance(target, type) and _mapper(target) is not None


def model_of(target: Any) -> type | None:
    """The mapped class behind a target, or None for table-only targets."""
    mapper = _mapper(target)
    return mapper.class_ if mapper is not None else None


def resolve_table(target: Target) -> FromClause:
    """Return the selectable a target refers to."""
    if isinstance(target, FromClause):
        return target

    if isinstance(target, str):
        schema, _, name = target.rpartition(".")
        if not is_identifier(name) or (schema and not is_identifier(schema)):
            raise InvalidPredicateError(target, "not a valid table name")
        return table(name, schema=schema or None)

    mapper = _mapper(target)
    if mapper is None:
        raise TypeError(f"Cannot resolve a table from {target!r}")
    return mapper.local_table


def table_name(target: Target) -> str:
    return getattr(resolve_table(target), "name", str(target))


def has_column(selectable: FromClause, name: str) -> bool:
    """
    Whether the table has the column.

    Tables addressed by name carry no column metadata, so every column is
    assumed to exist there.
    """
    if isinstance(selectable, Table):
        return name in selectable.c
    if isinstance(selectable, TableClause) and not selectable.c:
        return True
    return name in selectable.c


def resolve_column(selectable: FromClause, name: str) -> ColumnElement:
    """Look a column up on the table, validating its name."""
    if not is_identifier(name):
        raise InvalidPredicateError(name, "not a valid column name")
    if name in selectable.c:
        return selectable.c[name]
    if isinstance(selectable, TableClause) and not isinstance(selectable, Table):
        return column(name)
    raise InvalidPredicateError(
        name, f"no such column on {getattr(selectable, 'name', selectable)}"
    )


def primary_key_column(selectable: FromClause) -> ColumnElement:
    """The single primary-key column of a table."""
    pk_columns = list(selectable.primary_key) if isinstance(selectable, Table) else []
    if len(pk_columns) > 1:
        raise TypeError(
            f"Table {selectable.name} has a composite primary key; "
            "only single-column keys are supported"
        )
    if pk_columns:
        return pk_columns[0]
    return resolve_column(selectable, DEFAULT_PRIMARY_KEY)


def primary_key_attribute(model: type) -> str:
    """Attribute name mapped to the primary-key column."""
    mapper = sa_inspect(model)
    pk = primary_key_column(mapper.local_table)
    return mapper.get_property_by_column(pk).key


def primary_key_value(entity: Any) -> Any:
    """Primary key of a mapped instance (None while blank)."""
    return getattr(entity, primary_key_attribute(type(entity)), None)


def is_blank(key: Any) -> bool:
    return key is None


def column_attribute(model: type, name: str) -> str:
    """Attribute name on `model` mapped to the column called `name`."""
    mapper = sa_inspect(model)
    col = resolve_column(mapper.local_table, name)
    return mapper.get_property_by_column(col).key
