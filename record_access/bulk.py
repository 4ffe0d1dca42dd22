"""
Batch insert utilities.

Records are sent in chunks of `batch_size` rows, one multi-row INSERT per
chunk. Records may be mapped instances or plain dicts; excluded columns and
unset primary keys / defaulted columns are left out so the database (or the
column default) fills them in.
"""

import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from itertools import groupby
from typing import Any, TypeVar

from sqlalchemy import Table, column, insert, inspect as sa_inspect, table
from sqlalchemy.orm import Session
from sqlalchemy.sql import FromClause

from record_access.models.entity import Target, is_mapped_instance, resolve_table
from shared.config.constants import Limits
from shared.config.logging import get_logger
from shared.config.settings import get_settings
from shared.utils.exceptions import InvalidOptionsError

logger = get_logger(__name__)

T = TypeVar("T")

# Insert modifiers such as "OR IGNORE" (SQLite) or "IGNORE" (MySQL)
PREFIX = re.compile(r"^[A-Za-z]+(?: [A-Za-z]+)*$")


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield lists of at most `size` items."""
    chunk: list[T] = []
    for item in items:
        chunk.append(item)
        if len(chunk) == size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def _instance_values(record: Any) -> dict[str, Any]:
    mapper = sa_inspect(type(record))
    return {
        col.key: getattr(record, prop.key)
        for prop in mapper.column_attrs
        for col in prop.columns
        if col.table is mapper.local_table
    }


def record_values(
    record: Any, selectable: FromClause, exclude: Sequence[str] = ()
) -> dict[str, Any]:
    """Column -> value for one record, without excluded or defaulted blanks."""
    if isinstance(record, Mapping):
        values = dict(record)
    elif is_mapped_instance(record):
        values = _instance_values(record)
    else:
        raise TypeError(f"Cannot insert {type(record).__name__}; expected a mapped instance or a dict")

    for name in exclude:
        values.pop(name, None)

    if isinstance(selectable, Table):
        for col in selectable.columns:
            if values.get(col.key) is None and col.key in values and (
                col.primary_key or col.default is not None or col.server_default is not None
            ):
                del values[col.key]
    return values


def batch_insert(
    session: Session,
    target: Target,
    records: Iterable[Any],
    batch_size: int | None = None,
    exclude: Sequence[str] = (),
    prefixes: Sequence[str] = (),
) -> int:
    """
    Insert records in batches. Returns the number of rows sent.

    `prefixes` are insert modifiers placed after INSERT ("OR IGNORE",
    "IGNORE"); they are emitted as written, so only plain keywords are
    accepted.

    Rows keep their input order: consecutive records with the same column
    set share one executemany, and a change of column set starts a new one.
    The caller owns the transaction; nothing is committed here.
    """
    if batch_size is None:
        batch_size = get_settings().batch_insert_size
    if not 1 <= batch_size <= Limits.MAX_BATCH_SIZE:
        raise InvalidOptionsError(
            "batch_size out of range", batch_size=batch_size, max=Limits.MAX_BATCH_SIZE
        )
    for prefix in prefixes:
        if not isinstance(prefix, str) or not PREFIX.match(prefix):
            raise InvalidOptionsError(f"invalid insert prefix {prefix!r}", prefix=prefix)

    selectable = resolve_table(target)
    sent = 0

    for chunk in chunked(records, batch_size):
        rows = [record_values(record, selectable, exclude) for record in chunk]

        # executemany needs one key set per statement
        for keys, run in groupby(rows, key=frozenset):
            if isinstance(selectable, Table):
                stmt = insert(selectable)
            else:
                stmt = insert(table(selectable.name, *[column(k) for k in sorted(keys)], schema=selectable.schema))
            if prefixes:
                stmt = stmt.prefix_with(*prefixes)
            session.execute(stmt, list(run))

        sent += len(rows)
        logger.debug("Batch inserted", table=selectable.name, rows=len(rows))

    return sent
