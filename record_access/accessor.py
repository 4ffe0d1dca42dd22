"""
Record accessor: table-agnostic CRUD with a built-in soft delete convention.

Every read and write is filtered by the effective condition set: the default
visibility predicate ("is_deleted = 'N'") merged with the caller's
conditions, where a caller predicate with the same key wins.

Usage:
    from record_access import RecordAccessor, SearchOptions

    accessor = RecordAccessor(db)

    user = User(name="ada")
    user.set_default_values()
    accessor.create(user)

    accessor.fetch_one_by_key(User, user.id)
    accessor.count(User, {"id > ?": 5})
    accessor.search_all(
        "user",
        {"age >= ?": 18},
        SearchOptions(fields="id, name", order_by="id desc", limit=20, with_total=True),
    )

    accessor.delete_by_key(user)               # sets is_deleted = 'Y'
    accessor.delete_by_key(user, force=True)   # removes the row

A RecordAccessor wraps one Session and inherits its threading rules: use one
accessor (and session) per unit of work. Soft delete suspension itself is
context-local and safe to nest.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, TypeVar

from sqlalchemy import Table, column, delete, func, inspect as sa_inspect, literal_column, select, table, update
from sqlalchemy.orm import Session, load_only
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.sql import ColumnElement, FromClause, Select

from record_access import bulk
from record_access.conditions import ConditionSet, ConditionsLike, Predicate, compose
from record_access.models.entity import (
    Target,
    column_attribute,
    has_column,
    is_blank,
    is_mapped_instance,
    model_of,
    primary_key_column,
    primary_key_value,
    resolve_column,
    resolve_table,
)
from record_access.options import (
    QueryOptions,
    SearchOptions,
    SearchResult,
    field_names,
    resolve_fields,
    resolve_order,
)
from record_access.soft_delete import SoftDeleteConfig, SoftDeleteController
from shared.config.constants import Operators
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    AlreadyPersistedError,
    InvalidOptionsError,
    PrimaryKeyBlankError,
    PrimaryKeyNotBlankError,
    RecordNotFoundError,
    is_not_found,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT")

UPDATED_AT = "updated_at"


class RecordAccessor:
    """
    Public CRUD surface over one SQLAlchemy Session.

    Args:
        session: Session used for every statement.
        soft_delete: Flag column and values; defaults come from settings.
        autocommit: Commit after each write (rolling back on failure).
            With False the caller owns the transaction and writes are only
            flushed.
    """

    is_not_found = staticmethod(is_not_found)

    def __init__(
        self,
        session: Session,
        soft_delete: SoftDeleteConfig | None = None,
        *,
        autocommit: bool = True,
    ):
        self._session = session
        self._soft_delete = SoftDeleteController(soft_delete)
        self._autocommit = autocommit

    @property
    def session(self) -> Session:
        """The database session."""
        return self._session

    @property
    def soft_delete(self) -> SoftDeleteController:
        """Controller owning the visibility predicate."""
        return self._soft_delete

    def with_soft_delete(self, config: SoftDeleteConfig) -> RecordAccessor:
        """Accessor on the same session using a different soft delete config."""
        return RecordAccessor(self._session, config, autocommit=self._autocommit)

    # =========================================================================
    # Condition helpers
    # =========================================================================

    def effective_conditions(
        self,
        target: Target,
        *conditions: ConditionsLike,
        include_deleted: bool = False,
    ) -> ConditionSet:
        """Default visibility predicate merged with the caller's conditions."""
        selectable = resolve_table(target)
        default = self._soft_delete.default_conditions(selectable, include_deleted)
        return compose(default, *conditions)

    def _where(
        self,
        selectable: FromClause,
        *conditions: ConditionsLike,
        include_deleted: bool = False,
    ) -> list[ColumnElement[bool]]:
        default = self._soft_delete.default_conditions(selectable, include_deleted)
        return compose(default, *conditions).compile(selectable)

    @staticmethod
    def _key_condition(selectable: FromClause, key: Any) -> ConditionSet:
        pk = primary_key_column(selectable)
        return ConditionSet([Predicate(pk.name, Operators.EQ, key)])

    @staticmethod
    def _resolve_key(target: Target, key: Any) -> Any:
        if key is None and is_mapped_instance(target):
            key = primary_key_value(target)
        return key

    @staticmethod
    def _reject_keyed_instance(target: Any) -> None:
        """By-condition writes take a class/table; a keyed instance is ambiguous."""
        if target is not None and is_mapped_instance(target):
            key = primary_key_value(target)
            if not is_blank(key):
                raise PrimaryKeyNotBlankError(resolve_table(target).name, key=key)

    @contextmanager
    def _writing(self) -> Iterator[None]:
        """Commit after a successful write; roll back and re-raise on failure."""
        try:
            yield
        except Exception:
            if self._autocommit:
                self._session.rollback()
            raise
        if self._autocommit:
            safe_commit(self._session)
        else:
            self._session.flush()

    # =========================================================================
    # Create
    # =========================================================================

    def create(self, entity: ModelT) -> ModelT:
        """
        Insert a new entity.

        Raises:
            AlreadyPersistedError: the entity's primary key is already set.
        """
        key = primary_key_value(entity)
        if not is_blank(key):
            raise AlreadyPersistedError(resolve_table(entity).name, key=key)

        with self._writing():
            self._session.add(entity)
            self._session.flush()

        logger.info(
            "Record created",
            table=resolve_table(entity).name,
            id=primary_key_value(entity),
        )
        return entity

    def batch_insert(
        self,
        target: Target,
        records: Iterable[Any],
        batch_size: int | None = None,
        exclude: Sequence[str] = (),
        prefixes: Sequence[str] = (),
    ) -> int:
        """
        Insert many records in chunks of `batch_size`.

        Args:
            target: Mapped class, Table or table name.
            records: Mapped instances or dicts.
            batch_size: Rows per INSERT (default from settings).
            exclude: Columns never written.
            prefixes: Insert modifiers such as "OR IGNORE".

        Returns:
            Number of rows sent.
        """
        with self._writing():
            sent = bulk.batch_insert(
                self._session, target, records, batch_size, exclude, prefixes
            )

        logger.info("Records batch inserted", table=resolve_table(target).name, rows=sent)
        return sent

    # =========================================================================
    # Fetch (mapped entities)
    # =========================================================================

    def _require_model(self, target: Target) -> type:
        model = model_of(target)
        if model is None:
            raise TypeError(
                f"{target!r} is not a mapped class; use search_one/search_all for raw tables"
            )
        return model

    def _select_entities(
        self, model: type, conditions: ConditionsLike, options: QueryOptions
    ) -> Select:
        selectable = resolve_table(model)
        stmt = select(model).where(
            *self._where(selectable, conditions, include_deleted=options.include_deleted)
        )

        names = field_names(options.fields)
        if names:
            stmt = stmt.options(
                load_only(*(getattr(model, column_attribute(model, name)) for name in names))
            )

        order = resolve_order(selectable, options.order_by)
        if order:
            stmt = stmt.order_by(*order)
        return stmt

    @staticmethod
    def _check_destination(into: Any) -> None:
        if into is not None and is_mapped_instance(into):
            key = primary_key_value(into)
            if not is_blank(key):
                raise PrimaryKeyNotBlankError(resolve_table(into).name, key=key)

    @staticmethod
    def _populate(into: Any, source: Any, names: Sequence[str]) -> Any:
        """Copy selected columns (all when none given) from a row onto `into`."""
        if isinstance(source, Mapping):
            values = {name: source[name] for name in names} if names else dict(source)
        else:
            model = type(source)
            attrs = (
                [column_attribute(model, name) for name in names]
                if names
                else [prop.key for prop in sa_inspect(model).column_attrs]
            )
            values = {attr: getattr(source, attr) for attr in attrs}

        if isinstance(into, MutableMapping):
            into.update(values)
        else:
            for attr, value in values.items():
                setattr(into, attr, value)
        return into

    def _fetch_one(
        self,
        model: type,
        conditions: ConditionsLike,
        options: QueryOptions | None,
        into: Any,
        raise_not_found: bool,
    ) -> Any:
        options = options or QueryOptions()
        stmt = self._select_entities(model, conditions, options).limit(1)
        entity = self._session.scalars(stmt).first()

        if entity is None:
            if raise_not_found:
                raise RecordNotFoundError(resolve_table(model).name)
            return None

        if into is not None:
            return self._populate(into, entity, field_names(options.fields))
        return entity

    def fetch_one_by_key(
        self,
        model: type[ModelT],
        key: Any,
        options: QueryOptions | None = None,
        *,
        into: Any = None,
        raise_not_found: bool = False,
    ) -> ModelT | Any | None:
        """
        Fetch one visible row by primary key.

        Args:
            model: Mapped class.
            key: Primary key value.
            options: Field selection, ordering, include_deleted.
            into: Optional destination (unkeyed instance or dict) receiving
                the selected fields; left untouched when nothing matches.
            raise_not_found: Raise RecordNotFoundError instead of returning None.

        Returns:
            The entity (or `into`), or None when no row matches.

        Raises:
            PrimaryKeyBlankError: key is None.
        """
        model = self._require_model(model)
        if is_blank(key):
            raise PrimaryKeyBlankError(resolve_table(model).name)
        self._check_destination(into)

        conditions = self._key_condition(resolve_table(model), key)
        return self._fetch_one(model, conditions, options, into, raise_not_found)

    def fetch_one_by_condition(
        self,
        model: type[ModelT],
        conditions: ConditionsLike,
        options: QueryOptions | None = None,
        *,
        into: Any = None,
        raise_not_found: bool = False,
    ) -> ModelT | Any | None:
        """
        Fetch the first visible row matching the conditions.

        Raises:
            PrimaryKeyNotBlankError: `into` already carries a primary key.
        """
        model = self._require_model(model)
        self._check_destination(into)
        return self._fetch_one(model, conditions, options, into, raise_not_found)

    def fetch_all_by_keys(
        self,
        model: type[ModelT],
        keys: Iterable[Any],
        options: QueryOptions | None = None,
    ) -> list[ModelT]:
        """Fetch visible rows whose primary key is in `keys`."""
        model = self._require_model(model)
        keys = [key for key in keys if not is_blank(key)]
        if not keys:
            return []

        pk = primary_key_column(resolve_table(model))
        conditions = ConditionSet([Predicate(pk.name, Operators.IN, keys)])
        stmt = self._select_entities(model, conditions, options or QueryOptions())
        return list(self._session.scalars(stmt).all())

    def fetch_all_by_condition(
        self,
        model: type[ModelT],
        conditions: ConditionsLike,
        options: QueryOptions | None = None,
    ) -> list[ModelT]:
        """Fetch every visible row matching the conditions; [] when none do."""
        model = self._require_model(model)
        stmt = self._select_entities(model, conditions, options or QueryOptions())
        return list(self._session.scalars(stmt).all())

    # =========================================================================
    # Search / count (any table)
    # =========================================================================

    @staticmethod
    def _having(having: Any) -> list[ColumnElement[bool]]:
        if isinstance(having, ColumnElement):
            return [having]
        # Unqualified so HAVING can reference result labels
        return ConditionSet.from_mapping(having).compile(None)

    def _search_select(
        self, target: Target, conditions: ConditionsLike, options: SearchOptions
    ) -> Select:
        selectable = resolve_table(target)

        columns = resolve_fields(selectable, options.fields)
        if not columns:
            columns = [selectable] if isinstance(selectable, Table) else [literal_column("*")]

        stmt = (
            select(*columns)
            .select_from(selectable)
            .where(*self._where(selectable, conditions, include_deleted=options.include_deleted))
        )

        group = resolve_fields(selectable, options.group_by)
        if group:
            stmt = stmt.group_by(*group)
            if options.having is not None:
                stmt = stmt.having(*self._having(options.having))
        return stmt

    def search_one(
        self,
        target: Target,
        conditions: ConditionsLike = None,
        options: SearchOptions | None = None,
        *,
        into: Any = None,
    ) -> dict[str, Any] | Any | None:
        """
        First row of a free-form search as a dict (or copied into `into`).

        Returns None, leaving `into` untouched, when nothing matches.
        """
        options = options or SearchOptions()
        self._check_destination(into)

        stmt = self._search_select(target, conditions, options)
        order = resolve_order(resolve_table(target), options.order_by)
        if order:
            stmt = stmt.order_by(*order)

        row = self._session.execute(stmt.limit(1)).mappings().first()
        if row is None:
            return None

        row = dict(row)
        if into is not None:
            return self._populate(into, row, [])
        return row

    def search_all(
        self,
        target: Target,
        conditions: ConditionsLike = None,
        options: SearchOptions | None = None,
    ) -> SearchResult[dict[str, Any]]:
        """
        Free-form search over a table.

        Grouping and having apply before pagination. With
        `options.with_total` the result also carries the number of matching
        rows (or groups) regardless of offset/limit.
        """
        options = options or SearchOptions()
        stmt = self._search_select(target, conditions, options)

        total = None
        if options.with_total:
            total = self._session.scalar(
                select(func.count()).select_from(stmt.subquery())
            ) or 0

        order = resolve_order(resolve_table(target), options.order_by)
        if order:
            stmt = stmt.order_by(*order)
        if options.offset:
            stmt = stmt.offset(options.offset)
        if options.limit:
            stmt = stmt.limit(options.limit)

        rows = [dict(row) for row in self._session.execute(stmt).mappings()]
        return SearchResult(rows=rows, total=total)

    def count(
        self,
        target: Target,
        conditions: ConditionsLike = None,
        *,
        group_by: Any = None,
        having: Any = None,
        include_deleted: bool = False,
    ) -> int:
        """
        Number of visible rows matching the conditions.

        With `group_by` the number of groups (after `having`) is returned.
        The grouped select projects only the group columns, so a mapping
        `having` may reference group columns but not aggregate labels as
        in search_all; pass a SQLAlchemy clause such as
        `func.count() > 3` to filter on an aggregate.
        """
        if having is not None and not group_by:
            raise InvalidOptionsError("having requires group_by")

        selectable = resolve_table(target)
        where = self._where(selectable, conditions, include_deleted=include_deleted)

        group = resolve_fields(selectable, group_by)
        if group:
            grouped = select(*group).select_from(selectable).where(*where).group_by(*group)
            if having is not None:
                grouped = grouped.having(*self._having(having))
            stmt = select(func.count()).select_from(grouped.subquery())
        else:
            stmt = select(func.count()).select_from(selectable).where(*where)

        return self._session.scalar(stmt) or 0

    # =========================================================================
    # Update
    # =========================================================================

    @staticmethod
    def _writable(selectable: FromClause, names: Iterable[str]) -> FromClause:
        """Tables addressed by name get just enough column metadata to write."""
        if isinstance(selectable, Table):
            return selectable
        return table(
            selectable.name,
            *(column(name) for name in sorted(set(names))),
            schema=selectable.schema,
        )

    def _prepare_values(self, selectable: FromClause, values: Mapping[str, Any]) -> dict[str, Any]:
        if not values:
            raise InvalidOptionsError("nothing to update")
        for name in values:
            resolve_column(selectable, name)

        prepared = dict(values)
        if isinstance(selectable, Table) and has_column(selectable, UPDATED_AT):
            prepared.setdefault(UPDATED_AT, datetime.now(timezone.utc))
        return prepared

    def _single_row_where(
        self, selectable: FromClause, where: list[ColumnElement[bool]]
    ) -> list[ColumnElement[bool]] | None:
        """Narrow `where` to the first matching row; None when nothing matches."""
        pk = primary_key_column(selectable)
        first = self._session.scalar(select(pk).select_from(selectable).where(*where).limit(1))
        if first is None:
            return None
        return [pk == first]

    def _update_rows(
        self,
        target: Target,
        conditions: ConditionsLike,
        values: Mapping[str, Any],
        limit_one: bool,
    ) -> int:
        selectable = resolve_table(target)
        values = self._prepare_values(selectable, values)
        where = self._where(selectable, conditions)

        with self._writing():
            if limit_one:
                where = self._single_row_where(selectable, where)
                if where is None:
                    return 0
            writable = self._writable(selectable, values)
            result = self._session.execute(update(writable).where(*where).values(values))

        if is_mapped_instance(target) and result.rowcount:
            model = type(target)
            for name, value in values.items():
                set_committed_value(target, column_attribute(model, name), value)

        logger.info("Rows updated", table=selectable.name, rows=result.rowcount)
        return result.rowcount

    def update_by_key(
        self,
        target: Target,
        values: Mapping[str, Any],
        key: Any = None,
    ) -> int:
        """
        Update one visible row by primary key.

        Args:
            target: A keyed instance, or a class/table together with `key`.
            values: Column -> new value. updated_at is stamped when present.
            key: Primary key when target is not an instance.

        Returns:
            Number of rows affected (0 or 1). A keyed instance also gets the
            new values.

        Raises:
            PrimaryKeyBlankError: no key could be determined.
        """
        key = self._resolve_key(target, key)
        if is_blank(key):
            raise PrimaryKeyBlankError(resolve_table(target).name)

        conditions = self._key_condition(resolve_table(target), key)
        return self._update_rows(target, conditions, values, limit_one=False)

    def update_by_condition(
        self,
        target: Target,
        conditions: ConditionsLike,
        values: Mapping[str, Any],
        *,
        limit_one: bool = False,
    ) -> int:
        """
        Update visible rows matching the conditions.

        Args:
            limit_one: Only update the first matching row.

        Raises:
            PrimaryKeyNotBlankError: target is an instance with a key set.
        """
        self._reject_keyed_instance(target)
        return self._update_rows(target, conditions, values, limit_one)

    # =========================================================================
    # Delete
    # =========================================================================

    def _delete_rows(self, target: Target, conditions: ConditionsLike, limit_one: bool) -> int:
        """Physical DELETE; runs while the visibility predicate is suspended."""
        selectable = resolve_table(target)
        where = self._where(selectable, conditions)
        if not where:
            logger.warning("Forced delete without conditions", table=selectable.name)

        with self._writing():
            if limit_one:
                where = self._single_row_where(selectable, where)
                if where is None:
                    return 0
            result = self._session.execute(delete(selectable).where(*where))

        if is_mapped_instance(target) and target in self._session:
            self._session.expunge(target)

        logger.info("Rows deleted", table=selectable.name, rows=result.rowcount)
        return result.rowcount

    def delete_by_key(self, target: Target, key: Any = None, *, force: bool = False) -> int:
        """
        Delete one row by primary key.

        By default the row is soft-deleted through update_by_key. With
        force=True the visibility predicate is suspended and the row is
        removed.

        Raises:
            PrimaryKeyBlankError: no key could be determined.
        """
        key = self._resolve_key(target, key)
        if is_blank(key):
            raise PrimaryKeyBlankError(resolve_table(target).name)

        conditions = self._key_condition(resolve_table(target), key)
        return self._soft_delete.delete(
            force=force,
            physical=lambda: self._delete_rows(target, conditions, limit_one=True),
            logical=lambda values: self.update_by_key(target, values, key=key),
        )

    def delete_by_condition(
        self,
        target: Target,
        conditions: ConditionsLike,
        *,
        force: bool = False,
        limit_one: bool = False,
    ) -> int:
        """
        Delete rows matching the conditions (soft unless force=True).

        Raises:
            PrimaryKeyNotBlankError: target is an instance with a key set.
        """
        self._reject_keyed_instance(target)
        return self._soft_delete.delete(
            force=force,
            physical=lambda: self._delete_rows(target, conditions, limit_one),
            logical=lambda values: self.update_by_condition(
                target, conditions, values, limit_one=limit_one
            ),
        )

    def restore_by_key(self, target: Target, key: Any = None) -> int:
        """
        Undo a soft delete.

        The deleted-value predicate replaces the default visibility
        predicate (same key), so only soft-deleted rows are touched.
        """
        key = self._resolve_key(target, key)
        if is_blank(key):
            raise PrimaryKeyBlankError(resolve_table(target).name)

        config = self._soft_delete.current() or self._soft_delete.config
        conditions = self._key_condition(resolve_table(target), key)
        conditions.add(config.deleted_predicate())
        return self._update_rows(
            target, conditions, {config.column: config.active_value}, limit_one=False
        )
