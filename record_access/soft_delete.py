"""
Soft delete configuration and controller.

Rows are never removed by default: a delete writes the "deleted" value into
the flag column, and every read adds the visibility predicate
"<column> = <active value>". A forced delete suspends that predicate for its
own duration and removes rows physically.

Suspension and config overrides are scoped: they live in a ContextVar for
the duration of a `with` block and are reset in `finally`, so each thread
or asyncio task sees only its own overrides and the previous mode is always
restored, errors included.

Usage:
    controller = SoftDeleteController()

    with controller.suspended():
        ...  # reads and deletes see every row

    with controller.scoped(SoftDeleteConfig(column="status", active_value="live")):
        ...
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any

from sqlalchemy.sql import FromClause

from record_access.conditions import ConditionSet, Predicate
from record_access.models.entity import has_column, is_identifier
from shared.config.constants import Operators, SoftDeleteFlag
from shared.config.logging import get_logger
from shared.config.settings import get_settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class SoftDeleteConfig:
    """Flag column plus the values meaning "visible" and "deleted"."""

    column: str = SoftDeleteFlag.COLUMN
    active_value: Any = SoftDeleteFlag.ACTIVE
    deleted_value: Any = SoftDeleteFlag.DELETED

    def __post_init__(self) -> None:
        if not is_identifier(self.column):
            raise ValueError(f"Invalid soft delete column: {self.column!r}")
        if self.active_value == self.deleted_value:
            raise ValueError("active_value and deleted_value must differ")

    @classmethod
    def from_settings(cls) -> SoftDeleteConfig:
        settings = get_settings()
        return cls(
            column=settings.soft_delete_column,
            active_value=settings.soft_delete_active_value,
            deleted_value=settings.soft_delete_deleted_value,
        )

    def with_column(self, column: str) -> SoftDeleteConfig:
        """Same values, different flag column."""
        return replace(self, column=column)

    def visible_predicate(self) -> Predicate:
        return Predicate(self.column, Operators.EQ, self.active_value)

    def deleted_predicate(self) -> Predicate:
        return Predicate(self.column, Operators.EQ, self.deleted_value)

    def deleted_values(self) -> dict[str, Any]:
        """Field-set written by a logical delete."""
        return {self.column: self.deleted_value}


# controller id -> config in effect (None = suspended)
_overrides: ContextVar[Mapping[int, SoftDeleteConfig | None]] = ContextVar(
    "soft_delete_overrides", default=MappingProxyType({})
)


class SoftDeleteController:
    """
    Decides which visibility predicate applies and routes deletes.

    Modes:
    - active: the config's visibility predicate is added to every read
    - suspended: no default predicate (inside `suspended()` / forced deletes)
    """

    def __init__(self, config: SoftDeleteConfig | None = None):
        self._config = config or SoftDeleteConfig.from_settings()

    @property
    def config(self) -> SoftDeleteConfig:
        """Config given at construction, ignoring scoped overrides."""
        return self._config

    def current(self) -> SoftDeleteConfig | None:
        """Config in effect for the running context; None when suspended."""
        overrides = _overrides.get()
        if id(self) in overrides:
            return overrides[id(self)]
        return self._config

    @property
    def is_suspended(self) -> bool:
        return self.current() is None

    @contextmanager
    def scoped(self, config: SoftDeleteConfig | None) -> Iterator[SoftDeleteConfig | None]:
        """
        Use `config` (None to suspend) until the block exits.

        Re-entrant: nested scopes restore the enclosing one on exit.
        """
        overrides = dict(_overrides.get())
        overrides[id(self)] = config
        token = _overrides.set(MappingProxyType(overrides))
        try:
            yield config
        finally:
            _overrides.reset(token)

    def suspended(self):
        """Drop the default visibility predicate until the block exits."""
        return self.scoped(None)

    def default_conditions(
        self, selectable: FromClause, include_deleted: bool = False
    ) -> ConditionSet:
        """
        The visibility predicate for a table, if one applies.

        Empty when suspended, when the caller asked for deleted rows, or when
        the table has no flag column.
        """
        config = self.current()
        if include_deleted or config is None or not has_column(selectable, config.column):
            return ConditionSet()
        return ConditionSet([config.visible_predicate()])

    def deleted_values(self) -> dict[str, Any]:
        return (self.current() or self._config).deleted_values()

    def delete(
        self,
        *,
        force: bool,
        physical: Callable[[], int],
        logical: Callable[[dict[str, Any]], int],
    ) -> int:
        """
        Route a delete.

        force=False: `logical` is called with the flag field-set, i.e. the
        delete is an ordinary update of one column.
        force=True: `physical` runs with the default predicate suspended;
        the previous mode is restored however it exits.
        """
        if not force:
            return logical(self.deleted_values())

        previous = self.current()
        with self.suspended():
            logger.debug(
                "Visibility predicate suspended for forced delete",
                column=previous.column if previous else None,
            )
            return physical()
