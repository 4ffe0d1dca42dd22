"""
Condition composition.

A condition set maps a canonical expression key ("age > ?", "email IS NULL")
to a tagged Predicate (column, operator, value). Sets are merged in order and
the last writer wins on a key collision, which is how a caller overrides the
default visibility predicate:

    default = ConditionSet.from_mapping({"is_deleted = ?": "N"})
    effective = compose(default, {"is_deleted = ?": "Y", "id > ?": 10})
    # effective["is_deleted = ?"].value == "Y"

Callers may write conditions in the familiar string form; expressions are
parsed against a strict grammar (one identifier, one whitelisted operator,
one "?" placeholder) so raw SQL never reaches the statement.
"""

from __future__ import annotations

import operator as op
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Callable, Union

from sqlalchemy import column
from sqlalchemy.sql import ColumnElement, FromClause

from record_access.models.entity import is_identifier, resolve_column
from shared.config.constants import Operators
from shared.config.logging import get_logger
from shared.utils.exceptions import InvalidPredicateError

logger = get_logger(__name__)


_WORD_OPERATORS = r"IS\s+NOT\s+NULL|IS\s+NULL|NOT\s+IN|IN|NOT\s+LIKE|LIKE"
_SYMBOL_OPERATORS = r"<=|>=|<>|!=|=|<|>"

EXPRESSION = re.compile(
    r"^\s*(?P<column>[A-Za-z_][A-Za-z0-9_]*)"
    rf"(?:\s+(?P<word>{_WORD_OPERATORS})|\s*(?P<symbol>{_SYMBOL_OPERATORS}))"
    r"\s*(?P<placeholder>\(\s*\?\s*\)|\?)?\s*$",
    re.IGNORECASE,
)

_COMPARISONS: dict[str, Callable[[Any, Any], Any]] = {
    Operators.EQ: op.eq,
    Operators.NE: op.ne,
    Operators.NE_ALT: op.ne,
    Operators.LT: op.lt,
    Operators.LE: op.le,
    Operators.GT: op.gt,
    Operators.GE: op.ge,
    Operators.LIKE: lambda col, value: col.like(value),
    Operators.NOT_LIKE: lambda col, value: col.not_like(value),
    Operators.IN: lambda col, value: col.in_(list(value)),
    Operators.NOT_IN: lambda col, value: col.not_in(list(value)),
}


def _normalize_operator(raw: str) -> str:
    return " ".join(raw.upper().split())


def _match_expression(expression: Any) -> tuple[str, str] | str:
    """(column, operator) for a well-formed expression, else the reason it is not."""
    match = EXPRESSION.match(expression) if isinstance(expression, str) else None
    if match is None:
        return "not a condition expression"

    operator = _normalize_operator(match.group("word") or match.group("symbol"))
    has_placeholder = match.group("placeholder") is not None

    if operator in Operators.BARE:
        if has_placeholder:
            return "operator takes no placeholder"
    elif not has_placeholder:
        return "missing '?' placeholder"

    return match.group("column"), operator


def split_expression(expression: str) -> tuple[str, str]:
    """Validate an expression string and return (column, operator)."""
    result = _match_expression(expression)
    if isinstance(result, str):
        raise InvalidPredicateError(str(expression), result)
    return result


def canonical_key(expression: str) -> str:
    """'id>?' and 'id > ?' name the same predicate slot."""
    return _key_for(*split_expression(expression))


def _key_for(column_name: str, operator: str) -> str:
    if operator in Operators.BARE:
        return f"{column_name} {operator}"
    return f"{column_name} {operator} ?"


@dataclass(frozen=True)
class Predicate:
    """
    A single filter: column, operator and bound value.

    IS NULL / IS NOT NULL are bare and carry no value. Equality and
    inequality against None compile to IS NULL / IS NOT NULL.
    """

    column: str
    operator: str = Operators.EQ
    value: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "operator", _normalize_operator(self.operator))

        if not is_identifier(self.column):
            raise InvalidPredicateError(self.column, "not a valid column name")
        if self.operator not in Operators.ALL:
            raise InvalidPredicateError(
                f"{self.column} {self.operator}", "unsupported operator"
            )
        if self.is_bare and self.value is not None:
            raise InvalidPredicateError(self.key, "operator takes no value")
        if self.operator in Operators.SEQUENCE and (
            isinstance(self.value, (str, bytes)) or not isinstance(self.value, Iterable)
        ):
            raise InvalidPredicateError(self.key, "IN needs a sequence of values")
        if self.value is None and self.operator not in Operators.BARE | {
            Operators.EQ, Operators.NE, Operators.NE_ALT,
        }:
            raise InvalidPredicateError(self.key, "operator needs a value")

    @property
    def is_bare(self) -> bool:
        return self.operator in Operators.BARE

    @property
    def key(self) -> str:
        """Canonical expression; two predicates with the same key collide."""
        return _key_for(self.column, self.operator)

    @classmethod
    def parse(cls, expression: str, value: Any = None) -> Predicate:
        """
        Build a predicate from "column op ?" (or "column IS [NOT] NULL").

        Raises InvalidPredicateError for anything outside that grammar.
        """
        column_name, operator = split_expression(expression)
        return cls(column_name, operator, value)

    def compile(self, selectable: FromClause | None = None) -> ColumnElement[bool]:
        """
        Turn the predicate into a SQLAlchemy clause.

        Without a selectable the column is left unqualified, which is what
        HAVING clauses over labelled aggregates need.
        """
        col = resolve_column(selectable, self.column) if selectable is not None else column(self.column)

        if self.operator == Operators.IS_NULL:
            return col.is_(None)
        if self.operator == Operators.IS_NOT_NULL:
            return col.is_not(None)
        return _COMPARISONS[self.operator](col, self.value)

    def __str__(self) -> str:
        if self.is_bare:
            return self.key
        return f"{self.key} -> {self.value!r}"


ConditionsLike = Union["ConditionSet", Mapping[str, Any], Iterable[Predicate], None]


class ConditionSet:
    """
    Ordered mapping of expression key to Predicate.

    Adding a predicate whose key is already present replaces it.
    """

    __slots__ = ("_predicates",)

    def __init__(self, predicates: Iterable[Predicate] = ()):
        self._predicates: dict[str, Predicate] = {}
        for predicate in predicates:
            self.add(predicate)

    @classmethod
    def from_mapping(cls, conditions: ConditionsLike) -> ConditionSet:
        """
        Accept a ConditionSet, a {"expr": value} mapping, predicates, or None.
        """
        if conditions is None:
            return cls()
        if isinstance(conditions, ConditionSet):
            return conditions.copy()
        if isinstance(conditions, Predicate):
            return cls([conditions])
        if isinstance(conditions, Mapping):
            result = cls()
            for expression, value in conditions.items():
                if isinstance(value, Predicate):
                    result.add(value)
                else:
                    result.add(Predicate.parse(expression, value))
            return result
        if isinstance(conditions, Iterable) and not isinstance(conditions, (str, bytes)):
            return cls(conditions)
        raise TypeError(f"Unsupported conditions: {conditions!r}")

    def add(self, predicate: Predicate) -> Predicate | None:
        """Insert or overwrite; returns the predicate that was replaced."""
        if not isinstance(predicate, Predicate):
            raise TypeError(f"Expected Predicate, got {type(predicate).__name__}")
        replaced = self._predicates.get(predicate.key)
        self._predicates[predicate.key] = predicate
        return replaced

    def copy(self) -> ConditionSet:
        return ConditionSet(self._predicates.values())

    def without_column(self, column_name: str) -> ConditionSet:
        return ConditionSet(p for p in self if p.column != column_name)

    def references(self, column_name: str) -> bool:
        return any(p.column == column_name for p in self)

    def compile(self, selectable: FromClause | None = None) -> list[ColumnElement[bool]]:
        return [predicate.compile(selectable) for predicate in self]

    def keys(self) -> list[str]:
        return list(self._predicates)

    def to_dict(self) -> dict[str, Any]:
        """Back to the {"expr": value} form."""
        return {key: predicate.value for key, predicate in self._predicates.items()}

    def __getitem__(self, key: str) -> Predicate:
        if key in self._predicates:
            return self._predicates[key]
        return self._predicates[canonical_key(key)]

    def __contains__(self, key: object) -> bool:
        if key in self._predicates:
            return True
        result = _match_expression(key)
        if isinstance(result, str):
            return False
        return _key_for(*result) in self._predicates

    def __iter__(self) -> Iterator[Predicate]:
        return iter(self._predicates.values())

    def __len__(self) -> int:
        return len(self._predicates)

    def __bool__(self) -> bool:
        return bool(self._predicates)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ConditionSet):
            return self.to_dict() == other.to_dict()
        return NotImplemented

    def __repr__(self) -> str:
        inner = ", ".join(str(p) for p in self)
        return f"ConditionSet({inner})"


def compose(default: ConditionsLike, *caller_sets: ConditionsLike) -> ConditionSet:
    """
    Merge the default set with caller sets into the effective condition set.

    Defaults go first, then each caller set in argument order; on a key
    collision the later predicate replaces the earlier one.
    """
    effective = ConditionSet.from_mapping(default)
    default_keys = set(effective.keys())

    for conditions in caller_sets:
        for predicate in ConditionSet.from_mapping(conditions):
            replaced = effective.add(predicate)
            if replaced is not None and predicate.key in default_keys:
                logger.debug(
                    "Caller condition overrides default",
                    key=predicate.key,
                    default=replaced.value,
                    value=predicate.value,
                )

    return effective
