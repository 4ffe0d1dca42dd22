"""
Centralized constants for the data-access layer.

Usage:
    from shared.config.constants import SoftDeleteFlag, Limits

    if row.is_deleted == SoftDeleteFlag.DELETED:
        ...
"""

from typing import Final


# =============================================================================
# Soft Delete
# =============================================================================


class SoftDeleteFlag:
    """Values stored in the soft-delete flag column."""

    COLUMN: Final[str] = "is_deleted"
    ACTIVE: Final[str] = "N"
    DELETED: Final[str] = "Y"

    ALL: Final[list[str]] = [ACTIVE, DELETED]


# =============================================================================
# Predicate operators
# =============================================================================


class Operators:
    """Operators accepted in condition expressions."""

    EQ: Final[str] = "="
    NE: Final[str] = "!="
    NE_ALT: Final[str] = "<>"
    LT: Final[str] = "<"
    LE: Final[str] = "<="
    GT: Final[str] = ">"
    GE: Final[str] = ">="
    IN: Final[str] = "IN"
    NOT_IN: Final[str] = "NOT IN"
    LIKE: Final[str] = "LIKE"
    NOT_LIKE: Final[str] = "NOT LIKE"
    IS_NULL: Final[str] = "IS NULL"
    IS_NOT_NULL: Final[str] = "IS NOT NULL"

    # Operators that take no bound value
    BARE: Final[frozenset[str]] = frozenset({IS_NULL, IS_NOT_NULL})
    # Operators whose bound value is a sequence
    SEQUENCE: Final[frozenset[str]] = frozenset({IN, NOT_IN})

    ALL: Final[frozenset[str]] = frozenset(
        {EQ, NE, NE_ALT, LT, LE, GT, GE, IN, NOT_IN, LIKE, NOT_LIKE, IS_NULL, IS_NOT_NULL}
    )


# =============================================================================
# Validation Limits
# =============================================================================


class Limits:
    """Validation limits."""

    # Bulk insert
    DEFAULT_BATCH_SIZE: Final[int] = 500
    MAX_BATCH_SIZE: Final[int] = 10_000
