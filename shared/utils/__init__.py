"""
Utility module: exceptions.
"""

from shared.utils.exceptions import (
    DataAccessError,
    PrimaryKeyBlankError,
    PrimaryKeyNotBlankError,
    AlreadyPersistedError,
    RecordNotFoundError,
    InvalidPredicateError,
    InvalidOptionsError,
    is_not_found,
)

__all__ = [
    "DataAccessError",
    "PrimaryKeyBlankError",
    "PrimaryKeyNotBlankError",
    "AlreadyPersistedError",
    "RecordNotFoundError",
    "InvalidPredicateError",
    "InvalidOptionsError",
    "is_not_found",
]
