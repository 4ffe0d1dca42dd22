"""
Generic record access over SQLAlchemy with a soft delete convention.

STRUCTURE:
- record_access.models: declarative Base, CommonFields mixin, entity helpers
- record_access.conditions: Predicate, ConditionSet, compose()
- record_access.soft_delete: SoftDeleteConfig, SoftDeleteController
- record_access.options: QueryOptions, SearchOptions, SearchResult
- record_access.bulk: chunked batch insert
- record_access.accessor: RecordAccessor (create/fetch/search/count/update/delete)

IMPORT EXAMPLES:
    from record_access import RecordAccessor, SearchOptions
    from record_access.models import Base, CommonFields
    from record_access.soft_delete import SoftDeleteConfig
"""

from record_access.accessor import RecordAccessor
from record_access.conditions import ConditionSet, Predicate, compose
from record_access.models import Base, CommonFields
from record_access.options import QueryOptions, SearchOptions, SearchResult
from record_access.soft_delete import SoftDeleteConfig, SoftDeleteController
from shared.utils.exceptions import (
    AlreadyPersistedError,
    DataAccessError,
    InvalidOptionsError,
    InvalidPredicateError,
    PrimaryKeyBlankError,
    PrimaryKeyNotBlankError,
    RecordNotFoundError,
    is_not_found,
)

__all__ = [
    "RecordAccessor",
    "ConditionSet",
    "Predicate",
    "compose",
    "Base",
    "CommonFields",
    "QueryOptions",
    "SearchOptions",
    "SearchResult",
    "SoftDeleteConfig",
    "SoftDeleteController",
    "DataAccessError",
    "AlreadyPersistedError",
    "InvalidOptionsError",
    "InvalidPredicateError",
    "PrimaryKeyBlankError",
    "PrimaryKeyNotBlankError",
    "RecordNotFoundError",
    "is_not_found",
]
