"""
Centralized data-access exceptions for consistent error handling.

Usage:
    from shared.utils.exceptions import PrimaryKeyBlankError, is_not_found

    raise PrimaryKeyBlankError("user")

    try:
        accessor.fetch_one_by_key(User, 42, raise_not_found=True)
    except RecordNotFoundError as exc:
        assert is_not_found(exc)

Errors raised by SQLAlchemy itself are never wrapped: they reach the caller
unchanged so driver-level detail is preserved.
"""

from typing import Any

from sqlalchemy.exc import NoResultFound

from shared.config.logging import get_logger

logger = get_logger(__name__)


class DataAccessError(Exception):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and message format.
    """

    log_level: str = "warning"

    def __init__(self, detail: str, **log_context: Any):
        self.detail = detail
        self.context = log_context

        log_fn = getattr(logger, self.log_level, logger.warning)
        log_fn(detail, error=type(self).__name__, **log_context)

        super().__init__(detail)


# =============================================================================
# Primary key guards
# =============================================================================


class PrimaryKeyBlankError(DataAccessError):
    """
    The operation needs a populated primary key and none was given.

    Usage:
        raise PrimaryKeyBlankError("user")
    """

    def __init__(self, table: str | None = None, **log_context: Any):
        super().__init__("primary key is blank", table=table, **log_context)


class PrimaryKeyNotBlankError(DataAccessError):
    """
    The operation needs an unkeyed entity and a keyed one was given.

    Usage:
        raise PrimaryKeyNotBlankError("user", key=3)
    """

    def __init__(self, table: str | None = None, key: Any = None, **log_context: Any):
        self.key = key
        super().__init__("primary key is not blank", table=table, key=key, **log_context)


class AlreadyPersistedError(PrimaryKeyNotBlankError):
    """create() was called with an entity whose primary key is already set."""

    def __init__(self, table: str | None = None, key: Any = None, **log_context: Any):
        self.key = key
        DataAccessError.__init__(
            self, "this is not a new record", table=table, key=key, **log_context
        )


# =============================================================================
# Lookups
# =============================================================================


class RecordNotFoundError(DataAccessError):
    """
    A single-row fetch matched zero rows.

    Only raised when the caller asks for it (raise_not_found=True); by
    default single-row fetches return None instead.
    """

    log_level = "debug"

    def __init__(self, table: str | None = None, **log_context: Any):
        super().__init__("record not found", table=table, **log_context)


# =============================================================================
# Invalid input
# =============================================================================


class InvalidPredicateError(DataAccessError, ValueError):
    """
    A condition expression does not match the accepted grammar.

    Usage:
        raise InvalidPredicateError("id = ? OR 1=1")
    """

    def __init__(self, expression: str, reason: str | None = None, **log_context: Any):
        self.expression = expression
        detail = f"invalid condition expression {expression!r}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail, expression=expression, **log_context)


class InvalidOptionsError(DataAccessError, ValueError):
    """Query options are out of range or inconsistent."""

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, **log_context)


def is_not_found(exc: BaseException | None) -> bool:
    """
    Tell a zero-row outcome apart from a hard failure.

    True for RecordNotFoundError and for SQLAlchemy's NoResultFound
    (raised by Result.one() / Session.get_one()).
    """
    return isinstance(exc, (RecordNotFoundError, NoResultFound))
