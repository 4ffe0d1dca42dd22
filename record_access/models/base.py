"""
Base class and CommonFields mixin for all mapped entities.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Enum, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from shared.config.constants import SoftDeleteFlag


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CommonFields:
    """
    Mixin providing the audit columns shared by every entity.

    Fields added:
    - id: Integer primary key (blank until the row is inserted)
    - created_at, updated_at: Audit timestamps
    - is_deleted: Soft delete flag ('N' = visible, 'Y' = deleted)

    Methods:
    - set_default_values(): Stamp timestamps and mark the entity as visible
    """

    id: Mapped[Optional[int]] = mapped_column(Integer, primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    # Soft delete flag (N = visible, Y = deleted)
    is_deleted: Mapped[str] = mapped_column(
        Enum(*SoftDeleteFlag.ALL, name="soft_delete_flag", native_enum=False),
        default=SoftDeleteFlag.ACTIVE,
        server_default=SoftDeleteFlag.ACTIVE,
        nullable=False,
        index=True,
    )

    def set_default_values(self) -> None:
        """Initialize audit columns for a brand-new entity."""
        now = _utcnow()
        self.created_at = now
        self.updated_at = now
        self.is_deleted = SoftDeleteFlag.ACTIVE

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        id_val = getattr(self, "id", None)
        state = "deleted" if self.is_deleted == SoftDeleteFlag.DELETED else "active"
        return f"<{class_name}(id={id_val}, {state})>"
