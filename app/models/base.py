"""SQLAlchemy declarative Base and shared model configuration."""

import uuid
from typing import Any

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase


def new_record_id() -> str:
    """Surrogate id for dashboard records (UUID4 string)."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class DashboardRecordMixin:
    """
    Shared shape of dashboard records: string id assigned by the store if absent,
    created_at set once and updated_at refreshed on every write.
    """

    id = Column(String(36), primary_key=True, default=new_record_id)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        """Plain dict of all mapped columns."""
        return {col.key: getattr(self, col.key) for col in self.__table__.columns}  # type: ignore[attr-defined]
