"""
Base model mixins for the CRO auditor.
"""
import uuid
from typing import Any

from sqlalchemy import Column, DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UUIDMixin:
    """Mixin for UUID primary key."""

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class BaseModel(UUIDMixin, TimestampMixin):
    """Base model with UUID and timestamps."""

    __abstract__ = True
    # Server-generated timestamps are loaded at flush time; async sessions
    # cannot lazy-load them afterwards.
    __mapper_args__ = {"eager_defaults": True}

    def merge_json(self, field: str, **values: Any) -> dict[str, Any]:
        """Add keys to a JSON column by reassigning it.

        Plain JSON columns do not track in-place mutation, so updates always
        go through a fresh dict.
        """
        merged = {**(getattr(self, field) or {}), **values}
        setattr(self, field, merged)
        return merged
