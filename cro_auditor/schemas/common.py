"""
Shared Pydantic schemas.
"""
import math
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Reads straight from ORM objects."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class IDSchema(BaseSchema):
    id: UUID
    created_at: datetime


class PaginatedResponse(BaseSchema, Generic[T]):
    """One page of a listing."""

    items: list[T]
    total: int
    page: int
    per_page: int
    pages: int

    @classmethod
    def create(cls, items: list[T], total: int, page: int, per_page: int) -> "PaginatedResponse[T]":
        return cls(items=items, total=total, page=page, per_page=per_page, pages=math.ceil(total / per_page))


class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    """Body of a rejected catalog definition."""

    detail: str
    invalid: list[str] | None = None
    allowed: list[str] | None = None
