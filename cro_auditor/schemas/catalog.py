"""
Test catalog schemas.
"""
from typing import Any
from uuid import UUID

from pydantic import Field

from cro_auditor.models.catalog import TestCategory, TestResultStatus
from cro_auditor.schemas.common import BaseSchema, IDSchema


class TestGroupCreate(BaseSchema):
    __test__ = False

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    color: str | None = None
    active: bool = True


class TestGroupResponse(IDSchema):
    __test__ = False

    name: str
    description: str | None
    color: str | None
    active: bool


class TestCreate(BaseSchema):
    __test__ = False

    test_group_id: UUID
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    test_key: str
    test_details: str = Field(min_length=1)
    data_sources: list[str]
    active: bool = True


class TestResponse(IDSchema):
    __test__ = False

    test_group_id: UUID
    name: str
    description: str | None
    test_key: str
    test_details: str
    data_sources: list[str]
    active: bool


class TestImport(BaseSchema):
    """Payload produced by the export endpoint."""
    __test__ = False

    name: str
    description: str | None = None
    test_key: str
    test_details: str
    data_sources: list[str]
    test_group: str | None = None


class TestResultResponse(IDSchema):
    __test__ = False

    discovered_page_id: UUID
    test_key: str
    status: TestResultStatus
    summary: str | None
    details: dict[str, Any] | None
    test_category: TestCategory | None
    score: int | None
    priority: int | None
