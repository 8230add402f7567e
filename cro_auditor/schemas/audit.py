"""
Audit schemas.
"""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from cro_auditor.models.audit import (
    AuditMode,
    AuditStatus,
    QuestionStatus,
    QuestionType,
    WorkflowPhase,
)
from cro_auditor.models.page import (
    DataCollectionStatus,
    PageType,
    ScoreSource,
    TestingStatus,
)
from cro_auditor.schemas.common import BaseSchema, IDSchema


class AuditCreate(BaseSchema):
    """Create audit request."""

    url: str = Field(min_length=1, max_length=2048)
    mode: AuditMode = AuditMode.FULL_CRAWL


class AuditResponse(IDSchema):
    url: str
    mode: AuditMode
    status: AuditStatus
    current_phase: WorkflowPhase | None
    last_completed_phase: WorkflowPhase | None
    failed_phase: WorkflowPhase | None
    error_message: str | None
    discovered_pages_count: int
    priority_pages_count: int
    questions_generated: int
    questions_answered: int
    overall_score: int | None
    started_at: datetime | None
    completed_at: datetime | None


class DiscoveredPageResponse(IDSchema):
    url: str
    page_type: PageType
    priority_score: int | None
    score_source: ScoreSource | None
    is_priority_page: bool
    crawl_metadata: dict[str, Any] | None
    data_collection_status: DataCollectionStatus
    testing_status: TestingStatus


class AuditDetailResponse(AuditResponse):
    """Audit with its pages and report."""

    summary: str | None
    ai_decisions: dict[str, Any] | None
    raw_results: dict[str, Any] | None
    discovered_pages: list[DiscoveredPageResponse] = []


class QuestionResponse(IDSchema):
    discovered_page_id: UUID | None
    question_type: QuestionType
    question_text: str
    options: dict[str, Any] | None
    user_response: str | None
    status: QuestionStatus


class QuestionAnswer(BaseSchema):
    response: str = Field(min_length=1)
