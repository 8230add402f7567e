"""
Audit root aggregate and owner questions.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship, validates

from cro_auditor.core.urls import normalize_seed_url
from cro_auditor.models.base import Base, BaseModel


class AuditMode(str, PyEnum):
    SINGLE_PAGE = "single_page"
    FULL_CRAWL = "full_crawl"


class AuditStatus(str, PyEnum):
    PENDING = "pending"
    CRAWLING = "crawling"
    COLLECTING = "collecting"
    TESTING = "testing"
    COMPLETE = "complete"
    FAILED = "failed"


class WorkflowPhase(str, PyEnum):
    CRAWLING = "crawling"
    PRIORITIZING = "prioritizing"
    QUESTIONING = "questioning"
    ANALYZING = "analyzing"
    SYNTHESIZING = "synthesizing"


PHASES: list[WorkflowPhase] = [
    WorkflowPhase.CRAWLING,
    WorkflowPhase.PRIORITIZING,
    WorkflowPhase.QUESTIONING,
    WorkflowPhase.ANALYZING,
    WorkflowPhase.SYNTHESIZING,
]

# Coarse lifecycle status reported while each phase runs
PHASE_STATUS: dict[WorkflowPhase, AuditStatus] = {
    WorkflowPhase.CRAWLING: AuditStatus.CRAWLING,
    WorkflowPhase.PRIORITIZING: AuditStatus.COLLECTING,
    WorkflowPhase.QUESTIONING: AuditStatus.COLLECTING,
    WorkflowPhase.ANALYZING: AuditStatus.TESTING,
    WorkflowPhase.SYNTHESIZING: AuditStatus.TESTING,
}


def phase_index(phase: WorkflowPhase | None) -> int:
    """Position of a phase in PHASES; -1 before the workflow starts."""
    if phase is None:
        return -1
    return PHASES.index(WorkflowPhase(phase))


class QuestionType(str, PyEnum):
    CTA_IDENTIFICATION = "cta_identification"
    PAGE_PURPOSE = "page_purpose"
    COMPETING_ACTIONS = "competing_actions"
    TARGET_AUDIENCE = "target_audience"
    CONVERSION_GOAL = "conversion_goal"
    CLARITY_CHECK = "clarity_check"


QUESTION_PROMPTS: dict[QuestionType, str] = {
    QuestionType.CTA_IDENTIFICATION: "Which element is the primary call-to-action?",
    QuestionType.PAGE_PURPOSE: "What is the primary purpose of this page?",
    QuestionType.COMPETING_ACTIONS: "Are there competing actions on this page?",
    QuestionType.TARGET_AUDIENCE: "Who is the target audience?",
    QuestionType.CONVERSION_GOAL: "What action should visitors take?",
    QuestionType.CLARITY_CHECK: "Is the value proposition clear?",
}


class QuestionStatus(str, PyEnum):
    PENDING = "pending"
    ANSWERED = "answered"
    SKIPPED = "skipped"


class Audit(Base, BaseModel):
    """A single CRO audit of one site."""

    __tablename__ = "audits"

    url = Column(String(2048), nullable=False)
    mode = Column(Enum(AuditMode), default=AuditMode.FULL_CRAWL, nullable=False)
    status = Column(
        Enum(AuditStatus),
        default=AuditStatus.PENDING,
        nullable=False,
        index=True,
    )
    current_phase = Column(Enum(WorkflowPhase), nullable=True)
    last_completed_phase = Column(Enum(WorkflowPhase), nullable=True)
    failed_phase = Column(Enum(WorkflowPhase), nullable=True)
    error_message = Column(Text, nullable=True)

    discovered_pages_count = Column(Integer, default=0, nullable=False)
    priority_pages_count = Column(Integer, default=0, nullable=False)
    questions_generated = Column(Integer, default=0, nullable=False)
    questions_answered = Column(Integer, default=0, nullable=False)

    ai_decisions = Column(JSONB, default=dict)
    summary = Column(Text, nullable=True)
    overall_score = Column(Integer, nullable=True)
    raw_results = Column(JSONB, default=dict)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    discovered_pages = relationship(
        "DiscoveredPage", back_populates="audit", cascade="all, delete-orphan"
    )
    questions = relationship(
        "AuditQuestion", back_populates="audit", cascade="all, delete-orphan"
    )
    test_results = relationship(
        "TestResult", back_populates="audit", cascade="all, delete-orphan"
    )

    @validates("url")
    def _normalize_url(self, key, value):
        if not value or not value.strip():
            raise ValueError("Audit URL is required")
        return normalize_seed_url(value)

    @property
    def is_single_page(self) -> bool:
        return self.mode == AuditMode.SINGLE_PAGE

    def __repr__(self) -> str:
        return f"<Audit {self.id} {self.url} ({self.status.value})>"


class AuditQuestion(Base, BaseModel):
    """Clarifying question put to the site owner."""

    __tablename__ = "audit_questions"

    audit_id = Column(
        UUID(as_uuid=True),
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    discovered_page_id = Column(
        UUID(as_uuid=True),
        ForeignKey("discovered_pages.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    question_type = Column(Enum(QuestionType), nullable=False)
    question_text = Column(Text, nullable=False)
    options = Column(JSONB, nullable=True)
    user_response = Column(Text, nullable=True)
    status = Column(
        Enum(QuestionStatus),
        default=QuestionStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Relationships
    audit = relationship("Audit", back_populates="questions")
    discovered_page = relationship("DiscoveredPage", back_populates="questions")

    def mark_answered(self, response: str) -> None:
        self.user_response = response
        self.status = QuestionStatus.ANSWERED

    def mark_skipped(self) -> None:
        self.status = QuestionStatus.SKIPPED

    def __repr__(self) -> str:
        return f"<AuditQuestion {self.question_type.value} ({self.status.value})>"
