"""
Audit and question persistence operations used by the API and the workflow.
"""
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cro_auditor.core.exceptions import ConflictError
from cro_auditor.models.audit import (
    Audit,
    AuditMode,
    AuditQuestion,
    AuditStatus,
    QuestionStatus,
)
from cro_auditor.models.page import DiscoveredPage


class AuditService:
    """Service for audit CRUD."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, audit_id: UUID, with_pages: bool = False) -> Audit | None:
        query = select(Audit).where(Audit.id == audit_id)
        if with_pages:
            query = query.options(selectinload(Audit.discovered_pages))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_audits(
        self,
        page: int = 1,
        per_page: int = 20,
        status: AuditStatus | None = None,
    ) -> tuple[list[Audit], int]:
        """List audits, newest first."""
        query = select(Audit)
        count_query = select(func.count(Audit.id))
        if status:
            query = query.where(Audit.status == status)
            count_query = count_query.where(Audit.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(Audit.created_at.desc()).offset((page - 1) * per_page).limit(per_page)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def create(self, url: str, mode: AuditMode = AuditMode.FULL_CRAWL) -> Audit:
        audit = Audit(url=url, mode=mode, status=AuditStatus.PENDING)
        self.db.add(audit)
        await self.db.flush()
        await self.db.refresh(audit)
        return audit

    async def delete(self, audit: Audit) -> None:
        """Delete an audit and, through cascades, everything it owns."""
        await self.db.delete(audit)
        await self.db.flush()

    async def get_page(self, audit_id: UUID, page_id: UUID) -> DiscoveredPage | None:
        result = await self.db.execute(
            select(DiscoveredPage).where(
                DiscoveredPage.id == page_id,
                DiscoveredPage.audit_id == audit_id,
            )
        )
        return result.scalar_one_or_none()


class AuditQuestionService:
    """Records owner answers. The only writer of question status."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_questions(self, audit_id: UUID, status: QuestionStatus | None = None) -> list[AuditQuestion]:
        query = select(AuditQuestion).where(AuditQuestion.audit_id == audit_id)
        if status:
            query = query.where(AuditQuestion.status == status)
        result = await self.db.execute(query.order_by(AuditQuestion.created_at))
        return list(result.scalars().all())

    async def get(self, audit_id: UUID, question_id: UUID) -> AuditQuestion | None:
        result = await self.db.execute(
            select(AuditQuestion).where(
                AuditQuestion.id == question_id,
                AuditQuestion.audit_id == audit_id,
            )
        )
        return result.scalar_one_or_none()

    async def pending_count(self, audit_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(AuditQuestion.id)).where(
                AuditQuestion.audit_id == audit_id,
                AuditQuestion.status == QuestionStatus.PENDING,
            )
        )
        return result.scalar() or 0

    async def answer(self, audit: Audit, question: AuditQuestion, response: str) -> AuditQuestion:
        self._ensure_pending(question)
        question.mark_answered(response)
        audit.questions_answered = (audit.questions_answered or 0) + 1
        await self.db.flush()
        return question

    async def skip(self, audit: Audit, question: AuditQuestion) -> AuditQuestion:
        self._ensure_pending(question)
        question.mark_skipped()
        await self.db.flush()
        return question

    @staticmethod
    def _ensure_pending(question: AuditQuestion) -> None:
        if question.status != QuestionStatus.PENDING:
            raise ConflictError(f"Question already {question.status.value}")
