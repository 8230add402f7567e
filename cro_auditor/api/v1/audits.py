"""
Audit endpoints.
"""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.core.exceptions import BadRequestError, ConflictError, NotFoundError
from cro_auditor.database import get_db
from cro_auditor.models.audit import Audit, AuditStatus, QuestionStatus
from cro_auditor.schemas.audit import (
    AuditCreate,
    AuditDetailResponse,
    AuditResponse,
    QuestionAnswer,
    QuestionResponse,
)
from cro_auditor.schemas.common import MessageResponse, PaginatedResponse
from cro_auditor.services.audit_service import AuditQuestionService, AuditService

router = APIRouter(prefix="/audits", tags=["Audits"])


async def _get_audit(audit_id: UUID, db: AsyncSession, with_pages: bool = False) -> Audit:
    audit = await AuditService(db).get_by_id(audit_id, with_pages=with_pages)
    if not audit:
        raise NotFoundError("Audit")
    return audit


@router.post("", response_model=AuditResponse, status_code=status.HTTP_201_CREATED)
async def create_audit(
    data: AuditCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create an audit and queue its workflow."""
    try:
        audit = await AuditService(db).create(data.url, data.mode)
    except ValueError as e:
        raise BadRequestError(str(e))

    await db.commit()

    from cro_auditor.tasks.audit_tasks import run_audit_workflow
    run_audit_workflow.delay(str(audit.id))

    return AuditResponse.model_validate(audit)


@router.get("", response_model=PaginatedResponse[AuditResponse])
async def list_audits(
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    status: AuditStatus | None = None,
):
    audits, total = await AuditService(db).list_audits(page, per_page, status)
    return PaginatedResponse.create(
        items=[AuditResponse.model_validate(a) for a in audits],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{audit_id}", response_model=AuditDetailResponse)
async def get_audit(
    audit_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Audit detail with discovered pages and the final report."""
    audit = await _get_audit(audit_id, db, with_pages=True)
    return AuditDetailResponse.model_validate(audit)


@router.delete("/{audit_id}", response_model=MessageResponse)
async def delete_audit(
    audit_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    audit = await _get_audit(audit_id, db)
    await AuditService(db).delete(audit)
    return MessageResponse(message="Audit deleted")


@router.post("/{audit_id}/resume", response_model=AuditResponse)
async def resume_audit(
    audit_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Re-run a failed audit from the phase that failed."""
    audit = await _get_audit(audit_id, db)
    if audit.status != AuditStatus.FAILED:
        raise ConflictError(f"Audit is {audit.status.value}; only failed audits can be resumed")

    from cro_auditor.tasks.audit_tasks import resume_audit as resume_task
    resume_task.delay(str(audit.id))

    return AuditResponse.model_validate(audit)


@router.get("/{audit_id}/questions", response_model=list[QuestionResponse])
async def list_questions(
    audit_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    status: QuestionStatus | None = None,
):
    await _get_audit(audit_id, db)
    questions = await AuditQuestionService(db).list_questions(audit_id, status)
    return [QuestionResponse.model_validate(q) for q in questions]


async def _resolve_question(audit_id: UUID, question_id: UUID, db: AsyncSession, response: str | None):
    audit = await _get_audit(audit_id, db)
    service = AuditQuestionService(db)
    question = await service.get(audit_id, question_id)
    if not question:
        raise NotFoundError("Question")

    if response is None:
        await service.skip(audit, question)
    else:
        await service.answer(audit, question, response)
    await db.commit()

    if await service.pending_count(audit_id) == 0:
        from cro_auditor.tasks.audit_tasks import advance_audit
        advance_audit.delay(str(audit_id))

    return QuestionResponse.model_validate(question)


@router.post("/{audit_id}/questions/{question_id}/answer", response_model=QuestionResponse)
async def answer_question(
    audit_id: UUID,
    question_id: UUID,
    data: QuestionAnswer,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Record an answer; the workflow continues once no question is pending."""
    return await _resolve_question(audit_id, question_id, db, data.response)


@router.post("/{audit_id}/questions/{question_id}/skip", response_model=QuestionResponse)
async def skip_question(
    audit_id: UUID,
    question_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await _resolve_question(audit_id, question_id, db, None)
