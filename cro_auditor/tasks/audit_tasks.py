"""
Audit Tasks

Background tasks that drive the audit workflow. Each task runs the
workflow in a fresh event loop with its own database session.
"""

import asyncio
import logging
from typing import Any, Dict
from uuid import UUID

from celery import shared_task

from cro_auditor.agents.workflows.audit_workflow import AuditWorkflow
from cro_auditor.core.exceptions import AuditWorkflowError
from cro_auditor.database import task_session
from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.integrations.fetcher import DocumentFetcher
from cro_auditor.models.audit import Audit

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async code in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@shared_task(bind=True)
def run_audit_workflow(self, audit_id: str):
    """Run a new audit from crawling until it completes or waits on questions."""
    return run_async(_drive(audit_id, "start"))


@shared_task(bind=True)
def advance_audit(self, audit_id: str):
    """Continue an audit after its questions were answered or skipped."""
    return run_async(_drive(audit_id, "advance"))


@shared_task(bind=True)
def resume_audit(self, audit_id: str):
    """Restart a failed audit at its failed phase."""
    return run_async(_drive(audit_id, "resume"))


async def _drive(audit_id: str, action: str) -> Dict[str, Any]:
    async with task_session() as session:
        audit = await session.get(Audit, UUID(audit_id))
        if audit is None:
            logger.warning(f"[AUDIT] Audit {audit_id} not found")
            return {"error": "Audit not found"}

        # One HTTP client per run, shared by the crawl and analysis phases
        advisor = AIAdvisor()
        fetcher = DocumentFetcher()
        workflow = AuditWorkflow(session, audit, advisor=advisor, fetcher=fetcher)
        try:
            state = await getattr(workflow, action)()
        except AuditWorkflowError as e:
            # The workflow already recorded the failure on the audit
            logger.error(f"[AUDIT] {action} of audit {audit_id} stopped: {e}")
            return {"audit_id": audit_id, "status": audit.status.value, "error": str(e)}
        finally:
            await fetcher.close()
            await advisor.close()

        logger.info(f"[AUDIT] Audit {audit_id} {action}: now {audit.status.value}")
        return {
            "audit_id": audit_id,
            "status": audit.status.value,
            "current_phase": audit.current_phase.value if audit.current_phase else None,
            "phases_run": state.get("phases_run", []),
            "pending_questions": state.get("pending_questions", 0),
        }
