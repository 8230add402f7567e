"""
Celery Worker Configuration

Runs audit workflow tasks. Phases are long-running (crawling, AI calls,
browser screenshots), so tasks are acknowledged late, each worker process
takes one task at a time, and a failed task is never retried: the audit
records its failed phase and waits for an explicit resume.
"""

import logging

from celery import Celery
from celery.signals import setup_logging

from cro_auditor.config import configure_logging, settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "cro_auditor",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["cro_auditor.tasks.audit_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=settings.AUDIT_TASK_TIME_LIMIT,
    task_soft_time_limit=settings.AUDIT_TASK_TIME_LIMIT - 300,
    task_max_retries=0,

    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    worker_max_tasks_per_child=50,

    result_expires=86400,

    task_routes={"cro_auditor.tasks.audit_tasks.*": {"queue": "audit"}},
    task_default_queue="audit",
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging()


class AuditTask(celery_app.Task):
    """Task base that logs and records the failing audit."""

    abstract = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        audit_id = args[0] if args else kwargs.get("audit_id")
        logger.error(f"[AUDIT] Task {self.name} failed for audit {audit_id}: {exc}")
        self.update_state(
            state="FAILURE",
            meta={
                "audit_id": audit_id,
                "exc_type": type(exc).__name__,
                "exc_message": str(exc),
            },
        )


celery_app.Task = AuditTask
