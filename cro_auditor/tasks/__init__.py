"""
Background Tasks Package

Contains Celery tasks for async processing:
- audit_tasks: audit workflow start, advance and resume
"""

from cro_auditor.tasks.audit_tasks import *
