"""
Core utilities for the CRO auditor.
"""
from cro_auditor.core.exceptions import (
    AuditPhaseError,
    AuditWorkflowError,
    BadRequestError,
    ConflictError,
    InvalidDataSourcesError,
    InvalidTestKeyError,
    NotFoundError,
    PhaseTransitionError,
)
from cro_auditor.core.urls import normalize_seed_url, normalize_url_key, resolve_href

__all__ = [
    "AuditPhaseError",
    "AuditWorkflowError",
    "BadRequestError",
    "ConflictError",
    "InvalidDataSourcesError",
    "InvalidTestKeyError",
    "NotFoundError",
    "PhaseTransitionError",
    "normalize_seed_url",
    "normalize_url_key",
    "resolve_href",
]
