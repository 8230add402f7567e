"""
Exceptions for the CRO auditor.

Workflow and validation errors are raised by the engine; the HTTP
exceptions below are what the API layer turns them into.
"""
from fastapi import HTTPException, status


class AuditWorkflowError(Exception):
    """Base class for audit workflow errors."""


class PhaseTransitionError(AuditWorkflowError):
    """A phase was requested out of order or before its preconditions hold."""

    def __init__(self, requested: str, current: str | None, reason: str):
        self.requested = requested
        self.current = current
        self.reason = reason
        super().__init__(
            f"Cannot run phase '{requested}' (current phase: {current}): {reason}"
        )


class AuditPhaseError(AuditWorkflowError):
    """An unhandled exception stopped the audit during a phase."""

    def __init__(self, audit_id, phase: str, cause: BaseException):
        self.audit_id = audit_id
        self.phase = phase
        self.cause = cause
        super().__init__(f"Audit {audit_id} failed during '{phase}': {cause}")


class InvalidDataSourcesError(ValueError):
    """A catalog test declared data sources outside the known vocabulary."""

    def __init__(self, invalid: list[str], allowed: list[str]):
        self.invalid = invalid
        self.allowed = allowed
        if invalid:
            message = (
                f"Invalid data sources: {', '.join(invalid)}. "
                f"Allowed: {', '.join(allowed)}"
            )
        else:
            message = "At least one data source is required"
        super().__init__(message)


class InvalidTestKeyError(ValueError):
    """Test keys must be lowercase letters, numbers, and underscores only."""

    def __init__(self, test_key: str):
        self.test_key = test_key
        super().__init__(
            f"Invalid test key '{test_key}': must be lowercase letters, numbers, and underscores only"
        )


class NotFoundError(HTTPException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found"
        )


class BadRequestError(HTTPException):
    """Bad request exception."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )


class ConflictError(HTTPException):
    """Conflict exception (e.g., duplicate resource)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )
