"""
Pydantic schemas for the CRO auditor API.
"""
from cro_auditor.schemas.common import (
    BaseSchema,
    ErrorResponse,
    IDSchema,
    MessageResponse,
    PaginatedResponse,
)
from cro_auditor.schemas.audit import (
    AuditCreate,
    AuditDetailResponse,
    AuditResponse,
    DiscoveredPageResponse,
    QuestionAnswer,
    QuestionResponse,
)
from cro_auditor.schemas.catalog import (
    TestCreate,
    TestGroupCreate,
    TestGroupResponse,
    TestImport,
    TestResponse,
    TestResultResponse,
)

__all__ = [
    "BaseSchema",
    "ErrorResponse",
    "IDSchema",
    "MessageResponse",
    "PaginatedResponse",
    "AuditCreate",
    "AuditDetailResponse",
    "AuditResponse",
    "DiscoveredPageResponse",
    "QuestionAnswer",
    "QuestionResponse",
    "TestCreate",
    "TestGroupCreate",
    "TestGroupResponse",
    "TestImport",
    "TestResponse",
    "TestResultResponse",
]
