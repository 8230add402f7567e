"""
SQLAlchemy models for the CRO auditor.
"""
from cro_auditor.models.base import Base, BaseModel
from cro_auditor.models.audit import (
    PHASES,
    PHASE_STATUS,
    Audit,
    AuditMode,
    AuditQuestion,
    AuditStatus,
    QuestionStatus,
    QuestionType,
    WorkflowPhase,
)
from cro_auditor.models.page import (
    AdaptiveTest,
    DataCollectionStatus,
    DiscoveredPage,
    PageData,
    PageType,
    ScoreSource,
    TestingStatus,
)
from cro_auditor.models.catalog import (
    DATA_SOURCES,
    Test,
    TestCategory,
    TestGroup,
    TestResult,
    TestResultStatus,
)

__all__ = [
    "Base",
    "BaseModel",
    "PHASES",
    "PHASE_STATUS",
    "Audit",
    "AuditMode",
    "AuditQuestion",
    "AuditStatus",
    "QuestionStatus",
    "QuestionType",
    "WorkflowPhase",
    "AdaptiveTest",
    "DataCollectionStatus",
    "DiscoveredPage",
    "PageData",
    "PageType",
    "ScoreSource",
    "TestingStatus",
    "DATA_SOURCES",
    "Test",
    "TestCategory",
    "TestGroup",
    "TestResult",
    "TestResultStatus",
]
