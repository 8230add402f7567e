"""
Extensible test catalog: groups of AI-evaluated tests and their per-page results.
"""
import re
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship, validates

from cro_auditor.core.exceptions import InvalidDataSourcesError, InvalidTestKeyError
from cro_auditor.models.base import Base, BaseModel

DATA_SOURCES: list[str] = [
    "page_content",
    "page_html",
    "head_html",
    "nav_html",
    "body_html",
    "headings",
    "asset_urls",
    "performance_data",
    "internal_links",
    "external_links",
    "colors",
    "screenshots",
]

TEST_KEY_PATTERN = re.compile(r"^[a-z0-9_]+$")
HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


class TestResultStatus(str, PyEnum):
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    NOT_APPLICABLE = "not_applicable"


class TestCategory(str, PyEnum):
    __test__ = False

    NAV = "nav"
    STRUCTURE = "structure"
    CRO = "cro"
    DESIGN = "design"
    REVIEWS = "reviews"
    PRICE = "price"
    SPEED = "speed"


def validate_data_sources(value: Any) -> list[str]:
    """Return the data sources as a list or raise listing the invalid entries."""
    if not value:
        raise InvalidDataSourcesError([], DATA_SOURCES)
    sources = list(value)
    invalid = [str(s) for s in sources if s not in DATA_SOURCES]
    if invalid:
        raise InvalidDataSourcesError(invalid, DATA_SOURCES)
    return sources


class TestGroup(Base, BaseModel):
    """Named group of catalog tests."""

    __tablename__ = "test_groups"
    __test__ = False

    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    # Relationships
    tests = relationship("Test", back_populates="test_group", cascade="all, delete-orphan")

    @validates("color")
    def _validate_color(self, key, value):
        if value and not HEX_COLOR_PATTERN.match(value):
            raise ValueError("color must be a valid hex color")
        return value


class Test(Base, BaseModel):
    """A natural-language test evaluated by the AI against selected page data."""

    __tablename__ = "tests"
    __test__ = False

    test_group_id = Column(
        UUID(as_uuid=True),
        ForeignKey("test_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    test_key = Column(String(100), nullable=False, unique=True, index=True)
    test_details = Column(Text, nullable=False)
    data_sources = Column(JSONB, default=list, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    # Relationships
    test_group = relationship("TestGroup", back_populates="tests")

    @validates("test_key")
    def _validate_test_key(self, key, value):
        if not value or not TEST_KEY_PATTERN.match(value):
            raise InvalidTestKeyError(value or "")
        return value

    @validates("data_sources")
    def _validate_data_sources(self, key, value):
        return validate_data_sources(value)

    def export_json(self, group_name: str | None = None) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "test_key": self.test_key,
            "test_details": self.test_details,
            "data_sources": list(self.data_sources or []),
            "test_group": group_name,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any], test_group: TestGroup) -> "Test":
        return cls(
            test_group_id=test_group.id,
            name=data.get("name"),
            description=data.get("description"),
            test_key=data.get("test_key"),
            test_details=data.get("test_details"),
            data_sources=data.get("data_sources") or [],
        )


class TestResult(Base, BaseModel):
    """Outcome of one catalog test on one page."""

    __tablename__ = "test_results"
    __test__ = False
    __table_args__ = (
        UniqueConstraint("discovered_page_id", "test_key", name="uq_test_results_page_key"),
    )

    audit_id = Column(
        UUID(as_uuid=True),
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    discovered_page_id = Column(
        UUID(as_uuid=True),
        ForeignKey("discovered_pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    test_key = Column(String(100), nullable=False)
    status = Column(Enum(TestResultStatus), nullable=False)
    summary = Column(Text, nullable=True)
    details = Column(JSONB, default=dict)
    test_category = Column(Enum(TestCategory), nullable=True)
    score = Column(Integer, nullable=True)
    priority = Column(Integer, nullable=True)

    # Relationships
    audit = relationship("Audit", back_populates="test_results")
    discovered_page = relationship("DiscoveredPage", back_populates="test_results")

    @validates("score")
    def _validate_score(self, key, value):
        if value is not None and not 0 <= value <= 100:
            raise ValueError("score must be between 0 and 100")
        return value

    @validates("priority")
    def _validate_priority(self, key, value):
        if value is not None and not 1 <= value <= 5:
            raise ValueError("priority must be between 1 and 5")
        return value

    @property
    def human_test_name(self) -> str:
        return self.test_key.replace("_", " ").title()
