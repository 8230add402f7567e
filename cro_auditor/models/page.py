"""
Per-page models: discovered pages, collected page data and adaptive tests.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    BigInteger,
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
from sqlalchemy.orm import relationship

from cro_auditor.models.base import Base, BaseModel


class PageType(str, PyEnum):
    HOMEPAGE = "homepage"
    PRODUCT = "product"
    PRICING = "pricing"
    CHECKOUT = "checkout"
    CONTACT = "contact"
    ABOUT = "about"
    BLOG = "blog"
    LANDING = "landing"
    OTHER = "other"


class ScoreSource(str, PyEnum):
    AI = "ai"
    HEURISTIC = "heuristic"


class DataCollectionStatus(str, PyEnum):
    PENDING = "pending"
    COLLECTING = "collecting"
    COMPLETE = "complete"
    FAILED = "failed"


class TestingStatus(str, PyEnum):
    __test__ = False

    PENDING = "pending"
    TESTING = "testing"
    COMPLETE = "complete"
    FAILED = "failed"


class DiscoveredPage(Base, BaseModel):
    """A unique URL found while crawling an audit's site."""

    __tablename__ = "discovered_pages"
    __table_args__ = (
        UniqueConstraint("audit_id", "url", name="uq_discovered_pages_audit_url"),
    )

    audit_id = Column(
        UUID(as_uuid=True),
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url = Column(String(2048), nullable=False)
    page_type = Column(Enum(PageType), default=PageType.OTHER, nullable=False)

    # Only meaningful once the prioritizing phase has run
    priority_score = Column(Integer, nullable=True)
    score_source = Column(Enum(ScoreSource), nullable=True)
    is_priority_page = Column(Boolean, default=False, nullable=False, index=True)

    crawl_metadata = Column(JSONB, default=dict)
    analysis = Column(JSONB, default=dict)

    data_collection_status = Column(
        Enum(DataCollectionStatus),
        default=DataCollectionStatus.PENDING,
        nullable=False,
    )
    testing_status = Column(
        Enum(TestingStatus),
        default=TestingStatus.PENDING,
        nullable=False,
    )

    # Relationships
    audit = relationship("Audit", back_populates="discovered_pages")
    page_data = relationship(
        "PageData",
        back_populates="discovered_page",
        uselist=False,
        cascade="all, delete-orphan",
    )
    adaptive_tests = relationship(
        "AdaptiveTest", back_populates="discovered_page", cascade="all, delete-orphan"
    )
    questions = relationship(
        "AuditQuestion", back_populates="discovered_page", cascade="all, delete-orphan"
    )
    test_results = relationship(
        "TestResult", back_populates="discovered_page", cascade="all, delete-orphan"
    )

    @property
    def metadata_dict(self) -> dict:
        return self.crawl_metadata or {}

    @property
    def inbound_links_count(self) -> int:
        return int(self.metadata_dict.get("inbound_links_count", 0) or 0)

    def __repr__(self) -> str:
        return f"<DiscoveredPage {self.url} ({self.page_type.value})>"


class PageData(Base, BaseModel):
    """Detailed structured extraction for one discovered page."""

    __tablename__ = "page_data"

    discovered_page_id = Column(
        UUID(as_uuid=True),
        ForeignKey("discovered_pages.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    html_content = Column(Text, nullable=True)
    page_content = Column(Text, nullable=True)

    fonts = Column(JSONB, default=list)
    colors = Column(JSONB, default=list)
    images = Column(JSONB, default=list)
    scripts = Column(JSONB, default=list)
    stylesheets = Column(JSONB, default=list)

    headings = Column(JSONB, default=dict)
    links = Column(JSONB, default=list)
    meta_title = Column(Text, nullable=True)
    meta_description = Column(Text, nullable=True)
    meta_tags = Column(JSONB, default=dict)
    structured_data = Column(JSONB, default=list)

    total_page_weight_bytes = Column(BigInteger, nullable=True)
    asset_distribution = Column(JSONB, default=dict)
    performance_metrics = Column(JSONB, default=dict)

    screenshots = Column(JSONB, default=dict)
    page_metadata = Column(JSONB, default=dict)

    # Relationships
    discovered_page = relationship("DiscoveredPage", back_populates="page_data")

    def has_complete_data(self) -> bool:
        return bool(self.html_content) and bool(self.screenshots) and bool(self.performance_metrics)

    @property
    def total_assets_count(self) -> int:
        return sum(len(v or []) for v in (self.images, self.scripts, self.stylesheets, self.fonts))

    @property
    def page_weight_mb(self) -> float:
        if not self.total_page_weight_bytes:
            return 0
        return round(self.total_page_weight_bytes / 1_048_576.0, 2)

    def all_content(self) -> str:
        headings = [text for texts in (self.headings or {}).values() for text in texts]
        parts = [
            self.page_content,
            *headings,
            *[link.get("text") for link in (self.links or [])],
            self.meta_title,
            self.meta_description,
        ]
        return " ".join(p for p in parts if p)


class AdaptiveTest(Base, BaseModel):
    """A page-level finding recorded by the adaptive analyzer. Append-only."""

    __tablename__ = "adaptive_tests"

    discovered_page_id = Column(
        UUID(as_uuid=True),
        ForeignKey("discovered_pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    test_type = Column(String(50), nullable=False)
    decision_reason = Column(Text, nullable=True)
    results = Column(JSONB, default=dict)
    impact_score = Column(Integer, nullable=False, default=50)

    # Relationships
    discovered_page = relationship("DiscoveredPage", back_populates="adaptive_tests")

    def __repr__(self) -> str:
        return f"<AdaptiveTest {self.test_type} impact={self.impact_score}>"
