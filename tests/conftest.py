"""
Pytest configuration and fixtures for CRO auditor tests.
"""
import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy import JSON
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Never call a real model or browser from tests
os.environ["AI_ENABLED"] = "false"
os.environ["SCREENSHOTS_ENABLED"] = "false"

# IMPORTANT: Patch PostgreSQL types for SQLite compatibility
# Must be done before importing any models
import sqlalchemy.dialects.postgresql as pg_dialect
from sqlalchemy.types import TypeDecorator, CHAR
import uuid as uuid_module

# Custom UUID type that works with SQLite
class SQLiteUUID(TypeDecorator):
    """SQLite-compatible UUID type."""
    impl = CHAR(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return uuid_module.UUID(value)
        return value

pg_dialect.JSONB = JSON
pg_dialect.UUID = SQLiteUUID

from cro_auditor.database import get_db
from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.integrations.fetcher import FetchResult, parse_html
from cro_auditor.integrations.screenshots import ScreenshotService
from cro_auditor.models.audit import Audit, AuditMode
from cro_auditor.models.base import Base
from cro_auditor.models.page import DiscoveredPage, PageType

from tests.fixtures.sample_pages import sample_site

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


# ============================================================================
# FastAPI App Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def app(db_session: AsyncSession) -> FastAPI:
    """Create test FastAPI application."""
    from cro_auditor.main import app as main_app

    async def override_get_db():
        yield db_session

    main_app.dependency_overrides[get_db] = override_get_db

    yield main_app

    main_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ============================================================================
# Collaborator Fakes
# ============================================================================

class FakeFetcher:
    """Serves canned HTML by URL. Unknown URLs fail like a 404.

    ``redirects`` maps a requested URL to the URL it lands on.
    """

    def __init__(self, pages: dict[str, str], redirects: dict[str, str] | None = None):
        self.pages = pages
        self.redirects = redirects or {}
        self.requests: list[str] = []

    async def fetch(self, url: str) -> FetchResult:
        self.requests.append(url)
        final_url = self.redirects.get(url, url)
        html = self.pages.get(final_url)
        if html is None:
            return FetchResult(url=url, success=False, status_code=404, final_url=final_url, error="HTTP 404")
        return FetchResult(
            url=url,
            success=True,
            document=parse_html(html),
            raw_body=html,
            status_code=200,
            final_url=final_url,
            load_time_ms=120,
            content_length=len(html.encode()),
        )


class BrokenFetcher:
    """Raises on every fetch, standing in for a bug below the crawler."""

    async def fetch(self, url: str) -> FetchResult:
        raise RuntimeError(f"fetcher exploded on {url}")


@pytest.fixture
def make_fetcher():
    """Factory for fake fetchers over arbitrary sites."""
    return FakeFetcher


@pytest.fixture
def site_fetcher() -> FakeFetcher:
    """Fake fetcher serving the three-page sample site on example.com."""
    return FakeFetcher(sample_site())


@pytest.fixture
def broken_fetcher() -> BrokenFetcher:
    return BrokenFetcher()


@pytest.fixture
def advisor() -> AIAdvisor:
    """AI advisor that is switched off, so every caller takes its fallback."""
    return AIAdvisor(enabled=False)


@pytest.fixture
def mock_advisor():
    """AI advisor whose answers each test scripts."""
    mock = MagicMock()
    mock.analyze_with_json = AsyncMock(return_value=None)
    mock.chat = AsyncMock(return_value=None)
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def screenshots() -> ScreenshotService:
    """Screenshot service that only produces placeholders."""
    return ScreenshotService(enabled=False)


# ============================================================================
# Sample Data Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def audit(db_session: AsyncSession) -> Audit:
    """A fresh full-crawl audit of example.com."""
    audit = Audit(url="https://example.com", mode=AuditMode.FULL_CRAWL)
    db_session.add(audit)
    await db_session.commit()
    return audit


@pytest.fixture
def make_page(db_session: AsyncSession):
    """Factory adding a discovered page to the session."""

    async def _make_page(
        audit: Audit,
        url: str,
        page_type: PageType = PageType.OTHER,
        priority_score: int | None = None,
        is_priority_page: bool = False,
        **metadata,
    ) -> DiscoveredPage:
        page = DiscoveredPage(
            audit_id=audit.id,
            url=url,
            page_type=page_type,
            priority_score=priority_score,
            is_priority_page=is_priority_page,
            crawl_metadata={"depth": 1, "form_count": 0, "button_count": 0, **metadata},
        )
        db_session.add(page)
        await db_session.flush()
        return page

    return _make_page
