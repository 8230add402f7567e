"""
Test catalog endpoints.
"""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.core.exceptions import BadRequestError, NotFoundError
from cro_auditor.database import get_db
from cro_auditor.integrations.ai_advisor import AIAdvisor
from cro_auditor.schemas.catalog import (
    TestCreate,
    TestGroupCreate,
    TestGroupResponse,
    TestImport,
    TestResponse,
    TestResultResponse,
)
from cro_auditor.schemas.common import MessageResponse
from cro_auditor.services.audit_service import AuditService
from cro_auditor.services.catalog_service import CatalogService
from cro_auditor.services.test_executor import CatalogTestExecutor

router = APIRouter(tags=["Test Catalog"])


@router.get("/test-groups", response_model=list[TestGroupResponse])
async def list_test_groups(db: Annotated[AsyncSession, Depends(get_db)]):
    groups = await CatalogService(db).list_groups()
    return [TestGroupResponse.model_validate(g) for g in groups]


@router.post("/test-groups", response_model=TestGroupResponse, status_code=status.HTTP_201_CREATED)
async def create_test_group(
    data: TestGroupCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        group = await CatalogService(db).create_group(data)
    except ValueError as e:
        raise BadRequestError(str(e))
    return TestGroupResponse.model_validate(group)


@router.post(
    "/test-groups/{group_id}/import",
    response_model=TestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_test(
    group_id: UUID,
    data: TestImport,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a test in this group from an exported JSON payload."""
    service = CatalogService(db)
    group = await service.get_group(group_id)
    if not group:
        raise NotFoundError("Test group")
    test = await service.import_test(group, data)
    return TestResponse.model_validate(test)


@router.get("/tests", response_model=list[TestResponse])
async def list_tests(
    db: Annotated[AsyncSession, Depends(get_db)],
    group_id: UUID | None = None,
    active_only: bool = False,
):
    tests = await CatalogService(db).list_tests(group_id, active_only)
    return [TestResponse.model_validate(t) for t in tests]


@router.post("/tests", response_model=TestResponse, status_code=status.HTTP_201_CREATED)
async def create_test(
    data: TestCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a catalog test. Unknown data sources are rejected with the offending names."""
    service = CatalogService(db)
    if not await service.get_group(data.test_group_id):
        raise NotFoundError("Test group")
    test = await service.create_test(data)
    return TestResponse.model_validate(test)


@router.delete("/tests/{test_id}", response_model=MessageResponse)
async def delete_test(
    test_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    service = CatalogService(db)
    test = await service.get_test(test_id)
    if not test:
        raise NotFoundError("Test")
    await service.delete_test(test)
    return MessageResponse(message="Test deleted")


@router.get("/tests/{test_id}/export")
async def export_test(
    test_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    service = CatalogService(db)
    test = await service.get_test(test_id)
    if not test:
        raise NotFoundError("Test")
    return await service.export_test(test)


@router.post(
    "/audits/{audit_id}/pages/{page_id}/run-tests",
    response_model=list[TestResultResponse],
)
async def run_catalog_tests(
    audit_id: UUID,
    page_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Run every active catalog test against one analyzed page."""
    page = await AuditService(db).get_page(audit_id, page_id)
    if not page:
        raise NotFoundError("Page")

    advisor = AIAdvisor()
    try:
        results = await CatalogTestExecutor(db, advisor).execute_all(page)
    finally:
        await advisor.close()
    return [TestResultResponse.model_validate(r) for r in results]
