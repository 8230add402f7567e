"""
Test catalog service: groups, tests, JSON export/import.
"""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cro_auditor.core.exceptions import ConflictError
from cro_auditor.models.catalog import Test, TestGroup
from cro_auditor.schemas.catalog import TestCreate, TestGroupCreate, TestImport


class CatalogService:
    """Service for test catalog operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_groups(self) -> list[TestGroup]:
        result = await self.db.execute(select(TestGroup).order_by(TestGroup.name))
        return list(result.scalars().all())

    async def get_group(self, group_id: UUID) -> TestGroup | None:
        return await self.db.get(TestGroup, group_id)

    async def get_group_by_name(self, name: str) -> TestGroup | None:
        result = await self.db.execute(select(TestGroup).where(TestGroup.name == name))
        return result.scalar_one_or_none()

    async def create_group(self, data: TestGroupCreate) -> TestGroup:
        if await self.get_group_by_name(data.name):
            raise ConflictError(f"Test group '{data.name}' already exists")
        group = TestGroup(**data.model_dump())
        self.db.add(group)
        await self.db.flush()
        await self.db.refresh(group)
        return group

    async def list_tests(self, group_id: UUID | None = None, active_only: bool = False) -> list[Test]:
        query = select(Test)
        if group_id:
            query = query.where(Test.test_group_id == group_id)
        if active_only:
            query = query.where(Test.active.is_(True))
        result = await self.db.execute(query.order_by(Test.test_key))
        return list(result.scalars().all())

    async def get_test(self, test_id: UUID) -> Test | None:
        return await self.db.get(Test, test_id)

    async def get_test_by_key(self, test_key: str) -> Test | None:
        result = await self.db.execute(select(Test).where(Test.test_key == test_key))
        return result.scalar_one_or_none()

    async def create_test(self, data: TestCreate) -> Test:
        """Create a test; invalid keys or data sources raise ValueError."""
        if await self.get_test_by_key(data.test_key):
            raise ConflictError(f"Test key '{data.test_key}' already exists")
        test = Test(**data.model_dump())
        return await self._save(test)

    async def delete_test(self, test: Test) -> None:
        await self.db.delete(test)
        await self.db.flush()

    async def export_test(self, test: Test) -> dict:
        group = await self.get_group(test.test_group_id)
        return test.export_json(group.name if group else None)

    async def import_test(self, group: TestGroup, data: TestImport) -> Test:
        if await self.get_test_by_key(data.test_key):
            raise ConflictError(f"Test key '{data.test_key}' already exists")
        test = Test.from_json(data.model_dump(), group)
        return await self._save(test)

    async def _save(self, test: Test) -> Test:
        self.db.add(test)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f"Test '{test.test_key}' conflicts with an existing test") from e
        await self.db.refresh(test)
        return test
