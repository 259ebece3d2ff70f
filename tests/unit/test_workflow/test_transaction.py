"""トランザクション境界 テスト"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.tenant import Organization
from src.workflow.errors import InvalidTransitionError, TransactionFailure
from src.workflow.transaction import atomic


async def _organization_count(session: AsyncSession) -> int:
    return (await session.execute(select(func.count()).select_from(Organization))).scalar_one()


@pytest.mark.unit
class TestAtomic:
    async def test_commits_on_success(self, session: AsyncSession) -> None:
        async with atomic(session, "create"):
            session.add(Organization(name="Committed"))
        assert await _organization_count(session) == 1

    async def test_storage_error_wrapped_and_rolled_back(self, session: AsyncSession) -> None:
        with pytest.raises(TransactionFailure) as exc_info:
            async with atomic(session, "create"):
                session.add(Organization(name="Rolled back"))
                await session.flush()
                raise OperationalError("INSERT ...", {}, Exception("disk I/O error"))
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert "disk" not in exc_info.value.message
        assert await _organization_count(session) == 0

    async def test_constraint_violation_is_transaction_failure(self, session: AsyncSession) -> None:
        async with atomic(session, "seed"):
            session.add(Organization(name="Dup"))
        with pytest.raises(TransactionFailure):
            async with atomic(session, "duplicate"):
                session.add(Organization(name="Dup"))
        assert await _organization_count(session) == 1

    async def test_workflow_error_passes_through(self, session: AsyncSession) -> None:
        with pytest.raises(InvalidTransitionError):
            async with atomic(session, "create"):
                session.add(Organization(name="Never"))
                await session.flush()
                raise InvalidTransitionError("stop")
        assert await _organization_count(session) == 0
