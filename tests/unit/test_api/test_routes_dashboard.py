"""ダッシュボードエンドポイントテスト"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import UserRole
from src.db.models import User
from src.workflow.issues import IssueService
from tests.factories import Seed, auth_headers, issue_fields, make_procedure, password_hash, select_items


@pytest.mark.unit
class TestDashboardRoutes:
    async def test_staff_dashboard(self, client: AsyncClient, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        procedure = await make_procedure(session, world, ra_ids[0])
        await IssueService(session).submit_for_verification(world.auditor_ctx, procedure.id, issue_fields())

        resp = await client.get("/api/v1/dashboard", headers=auth_headers(world.manager))
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_audits"] == 1
        assert body["active_audits"] == 1
        assert body["completed_audits"] == 0
        assert body["pending_verification"] == 1
        assert body["recent_audits"][0]["id"] == world.audit.id
        assert body["recent_audits"][0]["auditee_name"] == "Finance Dept"
        assert body["recent_audits"][0]["team_leader_name"] == "Hana Head"

    async def test_requires_login(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/dashboard")
        assert resp.status_code in (401, 403)


@pytest.mark.unit
class TestAdminDashboardRoutes:
    @pytest.fixture
    async def admin(self, session: AsyncSession, world: Seed) -> User:
        user = User(
            organization_id=None,
            email="admin@example.com",
            hashed_password=password_hash(),
            full_name="System Admin",
            role=UserRole.SYSTEM_ADMIN.value,
            is_active=True,
        )
        session.add(user)
        await session.commit()
        return user

    async def test_admin_summary(self, client: AsyncClient, admin: User) -> None:
        resp = await client.get("/api/v1/admin/dashboard", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json() == {"organization_count": 1, "user_count": 4}

    async def test_head_forbidden(self, client: AsyncClient, world: Seed) -> None:
        resp = await client.get("/api/v1/admin/dashboard", headers=auth_headers(world.head))
        assert resp.status_code == 403
