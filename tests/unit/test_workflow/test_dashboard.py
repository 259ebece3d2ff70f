"""ダッシュボード テスト — 件数集計・査閲待ち・直近の監査"""

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import AuditStatus, UserRole
from src.db.models import Auditee, User
from src.workflow.audits import AuditFields, AuditService
from src.workflow.context import RequestContext
from src.workflow.dashboard import DashboardService
from src.workflow.errors import PermissionDeniedError
from src.workflow.issues import IssueService
from tests.factories import Seed, ctx_for, issue_fields, make_procedure, password_hash, select_items


def _fields(seed: Seed, name: str, status: AuditStatus, auditee_id: int | None = None) -> AuditFields:
    return AuditFields(
        name=name,
        auditee_id=auditee_id or seed.auditee.id,
        team_leader_id=seed.head.id,
        start_date=date(2026, 4, 1),
        end_date=date(2026, 6, 30),
        status=status,
    )


@pytest.fixture
async def admin_ctx(session: AsyncSession, world: Seed) -> RequestContext:
    admin = User(
        organization_id=None,
        email="root@example.com",
        hashed_password=password_hash(),
        full_name="System Admin",
        role=UserRole.SYSTEM_ADMIN.value,
    )
    session.add(admin)
    await session.commit()
    return ctx_for(admin, world.now)


@pytest.mark.unit
class TestDashboard:
    async def test_counts_by_status(self, session: AsyncSession, world: Seed, other_world: Seed) -> None:
        audits = AuditService(session)
        await audits.create_audit(world.head_ctx, _fields(world, "Closed audit", AuditStatus.CLOSED))
        await audits.create_audit(world.head_ctx, _fields(world, "Planned audit", AuditStatus.PLANNED))
        await audits.create_audit(world.head_ctx, _fields(world, "Reporting audit", AuditStatus.REPORTING))

        result = await DashboardService(session).dashboard(world.auditor_ctx)
        # 他組織の監査は含めない
        assert result.total_audits == 4
        assert result.active_audits == 2
        assert result.completed_audits == 1

    async def test_pending_verification_for_staff(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        issues = IssueService(session)
        for ra_id in ra_ids[:2]:
            procedure = await make_procedure(session, world, ra_id)
            await issues.submit_for_verification(world.auditor_ctx, procedure.id, issue_fields())
        draft_procedure = await make_procedure(session, world, ra_ids[2])
        await issues.save_draft(world.auditor_ctx, draft_procedure.id, issue_fields("Still drafting"))

        service = DashboardService(session)
        assert (await service.dashboard(world.manager_ctx)).pending_verification == 2
        assert (await service.dashboard(world.auditee_ctx)).pending_verification == 0

    async def test_recent_audits_newest_first(self, session: AsyncSession, world: Seed) -> None:
        audits = AuditService(session)
        for n in range(1, 6):
            await audits.create_audit(world.head_ctx, _fields(world, f"Audit {n}", AuditStatus.PLANNED))

        result = await DashboardService(session).dashboard(world.head_ctx)
        assert result.total_audits == 6
        assert [r.audit.name for r in result.recent_audits] == ["Audit 5", "Audit 4", "Audit 3", "Audit 2", "Audit 1"]
        assert result.recent_audits[0].auditee_name == "Finance Dept"
        assert result.recent_audits[0].team_leader_name == "Hana Head"

    async def test_auditee_sees_only_own_audits(self, session: AsyncSession, world: Seed) -> None:
        other = Auditee(
            organization_id=world.organization.id,
            name="Procurement Dept",
            official_email="procurement@example.com",
            created_by=world.head.id,
        )
        session.add(other)
        await session.commit()
        await AuditService(session).create_audit(
            world.head_ctx, _fields(world, "Procurement review", AuditStatus.FIELDWORK, auditee_id=other.id)
        )

        result = await DashboardService(session).dashboard(world.auditee_ctx)
        assert result.total_audits == 1
        assert [r.audit.id for r in result.recent_audits] == [world.audit.id]

    async def test_system_admin_gets_empty_dashboard(self, session: AsyncSession, admin_ctx: RequestContext) -> None:
        result = await DashboardService(session).dashboard(admin_ctx)
        assert result.total_audits == 0
        assert result.recent_audits == []


@pytest.mark.unit
class TestAdminSummary:
    async def test_counts_exclude_system_admin(
        self, session: AsyncSession, admin_ctx: RequestContext, world: Seed, other_world: Seed
    ) -> None:
        summary = await DashboardService(session).admin_summary(admin_ctx)
        assert summary.organization_count == 2
        # 各組織 head / manager / auditor / auditee の4名
        assert summary.user_count == 8

    async def test_head_cannot_read_summary(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(PermissionDeniedError):
            await DashboardService(session).admin_summary(world.head_ctx)
