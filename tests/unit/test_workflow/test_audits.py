"""監査（エンゲージメント）管理 テスト"""

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import AuditStatus
from src.workflow.audits import AuditFields, AuditService
from src.workflow.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from tests.factories import Seed, approved_issue_world


def _fields(seed: Seed, **overrides: object) -> AuditFields:
    values: dict[str, object] = {
        "name": "Procurement Review",
        "auditee_id": seed.auditee.id,
        "team_leader_id": seed.manager.id,
        "start_date": date(2026, 4, 1),
        "end_date": date(2026, 5, 31),
        "team_member_ids": [seed.auditor.id],
    }
    values.update(overrides)
    return AuditFields(**values)  # type: ignore[arg-type]


@pytest.mark.unit
class TestAuditService:
    async def test_create_with_team(self, session: AsyncSession, world: Seed) -> None:
        service = AuditService(session)
        audit = await service.create_audit(world.head_ctx, _fields(world))
        overview = await service.get_audit(world.auditor_ctx, audit.id)
        assert overview.audit.status == AuditStatus.PLANNED
        assert overview.auditee.name == "Finance Dept"
        # リーダーは自動的にチームへ入る
        assert {u.id for u in overview.team} == {world.manager.id, world.auditor.id}

    async def test_only_head_creates(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(PermissionDeniedError):
            await AuditService(session).create_audit(world.manager_ctx, _fields(world))

    async def test_end_before_start(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(ValidationError):
            await AuditService(session).create_audit(
                world.head_ctx, _fields(world, start_date=date(2026, 5, 1), end_date=date(2026, 4, 1))
            )

    async def test_auditee_user_cannot_join_team(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(ValidationError):
            await AuditService(session).create_audit(
                world.head_ctx, _fields(world, team_member_ids=[world.auditee_user.id])
            )

    async def test_auditee_of_other_organization(self, session: AsyncSession, world: Seed, other_world: Seed) -> None:
        with pytest.raises(NotFoundError):
            await AuditService(session).create_audit(world.head_ctx, _fields(world, auditee_id=other_world.auditee.id))

    async def test_update_replaces_team(self, session: AsyncSession, world: Seed) -> None:
        service = AuditService(session)
        audit = await service.create_audit(world.head_ctx, _fields(world))
        await service.update_audit(
            world.head_ctx,
            audit.id,
            _fields(world, name="Procurement Review v2", team_member_ids=[], status=AuditStatus.FIELDWORK),
        )
        overview = await service.get_audit(world.head_ctx, audit.id)
        assert overview.audit.name == "Procurement Review v2"
        assert [u.id for u in overview.team] == [world.manager.id]

    async def test_delete_unused_audit(self, session: AsyncSession, world: Seed) -> None:
        service = AuditService(session)
        audit = await service.create_audit(world.head_ctx, _fields(world))
        audit_id = audit.id
        await service.delete_audit(world.head_ctx, audit_id)
        with pytest.raises(NotFoundError):
            await service.get_audit(world.head_ctx, audit_id)

    async def test_delete_blocked_by_approved_issue(self, session: AsyncSession, world: Seed) -> None:
        await approved_issue_world(session, world)
        with pytest.raises(InvalidTransitionError):
            await AuditService(session).delete_audit(world.head_ctx, world.audit.id)

    async def test_list_is_organization_scoped(self, session: AsyncSession, world: Seed, other_world: Seed) -> None:
        audits = await AuditService(session).list_audits(other_world.auditor_ctx)
        assert [a.id for a in audits] == [other_world.audit.id]
