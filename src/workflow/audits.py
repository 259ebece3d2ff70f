"""監査（エンゲージメント）管理 — 監査 + チーム編成"""

from dataclasses import dataclass, field
from datetime import date

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import AuditStatus, IssueStatus, UserRole
from src.db.models.audit import Audit, Auditee
from src.db.models.issue import AuditIssue
from src.db.models.tenant import User
from src.db.repositories.audit import AuditRepository
from src.workflow.context import RequestContext
from src.workflow.errors import InvalidTransitionError, ValidationError
from src.workflow.scope import get_org_user, get_owned_audit, get_owned_auditee, not_found
from src.workflow.transaction import atomic

_HEAD_ONLY = frozenset({UserRole.HEAD_OF_AUDIT})


@dataclass
class AuditFields:
    name: str
    auditee_id: int
    team_leader_id: int
    start_date: date
    end_date: date
    team_member_ids: list[int] = field(default_factory=list)
    description: str | None = None
    status: AuditStatus = AuditStatus.PLANNED


@dataclass
class AuditOverview:
    audit: Audit
    auditee: Auditee
    team: list[User]


class AuditService:
    """監査の作成・編集・削除"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._audits = AuditRepository(session)

    async def _validate(self, ctx: RequestContext, fields: AuditFields) -> list[int]:
        if not fields.name or not fields.name.strip():
            raise ValidationError("監査名は必須です")
        if fields.end_date < fields.start_date:
            raise ValidationError("終了日は開始日以降を指定してください")
        await get_owned_auditee(self._session, ctx, fields.auditee_id)

        # リーダーは常にチームに含める
        member_ids = list(dict.fromkeys([fields.team_leader_id, *fields.team_member_ids]))
        for user_id in member_ids:
            user = await get_org_user(self._session, ctx, user_id)
            if user.role not in (UserRole.HEAD_OF_AUDIT, UserRole.MANAGER, UserRole.AUDITOR):
                raise ValidationError(f"監査チームに指定できないユーザーです: {user.full_name}")
        return member_ids

    async def create_audit(self, ctx: RequestContext, fields: AuditFields) -> Audit:
        """監査 + チームメンバーを1トランザクションで作成"""
        ctx.require_roles(_HEAD_ONLY, "監査の作成")
        member_ids = await self._validate(ctx, fields)

        async with atomic(self._session, "create_audit"):
            audit = Audit(
                organization_id=ctx.organization_id,
                name=fields.name.strip(),
                auditee_id=fields.auditee_id,
                team_leader_id=fields.team_leader_id,
                start_date=fields.start_date,
                end_date=fields.end_date,
                status=fields.status.value,
                description=fields.description,
                created_by=ctx.user_id,
            )
            self._session.add(audit)
            await self._session.flush()
            await self._audits.replace_team(audit.id, member_ids)

        logger.info("監査作成", audit_id=audit.id, team_size=len(member_ids))
        return audit

    async def update_audit(self, ctx: RequestContext, audit_id: int, fields: AuditFields) -> Audit:
        """監査情報とチーム編成を更新"""
        ctx.require_roles(_HEAD_ONLY, "監査の編集")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        member_ids = await self._validate(ctx, fields)

        async with atomic(self._session, "update_audit"):
            audit.name = fields.name.strip()
            audit.auditee_id = fields.auditee_id
            audit.team_leader_id = fields.team_leader_id
            audit.start_date = fields.start_date
            audit.end_date = fields.end_date
            audit.status = fields.status.value
            audit.description = fields.description
            await self._audits.replace_team(audit.id, member_ids)
        return audit

    async def delete_audit(self, ctx: RequestContext, audit_id: int) -> None:
        """承認済み課題を持つ監査は削除不可"""
        ctx.require_roles(_HEAD_ONLY, "監査の削除")
        audit = await get_owned_audit(self._session, ctx, audit_id)

        approved = await self._session.execute(
            select(func.count())
            .select_from(AuditIssue)
            .where(AuditIssue.audit_id == audit.id, AuditIssue.status == IssueStatus.APPROVED.value)
        )
        if approved.scalar_one() > 0:
            raise InvalidTransitionError("承認済みの監査課題がある監査は削除できません")

        async with atomic(self._session, "delete_audit"):
            await self._session.delete(audit)
        logger.info("監査削除", audit_id=audit_id)

    async def get_audit(self, ctx: RequestContext, audit_id: int) -> AuditOverview:
        found = await self._audits.get_with_auditee(audit_id, ctx.organization_id)
        if found is None:
            raise not_found("監査が見つかりません")
        audit, auditee = found
        team = await self._audits.team_members(audit.id)
        return AuditOverview(audit=audit, auditee=auditee, team=team)

    async def list_audits(self, ctx: RequestContext, status: str | None = None) -> list[Audit]:
        return await self._audits.list(ctx.organization_id, limit=500, order_by="start_date", status=status)
