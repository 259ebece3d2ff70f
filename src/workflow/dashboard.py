"""ダッシュボード集計 — 組織の監査件数・査閲待ち件数・直近の監査"""

from dataclasses import dataclass, field

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from src.config.constants import AuditStatus, IssueStatus, UserRole
from src.db.models.audit import Audit, Auditee
from src.db.models.issue import AuditIssue
from src.db.models.tenant import Organization, User
from src.workflow.context import RequestContext

RECENT_AUDIT_LIMIT = 5
ACTIVE_AUDIT_STATUSES = (AuditStatus.FIELDWORK.value, AuditStatus.REPORTING.value)


@dataclass
class RecentAudit:
    audit: Audit
    auditee_name: str
    team_leader_name: str | None


@dataclass
class Dashboard:
    total_audits: int = 0
    active_audits: int = 0
    completed_audits: int = 0
    pending_verification: int = 0
    recent_audits: list[RecentAudit] = field(default_factory=list)


@dataclass
class AdminSummary:
    organization_count: int
    user_count: int


class DashboardService:
    """ログイン直後の概要表示"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def dashboard(self, ctx: RequestContext) -> Dashboard:
        """組織ダッシュボード

        組織に属さないユーザー（system_admin）は空の集計。
        被監査部門ユーザーは自部門の監査のみ集計し、査閲待ち件数は常に0。
        """
        if ctx.principal.organization_id is None:
            return Dashboard()

        scope = [Audit.organization_id == ctx.organization_id]
        if ctx.principal.role == UserRole.AUDITEE:
            own = select(Auditee.id).where(
                Auditee.organization_id == ctx.organization_id, Auditee.user_id == ctx.user_id
            )
            scope.append(Audit.auditee_id.in_(own))

        counts = (
            await self._session.execute(
                select(
                    func.count(Audit.id),
                    func.count(case((Audit.status.in_(ACTIVE_AUDIT_STATUSES), 1))),
                    func.count(case((Audit.status == AuditStatus.CLOSED.value, 1))),
                ).where(*scope)
            )
        ).one()

        pending = 0
        if ctx.principal.is_audit_staff:
            pending = (
                await self._session.execute(
                    select(func.count(AuditIssue.id))
                    .join(Audit, Audit.id == AuditIssue.audit_id)
                    .where(
                        Audit.organization_id == ctx.organization_id,
                        AuditIssue.status == IssueStatus.SENT_FOR_VERIFY.value,
                    )
                )
            ).scalar_one()

        leader = aliased(User)
        recent = (
            await self._session.execute(
                select(Audit, Auditee.name, leader.full_name)
                .join(Auditee, Auditee.id == Audit.auditee_id)
                .outerjoin(leader, leader.id == Audit.team_leader_id)
                .where(*scope)
                .order_by(Audit.created_at.desc(), Audit.id.desc())
                .limit(RECENT_AUDIT_LIMIT)
            )
        ).all()

        return Dashboard(
            total_audits=counts[0],
            active_audits=counts[1],
            completed_audits=counts[2],
            pending_verification=pending,
            recent_audits=[RecentAudit(audit, name, leader_name) for audit, name, leader_name in recent],
        )

    async def admin_summary(self, ctx: RequestContext) -> AdminSummary:
        """システム管理者向け — 組織数と組織ユーザー数（system_admin は除く）"""
        ctx.require_roles({UserRole.SYSTEM_ADMIN}, "管理ダッシュボード")
        organizations = (await self._session.execute(select(func.count(Organization.id)))).scalar_one()
        users = (
            await self._session.execute(
                select(func.count(User.id)).where(User.role != UserRole.SYSTEM_ADMIN.value)
            )
        ).scalar_one()
        return AdminSummary(organization_count=organizations, user_count=users)
