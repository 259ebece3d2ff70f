"""組織スコープ付き取得 — 他組織の行は存在しないものとして扱う"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import IssueStatus, UserRole
from src.db.models.audit import Audit, Auditee, AuditUniverseItem
from src.db.models.fieldwork import AuditProcedure
from src.db.models.issue import AuditIssue
from src.db.models.tenant import User
from src.db.models.working_paper import WorkingPaperTemplate
from src.db.repositories.audit import AuditRepository
from src.db.repositories.base import BaseRepository
from src.db.repositories.issue import IssueRepository
from src.monitoring.metrics import workflow_errors_total
from src.workflow.context import RequestContext
from src.workflow.errors import NotFoundError


def not_found(message: str) -> NotFoundError:
    workflow_errors_total.labels(kind="not_found").inc()
    return NotFoundError(message)


async def get_owned_audit(session: AsyncSession, ctx: RequestContext, audit_id: int) -> Audit:
    audit = await AuditRepository(session).get_by_id(audit_id, ctx.organization_id)
    if audit is None:
        raise not_found("監査が見つかりません")
    return audit


async def get_owned_auditee(session: AsyncSession, ctx: RequestContext, auditee_id: int) -> Auditee:
    auditee = await BaseRepository(Auditee, session).get_by_id(auditee_id, ctx.organization_id)
    if auditee is None:
        raise not_found("被監査部門が見つかりません")
    return auditee


async def get_owned_universe_item(session: AsyncSession, ctx: RequestContext, item_id: int) -> AuditUniverseItem:
    item = await BaseRepository(AuditUniverseItem, session).get_by_id(item_id, ctx.organization_id)
    if item is None:
        raise not_found("監査ユニバース項目が見つかりません")
    return item


async def get_owned_template(session: AsyncSession, ctx: RequestContext, template_id: int) -> WorkingPaperTemplate:
    template = await BaseRepository(WorkingPaperTemplate, session).get_by_id(template_id, ctx.organization_id)
    if template is None:
        raise not_found("調書テンプレートが見つかりません")
    return template


async def get_org_user(session: AsyncSession, ctx: RequestContext, user_id: int) -> User:
    """同一組織の有効なユーザー"""
    query = select(User).where(
        User.id == user_id,
        User.organization_id == ctx.organization_id,
        User.is_active.is_(True),
    )
    user = (await session.execute(query)).scalar_one_or_none()
    if user is None:
        raise not_found("ユーザーが見つかりません")
    return user


async def get_owned_procedure(
    session: AsyncSession, ctx: RequestContext, procedure_id: int
) -> tuple[AuditProcedure, Audit]:
    query = (
        select(AuditProcedure, Audit)
        .join(Audit, Audit.id == AuditProcedure.audit_id)
        .where(AuditProcedure.id == procedure_id, Audit.organization_id == ctx.organization_id)
    )
    row = (await session.execute(query)).one_or_none()
    if row is None:
        raise not_found("監査手続が見つかりません")
    return row[0], row[1]


async def get_owned_issue(session: AsyncSession, ctx: RequestContext, issue_id: int) -> tuple[AuditIssue, Audit]:
    found = await IssueRepository(session).get_in_organization(issue_id, ctx.organization_id)
    if found is None:
        raise not_found("監査課題が見つかりません")
    return found


def visible_to_auditee(issue: AuditIssue) -> bool:
    """承認済みかつコメント依頼またはフォローアップ依頼済みの課題のみ被監査部門に公開"""
    return issue.status == IssueStatus.APPROVED and bool(issue.sent_for_commenting or issue.sent_for_followup)


async def get_auditee_issue(
    session: AsyncSession, ctx: RequestContext, issue_id: int
) -> tuple[AuditIssue, Audit, Auditee]:
    """被監査部門ユーザー本人の監査に属し、公開済みの課題のみ取得"""
    ctx.require_roles({UserRole.AUDITEE}, "被監査部門としての回答")
    issue, audit = await get_owned_issue(session, ctx, issue_id)
    auditee = await session.get(Auditee, audit.auditee_id)
    if auditee is None or auditee.user_id != ctx.user_id or not visible_to_auditee(issue):
        raise not_found("監査課題が見つかりません")
    return issue, audit, auditee
