"""フォローアップ — 承認済み課題の是正状況追跡

課題側の followup_* 項目は最新回答のキャッシュで、回答履歴の追記と
同一トランザクションで更新する。解決済みフラグは回答有無とは独立に設定できる。
"""

from dataclasses import dataclass
from datetime import date, datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import FollowupState, IssueStatus, StorageCategory
from src.db.models.audit import Audit, Auditee
from src.db.models.fieldwork import AuditProcedure
from src.db.models.issue import AuditIssue, FollowupResponse
from src.monitoring.metrics import auditee_responses_total, workflow_errors_total
from src.storage import FileStorage, Upload, store_upload
from src.workflow.comments import require_approved
from src.workflow.context import RequestContext
from src.workflow.deadlines import is_window_open, remaining_days
from src.workflow.errors import ExpiredWindowError, InvalidTransitionError, ValidationError
from src.workflow.scope import get_auditee_issue, get_owned_audit, get_owned_issue
from src.workflow.transaction import atomic


def followup_state(issue: AuditIssue, now: datetime) -> FollowupState:
    """追跡ステータス（解決済み > 回答済み > 期限超過 > 未回答）"""
    if issue.followup_resolved:
        return FollowupState.RESOLVED
    if issue.followup_responded:
        return FollowupState.RESPONDED
    if issue.followup_due_date is not None and not is_window_open(now, issue.followup_due_date):
        return FollowupState.OVERDUE
    return FollowupState.PENDING


@dataclass
class FollowupRow:
    """フォローアップ一覧1件"""

    issue: AuditIssue
    audit: Audit
    auditee_name: str
    band: str | None
    now: datetime

    @property
    def state(self) -> FollowupState:
        return followup_state(self.issue, self.now)

    @property
    def remaining_days(self) -> int | None:
        if self.issue.followup_due_date is None:
            return None
        return remaining_days(self.now, self.issue.followup_due_date)


class FollowupService:
    """フォローアップ依頼・回答・再送付・解決"""

    def __init__(self, session: AsyncSession, storage: FileStorage | None = None) -> None:
        self._session = session
        self._storage = storage

    async def _approved_issue(self, ctx: RequestContext, issue_id: int, action: str) -> AuditIssue:
        ctx.require_audit_staff(action)
        issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        require_approved(issue)
        return issue

    async def send_for_followup(self, ctx: RequestContext, issue_id: int, due_date: date | None) -> AuditIssue:
        if due_date is None:
            raise ValidationError("回答期限は必須です")
        issue = await self._approved_issue(ctx, issue_id, "フォローアップ依頼")

        async with atomic(self._session, "send_for_followup"):
            issue.sent_for_followup = True
            issue.followup_due_date = due_date
            issue.sent_for_followup_at = ctx.now
        logger.info("フォローアップ依頼", issue_id=issue.id, due_date=str(due_date))
        return issue

    async def submit_followup(
        self, ctx: RequestContext, issue_id: int, response: str, evidence: Upload | None = None
    ) -> FollowupResponse:
        """被監査部門のフォローアップ回答（証跡は検証後に保存し、パスのみ記録）

        Raises:
            ExpiredWindowError: 期限日の当日末を過ぎている
            InvalidTransitionError: フォローアップ依頼されていない
        """
        if not response or not response.strip():
            raise ValidationError("回答内容は必須です")
        issue, _, _ = await get_auditee_issue(self._session, ctx, issue_id)
        require_approved(issue)
        if not issue.sent_for_followup or issue.followup_due_date is None:
            raise InvalidTransitionError("フォローアップ依頼されていない課題です")
        if not is_window_open(ctx.now, issue.followup_due_date):
            workflow_errors_total.labels(kind="expired_window").inc()
            raise ExpiredWindowError("回答期限を過ぎています。監査担当者に再送付を依頼してください")

        evidence_path = await store_upload(
            self._storage, evidence, ctx.organization_id, StorageCategory.FOLLOWUP_EVIDENCE
        )

        async with atomic(self._session, "submit_followup"):
            record = FollowupResponse(
                issue_id=issue.id,
                responder_id=ctx.user_id,
                response=response.strip(),
                evidence_path=evidence_path,
                responded_at=ctx.now,
                resend_count=0,
            )
            self._session.add(record)
            issue.followup_responded = True
            issue.followup_response = record.response
            issue.followup_evidence_path = evidence_path
            issue.followup_responded_at = ctx.now

        auditee_responses_total.labels(channel="followup").inc()
        logger.info("フォローアップ回答", issue_id=issue.id, has_evidence=evidence_path is not None)
        return record

    async def resend_followup(self, ctx: RequestContext, issue_id: int, due_date: date | None) -> AuditIssue:
        """再送付 — 最新回答キャッシュをクリアし、既存履歴の再送付回数を加算"""
        if due_date is None:
            raise ValidationError("回答期限は必須です")
        issue = await self._approved_issue(ctx, issue_id, "フォローアップ再送付")

        async with atomic(self._session, "resend_followup"):
            issue.sent_for_followup = True
            issue.followup_due_date = due_date
            issue.sent_for_followup_at = ctx.now
            issue.followup_responded = False
            issue.followup_response = None
            issue.followup_evidence_path = None
            issue.followup_responded_at = None
            await self._session.execute(
                update(FollowupResponse)
                .where(FollowupResponse.issue_id == issue.id)
                .values(resend_count=FollowupResponse.resend_count + 1)
                .execution_options(synchronize_session=False)
            )
        logger.info("フォローアップ再送付", issue_id=issue.id, due_date=str(due_date))
        return issue

    async def resolve_followup(self, ctx: RequestContext, issue_id: int) -> AuditIssue:
        """解決済みにする（回答の有無は問わない）"""
        issue = await self._approved_issue(ctx, issue_id, "フォローアップ解決")
        if not issue.sent_for_followup:
            raise InvalidTransitionError("フォローアップ依頼されていない課題です")

        async with atomic(self._session, "resolve_followup"):
            issue.followup_resolved = True
            issue.followup_resolved_at = ctx.now
            issue.followup_resolved_by = ctx.user_id
        logger.info("フォローアップ解決", issue_id=issue.id, responded=issue.followup_responded)
        return issue

    async def followup_history(self, ctx: RequestContext, issue_id: int) -> list[FollowupResponse]:
        """回答履歴（新しい順）"""
        if ctx.principal.is_audit_staff:
            issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        else:
            issue, _, _ = await get_auditee_issue(self._session, ctx, issue_id)
        query = (
            select(FollowupResponse)
            .where(FollowupResponse.issue_id == issue.id)
            .order_by(FollowupResponse.responded_at.desc(), FollowupResponse.id.desc())
            .execution_options(populate_existing=True)
        )
        return list((await self._session.execute(query)).scalars().all())

    async def _rows(self, ctx: RequestContext, audit_id: int | None, included_only: bool) -> list[FollowupRow]:
        query = (
            select(AuditIssue, Audit, Auditee.name, AuditProcedure.score)
            .join(Audit, Audit.id == AuditIssue.audit_id)
            .join(Auditee, Auditee.id == Audit.auditee_id)
            .join(AuditProcedure, AuditProcedure.id == AuditIssue.audit_procedure_id)
            .where(Audit.organization_id == ctx.organization_id, AuditIssue.status == IssueStatus.APPROVED.value)
        )
        if audit_id is not None:
            query = query.where(AuditIssue.audit_id == audit_id)
        if included_only:
            query = query.where(AuditIssue.include_in_report.is_(True))
        else:
            query = query.where(AuditIssue.sent_for_followup.is_(True))
        rows = (await self._session.execute(query)).all()
        result = [
            FollowupRow(issue=issue, audit=audit, auditee_name=name, band=band, now=ctx.now)
            for issue, audit, name, band in rows
        ]
        result.sort(key=lambda r: (r.issue.followup_due_date or date.max, r.issue.id))
        return result

    async def followup_issues(self, ctx: RequestContext, audit_id: int) -> list[FollowupRow]:
        """監査の承認済み・報告対象課題（期限日順、未依頼は末尾）"""
        ctx.require_audit_staff("フォローアップ一覧")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        return await self._rows(ctx, audit.id, included_only=True)

    async def followup_tracker(self, ctx: RequestContext) -> list[FollowupRow]:
        """組織全体のフォローアップ依頼済み課題と解決状況"""
        ctx.require_audit_staff("フォローアップ追跡")
        return await self._rows(ctx, None, included_only=False)
