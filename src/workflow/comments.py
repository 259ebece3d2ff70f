"""経営者コメント — 承認済み課題への被監査部門コメント収集

「回答済み」は常に現在の sent_for_commenting_at 以降のコメントで判定する。
再送付すると以前のコメントは回答としてカウントされなくなる。
"""

from dataclasses import dataclass, field
from datetime import date, datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import IssueStatus, StorageCategory, UserRole
from src.db.models.audit import Audit, Auditee, AuditUniverseItem
from src.db.models.fieldwork import AuditProcedure, RiskAssessment
from src.db.models.issue import AuditIssue, ManagementComment
from src.monitoring.metrics import auditee_responses_total, workflow_errors_total
from src.storage import FileStorage, Upload, store_upload
from src.workflow.context import RequestContext
from src.workflow.deadlines import is_window_open, remaining_days
from src.workflow.errors import ExpiredWindowError, InvalidTransitionError, ValidationError
from src.workflow.scope import get_auditee_issue, get_owned_audit, get_owned_issue
from src.workflow.transaction import atomic


@dataclass
class CommentThread:
    issue: AuditIssue
    comments: list[ManagementComment]
    recent_comment_count: int
    resend_count: int

    @property
    def has_responded(self) -> bool:
        return self.recent_comment_count > 0


def build_thread(issue: AuditIssue, comments: list[ManagementComment]) -> CommentThread:
    """コメント一覧からスレッド集計を作る（comments は新しい順）"""
    sent_at = issue.sent_for_commenting_at
    recent = [
        c
        for c in comments
        if not c.is_auditor_response and (sent_at is None or c.created_at > sent_at)
    ]
    return CommentThread(
        issue=issue,
        comments=comments,
        recent_comment_count=len(recent),
        resend_count=sum(1 for c in comments if c.is_auditor_response),
    )


@dataclass
class InboxItem:
    """被監査部門の受信箱1件 — 残日数は参照時に算出"""

    issue: AuditIssue
    audit: Audit
    audit_area: str | None
    due_date: date | None
    now: datetime
    thread: CommentThread | None = None

    @property
    def remaining_days(self) -> int | None:
        if self.due_date is None:
            return None
        return remaining_days(self.now, self.due_date)

    @property
    def is_past_due(self) -> bool:
        if self.due_date is None:
            return False
        return not is_window_open(self.now, self.due_date)


@dataclass
class AuditeeInbox:
    pending_comments: list[InboxItem] = field(default_factory=list)
    overdue_comments: list[InboxItem] = field(default_factory=list)
    commented: list[InboxItem] = field(default_factory=list)
    pending_followups: list[InboxItem] = field(default_factory=list)
    responded_followups: list[InboxItem] = field(default_factory=list)


def require_approved(issue: AuditIssue) -> None:
    if issue.status != IssueStatus.APPROVED:
        workflow_errors_total.labels(kind="invalid_transition").inc()
        raise InvalidTransitionError("承認済みの課題のみ被監査部門へ送付できます")


class CommentService:
    """経営者コメントの送付・回答・集計"""

    def __init__(self, session: AsyncSession, storage: FileStorage | None = None) -> None:
        self._session = session
        self._storage = storage

    async def _comments(self, issue_id: int) -> list[ManagementComment]:
        query = (
            select(ManagementComment)
            .where(ManagementComment.issue_id == issue_id)
            .order_by(ManagementComment.created_at.desc(), ManagementComment.id.desc())
        )
        return list((await self._session.execute(query)).scalars().all())

    async def _approved_issue(self, ctx: RequestContext, issue_id: int, action: str) -> AuditIssue:
        ctx.require_audit_staff(action)
        issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        require_approved(issue)
        return issue

    async def send_for_commenting(self, ctx: RequestContext, issue_id: int, due_date: date | None) -> AuditIssue:
        """コメント依頼

        Raises:
            ValidationError: 期限日未指定
            InvalidTransitionError: 未承認の課題
        """
        if due_date is None:
            raise ValidationError("回答期限は必須です")
        issue = await self._approved_issue(ctx, issue_id, "経営者コメント依頼")

        async with atomic(self._session, "send_for_commenting"):
            issue.sent_for_commenting = True
            issue.comment_due_date = due_date
            issue.sent_for_commenting_at = ctx.now
        logger.info("経営者コメント依頼", issue_id=issue.id, due_date=str(due_date))
        return issue

    async def submit_comment(
        self, ctx: RequestContext, issue_id: int, text: str, attachment: Upload | None = None
    ) -> ManagementComment:
        """被監査部門のコメント登録（添付は検証後に保存し、パスのみ記録）

        Raises:
            ExpiredWindowError: 期限日の当日末を過ぎている
            InvalidTransitionError: コメント依頼されていない
        """
        if not text or not text.strip():
            raise ValidationError("コメントは必須です")
        issue, _, _ = await get_auditee_issue(self._session, ctx, issue_id)
        require_approved(issue)
        if not issue.sent_for_commenting or issue.comment_due_date is None:
            raise InvalidTransitionError("コメント依頼されていない課題です")
        if not is_window_open(ctx.now, issue.comment_due_date):
            workflow_errors_total.labels(kind="expired_window").inc()
            raise ExpiredWindowError("回答期限を過ぎています。監査担当者に再送付を依頼してください")

        attachment_path = await store_upload(
            self._storage, attachment, ctx.organization_id, StorageCategory.COMMENT_ATTACHMENT
        )

        async with atomic(self._session, "submit_comment"):
            comment = ManagementComment(
                issue_id=issue.id,
                author_id=ctx.user_id,
                comment=text.strip(),
                attachment_path=attachment_path,
                is_auditor_response=False,
                created_at=ctx.now,
            )
            self._session.add(comment)

        auditee_responses_total.labels(channel="management_comment").inc()
        logger.info("経営者コメント登録", issue_id=issue.id, has_attachment=attachment_path is not None)
        return comment

    async def resend_for_comment(
        self, ctx: RequestContext, issue_id: int, due_date: date | None, note: str | None = None
    ) -> AuditIssue:
        """再送付 — 送付日時と期限を更新し、メモがあれば監査人の返信として追記"""
        if due_date is None:
            raise ValidationError("回答期限は必須です")
        issue = await self._approved_issue(ctx, issue_id, "経営者コメント再送付")

        async with atomic(self._session, "resend_for_comment"):
            issue.sent_for_commenting = True
            issue.comment_due_date = due_date
            issue.sent_for_commenting_at = ctx.now
            if note and note.strip():
                self._session.add(
                    ManagementComment(
                        issue_id=issue.id,
                        author_id=ctx.user_id,
                        comment=note.strip(),
                        is_auditor_response=True,
                        created_at=ctx.now,
                    )
                )
        logger.info("経営者コメント再送付", issue_id=issue.id, due_date=str(due_date))
        return issue

    async def comment_thread(self, ctx: RequestContext, issue_id: int) -> CommentThread:
        if ctx.principal.is_audit_staff:
            issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        else:
            issue, _, _ = await get_auditee_issue(self._session, ctx, issue_id)
        return build_thread(issue, await self._comments(issue.id))

    async def management_comments(self, ctx: RequestContext, audit_id: int) -> list[CommentThread]:
        """監査の承認済み課題ごとのコメントスレッド（承認日時の新しい順）"""
        ctx.require_audit_staff("経営者コメント一覧")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        query = (
            select(AuditIssue)
            .where(AuditIssue.audit_id == audit.id, AuditIssue.status == IssueStatus.APPROVED.value)
            .order_by(AuditIssue.verified_at.desc(), AuditIssue.id)
        )
        issues = (await self._session.execute(query)).scalars().all()
        return [build_thread(issue, await self._comments(issue.id)) for issue in issues]

    async def auditee_inbox(self, ctx: RequestContext) -> AuditeeInbox:
        """被監査部門ユーザーの受信箱 — コメント依頼とフォローアップ"""
        ctx.require_roles({UserRole.AUDITEE}, "受信箱の参照")
        query = (
            select(AuditIssue, Audit, AuditUniverseItem.audit_area)
            .join(Audit, Audit.id == AuditIssue.audit_id)
            .join(Auditee, Auditee.id == Audit.auditee_id)
            .join(AuditProcedure, AuditProcedure.id == AuditIssue.audit_procedure_id)
            .join(RiskAssessment, RiskAssessment.id == AuditProcedure.risk_assessment_id)
            .join(AuditUniverseItem, AuditUniverseItem.id == RiskAssessment.universe_item_id)
            .where(
                Audit.organization_id == ctx.organization_id,
                Auditee.user_id == ctx.user_id,
                AuditIssue.status == IssueStatus.APPROVED.value,
            )
            .order_by(AuditIssue.id)
        )
        rows = (await self._session.execute(query)).all()

        inbox = AuditeeInbox()
        for issue, audit, area in rows:
            if issue.sent_for_commenting:
                thread = build_thread(issue, await self._comments(issue.id))
                item = InboxItem(issue, audit, area, issue.comment_due_date, ctx.now, thread)
                if thread.has_responded:
                    inbox.commented.append(item)
                elif item.is_past_due:
                    inbox.overdue_comments.append(item)
                else:
                    inbox.pending_comments.append(item)
            if issue.sent_for_followup:
                item = InboxItem(issue, audit, area, issue.followup_due_date, ctx.now)
                if issue.followup_responded:
                    inbox.responded_followups.append(item)
                else:
                    inbox.pending_followups.append(item)

        def by_due(item: InboxItem) -> date:
            return item.due_date or date.max

        for bucket in (
            inbox.pending_comments,
            inbox.overdue_comments,
            inbox.commented,
            inbox.pending_followups,
            inbox.responded_followups,
        ):
            bucket.sort(key=by_due)
        return inbox
