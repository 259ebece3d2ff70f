"""監査課題ライフサイクル — 起票・査閲・承認・差戻し・削除

状態遷移は ISSUE_TRANSITIONS をデータとして定義し、すべての操作がこの表を参照する。
課題の評点・バンドは常に親の監査手続から読み出す。
"""

from dataclasses import dataclass, field
from datetime import date

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import IssueStatus
from src.db.models.audit import Audit, Auditee, AuditUniverseItem
from src.db.models.fieldwork import AuditProcedure, RiskAssessment
from src.db.models.issue import AuditIssue, IssueReviewNote
from src.db.repositories.issue import IssueRepository
from src.monitoring.metrics import issue_transitions_total, workflow_errors_total
from src.workflow.context import RequestContext
from src.workflow.errors import InvalidTransitionError, ValidationError
from src.workflow.scope import get_owned_issue, get_owned_procedure, not_found, visible_to_auditee
from src.workflow.transaction import atomic


# ── 状態遷移表 ────────────────────────────────────────
# 操作 → (遷移元の状態, 遷移先)。遷移元の None は「未確定の課題がない」
ISSUE_TRANSITIONS: dict[str, tuple[frozenset[IssueStatus | None], IssueStatus]] = {
    "save_draft": (
        frozenset({None, IssueStatus.DRAFT, IssueStatus.SENT_FOR_AMENDMENT}),
        IssueStatus.DRAFT,
    ),
    "submit_for_verification": (
        frozenset({None, IssueStatus.DRAFT, IssueStatus.SENT_FOR_AMENDMENT}),
        IssueStatus.SENT_FOR_VERIFY,
    ),
    "approve": (frozenset({IssueStatus.SENT_FOR_VERIFY}), IssueStatus.APPROVED),
    "send_for_amendment": (frozenset({IssueStatus.SENT_FOR_VERIFY}), IssueStatus.SENT_FOR_AMENDMENT),
    "remove": (frozenset({IssueStatus.SENT_FOR_VERIFY}), IssueStatus.REMOVED),
}

# 査閲画面のフィルタ
VERIFICATION_FILTERS: dict[str, IssueStatus] = {
    "pending": IssueStatus.SENT_FOR_VERIFY,
    "approved": IssueStatus.APPROVED,
    "amendment": IssueStatus.SENT_FOR_AMENDMENT,
    "removed": IssueStatus.REMOVED,
}

REVIEW_NOTE_FIELDS = frozenset(
    {"title", "criteria", "condition", "cause", "consequence", "corrective_action"}
)


def can_transition(action: str, current: IssueStatus | str | None) -> bool:
    """操作が現在の状態から許可されるか"""
    if action not in ISSUE_TRANSITIONS:
        return False
    sources, _ = ISSUE_TRANSITIONS[action]
    status = IssueStatus(current) if current is not None else None
    return status in sources


def _transition(action: str, current: str | None) -> IssueStatus:
    if not can_transition(action, current):
        workflow_errors_total.labels(kind="invalid_transition").inc()
        raise InvalidTransitionError(f"現在の状態（{current or '未起票'}）では実行できない操作です: {action}")
    return ISSUE_TRANSITIONS[action][1]


@dataclass
class IssueFields:
    title: str
    criteria: str | None = None
    condition: str | None = None
    cause: str | None = None
    consequence: str | None = None
    corrective_action: str | None = None
    corrective_date: date | None = None


@dataclass
class IssueSummary:
    """一覧表示用 — 課題 + 手続由来の重要度"""

    issue: AuditIssue
    procedure: AuditProcedure
    audit: Audit

    @property
    def issue_rating(self) -> int | None:
        return self.procedure.issue_rating

    @property
    def band(self) -> str | None:
        return self.procedure.score


@dataclass
class IssueDetail(IssueSummary):
    auditee: Auditee | None = None
    audit_area: str | None = None
    review_notes: list[IssueReviewNote] = field(default_factory=list)


class IssueService:
    """課題の起票・査閲と報告対象の管理"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._issues = IssueRepository(session)

    # ── 起票 ──────────────────────────────────────────

    async def _write_issue(
        self, ctx: RequestContext, procedure_id: int, data: IssueFields, action: str
    ) -> AuditIssue:
        ctx.require_audit_staff("監査課題の起票")
        if not data.title or not data.title.strip():
            raise ValidationError("課題タイトルは必須です")
        procedure, audit = await get_owned_procedure(self._session, ctx, procedure_id)
        active = await self._issues.active_for_procedure(procedure.id)
        target = _transition(action, active.status if active else None)

        async with atomic(self._session, action):
            issue = active
            if issue is None:
                issue = AuditIssue(
                    audit_id=audit.id,
                    audit_procedure_id=procedure.id,
                    created_by=ctx.user_id,
                    title=data.title.strip(),
                    status=target.value,
                )
                self._session.add(issue)
            issue.title = data.title.strip()
            issue.criteria = data.criteria
            issue.condition = data.condition
            issue.cause = data.cause
            issue.consequence = data.consequence
            issue.corrective_action = data.corrective_action
            issue.corrective_date = data.corrective_date
            issue.status = target.value
            if target == IssueStatus.SENT_FOR_VERIFY:
                issue.submitted_by = ctx.user_id
                issue.submitted_at = ctx.now

        issue_transitions_total.labels(action=action, to_status=target.value).inc()
        logger.info("監査課題保存", issue_id=issue.id, procedure_id=procedure.id, status=target.value)
        return issue

    async def save_draft(self, ctx: RequestContext, procedure_id: int, data: IssueFields) -> AuditIssue:
        """下書き保存（未起票・下書き・差戻し中から）

        Raises:
            InvalidTransitionError: 査閲中の課題がある
        """
        return await self._write_issue(ctx, procedure_id, data, "save_draft")

    async def submit_for_verification(self, ctx: RequestContext, procedure_id: int, data: IssueFields) -> AuditIssue:
        """査閲依頼"""
        return await self._write_issue(ctx, procedure_id, data, "submit_for_verification")

    async def get_draft(self, ctx: RequestContext, procedure_id: int) -> AuditIssue | None:
        """手続に紐づく未確定の課題（なければNone）"""
        procedure, _ = await get_owned_procedure(self._session, ctx, procedure_id)
        return await self._issues.active_for_procedure(procedure.id)

    # ── 査閲 ──────────────────────────────────────────

    async def _review_target(self, ctx: RequestContext, issue_id: int, action: str) -> tuple[AuditIssue, IssueStatus]:
        """査閲対象の課題と遷移先（書き込み前に検証する）"""
        ctx.require_reviewer("監査課題の査閲")
        issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        return issue, _transition(action, issue.status)

    @staticmethod
    def _mark_reviewed(ctx: RequestContext, issue: AuditIssue, target: IssueStatus) -> None:
        issue.status = target.value
        issue.verified_by = ctx.user_id
        issue.verified_at = ctx.now

    async def approve(self, ctx: RequestContext, issue_id: int) -> AuditIssue:
        issue, target = await self._review_target(ctx, issue_id, "approve")
        async with atomic(self._session, "approve_issue"):
            self._mark_reviewed(ctx, issue, target)
        issue_transitions_total.labels(action="approve", to_status=issue.status).inc()
        logger.info("監査課題承認", issue_id=issue.id, verified_by=ctx.user_id)
        return issue

    async def send_for_amendment(self, ctx: RequestContext, issue_id: int, note: str | None = None) -> AuditIssue:
        issue, target = await self._review_target(ctx, issue_id, "send_for_amendment")
        async with atomic(self._session, "send_for_amendment"):
            self._mark_reviewed(ctx, issue, target)
            issue.amendment_note = note
        issue_transitions_total.labels(action="send_for_amendment", to_status=issue.status).inc()
        logger.info("監査課題差戻し", issue_id=issue.id)
        return issue

    async def remove(self, ctx: RequestContext, issue_id: int, reason: str | None = None) -> AuditIssue:
        issue, target = await self._review_target(ctx, issue_id, "remove")
        async with atomic(self._session, "remove_issue"):
            self._mark_reviewed(ctx, issue, target)
            issue.removal_reason = reason
        issue_transitions_total.labels(action="remove", to_status=issue.status).inc()
        logger.info("監査課題削除", issue_id=issue.id)
        return issue

    # ── 参照 ──────────────────────────────────────────

    async def get_issue_detail(self, ctx: RequestContext, issue_id: int) -> IssueDetail:
        issue, audit = await get_owned_issue(self._session, ctx, issue_id)
        row = (
            await self._session.execute(
                select(AuditProcedure, AuditUniverseItem.audit_area, Auditee)
                .join(RiskAssessment, RiskAssessment.id == AuditProcedure.risk_assessment_id)
                .join(AuditUniverseItem, AuditUniverseItem.id == RiskAssessment.universe_item_id)
                .join(Auditee, Auditee.id == audit.auditee_id)
                .where(AuditProcedure.id == issue.audit_procedure_id)
            )
        ).one()
        procedure, audit_area, auditee = row
        if not ctx.principal.is_audit_staff and (auditee.user_id != ctx.user_id or not visible_to_auditee(issue)):
            raise not_found("監査課題が見つかりません")
        return IssueDetail(
            issue=issue,
            procedure=procedure,
            audit=audit,
            auditee=auditee,
            audit_area=audit_area,
            review_notes=await self._notes(issue.id) if ctx.principal.is_audit_staff else [],
        )

    async def list_for_verification(self, ctx: RequestContext, status_filter: str = "pending") -> list[IssueSummary]:
        """査閲一覧（pending / approved / amendment / removed）"""
        ctx.require_reviewer("監査課題の査閲一覧")
        status = VERIFICATION_FILTERS.get(status_filter)
        if status is None:
            raise ValidationError(f"不明なフィルタです: {status_filter}")
        rows = await self._issues.list_with_procedure(ctx.organization_id, statuses=[status])
        return [IssueSummary(issue=i, procedure=p, audit=a) for i, p, a in rows]

    async def issues_register(
        self, ctx: RequestContext, auditee_id: int | None = None, audit_id: int | None = None
    ) -> list[IssueSummary]:
        """組織全体の課題台帳（承認済み・報告対象）"""
        ctx.require_audit_staff("課題台帳の参照")
        rows = await self._issues.list_with_procedure(
            ctx.organization_id,
            statuses=[IssueStatus.APPROVED],
            audit_id=audit_id,
            auditee_id=auditee_id,
            include_in_report=True,
        )
        return [IssueSummary(issue=i, procedure=p, audit=a) for i, p, a in rows]

    # ── 報告対象・是正期日 ────────────────────────────

    async def set_include_in_report(self, ctx: RequestContext, issue_id: int, include: bool) -> AuditIssue:
        ctx.require_audit_staff("報告対象の変更")
        issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        if issue.status == IssueStatus.REMOVED:
            raise InvalidTransitionError("削除済みの課題は報告対象にできません")
        async with atomic(self._session, "set_include_in_report"):
            issue.include_in_report = include
        logger.info("報告対象変更", issue_id=issue.id, include_in_report=include)
        return issue

    async def set_corrective_date(self, ctx: RequestContext, issue_id: int, corrective_date: date | None) -> AuditIssue:
        ctx.require_audit_staff("是正期日の設定")
        issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        async with atomic(self._session, "set_corrective_date"):
            issue.corrective_date = corrective_date
        return issue

    # ── 査閲コメント ──────────────────────────────────

    async def _notes(self, issue_id: int) -> list[IssueReviewNote]:
        query = (
            select(IssueReviewNote)
            .where(IssueReviewNote.issue_id == issue_id)
            .order_by(IssueReviewNote.created_at, IssueReviewNote.id)
        )
        return list((await self._session.execute(query)).scalars().all())

    async def add_review_note(
        self,
        ctx: RequestContext,
        issue_id: int,
        text: str,
        field_name: str | None = None,
        selected_text: str | None = None,
    ) -> IssueReviewNote:
        """査閲者が課題の特定箇所にコメントを付ける"""
        ctx.require_reviewer("査閲コメントの追加")
        if not text or not text.strip():
            raise ValidationError("コメントは必須です")
        if field_name is not None and field_name not in REVIEW_NOTE_FIELDS:
            raise ValidationError(f"コメント対象外の項目です: {field_name}")
        issue, _ = await get_owned_issue(self._session, ctx, issue_id)

        async with atomic(self._session, "add_review_note"):
            note = IssueReviewNote(
                issue_id=issue.id,
                reviewer_id=ctx.user_id,
                field_name=field_name,
                selected_text=selected_text,
                note=text.strip(),
                created_at=ctx.now,
            )
            self._session.add(note)
        return note

    async def list_review_notes(self, ctx: RequestContext, issue_id: int) -> list[IssueReviewNote]:
        ctx.require_audit_staff("査閲コメントの参照")
        issue, _ = await get_owned_issue(self._session, ctx, issue_id)
        return await self._notes(issue.id)

