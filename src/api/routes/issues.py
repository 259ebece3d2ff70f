"""監査課題エンドポイント — 起票・査閲・報告対象・経営者コメント・フォローアップ・報告書"""

import asyncio

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session, get_notifier
from src.api.middleware.auth import context_with, get_request_context
from src.api.schemas.issues import (
    AmendRequest,
    CommentResponse,
    CommentThreadResponse,
    CorrectiveDateRequest,
    DueDateRequest,
    FollowupHistoryResponse,
    FollowupRowResponse,
    IssueDetailResponse,
    IssueRequest,
    IssueResponse,
    IssueSummaryResponse,
    RemoveRequest,
    ReviewNoteRequest,
    ReviewNoteResponse,
    SentResponse,
)
from src.db.models.audit import Audit, Auditee
from src.notifications import IssueNotifier
from src.reports.issue_report import render_docx
from src.workflow.comments import CommentService, CommentThread
from src.workflow.context import RequestContext
from src.workflow.followup import FollowupRow, FollowupService
from src.workflow.issues import IssueDetail, IssueFields, IssueService, IssueSummary
from src.workflow.reporting import ReportingService
from src.workflow.scope import get_owned_issue, not_found

router = APIRouter()

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _summary_response(summary: IssueSummary) -> IssueSummaryResponse:
    return IssueSummaryResponse(
        issue=IssueResponse.model_validate(summary.issue),
        audit_name=summary.audit.name,
        issue_rating=summary.issue_rating,
        band=summary.band,
    )


def _detail_response(detail: IssueDetail) -> IssueDetailResponse:
    return IssueDetailResponse(
        **_summary_response(detail).model_dump(),
        auditee_name=detail.auditee.name if detail.auditee else None,
        audit_area=detail.audit_area,
        review_notes=[ReviewNoteResponse.model_validate(n) for n in detail.review_notes],
    )


def _thread_response(thread: CommentThread) -> CommentThreadResponse:
    return CommentThreadResponse(
        issue_id=thread.issue.id,
        title=thread.issue.title,
        comment_due_date=thread.issue.comment_due_date,
        sent_for_commenting_at=thread.issue.sent_for_commenting_at,
        has_responded=thread.has_responded,
        recent_comment_count=thread.recent_comment_count,
        resend_count=thread.resend_count,
        comments=[CommentResponse.model_validate(c) for c in thread.comments],
    )


def _followup_row_response(row: FollowupRow) -> FollowupRowResponse:
    return FollowupRowResponse(
        issue=IssueResponse.model_validate(row.issue),
        audit_id=row.audit.id,
        audit_name=row.audit.name,
        auditee_name=row.auditee_name,
        band=row.band,
        state=row.state.value,
        remaining_days=row.remaining_days,
    )


def _issue_fields(body: IssueRequest) -> IssueFields:
    return IssueFields(**body.model_dump())


async def _recipient(session: AsyncSession, ctx: RequestContext, issue_id: int) -> tuple[Audit, Auditee]:
    _, audit = await get_owned_issue(session, ctx, issue_id)
    auditee = await session.get(Auditee, audit.auditee_id)
    if auditee is None:
        raise not_found("被監査部門が見つかりません")
    return audit, auditee


# ── 起票 ──────────────────────────────────────────────


@router.get("/procedures/{procedure_id}/draft", response_model=IssueResponse | None)
async def get_draft(
    procedure_id: int,
    ctx: RequestContext = Depends(context_with("issue:author")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse | None:
    """編集中の課題（なければ null）"""
    issue = await IssueService(session).get_draft(ctx, procedure_id)
    return IssueResponse.model_validate(issue) if issue else None


@router.put("/procedures/{procedure_id}/draft", response_model=IssueResponse)
async def save_draft(
    procedure_id: int,
    body: IssueRequest,
    ctx: RequestContext = Depends(context_with("issue:author")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    issue = await IssueService(session).save_draft(ctx, procedure_id, _issue_fields(body))
    return IssueResponse.model_validate(issue)


@router.post("/procedures/{procedure_id}/submit", response_model=IssueResponse)
async def submit_for_verification(
    procedure_id: int,
    body: IssueRequest,
    ctx: RequestContext = Depends(context_with("issue:author")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    issue = await IssueService(session).submit_for_verification(ctx, procedure_id, _issue_fields(body))
    return IssueResponse.model_validate(issue)


# ── 一覧・台帳 ────────────────────────────────────────


@router.get("/verify", response_model=list[IssueSummaryResponse])
async def list_for_verification(
    status_filter: str = "pending",
    ctx: RequestContext = Depends(context_with("issue:verify")),
    session: AsyncSession = Depends(get_db_session),
) -> list[IssueSummaryResponse]:
    summaries = await IssueService(session).list_for_verification(ctx, status_filter)
    return [_summary_response(s) for s in summaries]


@router.get("/register", response_model=list[IssueSummaryResponse])
async def issues_register(
    auditee_id: int | None = None,
    audit_id: int | None = None,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
) -> list[IssueSummaryResponse]:
    summaries = await IssueService(session).issues_register(ctx, auditee_id=auditee_id, audit_id=audit_id)
    return [_summary_response(s) for s in summaries]


@router.get("/followup-tracker", response_model=list[FollowupRowResponse])
async def followup_tracker(
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
) -> list[FollowupRowResponse]:
    rows = await FollowupService(session).followup_tracker(ctx)
    return [_followup_row_response(r) for r in rows]


@router.get("/audits/{audit_id}/management-comments", response_model=list[CommentThreadResponse])
async def management_comments(
    audit_id: int,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
) -> list[CommentThreadResponse]:
    threads = await CommentService(session).management_comments(ctx, audit_id)
    return [_thread_response(t) for t in threads]


@router.get("/audits/{audit_id}/followups", response_model=list[FollowupRowResponse])
async def followup_issues(
    audit_id: int,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
) -> list[FollowupRowResponse]:
    rows = await FollowupService(session).followup_issues(ctx, audit_id)
    return [_followup_row_response(r) for r in rows]


@router.get("/audits/{audit_id}/report")
async def export_report(
    audit_id: int,
    ctx: RequestContext = Depends(context_with("report:export")),
    session: AsyncSession = Depends(get_db_session),
) -> Response:
    """監査報告書（DOCX）ダウンロード"""
    report = await ReportingService(session).build_report(ctx, audit_id)
    content = await asyncio.to_thread(render_docx, report)
    filename = f"audit_report_{report.audit_id}_{report.audit_year}.docx"
    return Response(
        content=content,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── 査閲 ──────────────────────────────────────────────


@router.get("/{issue_id}", response_model=IssueDetailResponse)
async def get_issue(
    issue_id: int,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
) -> IssueDetailResponse:
    """課題詳細（被監査部門は自部門の依頼済み課題のみ、査閲コメントは含まない）"""
    return _detail_response(await IssueService(session).get_issue_detail(ctx, issue_id))


@router.post("/{issue_id}/approve", response_model=IssueResponse)
async def approve(
    issue_id: int,
    ctx: RequestContext = Depends(context_with("issue:verify")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    return IssueResponse.model_validate(await IssueService(session).approve(ctx, issue_id))


@router.post("/{issue_id}/amend", response_model=IssueResponse)
async def send_for_amendment(
    issue_id: int,
    body: AmendRequest,
    ctx: RequestContext = Depends(context_with("issue:verify")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    return IssueResponse.model_validate(await IssueService(session).send_for_amendment(ctx, issue_id, body.note))


@router.post("/{issue_id}/remove", response_model=IssueResponse)
async def remove(
    issue_id: int,
    body: RemoveRequest,
    ctx: RequestContext = Depends(context_with("issue:verify")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    return IssueResponse.model_validate(await IssueService(session).remove(ctx, issue_id, body.reason))


@router.get("/{issue_id}/review-notes", response_model=list[ReviewNoteResponse])
async def list_review_notes(
    issue_id: int,
    ctx: RequestContext = Depends(context_with("issue:author")),
    session: AsyncSession = Depends(get_db_session),
) -> list[ReviewNoteResponse]:
    notes = await IssueService(session).list_review_notes(ctx, issue_id)
    return [ReviewNoteResponse.model_validate(n) for n in notes]


@router.post("/{issue_id}/review-notes", response_model=ReviewNoteResponse)
async def add_review_note(
    issue_id: int,
    body: ReviewNoteRequest,
    ctx: RequestContext = Depends(context_with("issue:verify")),
    session: AsyncSession = Depends(get_db_session),
) -> ReviewNoteResponse:
    note = await IssueService(session).add_review_note(ctx, issue_id, body.note, body.field_name, body.selected_text)
    return ReviewNoteResponse.model_validate(note)


# ── 報告対象・是正期日 ────────────────────────────────


@router.post("/{issue_id}/include-in-report", response_model=IssueResponse)
async def include_in_report(
    issue_id: int,
    ctx: RequestContext = Depends(context_with("issue:author")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    return IssueResponse.model_validate(await IssueService(session).set_include_in_report(ctx, issue_id, True))


@router.post("/{issue_id}/exclude-from-report", response_model=IssueResponse)
async def exclude_from_report(
    issue_id: int,
    ctx: RequestContext = Depends(context_with("issue:author")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    return IssueResponse.model_validate(await IssueService(session).set_include_in_report(ctx, issue_id, False))


@router.post("/{issue_id}/corrective-date", response_model=IssueResponse)
async def set_corrective_date(
    issue_id: int,
    body: CorrectiveDateRequest,
    ctx: RequestContext = Depends(context_with("issue:author")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    issue = await IssueService(session).set_corrective_date(ctx, issue_id, body.corrective_date)
    return IssueResponse.model_validate(issue)


# ── 経営者コメント ────────────────────────────────────


@router.post("/{issue_id}/send-for-commenting", response_model=SentResponse)
async def send_for_commenting(
    issue_id: int,
    body: DueDateRequest,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
    notifier: IssueNotifier = Depends(get_notifier),
) -> SentResponse:
    """コメント依頼 — コミット後に被監査部門へメール通知"""
    issue = await CommentService(session).send_for_commenting(ctx, issue_id, body.due_date)
    audit, auditee = await _recipient(session, ctx, issue.id)
    delivery = await notifier.comment_requested(auditee, audit, issue, issue.comment_due_date)
    return SentResponse(issue=IssueResponse.model_validate(issue), notification=delivery)


@router.post("/{issue_id}/resend-for-comment", response_model=SentResponse)
async def resend_for_comment(
    issue_id: int,
    body: DueDateRequest,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
    notifier: IssueNotifier = Depends(get_notifier),
) -> SentResponse:
    issue = await CommentService(session).resend_for_comment(ctx, issue_id, body.due_date, body.note)
    audit, auditee = await _recipient(session, ctx, issue.id)
    delivery = await notifier.comment_requested(auditee, audit, issue, issue.comment_due_date)
    return SentResponse(issue=IssueResponse.model_validate(issue), notification=delivery)


@router.get("/{issue_id}/comments", response_model=CommentThreadResponse)
async def comment_thread(
    issue_id: int,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
) -> CommentThreadResponse:
    return _thread_response(await CommentService(session).comment_thread(ctx, issue_id))


# ── フォローアップ ────────────────────────────────────


@router.post("/{issue_id}/send-for-followup", response_model=SentResponse)
async def send_for_followup(
    issue_id: int,
    body: DueDateRequest,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
    notifier: IssueNotifier = Depends(get_notifier),
) -> SentResponse:
    """フォローアップ依頼 — コミット後に被監査部門へメール通知"""
    issue = await FollowupService(session).send_for_followup(ctx, issue_id, body.due_date)
    audit, auditee = await _recipient(session, ctx, issue.id)
    delivery = await notifier.followup_requested(auditee, audit, issue, issue.followup_due_date)
    return SentResponse(issue=IssueResponse.model_validate(issue), notification=delivery)


@router.post("/{issue_id}/resend-followup", response_model=SentResponse)
async def resend_followup(
    issue_id: int,
    body: DueDateRequest,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
    notifier: IssueNotifier = Depends(get_notifier),
) -> SentResponse:
    issue = await FollowupService(session).resend_followup(ctx, issue_id, body.due_date)
    audit, auditee = await _recipient(session, ctx, issue.id)
    delivery = await notifier.followup_requested(auditee, audit, issue, issue.followup_due_date)
    return SentResponse(issue=IssueResponse.model_validate(issue), notification=delivery)


@router.post("/{issue_id}/resolve-followup", response_model=IssueResponse)
async def resolve_followup(
    issue_id: int,
    ctx: RequestContext = Depends(context_with("issue:track")),
    session: AsyncSession = Depends(get_db_session),
) -> IssueResponse:
    return IssueResponse.model_validate(await FollowupService(session).resolve_followup(ctx, issue_id))


@router.get("/{issue_id}/followup-history", response_model=list[FollowupHistoryResponse])
async def followup_history(
    issue_id: int,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
) -> list[FollowupHistoryResponse]:
    history = await FollowupService(session).followup_history(ctx, issue_id)
    return [FollowupHistoryResponse.model_validate(h) for h in history]
