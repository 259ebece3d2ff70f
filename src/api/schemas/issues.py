"""監査課題スキーマ — 起票・査閲・コメント・フォローアップ"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from src.notifications import DeliveryResult


class IssueRequest(BaseModel):
    title: str
    criteria: str | None = None
    condition: str | None = None
    cause: str | None = None
    consequence: str | None = None
    corrective_action: str | None = None
    corrective_date: date | None = None


class IssueResponse(BaseModel):
    id: int
    audit_id: int
    audit_procedure_id: int
    title: str
    criteria: str | None = None
    condition: str | None = None
    cause: str | None = None
    consequence: str | None = None
    corrective_action: str | None = None
    corrective_date: date | None = None
    status: str
    include_in_report: bool
    submitted_at: datetime | None = None
    verified_at: datetime | None = None
    amendment_note: str | None = None
    removal_reason: str | None = None
    sent_for_commenting: bool
    comment_due_date: date | None = None
    sent_for_followup: bool
    followup_due_date: date | None = None
    followup_responded: bool
    followup_resolved: bool

    model_config = {"from_attributes": True}


class IssueSummaryResponse(BaseModel):
    issue: IssueResponse
    audit_name: str
    issue_rating: int | None = None
    band: str | None = None


class ReviewNoteRequest(BaseModel):
    note: str
    field_name: str | None = None
    selected_text: str | None = None


class ReviewNoteResponse(BaseModel):
    id: int
    reviewer_id: int
    field_name: str | None = None
    selected_text: str | None = None
    note: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class IssueDetailResponse(IssueSummaryResponse):
    auditee_name: str | None = None
    audit_area: str | None = None
    review_notes: list[ReviewNoteResponse] = Field(default_factory=list)


class AmendRequest(BaseModel):
    note: str | None = None


class RemoveRequest(BaseModel):
    reason: str | None = None


class CorrectiveDateRequest(BaseModel):
    corrective_date: date | None = None


class DueDateRequest(BaseModel):
    due_date: date | None = None
    note: str | None = None


class SentResponse(BaseModel):
    """被監査部門への送付結果（通知はコミット後に実行）"""

    issue: IssueResponse
    notification: DeliveryResult


# ── 経営者コメント ────────────────────────────────────


class CommentResponse(BaseModel):
    id: int
    author_id: int
    comment: str
    attachment_path: str | None = None
    is_auditor_response: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class CommentThreadResponse(BaseModel):
    issue_id: int
    title: str
    comment_due_date: date | None = None
    sent_for_commenting_at: datetime | None = None
    has_responded: bool
    recent_comment_count: int
    resend_count: int
    comments: list[CommentResponse]


# ── フォローアップ ────────────────────────────────────


class FollowupHistoryResponse(BaseModel):
    id: int
    responder_id: int
    response: str
    evidence_path: str | None = None
    responded_at: datetime
    resend_count: int

    model_config = {"from_attributes": True}


class FollowupRowResponse(BaseModel):
    issue: IssueResponse
    audit_id: int
    audit_name: str
    auditee_name: str
    band: str | None = None
    state: str
    remaining_days: int | None = None
