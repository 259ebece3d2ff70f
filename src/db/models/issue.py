"""監査課題・経営者コメント・フォローアップモデル"""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import BaseModel

_ACTIVE_ISSUE_PREDICATE = text("status IN ('draft', 'sent_for_verify', 'sent_for_amendment')")


class AuditIssue(BaseModel):
    """監査課題

    評点・バンドは親の監査手続から読み出し、課題側には保持しない。
    followup_responded / followup_response / followup_evidence_path / followup_responded_at は
    最新のフォローアップ回答のキャッシュであり、回答登録と同一トランザクションで更新する。
    """

    __tablename__ = "audit_issues"
    __table_args__ = (
        # 手続ごとに未確定（draft/sent_for_verify/sent_for_amendment）の課題は1件のみ
        Index(
            "uq_audit_issues_active_per_procedure",
            "audit_procedure_id",
            unique=True,
            postgresql_where=_ACTIVE_ISSUE_PREDICATE,
            sqlite_where=_ACTIVE_ISSUE_PREDICATE,
        ),
    )

    audit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    audit_procedure_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_procedures.id"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    criteria: Mapped[str | None] = mapped_column(Text, nullable=True)
    condition: Mapped[str | None] = mapped_column(Text, nullable=True)
    cause: Mapped[str | None] = mapped_column(Text, nullable=True)
    consequence: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrective_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, index=True)  # IssueStatus
    include_in_report: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # 起票・査閲
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    submitted_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    amendment_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    removal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # 経営者コメント
    sent_for_commenting: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    comment_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sent_for_commenting_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # フォローアップ
    sent_for_followup: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    followup_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sent_for_followup_at: Mapped[datetime | None] = mapped_column(nullable=True)
    followup_responded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    followup_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    followup_evidence_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    followup_responded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    followup_resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    followup_resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    followup_resolved_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)


class ManagementComment(BaseModel):
    """経営者コメント（追記のみ）

    is_auditor_response=True は監査人の再送付メモ。
    """

    __tablename__ = "management_comments"

    issue_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_auditor_response: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class FollowupResponse(BaseModel):
    """フォローアップ回答履歴（追記のみ）"""

    __tablename__ = "followup_responses"

    issue_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    responder_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    responded_at: Mapped[datetime] = mapped_column(nullable=False)
    resend_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class IssueReviewNote(BaseModel):
    """査閲者のインラインコメント"""

    __tablename__ = "issue_review_notes"

    issue_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    field_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    selected_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str] = mapped_column(Text, nullable=False)
