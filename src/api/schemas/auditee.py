"""被監査部門ポータルスキーマ"""

from datetime import date

from pydantic import BaseModel, Field

from src.api.schemas.issues import IssueResponse


class InboxItemResponse(BaseModel):
    issue: IssueResponse
    audit_id: int
    audit_name: str
    audit_area: str | None = None
    due_date: date | None = None
    remaining_days: int | None = None
    is_past_due: bool
    has_responded: bool | None = None


class InboxResponse(BaseModel):
    pending_comments: list[InboxItemResponse] = Field(default_factory=list)
    overdue_comments: list[InboxItemResponse] = Field(default_factory=list)
    commented: list[InboxItemResponse] = Field(default_factory=list)
    pending_followups: list[InboxItemResponse] = Field(default_factory=list)
    responded_followups: list[InboxItemResponse] = Field(default_factory=list)
