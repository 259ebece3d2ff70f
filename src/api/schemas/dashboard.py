"""ダッシュボードスキーマ"""

from pydantic import BaseModel, Field

from src.api.schemas.audits import AuditResponse


class RecentAuditResponse(AuditResponse):
    auditee_name: str
    team_leader_name: str | None = None


class DashboardResponse(BaseModel):
    total_audits: int
    active_audits: int
    completed_audits: int
    pending_verification: int
    recent_audits: list[RecentAuditResponse] = Field(default_factory=list)


class AdminSummaryResponse(BaseModel):
    organization_count: int
    user_count: int
