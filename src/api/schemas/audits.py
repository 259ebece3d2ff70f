"""監査・往査（リスク評価・フォルダ・監査手続）スキーマ"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from src.config.constants import AuditStatus


# ── 監査 ──────────────────────────────────────────────


class AuditRequest(BaseModel):
    name: str
    auditee_id: int
    team_leader_id: int
    start_date: date
    end_date: date
    team_member_ids: list[int] = Field(default_factory=list)
    description: str | None = None
    status: AuditStatus = AuditStatus.PLANNED


class AuditResponse(BaseModel):
    id: int
    name: str
    auditee_id: int
    team_leader_id: int
    start_date: date
    end_date: date
    status: str
    description: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class TeamMemberResponse(BaseModel):
    id: int
    full_name: str
    role: str

    model_config = {"from_attributes": True}


class AuditDetailResponse(AuditResponse):
    auditee_name: str
    team: list[TeamMemberResponse] = Field(default_factory=list)


# ── リスク評価 ────────────────────────────────────────


class AssessmentItemRequest(BaseModel):
    universe_id: int | None = None
    likelihood: int | None = None
    impact: int | None = None
    is_selected: bool = False
    assigned_auditor_id: int | None = None


class AssessmentSaveRequest(BaseModel):
    items: list[AssessmentItemRequest]


class AssessmentSaveResponse(BaseModel):
    upserted: int
    deleted: int
    skipped: int
    retained: int


class AssessmentResponse(BaseModel):
    id: int
    universe_item_id: int
    audit_area: str
    process: str | None = None
    inherent_risk: str | None = None
    likelihood: int
    impact: int
    rating: int
    band: str
    is_selected: bool
    assigned_auditor_id: int | None = None


# ── フォルダ ──────────────────────────────────────────


class FolderSummaryResponse(BaseModel):
    audit_id: int
    audit_area: str
    risk_assessment_id: int
    rating: int
    band: str
    assigned_auditor_id: int | None = None
    attachment_count: int


class AttachRequest(BaseModel):
    working_paper_id: int


class RowsRequest(BaseModel):
    rows: list[dict[str, Any]]


class RowsResponse(BaseModel):
    working_paper_id: int
    rows: list[dict[str, Any]]


class ColumnResponse(BaseModel):
    id: int
    name: str
    column_type: str
    column_order: int
    options: list[str] | None = None
    formula: str | None = None

    model_config = {"from_attributes": True}


class AttachedPaperResponse(BaseModel):
    working_paper_id: int
    name: str
    allow_row_insert: bool
    columns: list[ColumnResponse]
    rows: list[dict[str, Any]]


class FolderViewResponse(BaseModel):
    audit_id: int
    audit_area: str
    risk_assessment_id: int
    process: str | None = None
    control_measure: str | None = None
    rating: int
    band: str
    assigned_auditor_id: int | None = None
    assigned_auditor_name: str | None = None
    papers: list[AttachedPaperResponse] = Field(default_factory=list)


class FolderDataResponse(BaseModel):
    audit_area: str
    risk_assessment_id: int
    rows: list[dict[str, Any]]


# ── 監査手続 ──────────────────────────────────────────


class ProcedureRequest(BaseModel):
    audit_area: str | None = None
    audit_objective: str | None = None
    record_of_work: str | None = None
    conclusion: str | None = None
    result: str | None = None
    cause: str | None = None
    likelihood: int | None = None
    impact: int | None = None
    include_in_report: bool = False
    working_paper_id: int | None = None


class ProcedureResponse(ProcedureRequest):
    id: int
    audit_id: int
    risk_assessment_id: int
    evidence_path: str | None = None
    issue_rating: int | None = None
    score: str | None = None

    model_config = {"from_attributes": True}


class ProcedureRowResponse(BaseModel):
    risk_assessment_id: int
    audit_area: str
    process: str | None = None
    control_measure: str | None = None
    audit_procedure: str | None = None
    rating: int
    band: str
    procedure: ProcedureResponse | None = None
    active_issue_status: str | None = None
