"""監査・往査エンドポイント — 監査CRUD、リスク評価、フォルダ、監査手続"""

from typing import Any

import orjson
from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as FormFile

from src.api.dependencies import get_db_session, get_storage, read_upload
from src.api.middleware.auth import context_with
from src.api.schemas.audits import (
    AssessmentResponse,
    AssessmentSaveRequest,
    AssessmentSaveResponse,
    AttachedPaperResponse,
    AttachRequest,
    AuditDetailResponse,
    AuditRequest,
    AuditResponse,
    ColumnResponse,
    FolderDataResponse,
    FolderSummaryResponse,
    FolderViewResponse,
    ProcedureRequest,
    ProcedureResponse,
    ProcedureRowResponse,
    RowsRequest,
    RowsResponse,
    TeamMemberResponse,
)
from src.api.schemas.common import DeletedResponse
from src.storage import FileStorage, Upload
from src.workflow.audits import AuditFields, AuditService
from src.workflow.context import RequestContext
from src.workflow.errors import ValidationError
from src.workflow.folders import FolderKey, FolderService, FolderView
from src.workflow.procedures import ProcedureFields, ProcedureRow, ProcedureService
from src.workflow.risk_assessment import AssessmentItem, AssessmentRow, RiskAssessmentService

router = APIRouter()

EVIDENCE_FIELD_PREFIX = "evidence_"


def _audit_fields(body: AuditRequest) -> AuditFields:
    return AuditFields(**body.model_dump())


def _assessment_response(row: AssessmentRow) -> AssessmentResponse:
    ra, item = row.assessment, row.universe_item
    return AssessmentResponse(
        id=ra.id,
        universe_item_id=item.id,
        audit_area=item.audit_area,
        process=item.process,
        inherent_risk=item.inherent_risk,
        likelihood=ra.likelihood,
        impact=ra.impact,
        rating=ra.rating,
        band=ra.band,
        is_selected=ra.is_selected,
        assigned_auditor_id=ra.assigned_auditor_id,
    )


def _folder_view_response(view: FolderView) -> FolderViewResponse:
    return FolderViewResponse(
        audit_id=view.key.audit_id,
        audit_area=view.key.audit_area,
        risk_assessment_id=view.key.risk_assessment_id,
        process=view.process,
        control_measure=view.control_measure,
        rating=view.rating,
        band=view.band,
        assigned_auditor_id=view.assigned_auditor_id,
        assigned_auditor_name=view.assigned_auditor_name,
        papers=[
            AttachedPaperResponse(
                working_paper_id=paper.template.id,
                name=paper.template.name,
                allow_row_insert=paper.template.allow_row_insert,
                columns=[ColumnResponse.model_validate(c) for c in paper.columns],
                rows=paper.rows,
            )
            for paper in view.papers
        ],
    )


def _procedure_row_response(row: ProcedureRow) -> ProcedureRowResponse:
    return ProcedureRowResponse(
        risk_assessment_id=row.assessment.id,
        audit_area=row.universe_item.audit_area,
        process=row.universe_item.process,
        control_measure=row.universe_item.control_measure,
        audit_procedure=row.universe_item.audit_procedure,
        rating=row.assessment.rating,
        band=row.assessment.band,
        procedure=ProcedureResponse.model_validate(row.procedure) if row.procedure else None,
        active_issue_status=row.active_issue_status,
    )


def _parse_procedures(raw: Any) -> dict[int, ProcedureFields]:
    """multipartの procedures フィールド（JSON: {risk_assessment_id: {...}}）を解釈"""
    if not isinstance(raw, str):
        raise ValidationError("procedures フィールドは必須です")
    try:
        decoded = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValidationError("procedures のJSON形式が不正です") from e
    if not isinstance(decoded, dict):
        raise ValidationError("procedures はリスク評価IDをキーとするオブジェクトで指定してください")
    try:
        return {int(key): ProcedureFields.from_dict(value) for key, value in decoded.items()}
    except (TypeError, ValueError, AttributeError) as e:
        raise ValidationError("procedures の内容が不正です") from e


# ── 監査 ──────────────────────────────────────────────


@router.post("/", response_model=AuditResponse, status_code=status.HTTP_201_CREATED)
async def create_audit(
    body: AuditRequest,
    ctx: RequestContext = Depends(context_with("audit:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> AuditResponse:
    audit = await AuditService(session).create_audit(ctx, _audit_fields(body))
    return AuditResponse.model_validate(audit)


@router.get("/", response_model=list[AuditResponse])
async def list_audits(
    status_filter: str | None = None,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[AuditResponse]:
    audits = await AuditService(session).list_audits(ctx, status_filter)
    return [AuditResponse.model_validate(a) for a in audits]


@router.get("/{audit_id}", response_model=AuditDetailResponse)
async def get_audit(
    audit_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> AuditDetailResponse:
    overview = await AuditService(session).get_audit(ctx, audit_id)
    base = AuditResponse.model_validate(overview.audit)
    return AuditDetailResponse(
        **base.model_dump(),
        auditee_name=overview.auditee.name,
        team=[TeamMemberResponse.model_validate(u) for u in overview.team],
    )


@router.put("/{audit_id}", response_model=AuditResponse)
async def update_audit(
    audit_id: int,
    body: AuditRequest,
    ctx: RequestContext = Depends(context_with("audit:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> AuditResponse:
    audit = await AuditService(session).update_audit(ctx, audit_id, _audit_fields(body))
    return AuditResponse.model_validate(audit)


@router.delete("/{audit_id}", response_model=DeletedResponse)
async def delete_audit(
    audit_id: int,
    ctx: RequestContext = Depends(context_with("audit:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> DeletedResponse:
    await AuditService(session).delete_audit(ctx, audit_id)
    return DeletedResponse(id=audit_id)


# ── リスク評価 ────────────────────────────────────────


@router.get("/{audit_id}/risk-assessment", response_model=list[AssessmentResponse])
async def list_risk_assessment(
    audit_id: int,
    selected_only: bool = False,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[AssessmentResponse]:
    rows = await RiskAssessmentService(session).list_assessments(ctx, audit_id, selected_only)
    return [_assessment_response(r) for r in rows]


@router.put("/{audit_id}/risk-assessment", response_model=AssessmentSaveResponse)
async def save_risk_assessment(
    audit_id: int,
    body: AssessmentSaveRequest,
    ctx: RequestContext = Depends(context_with("fieldwork:write")),
    session: AsyncSession = Depends(get_db_session),
) -> AssessmentSaveResponse:
    """リスク評価の一括保存（バッチから外れた未参照の行は削除）"""
    items = [AssessmentItem(**item.model_dump()) for item in body.items]
    summary = await RiskAssessmentService(session).save_assessments(ctx, audit_id, items)
    return AssessmentSaveResponse(
        upserted=summary.upserted,
        deleted=summary.deleted,
        skipped=summary.skipped,
        retained=summary.retained,
    )


# ── フォルダ ──────────────────────────────────────────


@router.get("/{audit_id}/folders", response_model=list[FolderSummaryResponse])
async def list_folders(
    audit_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[FolderSummaryResponse]:
    folders = await FolderService(session).list_folders(ctx, audit_id)
    return [
        FolderSummaryResponse(
            audit_id=f.key.audit_id,
            audit_area=f.key.audit_area,
            risk_assessment_id=f.key.risk_assessment_id,
            rating=f.rating,
            band=f.band,
            assigned_auditor_id=f.assigned_auditor_id,
            attachment_count=f.attachment_count,
        )
        for f in folders
    ]


@router.get("/{audit_id}/folders/{risk_assessment_id}", response_model=FolderViewResponse)
async def get_folder(
    audit_id: int,
    risk_assessment_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> FolderViewResponse:
    view = await FolderService(session).get_folder_view(ctx, audit_id, risk_assessment_id)
    return _folder_view_response(view)


@router.post("/{audit_id}/folders/{risk_assessment_id}/attach", response_model=FolderViewResponse)
async def attach_working_paper(
    audit_id: int,
    risk_assessment_id: int,
    body: AttachRequest,
    ctx: RequestContext = Depends(context_with("fieldwork:write")),
    session: AsyncSession = Depends(get_db_session),
) -> FolderViewResponse:
    service = FolderService(session)
    await service.attach(ctx, audit_id, risk_assessment_id, body.working_paper_id)
    return _folder_view_response(await service.get_folder_view(ctx, audit_id, risk_assessment_id))


@router.post("/{audit_id}/folders/{risk_assessment_id}/detach", response_model=FolderViewResponse)
async def detach_working_paper(
    audit_id: int,
    risk_assessment_id: int,
    body: AttachRequest,
    ctx: RequestContext = Depends(context_with("fieldwork:write")),
    session: AsyncSession = Depends(get_db_session),
) -> FolderViewResponse:
    service = FolderService(session)
    await service.detach(ctx, audit_id, risk_assessment_id, body.working_paper_id)
    return _folder_view_response(await service.get_folder_view(ctx, audit_id, risk_assessment_id))


@router.put(
    "/{audit_id}/folders/{risk_assessment_id}/working-papers/{working_paper_id}/rows",
    response_model=RowsResponse,
)
async def save_working_paper_rows(
    audit_id: int,
    risk_assessment_id: int,
    working_paper_id: int,
    body: RowsRequest,
    ctx: RequestContext = Depends(context_with("fieldwork:write")),
    session: AsyncSession = Depends(get_db_session),
) -> RowsResponse:
    """入力行を全置換し、計算列を反映した行を返す"""
    rows = await FolderService(session).save_rows(ctx, audit_id, risk_assessment_id, working_paper_id, body.rows)
    return RowsResponse(working_paper_id=working_paper_id, rows=rows)


@router.get("/{audit_id}/working-papers/{working_paper_id}/data", response_model=list[FolderDataResponse])
async def get_working_paper_data(
    audit_id: int,
    working_paper_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[FolderDataResponse]:
    data: list[tuple[FolderKey, list[dict[str, Any]]]] = await FolderService(session).get_working_paper_data(
        ctx, audit_id, working_paper_id
    )
    return [
        FolderDataResponse(audit_area=key.audit_area, risk_assessment_id=key.risk_assessment_id, rows=rows)
        for key, rows in data
    ]


# ── 監査手続 ──────────────────────────────────────────


@router.get("/{audit_id}/procedures", response_model=list[ProcedureRowResponse])
async def list_procedures(
    audit_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[ProcedureRowResponse]:
    rows = await ProcedureService(session).list_procedures(ctx, audit_id)
    return [_procedure_row_response(r) for r in rows]


@router.post("/{audit_id}/procedures/save-all", response_model=list[ProcedureResponse])
async def save_all_procedures(
    audit_id: int,
    request: Request,
    ctx: RequestContext = Depends(context_with("fieldwork:write")),
    session: AsyncSession = Depends(get_db_session),
    storage: FileStorage = Depends(get_storage),
) -> list[ProcedureResponse]:
    """一括保存（multipart）

    procedures: JSON文字列 {risk_assessment_id: 手続項目}
    evidence_<risk_assessment_id>: 証跡ファイル（任意）
    """
    form = await request.form()
    procedures = _parse_procedures(form.get("procedures"))

    evidence: dict[int, Upload] = {}
    for key, value in form.multi_items():
        if not key.startswith(EVIDENCE_FIELD_PREFIX) or not isinstance(value, FormFile):
            continue
        try:
            risk_assessment_id = int(key[len(EVIDENCE_FIELD_PREFIX) :])
        except ValueError as e:
            raise ValidationError(f"証跡フィールド名が不正です: {key}") from e
        upload = await read_upload(value)
        if upload is not None:
            evidence[risk_assessment_id] = upload

    saved = await ProcedureService(session, storage).save_all(ctx, audit_id, procedures, evidence)
    return [ProcedureResponse.model_validate(p) for p in saved]


@router.put("/{audit_id}/procedures/{risk_assessment_id}", response_model=ProcedureResponse)
async def save_procedure(
    audit_id: int,
    risk_assessment_id: int,
    body: ProcedureRequest,
    ctx: RequestContext = Depends(context_with("fieldwork:write")),
    session: AsyncSession = Depends(get_db_session),
) -> ProcedureResponse:
    procedure = await ProcedureService(session).save_procedure(
        ctx, audit_id, risk_assessment_id, ProcedureFields(**body.model_dump())
    )
    return ProcedureResponse.model_validate(procedure)


@router.post("/{audit_id}/procedures/{risk_assessment_id}/evidence", response_model=ProcedureResponse)
async def upload_evidence(
    audit_id: int,
    risk_assessment_id: int,
    file: UploadFile = File(...),
    ctx: RequestContext = Depends(context_with("fieldwork:write")),
    session: AsyncSession = Depends(get_db_session),
    storage: FileStorage = Depends(get_storage),
) -> ProcedureResponse:
    upload = await read_upload(file)
    if upload is None:
        raise ValidationError("ファイルが選択されていません")
    procedure = await ProcedureService(session, storage).attach_evidence(ctx, audit_id, risk_assessment_id, upload)
    return ProcedureResponse.model_validate(procedure)
