"""監査手続記録 — 選択済みリスク評価ごとの実施内容・結論・課題重要度"""

from dataclasses import dataclass, fields
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import NON_TERMINAL_ISSUE_STATUSES, ProcedureResult, StorageCategory
from src.db.models.audit import AuditUniverseItem
from src.db.models.fieldwork import AuditProcedure, RiskAssessment
from src.db.models.issue import AuditIssue
from src.db.upsert import upsert
from src.storage import FileStorage, Upload, store_upload
from src.workflow.context import RequestContext
from src.workflow.errors import ValidationError
from src.workflow.scope import get_owned_audit, get_owned_template, not_found
from src.workflow.scoring import score_optional
from src.workflow.transaction import atomic


@dataclass
class ProcedureFields:
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

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ProcedureFields":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in known})


@dataclass
class ProcedureRow:
    """一覧表示用 — 選択済みリスク評価1件と手続（未作成ならNone）"""

    assessment: RiskAssessment
    universe_item: AuditUniverseItem
    procedure: AuditProcedure | None
    active_issue_status: str | None


class ProcedureService:
    """監査手続の保存・証跡添付・一覧"""

    def __init__(self, session: AsyncSession, storage: FileStorage | None = None) -> None:
        self._session = session
        self._storage = storage

    async def _selected_assessment(self, audit_id: int, risk_assessment_id: int) -> RiskAssessment:
        query = select(RiskAssessment).where(
            RiskAssessment.id == risk_assessment_id,
            RiskAssessment.audit_id == audit_id,
            RiskAssessment.is_selected.is_(True),
        )
        assessment = (await self._session.execute(query)).scalar_one_or_none()
        if assessment is None:
            raise not_found("選択済みのリスク評価が見つかりません")
        return assessment

    async def _prepare(
        self, ctx: RequestContext, audit_id: int, risk_assessment_id: int, data: ProcedureFields
    ) -> dict[str, Any]:
        await self._selected_assessment(audit_id, risk_assessment_id)
        if data.result is not None and data.result not in set(ProcedureResult):
            raise ValidationError(f"手続結果は pass / fail のいずれかです: {data.result}")
        if data.working_paper_id is not None:
            await get_owned_template(self._session, ctx, data.working_paper_id)

        severity = score_optional(data.likelihood, data.impact)
        return {
            "audit_id": audit_id,
            "risk_assessment_id": risk_assessment_id,
            "audit_area": data.audit_area,
            "audit_objective": data.audit_objective,
            "record_of_work": data.record_of_work,
            "conclusion": data.conclusion,
            "result": data.result,
            "cause": data.cause,
            "likelihood": data.likelihood,
            "impact": data.impact,
            "issue_rating": severity.rating if severity else None,
            "score": severity.band.value if severity else None,
            "include_in_report": bool(data.include_in_report),
            "working_paper_id": data.working_paper_id,
            "updated_by": ctx.user_id,
        }

    async def _reload(self, procedure_id: int) -> AuditProcedure:
        query = (
            select(AuditProcedure)
            .where(AuditProcedure.id == procedure_id)
            .execution_options(populate_existing=True)
        )
        return (await self._session.execute(query)).scalar_one()

    async def _store(self, ctx: RequestContext, upload: Upload) -> str | None:
        return await store_upload(self._storage, upload, ctx.organization_id, StorageCategory.EVIDENCE)

    async def save_procedure(
        self, ctx: RequestContext, audit_id: int, risk_assessment_id: int, data: ProcedureFields
    ) -> AuditProcedure:
        """(監査, リスク評価) をキーにUPSERT

        Raises:
            NotFoundError: 監査が組織外、リスク評価が未選択・別監査
            ValidationError: 結果値・発生可能性・影響度が不正
        """
        ctx.require_audit_staff("監査手続の保存")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        values = await self._prepare(ctx, audit.id, risk_assessment_id, data)

        async with atomic(self._session, "save_procedure"):
            procedure_id = await upsert(
                self._session,
                AuditProcedure,
                values,
                conflict_columns=["audit_id", "risk_assessment_id"],
            )
        logger.info("監査手続保存", audit_id=audit.id, risk_assessment_id=risk_assessment_id, score=values["score"])
        return await self._reload(procedure_id)

    async def save_all(
        self,
        ctx: RequestContext,
        audit_id: int,
        procedures: dict[int, ProcedureFields],
        evidence: dict[int, Upload] | None = None,
    ) -> list[AuditProcedure]:
        """複数手続を1トランザクションで保存

        証跡はDB書き込みの前にすべて保存する。証跡のない手続は既存の証跡パスを保持する。
        """
        ctx.require_audit_staff("監査手続の一括保存")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        evidence = evidence or {}

        prepared: list[dict[str, Any]] = []
        for risk_assessment_id, data in procedures.items():
            prepared.append(await self._prepare(ctx, audit.id, risk_assessment_id, data))
        unknown = set(evidence) - set(procedures)
        if unknown:
            raise ValidationError(f"手続のない証跡があります: {sorted(unknown)}")

        paths = {ra_id: await self._store(ctx, upload) for ra_id, upload in evidence.items()}

        saved_ids: list[int] = []
        async with atomic(self._session, "save_all_procedures"):
            for values in prepared:
                path = paths.get(values["risk_assessment_id"])
                if path is not None:
                    values["evidence_path"] = path
                saved_ids.append(
                    await upsert(
                        self._session,
                        AuditProcedure,
                        values,
                        conflict_columns=["audit_id", "risk_assessment_id"],
                    )
                )

        logger.info("監査手続一括保存", audit_id=audit.id, count=len(saved_ids), evidence=len(paths))
        return [await self._reload(pid) for pid in saved_ids]

    async def _get_procedure(self, audit_id: int, risk_assessment_id: int) -> AuditProcedure:
        query = select(AuditProcedure).where(
            AuditProcedure.audit_id == audit_id,
            AuditProcedure.risk_assessment_id == risk_assessment_id,
        )
        procedure = (await self._session.execute(query)).scalar_one_or_none()
        if procedure is None:
            raise not_found("監査手続が見つかりません")
        return procedure

    async def attach_evidence(
        self, ctx: RequestContext, audit_id: int, risk_assessment_id: int, upload: Upload
    ) -> AuditProcedure:
        """証跡を保存し、返されたパスのみを記録"""
        ctx.require_audit_staff("証跡の添付")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        procedure = await self._get_procedure(audit.id, risk_assessment_id)
        path = await self._store(ctx, upload)

        async with atomic(self._session, "attach_evidence"):
            procedure.evidence_path = path
            procedure.updated_by = ctx.user_id
        logger.info("証跡添付", procedure_id=procedure.id)
        return procedure

    async def link_working_paper(
        self, ctx: RequestContext, audit_id: int, risk_assessment_id: int, working_paper_id: int
    ) -> AuditProcedure:
        ctx.require_audit_staff("調書の紐付け")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        template = await get_owned_template(self._session, ctx, working_paper_id)
        procedure = await self._get_procedure(audit.id, risk_assessment_id)

        async with atomic(self._session, "link_working_paper"):
            procedure.working_paper_id = template.id
            procedure.updated_by = ctx.user_id
        return procedure

    async def unlink_working_paper(self, ctx: RequestContext, audit_id: int, risk_assessment_id: int) -> AuditProcedure:
        ctx.require_audit_staff("調書の紐付け解除")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        procedure = await self._get_procedure(audit.id, risk_assessment_id)

        async with atomic(self._session, "unlink_working_paper"):
            procedure.working_paper_id = None
            procedure.updated_by = ctx.user_id
        return procedure

    async def list_procedures(self, ctx: RequestContext, audit_id: int) -> list[ProcedureRow]:
        """選択済みリスク評価ごとの手続と未確定課題のステータス"""
        audit = await get_owned_audit(self._session, ctx, audit_id)
        query = (
            select(RiskAssessment, AuditUniverseItem, AuditProcedure)
            .join(AuditUniverseItem, AuditUniverseItem.id == RiskAssessment.universe_item_id)
            .outerjoin(
                AuditProcedure,
                (AuditProcedure.risk_assessment_id == RiskAssessment.id) & (AuditProcedure.audit_id == audit.id),
            )
            .where(RiskAssessment.audit_id == audit.id, RiskAssessment.is_selected.is_(True))
            .order_by(AuditUniverseItem.audit_area, RiskAssessment.id)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(query)).all()

        procedure_ids = [p.id for _, _, p in rows if p is not None]
        active: dict[int, str] = {}
        if procedure_ids:
            issues = await self._session.execute(
                select(AuditIssue.audit_procedure_id, AuditIssue.status).where(
                    AuditIssue.audit_procedure_id.in_(procedure_ids),
                    AuditIssue.status.in_([s.value for s in NON_TERMINAL_ISSUE_STATUSES]),
                )
            )
            active = dict(issues.all())

        return [
            ProcedureRow(
                assessment=ra,
                universe_item=item,
                procedure=procedure,
                active_issue_status=active.get(procedure.id) if procedure else None,
            )
            for ra, item, procedure in rows
        ]
