"""リスク評価セット — 監査ごとのユニバース項目の採点・選択"""

from dataclasses import dataclass
from typing import Any

from loguru import logger
from sqlalchemy import delete, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.audit import AuditUniverseItem
from src.db.models.fieldwork import AuditProcedure, RiskAssessment
from src.db.models.tenant import User
from src.db.models.working_paper import TestingProcedureAttachment, TestingProcedureDataRow
from src.db.upsert import upsert
from src.monitoring.metrics import risk_assessment_saves_total
from src.workflow.context import RequestContext
from src.workflow.errors import ValidationError
from src.workflow.scope import get_owned_audit, not_found
from src.workflow.scoring import score
from src.workflow.transaction import atomic


@dataclass
class AssessmentItem:
    """保存対象1件（universe_id欠落の項目はスキップ）"""

    universe_id: int | None
    likelihood: int | None = None
    impact: int | None = None
    is_selected: bool = False
    assigned_auditor_id: int | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "AssessmentItem":
        return cls(
            universe_id=raw.get("universe_id"),
            likelihood=raw.get("likelihood"),
            impact=raw.get("impact"),
            is_selected=bool(raw.get("is_selected")),
            assigned_auditor_id=raw.get("assigned_auditor_id"),
        )


@dataclass
class SaveSummary:
    upserted: int = 0
    deleted: int = 0
    skipped: int = 0
    retained: int = 0


@dataclass
class AssessmentRow:
    """画面表示用 — リスク評価 + ユニバース項目"""

    assessment: RiskAssessment
    universe_item: AuditUniverseItem


class RiskAssessmentService:
    """リスク評価の一括保存と参照"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save_assessments(
        self,
        ctx: RequestContext,
        audit_id: int,
        items: list[AssessmentItem],
    ) -> SaveSummary:
        """リスク評価を一括UPSERTし、バッチから外れた未参照の行を削除する

        全体を1トランザクションで実行する。書き込み前に全項目を検証する。

        Raises:
            NotFoundError: 監査・ユニバース項目・担当者が組織に存在しない
            ValidationError: 発生可能性・影響度が範囲外
        """
        ctx.require_audit_staff("リスク評価の保存")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        summary = SaveSummary()

        accepted: dict[int, AssessmentItem] = {}
        for item in items:
            if item.universe_id is None:
                summary.skipped += 1
                logger.warning("universe_id欠落のためスキップ", audit_id=audit_id)
                continue
            accepted[int(item.universe_id)] = item

        prepared: list[dict[str, Any]] = []
        if accepted:
            owned = await self._session.execute(
                select(AuditUniverseItem.id).where(
                    AuditUniverseItem.id.in_(accepted),
                    AuditUniverseItem.organization_id == ctx.organization_id,
                    AuditUniverseItem.auditee_id == audit.auditee_id,
                )
            )
            if set(owned.scalars().all()) != set(accepted):
                raise not_found("監査ユニバース項目が見つかりません")

            auditor_ids = {i.assigned_auditor_id for i in accepted.values() if i.assigned_auditor_id is not None}
            if auditor_ids:
                found = await self._session.execute(
                    select(User.id).where(User.id.in_(auditor_ids), User.organization_id == ctx.organization_id)
                )
                if set(found.scalars().all()) != auditor_ids:
                    raise not_found("担当監査人が見つかりません")

            for universe_id, item in accepted.items():
                if item.likelihood is None or item.impact is None:
                    raise ValidationError("発生可能性と影響度は必須です")
                result = score(item.likelihood, item.impact)
                prepared.append(
                    {
                        "audit_id": audit.id,
                        "universe_item_id": universe_id,
                        "likelihood": item.likelihood,
                        "impact": item.impact,
                        "rating": result.rating,
                        "band": result.band.value,
                        "is_selected": item.is_selected,
                        "assigned_auditor_id": item.assigned_auditor_id,
                    }
                )

        async with atomic(self._session, "save_assessments"):
            for values in prepared:
                await upsert(
                    self._session,
                    RiskAssessment,
                    values,
                    conflict_columns=["audit_id", "universe_item_id"],
                )
            summary.upserted = len(prepared)

            existing = await self._session.execute(
                select(RiskAssessment.id, RiskAssessment.universe_item_id).where(RiskAssessment.audit_id == audit.id)
            )
            stale = [ra_id for ra_id, universe_id in existing.all() if universe_id not in accepted]
            if stale:
                # 監査手続・調書から参照されている行は残す
                referenced_query = union(
                    select(AuditProcedure.risk_assessment_id).where(AuditProcedure.risk_assessment_id.in_(stale)),
                    select(TestingProcedureAttachment.risk_assessment_id).where(
                        TestingProcedureAttachment.risk_assessment_id.in_(stale)
                    ),
                    select(TestingProcedureDataRow.risk_assessment_id).where(
                        TestingProcedureDataRow.risk_assessment_id.in_(stale)
                    ),
                )
                referenced = set((await self._session.execute(referenced_query)).scalars().all())
                deletable = [ra_id for ra_id in stale if ra_id not in referenced]
                if deletable:
                    await self._session.execute(delete(RiskAssessment).where(RiskAssessment.id.in_(deletable)))
                summary.deleted = len(deletable)
                summary.retained = len(stale) - len(deletable)

        risk_assessment_saves_total.labels(outcome="success").inc()
        logger.info(
            "リスク評価保存",
            audit_id=audit.id,
            upserted=summary.upserted,
            deleted=summary.deleted,
            skipped=summary.skipped,
            retained=summary.retained,
        )
        return summary

    async def list_assessments(self, ctx: RequestContext, audit_id: int, selected_only: bool = False) -> list[AssessmentRow]:
        """監査のリスク評価一覧（監査領域・ID順）"""
        await get_owned_audit(self._session, ctx, audit_id)
        query = (
            select(RiskAssessment, AuditUniverseItem)
            .join(AuditUniverseItem, AuditUniverseItem.id == RiskAssessment.universe_item_id)
            .where(RiskAssessment.audit_id == audit_id)
            .order_by(AuditUniverseItem.audit_area, RiskAssessment.id)
            .execution_options(populate_existing=True)
        )
        if selected_only:
            query = query.where(RiskAssessment.is_selected.is_(True))
        rows = (await self._session.execute(query)).all()
        return [AssessmentRow(assessment=ra, universe_item=item) for ra, item in rows]
