"""テスト手続フォルダ — 監査領域ごとの調書添付と入力データ

フォルダは保存された行ではなく、選択済みリスク評価から導出するビュー。
同一監査領域のリスク評価のうち最小IDがフォルダの正規ID（FolderKey）であり、
添付・入力データはすべてこの正規IDに帰属させる。
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.audit import AuditUniverseItem
from src.db.models.fieldwork import RiskAssessment
from src.db.models.tenant import User
from src.db.models.working_paper import (
    TestingProcedureAttachment,
    TestingProcedureDataRow,
    WorkingPaperColumn,
    WorkingPaperTemplate,
)
from src.db.upsert import insert_ignore
from src.workflow.context import RequestContext
from src.workflow.errors import InvalidTransitionError, ValidationError
from src.workflow.scope import get_owned_audit, get_owned_template, not_found
from src.workflow.transaction import atomic
from src.workflow.working_papers import WorkingPaperService, compute_row, validate_row


@dataclass(frozen=True)
class FolderKey:
    """フォルダの正規識別子"""

    audit_id: int
    audit_area: str
    risk_assessment_id: int


def derive_folder_keys(audit_id: int, selected: Iterable[tuple[int, str]]) -> list[FolderKey]:
    """選択済み (リスク評価ID, 監査領域) から監査領域ごとのフォルダキーを導出

    各領域の正規IDは最小のリスク評価ID。戻り値は監査領域順。
    """
    canonical: dict[str, int] = {}
    for ra_id, area in selected:
        current = canonical.get(area)
        if current is None or ra_id < current:
            canonical[area] = ra_id
    return [
        FolderKey(audit_id=audit_id, audit_area=area, risk_assessment_id=ra_id)
        for area, ra_id in sorted(canonical.items())
    ]


@dataclass
class FolderSummary:
    key: FolderKey
    rating: int
    band: str
    assigned_auditor_id: int | None
    attachment_count: int


@dataclass
class AttachedPaper:
    template: WorkingPaperTemplate
    columns: list[WorkingPaperColumn]
    rows: list[dict[str, Any]]


@dataclass
class FolderView:
    key: FolderKey
    process: str | None
    control_measure: str | None
    rating: int
    band: str
    assigned_auditor_id: int | None
    assigned_auditor_name: str | None
    papers: list[AttachedPaper] = field(default_factory=list)


class FolderService:
    """フォルダ単位の調書操作（添付・解除・行保存・表示）"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._papers = WorkingPaperService(session)

    async def _selected(self, audit_id: int) -> list[tuple[int, str]]:
        query = (
            select(RiskAssessment.id, AuditUniverseItem.audit_area)
            .join(AuditUniverseItem, AuditUniverseItem.id == RiskAssessment.universe_item_id)
            .where(RiskAssessment.audit_id == audit_id, RiskAssessment.is_selected.is_(True))
        )
        return [(ra_id, area) for ra_id, area in (await self._session.execute(query)).all()]

    async def resolve_folder_key(self, ctx: RequestContext, audit_id: int, risk_assessment_id: int) -> FolderKey:
        """任意の選択済みリスク評価IDを所属フォルダの正規キーに解決

        Raises:
            NotFoundError: 監査が組織外、またはIDが選択済みリスク評価でない
        """
        audit = await get_owned_audit(self._session, ctx, audit_id)
        selected = await self._selected(audit.id)
        area = next((a for ra_id, a in selected if ra_id == risk_assessment_id), None)
        if area is None:
            raise not_found("テスト手続フォルダが見つかりません")
        return next(k for k in derive_folder_keys(audit.id, selected) if k.audit_area == area)

    async def list_folders(self, ctx: RequestContext, audit_id: int) -> list[FolderSummary]:
        audit = await get_owned_audit(self._session, ctx, audit_id)
        keys = derive_folder_keys(audit.id, await self._selected(audit.id))
        if not keys:
            return []

        ids = [k.risk_assessment_id for k in keys]
        assessments = {
            ra.id: ra
            for ra in (
                await self._session.execute(select(RiskAssessment).where(RiskAssessment.id.in_(ids)))
            ).scalars()
        }
        counts = dict(
            (
                await self._session.execute(
                    select(TestingProcedureAttachment.risk_assessment_id, func.count())
                    .where(
                        TestingProcedureAttachment.audit_id == audit.id,
                        TestingProcedureAttachment.risk_assessment_id.in_(ids),
                    )
                    .group_by(TestingProcedureAttachment.risk_assessment_id)
                )
            ).all()
        )
        return [
            FolderSummary(
                key=k,
                rating=assessments[k.risk_assessment_id].rating,
                band=assessments[k.risk_assessment_id].band,
                assigned_auditor_id=assessments[k.risk_assessment_id].assigned_auditor_id,
                attachment_count=counts.get(k.risk_assessment_id, 0),
            )
            for k in keys
        ]

    async def attach(
        self, ctx: RequestContext, audit_id: int, risk_assessment_id: int, working_paper_id: int
    ) -> FolderKey:
        """調書テンプレートをフォルダに添付（添付済みなら何もしない）"""
        ctx.require_audit_staff("調書の添付")
        key = await self.resolve_folder_key(ctx, audit_id, risk_assessment_id)
        template = await get_owned_template(self._session, ctx, working_paper_id)

        async with atomic(self._session, "attach_working_paper"):
            inserted = await insert_ignore(
                self._session,
                TestingProcedureAttachment,
                {
                    "audit_id": key.audit_id,
                    "risk_assessment_id": key.risk_assessment_id,
                    "working_paper_id": template.id,
                    "attached_by": ctx.user_id,
                },
                conflict_columns=["audit_id", "risk_assessment_id", "working_paper_id"],
            )
        logger.info(
            "調書添付",
            audit_id=key.audit_id,
            folder_id=key.risk_assessment_id,
            working_paper_id=template.id,
            inserted=inserted,
        )
        return key

    async def detach(
        self, ctx: RequestContext, audit_id: int, risk_assessment_id: int, working_paper_id: int
    ) -> FolderKey:
        """添付解除（入力済みの行も削除。未添付なら何もしない）"""
        ctx.require_audit_staff("調書の添付解除")
        key = await self.resolve_folder_key(ctx, audit_id, risk_assessment_id)

        async with atomic(self._session, "detach_working_paper"):
            await self._session.execute(
                delete(TestingProcedureDataRow).where(
                    TestingProcedureDataRow.audit_id == key.audit_id,
                    TestingProcedureDataRow.risk_assessment_id == key.risk_assessment_id,
                    TestingProcedureDataRow.working_paper_id == working_paper_id,
                )
            )
            await self._session.execute(
                delete(TestingProcedureAttachment).where(
                    TestingProcedureAttachment.audit_id == key.audit_id,
                    TestingProcedureAttachment.risk_assessment_id == key.risk_assessment_id,
                    TestingProcedureAttachment.working_paper_id == working_paper_id,
                )
            )
        logger.info("調書添付解除", audit_id=key.audit_id, folder_id=key.risk_assessment_id, working_paper_id=working_paper_id)
        return key

    async def _current_rows(self, key: FolderKey, working_paper_id: int) -> list[TestingProcedureDataRow]:
        query = (
            select(TestingProcedureDataRow)
            .where(
                TestingProcedureDataRow.audit_id == key.audit_id,
                TestingProcedureDataRow.risk_assessment_id == key.risk_assessment_id,
                TestingProcedureDataRow.working_paper_id == working_paper_id,
            )
            .order_by(TestingProcedureDataRow.row_order)
        )
        return list((await self._session.execute(query)).scalars().all())

    async def _is_attached(self, key: FolderKey, working_paper_id: int) -> bool:
        query = select(TestingProcedureAttachment.id).where(
            TestingProcedureAttachment.audit_id == key.audit_id,
            TestingProcedureAttachment.risk_assessment_id == key.risk_assessment_id,
            TestingProcedureAttachment.working_paper_id == working_paper_id,
        )
        return (await self._session.execute(query)).first() is not None

    async def save_rows(
        self,
        ctx: RequestContext,
        audit_id: int,
        risk_assessment_id: int,
        working_paper_id: int,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """フォルダ内の入力行を全置換（row_orderは0からの連番）

        Raises:
            InvalidTransitionError: テンプレートがフォルダに添付されていない
            ValidationError: カラム定義に合わない値、行追加不可テンプレートでの行数超過
        """
        ctx.require_audit_staff("調書データの保存")
        key = await self.resolve_folder_key(ctx, audit_id, risk_assessment_id)
        template = await get_owned_template(self._session, ctx, working_paper_id)
        if not await self._is_attached(key, template.id):
            raise InvalidTransitionError("フォルダに添付されていない調書です")

        columns = await self._papers.columns_for(template.id)
        normalized = [validate_row(columns, row) for row in rows]

        if not template.allow_row_insert:
            existing = len(await self._current_rows(key, template.id))
            limit = existing if existing else 1
            if len(normalized) > limit:
                raise ValidationError("この調書は行の追加が許可されていません")

        async with atomic(self._session, "save_working_paper_rows"):
            await self._session.execute(
                delete(TestingProcedureDataRow).where(
                    TestingProcedureDataRow.audit_id == key.audit_id,
                    TestingProcedureDataRow.risk_assessment_id == key.risk_assessment_id,
                    TestingProcedureDataRow.working_paper_id == template.id,
                )
            )
            self._session.add_all(
                [
                    TestingProcedureDataRow(
                        audit_id=key.audit_id,
                        risk_assessment_id=key.risk_assessment_id,
                        working_paper_id=template.id,
                        row_order=order,
                        cell_values=values,
                        updated_by=ctx.user_id,
                    )
                    for order, values in enumerate(normalized)
                ]
            )

        logger.info("調書データ保存", folder_id=key.risk_assessment_id, working_paper_id=template.id, rows=len(normalized))
        return [compute_row(columns, values) for values in normalized]

    async def get_folder_view(self, ctx: RequestContext, audit_id: int, risk_assessment_id: int) -> FolderView:
        """フォルダのメタ情報 + 添付調書ごとのカラム・現在の行"""
        key = await self.resolve_folder_key(ctx, audit_id, risk_assessment_id)
        row = (
            await self._session.execute(
                select(RiskAssessment, AuditUniverseItem, User.full_name)
                .join(AuditUniverseItem, AuditUniverseItem.id == RiskAssessment.universe_item_id)
                .outerjoin(User, User.id == RiskAssessment.assigned_auditor_id)
                .where(RiskAssessment.id == key.risk_assessment_id)
            )
        ).one()
        assessment, item, auditor_name = row

        templates = (
            await self._session.execute(
                select(WorkingPaperTemplate)
                .join(TestingProcedureAttachment, TestingProcedureAttachment.working_paper_id == WorkingPaperTemplate.id)
                .where(
                    TestingProcedureAttachment.audit_id == key.audit_id,
                    TestingProcedureAttachment.risk_assessment_id == key.risk_assessment_id,
                )
                .order_by(TestingProcedureAttachment.id)
            )
        ).scalars()

        papers: list[AttachedPaper] = []
        for template in templates:
            columns = await self._papers.columns_for(template.id)
            rows = await self._current_rows(key, template.id)
            papers.append(
                AttachedPaper(
                    template=template,
                    columns=columns,
                    rows=[compute_row(columns, r.cell_values) for r in rows],
                )
            )

        return FolderView(
            key=key,
            process=item.process,
            control_measure=item.control_measure,
            rating=assessment.rating,
            band=assessment.band,
            assigned_auditor_id=assessment.assigned_auditor_id,
            assigned_auditor_name=auditor_name,
            papers=papers,
        )

    async def get_working_paper_data(
        self, ctx: RequestContext, audit_id: int, working_paper_id: int
    ) -> list[tuple[FolderKey, list[dict[str, Any]]]]:
        """監査内の全フォルダにおける特定調書の入力行"""
        audit = await get_owned_audit(self._session, ctx, audit_id)
        template = await get_owned_template(self._session, ctx, working_paper_id)
        columns = await self._papers.columns_for(template.id)

        result: list[tuple[FolderKey, list[dict[str, Any]]]] = []
        for key in derive_folder_keys(audit.id, await self._selected(audit.id)):
            if not await self._is_attached(key, template.id):
                continue
            rows = await self._current_rows(key, template.id)
            result.append((key, [compute_row(columns, r.cell_values) for r in rows]))
        return result
