"""監査報告書の射影 — 承認済み・報告対象の課題のみ（状態は変更しない）"""

from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import IssueStatus, RiskBand
from src.db.models.audit import Auditee, AuditUniverseItem
from src.db.models.fieldwork import AuditProcedure, RiskAssessment
from src.db.models.issue import AuditIssue
from src.workflow.context import RequestContext
from src.workflow.errors import ValidationError
from src.workflow.scope import get_owned_audit
from src.workflow.scoring import BAND_SEVERITY


@dataclass(frozen=True)
class ReportFinding:
    issue_id: int
    audit_area: str
    title: str
    rating: int | None
    band: str | None
    criteria: str | None
    condition: str | None
    cause: str | None
    consequence: str | None
    corrective_action: str | None
    corrective_date: date | None


@dataclass
class AuditReport:
    audit_id: int
    audit_name: str
    auditee_name: str
    start_date: date
    end_date: date
    generated_at: datetime
    findings: list[ReportFinding] = field(default_factory=list)

    @property
    def audit_year(self) -> int:
        return self.start_date.year

    @property
    def band_counts(self) -> dict[str, int]:
        counts = {band.value: 0 for band in (RiskBand.HIGH, RiskBand.MEDIUM, RiskBand.LOW)}
        for finding in self.findings:
            if finding.band in counts:
                counts[finding.band] += 1
        return counts


def _sort_key(finding: ReportFinding) -> tuple[str, int, str]:
    return (finding.audit_area, BAND_SEVERITY.get(finding.band or "", len(BAND_SEVERITY)), finding.title)


class ReportingService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def finalized_issues(self, ctx: RequestContext, audit_id: int) -> list[ReportFinding]:
        """報告対象の課題（監査領域 → 重要度の高い順 → タイトル）"""
        ctx.require_audit_staff("報告書対象課題の参照")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        query = (
            select(AuditIssue, AuditProcedure, AuditUniverseItem.audit_area)
            .join(AuditProcedure, AuditProcedure.id == AuditIssue.audit_procedure_id)
            .join(RiskAssessment, RiskAssessment.id == AuditProcedure.risk_assessment_id)
            .join(AuditUniverseItem, AuditUniverseItem.id == RiskAssessment.universe_item_id)
            .where(
                AuditIssue.audit_id == audit.id,
                AuditIssue.status == IssueStatus.APPROVED.value,
                AuditIssue.include_in_report.is_(True),
            )
        )
        rows = (await self._session.execute(query)).all()
        findings = [
            ReportFinding(
                issue_id=issue.id,
                audit_area=area,
                title=issue.title,
                rating=procedure.issue_rating,
                band=procedure.score,
                criteria=issue.criteria,
                condition=issue.condition,
                cause=issue.cause,
                consequence=issue.consequence,
                corrective_action=issue.corrective_action,
                corrective_date=issue.corrective_date,
            )
            for issue, procedure, area in rows
        ]
        return sorted(findings, key=_sort_key)

    async def build_report(self, ctx: RequestContext, audit_id: int) -> AuditReport:
        """
        Raises:
            ValidationError: 報告対象の課題がない
        """
        findings = await self.finalized_issues(ctx, audit_id)
        if not findings:
            raise ValidationError("報告対象の承認済み課題がありません")
        audit = await get_owned_audit(self._session, ctx, audit_id)
        auditee = await self._session.get(Auditee, audit.auditee_id)
        return AuditReport(
            audit_id=audit.id,
            audit_name=audit.name,
            auditee_name=auditee.name if auditee else "",
            start_date=audit.start_date,
            end_date=audit.end_date,
            generated_at=ctx.now,
            findings=findings,
        )
