"""監査課題Repository"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import NON_TERMINAL_ISSUE_STATUSES, IssueStatus
from src.db.models.audit import Audit
from src.db.models.fieldwork import AuditProcedure
from src.db.models.issue import AuditIssue
from src.db.repositories.base import BaseRepository


class IssueRepository(BaseRepository[AuditIssue]):
    """監査課題固有のクエリ（組織は audits 経由で判定）"""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(AuditIssue, session)

    async def get_in_organization(self, issue_id: int, organization_id: int) -> tuple[AuditIssue, Audit] | None:
        """組織内の課題と所属監査を取得"""
        query = (
            select(AuditIssue, Audit)
            .join(Audit, Audit.id == AuditIssue.audit_id)
            .where(AuditIssue.id == issue_id, Audit.organization_id == organization_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(query)).one_or_none()
        return (row[0], row[1]) if row else None

    async def active_for_procedure(self, procedure_id: int) -> AuditIssue | None:
        """手続に紐づく未確定の課題"""
        query = (
            select(AuditIssue)
            .where(
                AuditIssue.audit_procedure_id == procedure_id,
                AuditIssue.status.in_([s.value for s in NON_TERMINAL_ISSUE_STATUSES]),
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def list_with_procedure(
        self,
        organization_id: int,
        statuses: list[IssueStatus] | None = None,
        audit_id: int | None = None,
        auditee_id: int | None = None,
        include_in_report: bool | None = None,
    ) -> list[tuple[AuditIssue, AuditProcedure, Audit]]:
        """課題 + 親手続 + 監査の一覧"""
        query = (
            select(AuditIssue, AuditProcedure, Audit)
            .join(AuditProcedure, AuditProcedure.id == AuditIssue.audit_procedure_id)
            .join(Audit, Audit.id == AuditIssue.audit_id)
            .where(Audit.organization_id == organization_id)
        )
        if statuses:
            query = query.where(AuditIssue.status.in_([s.value for s in statuses]))
        if audit_id is not None:
            query = query.where(AuditIssue.audit_id == audit_id)
        if auditee_id is not None:
            query = query.where(Audit.auditee_id == auditee_id)
        if include_in_report is not None:
            query = query.where(AuditIssue.include_in_report.is_(include_in_report))
        query = query.order_by(AuditIssue.id)
        result = await self._session.execute(query)
        return [(row[0], row[1], row[2]) for row in result.all()]
