"""監査報告書の射影 テスト"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.workflow.errors import PermissionDeniedError, ValidationError
from src.workflow.issues import IssueService
from src.workflow.reporting import ReportingService
from tests.factories import Seed, issue_fields, make_approved_issue, make_procedure, select_items


async def _three_findings(session: AsyncSession, seed: Seed) -> dict[str, int]:
    """Cash Handling に Medium と High、Procurement に High の承認済み課題を作る"""
    ra_ids = await select_items(session, seed)
    medium = await make_procedure(session, seed, ra_ids[0], likelihood=3, impact=3)
    high = await make_procedure(session, seed, ra_ids[1], likelihood=5, impact=4)
    procurement = await make_procedure(session, seed, ra_ids[2], likelihood=5, impact=5)
    return {
        "cash_medium": (await make_approved_issue(session, seed, medium.id)).id,
        "cash_high": (await make_approved_issue(session, seed, high.id)).id,
        "procurement_high": (await make_approved_issue(session, seed, procurement.id)).id,
    }


@pytest.mark.unit
class TestReporting:
    async def test_ordered_by_area_then_severity(self, session: AsyncSession, world: Seed) -> None:
        ids = await _three_findings(session, world)
        findings = await ReportingService(session).finalized_issues(world.auditor_ctx, world.audit.id)
        assert [f.issue_id for f in findings] == [ids["cash_high"], ids["cash_medium"], ids["procurement_high"]]
        assert findings[0].rating == 20
        assert findings[0].band == "High"

    async def test_excludes_unreported_and_unapproved(self, session: AsyncSession, world: Seed) -> None:
        ids = await _three_findings(session, world)
        issues = IssueService(session)
        await issues.set_include_in_report(world.auditor_ctx, ids["cash_medium"], False)

        ra_ids = await select_items(session, world)
        await issues.save_draft(world.auditor_ctx, (await make_procedure(session, world, ra_ids[0])).id, issue_fields())

        findings = await ReportingService(session).finalized_issues(world.auditor_ctx, world.audit.id)
        assert {f.issue_id for f in findings} == {ids["cash_high"], ids["procurement_high"]}

    async def test_build_report(self, session: AsyncSession, world: Seed) -> None:
        await _three_findings(session, world)
        report = await ReportingService(session).build_report(world.auditor_ctx, world.audit.id)
        assert report.audit_name == world.audit.name
        assert report.auditee_name == "Finance Dept"
        assert report.audit_year == 2026
        assert report.band_counts == {"High": 2, "Medium": 1, "Low": 0}
        assert report.generated_at == world.now

    async def test_report_requires_findings(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(ValidationError):
            await ReportingService(session).build_report(world.auditor_ctx, world.audit.id)

    async def test_auditee_cannot_read(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(PermissionDeniedError):
            await ReportingService(session).finalized_issues(world.auditee_ctx, world.audit.id)
