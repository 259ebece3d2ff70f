"""監査手続記録 テスト"""

from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import ColumnType
from src.db.models.fieldwork import AuditProcedure
from src.storage import LocalFileStorage, StorageError, Upload
from src.workflow.errors import NotFoundError, PermissionDeniedError, ValidationError
from src.workflow.issues import IssueService
from src.workflow.procedures import ProcedureFields, ProcedureService
from src.workflow.working_papers import ColumnSpec, WorkingPaperService
from tests.factories import Seed, issue_fields, make_procedure, select_items


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path, max_size_bytes=1024)


@pytest.mark.unit
class TestSaveProcedure:
    async def test_derives_issue_score(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        procedure = await make_procedure(session, world, ra_ids[0], likelihood=3, impact=3)
        assert procedure.issue_rating == 9
        assert procedure.score == "Medium"
        assert procedure.include_in_report is False

    async def test_score_left_empty_without_both_values(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        procedure = await make_procedure(session, world, ra_ids[0], likelihood=3, impact=None)
        assert procedure.issue_rating is None
        assert procedure.score is None

    async def test_upsert_keyed_on_assessment(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        first = await make_procedure(session, world, ra_ids[0], likelihood=1, impact=2)
        second = await make_procedure(session, world, ra_ids[0], likelihood=5, impact=5)
        assert first.id == second.id
        assert second.score == "High"
        count = await session.execute(select(func.count()).select_from(AuditProcedure))
        assert count.scalar_one() == 1

    async def test_rejects_unselected_assessment(self, session: AsyncSession, world: Seed) -> None:
        await select_items(session, world)
        with pytest.raises(NotFoundError):
            await make_procedure(session, world, 9999)

    async def test_rejects_unknown_result(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        with pytest.raises(ValidationError):
            await ProcedureService(session).save_procedure(
                world.auditor_ctx, world.audit.id, ra_ids[0], ProcedureFields(result="partial")
            )

    async def test_auditee_cannot_save(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        with pytest.raises(PermissionDeniedError):
            await ProcedureService(session).save_procedure(world.auditee_ctx, world.audit.id, ra_ids[0], ProcedureFields())


@pytest.mark.unit
class TestSaveAll:
    async def test_saves_each_with_partial_evidence(
        self, session: AsyncSession, world: Seed, storage: LocalFileStorage, tmp_path: Path
    ) -> None:
        ra_ids = await select_items(session, world)
        saved = await ProcedureService(session, storage).save_all(
            world.auditor_ctx,
            world.audit.id,
            {
                ra_ids[0]: ProcedureFields(conclusion="Effective", result="pass"),
                ra_ids[2]: ProcedureFields.from_dict({"conclusion": "Gap", "likelihood": 2, "impact": 4, "unknown": 1}),
            },
            {ra_ids[2]: Upload(filename="vendor list.xlsx", content=b"data")},
        )
        by_ra = {p.risk_assessment_id: p for p in saved}
        assert by_ra[ra_ids[0]].evidence_path is None
        assert by_ra[ra_ids[2]].score == "Medium"
        path = by_ra[ra_ids[2]].evidence_path
        assert path is not None
        assert path.startswith(f"{world.organization.id}/evidence/")
        assert (tmp_path / path).read_bytes() == b"data"

    async def test_keeps_existing_evidence_when_no_new_file(
        self, session: AsyncSession, world: Seed, storage: LocalFileStorage
    ) -> None:
        ra_ids = await select_items(session, world)
        service = ProcedureService(session, storage)
        await service.save_all(
            world.auditor_ctx, world.audit.id, {ra_ids[0]: ProcedureFields()}, {ra_ids[0]: Upload("a.pdf", b"pdf")}
        )
        saved = await service.save_all(world.auditor_ctx, world.audit.id, {ra_ids[0]: ProcedureFields(conclusion="x")})
        assert saved[0].evidence_path is not None
        assert saved[0].conclusion == "x"

    async def test_evidence_without_procedure_rejected(
        self, session: AsyncSession, world: Seed, storage: LocalFileStorage
    ) -> None:
        ra_ids = await select_items(session, world)
        with pytest.raises(ValidationError):
            await ProcedureService(session, storage).save_all(
                world.auditor_ctx, world.audit.id, {ra_ids[0]: ProcedureFields()}, {ra_ids[1]: Upload("a.pdf", b"x")}
            )

    async def test_oversized_evidence_rejected_before_write(
        self, session: AsyncSession, world: Seed, storage: LocalFileStorage
    ) -> None:
        ra_ids = await select_items(session, world)
        with pytest.raises(ValidationError):
            await ProcedureService(session, storage).save_all(
                world.auditor_ctx,
                world.audit.id,
                {ra_ids[0]: ProcedureFields()},
                {ra_ids[0]: Upload("big.bin", b"x" * 2048)},
            )
        count = await session.execute(select(func.count()).select_from(AuditProcedure))
        assert count.scalar_one() == 0

    async def test_evidence_requires_storage(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        await make_procedure(session, world, ra_ids[0])
        with pytest.raises(StorageError):
            await ProcedureService(session).attach_evidence(
                world.auditor_ctx, world.audit.id, ra_ids[0], Upload("a.pdf", b"x")
            )


@pytest.mark.unit
class TestProcedureLinks:
    async def test_attach_evidence(self, session: AsyncSession, world: Seed, storage: LocalFileStorage) -> None:
        ra_ids = await select_items(session, world)
        await make_procedure(session, world, ra_ids[0])
        procedure = await ProcedureService(session, storage).attach_evidence(
            world.auditor_ctx, world.audit.id, ra_ids[0], Upload("count.jpg", b"jpeg", "image/jpeg")
        )
        assert procedure.evidence_path is not None
        assert procedure.evidence_path.endswith("_count.jpg")

    async def test_link_and_unlink_working_paper(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        await make_procedure(session, world, ra_ids[0])
        detail = await WorkingPaperService(session).create_template(
            world.auditor_ctx, "Sheet", [ColumnSpec("A", ColumnType.TEXT)]
        )
        service = ProcedureService(session)
        linked = await service.link_working_paper(world.auditor_ctx, world.audit.id, ra_ids[0], detail.template.id)
        assert linked.working_paper_id == detail.template.id
        unlinked = await service.unlink_working_paper(world.auditor_ctx, world.audit.id, ra_ids[0])
        assert unlinked.working_paper_id is None

    async def test_list_procedures_with_active_issue(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        procedure = await make_procedure(session, world, ra_ids[0])
        await IssueService(session).save_draft(world.auditor_ctx, procedure.id, issue_fields())

        rows = await ProcedureService(session).list_procedures(world.auditor_ctx, world.audit.id)
        assert len(rows) == 3
        by_ra = {row.assessment.id: row for row in rows}
        assert by_ra[ra_ids[0]].procedure is not None
        assert by_ra[ra_ids[0]].active_issue_status == "draft"
        assert by_ra[ra_ids[1]].procedure is None
        assert by_ra[ra_ids[1]].active_issue_status is None
