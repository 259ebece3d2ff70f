"""監査報告書DOCX出力 テスト"""

from datetime import UTC, date, datetime
from io import BytesIO

import pytest
from docx import Document

from src.reports.issue_report import render_docx
from src.workflow.reporting import AuditReport, ReportFinding


def _finding(issue_id: int, title: str, band: str | None, rating: int | None, **fields: object) -> ReportFinding:
    values: dict[str, object] = {
        "issue_id": issue_id,
        "audit_area": "Cash Handling",
        "title": title,
        "rating": rating,
        "band": band,
        "criteria": "Shortfalls must be investigated",
        "condition": "Not investigated",
        "cause": None,
        "consequence": "Losses may go undetected",
        "corrective_action": "Assign an owner",
        "corrective_date": date(2026, 6, 30),
    }
    values.update(fields)
    return ReportFinding(**values)  # type: ignore[arg-type]


@pytest.fixture
def report() -> AuditReport:
    return AuditReport(
        audit_id=1,
        audit_name="FY2026 Finance Audit",
        auditee_name="Finance Dept",
        start_date=date(2026, 1, 5),
        end_date=date(2026, 3, 31),
        generated_at=datetime(2026, 4, 2, 1, 0, tzinfo=UTC),
        findings=[
            _finding(1, "Petty cash shortfalls", "High", 20),
            _finding(2, "Late reconciliations", "Medium", 9, corrective_date=None),
        ],
    )


def _open(data: bytes) -> Document:
    return Document(BytesIO(data))


@pytest.mark.unit
class TestRenderDocx:
    def test_cover_and_summary(self, report: AuditReport) -> None:
        doc = _open(render_docx(report))
        texts = [p.text for p in doc.paragraphs]
        assert texts[0] == "INTERNAL AUDIT REPORT"
        assert "FY2026 Finance Audit" in texts
        assert "Audit Year: 2026" in texts
        assert any("2 issue(s)" in t for t in texts)
        assert any("2026-01-05 to 2026-03-31" in t for t in texts)

    def test_band_count_table(self, report: AuditReport) -> None:
        table = _open(render_docx(report)).tables[0]
        rows = [[cell.text for cell in row.cells] for row in table.rows]
        assert rows == [["Risk Rating", "Count"], ["High", "1"], ["Medium", "1"], ["Low", "0"]]

    def test_findings_in_order_with_placeholders(self, report: AuditReport) -> None:
        texts = [p.text for p in _open(render_docx(report)).paragraphs]
        first = texts.index("1. Petty cash shortfalls")
        second = texts.index("2. Late reconciliations")
        assert first < second
        assert "Risk Rating: High (20)" in texts
        # 未入力項目は N/A
        assert texts[texts.index("Cause:", first) + 1] == "N/A"
        assert "Target Date: N/A" in texts[second:]
        assert "Target Date: 2026-06-30" in texts[first:second]

    def test_footer(self, report: AuditReport) -> None:
        doc = _open(render_docx(report))
        assert doc.sections[0].footer.paragraphs[0].text == "Generated 2026-04-02"
