"""監査報告書（DOCX）出力"""

from io import BytesIO

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt

from src.config.constants import RiskBand
from src.monitoring.metrics import report_exports_total
from src.workflow.reporting import AuditReport, ReportFinding

_NA = "N/A"


def _centered(doc: Document, text: str, size: int | None = None, bold: bool = False) -> None:
    paragraph = doc.add_paragraph()
    paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = paragraph.add_run(text)
    run.bold = bold
    if size:
        run.font.size = Pt(size)


def _labelled(doc: Document, label: str, value: str | None) -> None:
    paragraph = doc.add_paragraph()
    paragraph.add_run(f"{label}: ").bold = True
    paragraph.add_run(value or _NA)


def _section(doc: Document, label: str, value: str | None) -> None:
    doc.add_paragraph().add_run(f"{label}:").bold = True
    doc.add_paragraph(value or _NA)


def _add_finding(doc: Document, index: int, finding: ReportFinding) -> None:
    doc.add_heading(f"{index}. {finding.title}", level=2)
    _labelled(doc, "Audit Area", finding.audit_area)
    rating = f"{finding.band} ({finding.rating})" if finding.band and finding.rating is not None else finding.band
    _labelled(doc, "Risk Rating", rating)
    _section(doc, "Criteria", finding.criteria)
    _section(doc, "Condition", finding.condition)
    _section(doc, "Cause", finding.cause)
    _section(doc, "Consequence", finding.consequence)
    _section(doc, "Recommendation", finding.corrective_action)
    target = finding.corrective_date.isoformat() if finding.corrective_date else None
    _labelled(doc, "Target Date", target)


def render_docx(report: AuditReport) -> bytes:
    """報告書をDOCXバイト列に変換（表紙・要約・重要度別件数表・詳細）"""
    doc = Document()
    doc.styles["Normal"].font.size = Pt(11)

    # 表紙
    _centered(doc, "INTERNAL AUDIT REPORT", size=24, bold=True)
    _centered(doc, report.audit_name, size=16, bold=True)
    _centered(doc, report.auditee_name, size=13)
    _centered(doc, f"Audit Year: {report.audit_year}")

    # 要約
    doc.add_heading("EXECUTIVE SUMMARY", level=1)
    doc.add_paragraph(
        f"This report presents the findings from the internal audit of {report.auditee_name} "
        f"conducted for the period {report.start_date.isoformat()} to {report.end_date.isoformat()}. "
        f"The audit identified {len(report.findings)} issue(s) requiring management attention."
    )
    doc.add_paragraph().add_run("Summary of Findings:").bold = True

    counts = report.band_counts
    table = doc.add_table(rows=1, cols=2)
    table.style = "Table Grid"
    header = table.rows[0].cells
    header[0].text = "Risk Rating"
    header[1].text = "Count"
    for band in (RiskBand.HIGH, RiskBand.MEDIUM, RiskBand.LOW):
        cells = table.add_row().cells
        cells[0].text = band.value
        cells[1].text = str(counts[band.value])

    # 詳細
    doc.add_heading("DETAILED FINDINGS", level=1)
    for index, finding in enumerate(report.findings, start=1):
        _add_finding(doc, index, finding)

    footer = doc.sections[0].footer.paragraphs[0]
    footer.text = f"Generated {report.generated_at.date().isoformat()}"
    footer.alignment = WD_ALIGN_PARAGRAPH.RIGHT

    buffer = BytesIO()
    doc.save(buffer)
    report_exports_total.labels(format="docx").inc()
    return buffer.getvalue()
