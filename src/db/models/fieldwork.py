"""リスク評価・監査手続モデル"""

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import BaseModel


class RiskAssessment(BaseModel):
    """リスク評価 — (監査, ユニバース項目) ごとに1行"""

    __tablename__ = "risk_assessments"
    __table_args__ = (
        UniqueConstraint("audit_id", "universe_item_id", name="uq_risk_assessments_audit_universe"),
    )

    audit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    universe_item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_universe.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    likelihood: Mapped[int] = mapped_column(Integer, nullable=False)
    impact: Mapped[int] = mapped_column(Integer, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)  # likelihood * impact
    band: Mapped[str] = mapped_column(String(10), nullable=False)  # RiskBand
    is_selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    assigned_auditor_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


class AuditProcedure(BaseModel):
    """監査手続記録 — 選択済みリスク評価ごとに1行

    likelihood/impact は課題の重要度であり、リスク評価の固有リスクとは独立。
    """

    __tablename__ = "audit_procedures"
    __table_args__ = (
        UniqueConstraint("audit_id", "risk_assessment_id", name="uq_audit_procedures_audit_ra"),
    )

    audit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    risk_assessment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("risk_assessments.id"),
        nullable=False,
        index=True,
    )
    audit_area: Mapped[str | None] = mapped_column(String(255), nullable=True)
    audit_objective: Mapped[str | None] = mapped_column(Text, nullable=True)
    record_of_work: Mapped[str | None] = mapped_column(Text, nullable=True)
    conclusion: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[str | None] = mapped_column(String(10), nullable=True)  # ProcedureResult
    cause: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    likelihood: Mapped[int | None] = mapped_column(Integer, nullable=True)
    impact: Mapped[int | None] = mapped_column(Integer, nullable=True)
    issue_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score: Mapped[str | None] = mapped_column(String(10), nullable=True)  # RiskBand
    include_in_report: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    working_paper_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("working_paper_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
