"""調書テンプレート・テスト手続データモデル"""

from typing import Any

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import BaseModel, JSONType, OrganizationBaseModel


class WorkingPaperTemplate(OrganizationBaseModel):
    """調書テンプレート — 組織で再利用する表形式スキーマ"""

    __tablename__ = "working_paper_templates"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    allow_row_insert: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)


class WorkingPaperColumn(BaseModel):
    """調書カラム定義"""

    __tablename__ = "working_paper_columns"
    __table_args__ = (
        UniqueConstraint("working_paper_id", "column_order", name="uq_working_paper_columns_order"),
        UniqueConstraint("working_paper_id", "name", name="uq_working_paper_columns_name"),
    )

    working_paper_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("working_paper_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    column_type: Mapped[str] = mapped_column(String(20), nullable=False)  # ColumnType
    column_order: Mapped[int] = mapped_column(Integer, nullable=False)
    options: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    formula: Mapped[str | None] = mapped_column(String(500), nullable=True)


class TestingProcedureAttachment(BaseModel):
    """フォルダ（代表リスク評価ID）への調書テンプレート紐付け"""

    __test__ = False  # pytestの収集対象外
    __tablename__ = "testing_procedure_attachments"
    __table_args__ = (
        UniqueConstraint(
            "audit_id",
            "risk_assessment_id",
            "working_paper_id",
            name="uq_testing_procedure_attachments",
        ),
    )

    audit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    risk_assessment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("risk_assessments.id", ondelete="CASCADE"),
        nullable=False,
    )
    working_paper_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("working_paper_templates.id", ondelete="RESTRICT"),
        nullable=False,
    )
    attached_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)


class TestingProcedureDataRow(BaseModel):
    """フォルダ内の調書入力行"""

    __test__ = False  # pytestの収集対象外
    __tablename__ = "testing_procedure_data"
    __table_args__ = (
        UniqueConstraint(
            "audit_id",
            "risk_assessment_id",
            "working_paper_id",
            "row_order",
            name="uq_testing_procedure_data_row",
        ),
    )

    audit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    risk_assessment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("risk_assessments.id", ondelete="CASCADE"),
        nullable=False,
    )
    working_paper_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("working_paper_templates.id", ondelete="RESTRICT"),
        nullable=False,
    )
    row_order: Mapped[int] = mapped_column(Integer, nullable=False)
    cell_values: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    updated_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
