"""被監査部門・監査ユニバース・監査モデル"""

from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import BaseModel, OrganizationBaseModel


class Auditee(OrganizationBaseModel):
    """被監査部門 — ログイン用のauditeeユーザーと1対1"""

    __tablename__ = "auditees"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_auditees_org_name"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    official_email: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)


class AuditeeDepartment(BaseModel):
    """被監査部門配下の部署"""

    __tablename__ = "auditee_departments"
    __table_args__ = (UniqueConstraint("auditee_id", "name", name="uq_auditee_departments_name"),)

    auditee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("auditees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class AuditUniverseItem(OrganizationBaseModel):
    """監査ユニバース項目 — 監査対象候補となる領域・プロセス"""

    __tablename__ = "audit_universe"

    auditee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("auditees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    department_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("auditee_departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    audit_area: Mapped[str] = mapped_column(String(255), nullable=False)
    process: Mapped[str | None] = mapped_column(Text, nullable=True)
    inherent_risk: Mapped[str | None] = mapped_column(String(50), nullable=True)
    control_measure: Mapped[str | None] = mapped_column(Text, nullable=True)
    audit_procedure: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)


class Audit(OrganizationBaseModel):
    """監査（エンゲージメント）"""

    __tablename__ = "audits"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    auditee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("auditees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    team_leader_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="planned")  # AuditStatus
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)


class AuditTeamMember(BaseModel):
    """監査チームメンバー"""

    __tablename__ = "audit_team_members"
    __table_args__ = (UniqueConstraint("audit_id", "user_id", name="uq_audit_team_members"),)

    audit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
