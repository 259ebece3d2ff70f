"""audit-workflow 開発用データ投入スクリプト.

組織1つ分のユーザー（各ロール）、被監査部門、監査ユニバース、調書テンプレート、
監査1件を投入する。パスワードは全ユーザー共通で 'password123'。

使用方法:
    python -m infrastructure.scripts.init_db
    python -m scripts.seed_data
"""

from __future__ import annotations

import asyncio
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.constants import AuditStatus, ColumnType, UserRole
from src.config.settings import get_settings
from src.db.engine import build_engine
from src.db.models import (
    Audit,
    Auditee,
    AuditeeDepartment,
    AuditTeamMember,
    AuditUniverseItem,
    Organization,
    User,
    WorkingPaperColumn,
    WorkingPaperTemplate,
)
from src.security.auth import AuthService

ORGANIZATION_NAME = "Sample Holdings"
SEED_PASSWORD = "password123"  # noqa: S105

UNIVERSE = [
    ("Cash Handling", "Petty cash count", "High", "Daily count sheet signed by supervisor"),
    ("Cash Handling", "Bank reconciliation", "Medium", "Monthly reconciliation review"),
    ("Procurement", "Vendor onboarding", "High", "Dual approval of new vendors"),
    ("Payroll", "Monthly payroll run", "Medium", "Payroll variance review"),
]


async def seed_users(session: AsyncSession, organization: Organization) -> dict[str, User]:
    """ユーザーデータを投入."""
    hashed = AuthService().hash_password(SEED_PASSWORD)
    specs = {
        "admin": (None, "admin@example.com", "System Admin", UserRole.SYSTEM_ADMIN),
        "head": (organization.id, "head@example.com", "Head of Audit", UserRole.HEAD_OF_AUDIT),
        "manager": (organization.id, "manager@example.com", "Audit Manager", UserRole.MANAGER),
        "auditor": (organization.id, "auditor@example.com", "Staff Auditor", UserRole.AUDITOR),
        "auditee": (organization.id, "finance@example.com", "Finance Dept", UserRole.AUDITEE),
    }
    users = {
        key: User(
            organization_id=org_id,
            email=email,
            hashed_password=hashed,
            full_name=name,
            role=role.value,
            is_active=True,
        )
        for key, (org_id, email, name, role) in specs.items()
    }
    session.add_all(users.values())
    await session.flush()
    print(f"[OK] Users: {len(users)}")
    return users


async def seed_auditee(session: AsyncSession, organization: Organization, users: dict[str, User]) -> Auditee:
    """被監査部門・部署・監査ユニバースを投入."""
    auditee = Auditee(
        organization_id=organization.id,
        name="Finance Dept",
        official_email=users["auditee"].email,
        user_id=users["auditee"].id,
        created_by=users["head"].id,
    )
    session.add(auditee)
    await session.flush()

    session.add_all(
        [AuditeeDepartment(auditee_id=auditee.id, name=name) for name in ("Treasury", "Accounts Payable")]
    )
    session.add_all(
        [
            AuditUniverseItem(
                organization_id=organization.id,
                auditee_id=auditee.id,
                audit_area=area,
                process=process,
                inherent_risk=risk,
                control_measure=control,
            )
            for area, process, risk, control in UNIVERSE
        ]
    )
    print(f"[OK] Auditee: {auditee.name} ({len(UNIVERSE)} universe items)")
    return auditee


async def seed_working_paper(session: AsyncSession, organization: Organization, users: dict[str, User]) -> None:
    """調書テンプレートを投入."""
    template = WorkingPaperTemplate(
        organization_id=organization.id,
        name="Cash Count Sheet",
        description="Petty cash count with variance",
        created_by=users["head"].id,
    )
    session.add(template)
    await session.flush()

    columns = [
        ("Count Date", ColumnType.DATE, None),
        ("Counted By", ColumnType.TEXT, None),
        ("Result", ColumnType.SELECT, ["Agreed", "Shortfall", "Overage"]),
        ("Evidence Link", ColumnType.URL, None),
    ]
    session.add_all(
        [
            WorkingPaperColumn(
                working_paper_id=template.id,
                name=name,
                column_type=column_type.value,
                column_order=order,
                options=options,
            )
            for order, (name, column_type, options) in enumerate(columns, start=1)
        ]
    )
    print(f"[OK] Working paper template: {template.name}")


async def seed_audit(
    session: AsyncSession, organization: Organization, users: dict[str, User], auditee: Auditee
) -> None:
    """監査と監査チームを投入."""
    audit = Audit(
        organization_id=organization.id,
        name="FY2026 Finance Audit",
        auditee_id=auditee.id,
        team_leader_id=users["head"].id,
        start_date=date(2026, 4, 1),
        end_date=date(2026, 6, 30),
        status=AuditStatus.PLANNED.value,
        created_by=users["head"].id,
    )
    session.add(audit)
    await session.flush()
    session.add_all(
        [AuditTeamMember(audit_id=audit.id, user_id=users[key].id) for key in ("head", "manager", "auditor")]
    )
    print(f"[OK] Audit: {audit.name}")


async def main() -> None:
    """メイン実行."""
    settings = get_settings()
    engine = build_engine(settings.database_url)
    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_factory() as session:
            existing = await session.execute(select(Organization).where(Organization.name == ORGANIZATION_NAME))
            if existing.scalar_one_or_none() is not None:
                print(f"[SKIP] Organization '{ORGANIZATION_NAME}' already seeded")
                return

            print("=== audit-workflow Seed Data ===")
            organization = Organization(name=ORGANIZATION_NAME, description="Development sample organization")
            session.add(organization)
            await session.flush()

            users = await seed_users(session, organization)
            auditee = await seed_auditee(session, organization, users)
            await seed_working_paper(session, organization, users)
            await seed_audit(session, organization, users, auditee)
            await session.commit()
            print("=== Seed Complete ===")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
