"""テストデータファクトリ"""

from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import UserRole
from src.db.models import Audit, Auditee, AuditTeamMember, AuditUniverseItem, Organization, User
from src.db.models.fieldwork import AuditProcedure
from src.db.models.issue import AuditIssue
from src.security.auth import AuthService
from src.workflow.context import Principal, RequestContext
from src.workflow.issues import IssueFields, IssueService
from src.workflow.procedures import ProcedureFields, ProcedureService
from src.workflow.risk_assessment import AssessmentItem, RiskAssessmentService

TOKYO = ZoneInfo("Asia/Tokyo")
TEST_PASSWORD = "password123"  # noqa: S105


@lru_cache(maxsize=1)
def password_hash() -> str:
    """bcryptは遅いため全ユーザーで同じハッシュを使い回す"""
    return AuthService().hash_password(TEST_PASSWORD)


def ctx_for(user: User, now: datetime) -> RequestContext:
    role = UserRole(user.role)
    return RequestContext(principal=Principal(id=user.id, role=role, organization_id=user.organization_id), now=now)


def auth_headers(user: User) -> dict[str, str]:
    """ユーザーのアクセストークン付きヘッダー"""
    pair = AuthService().create_token_pair(user_id=user.id, organization_id=user.organization_id, role=user.role)
    return {"Authorization": f"Bearer {pair.access_token}"}


def local_today() -> date:
    """APIは実時刻で動くため、期限日は東京の今日を基準にする"""
    return datetime.now(TOKYO).date()


@dataclass
class Seed:
    """組織1つ分のテストデータ"""

    organization: Organization
    head: User
    manager: User
    auditor: User
    auditee_user: User
    auditee: Auditee
    audit: Audit
    items: list[AuditUniverseItem]
    now: datetime
    extra: dict[str, int] = field(default_factory=dict)

    def ctx(self, user: User, now: datetime | None = None) -> RequestContext:
        return ctx_for(user, now or self.now)

    @property
    def head_ctx(self) -> RequestContext:
        return self.ctx(self.head)

    @property
    def manager_ctx(self) -> RequestContext:
        return self.ctx(self.manager)

    @property
    def auditor_ctx(self) -> RequestContext:
        return self.ctx(self.auditor)

    @property
    def auditee_ctx(self) -> RequestContext:
        return self.ctx(self.auditee_user)


def _user(organization: Organization, role: UserRole, email: str, name: str) -> User:
    return User(
        organization_id=organization.id,
        email=email,
        hashed_password=password_hash(),
        full_name=name,
        role=role.value,
        is_active=True,
    )


async def seed_world(session: AsyncSession, now: datetime, suffix: str = "main") -> Seed:
    """組織・各ロールのユーザー・被監査部門・ユニバース3件・監査1件を作成

    ユニバースは「Cash Handling」2件と「Procurement」1件。
    """
    organization = Organization(name=f"Org {suffix}")
    session.add(organization)
    await session.flush()

    head = _user(organization, UserRole.HEAD_OF_AUDIT, f"head-{suffix}@example.com", "Hana Head")
    manager = _user(organization, UserRole.MANAGER, f"manager-{suffix}@example.com", "Mori Manager")
    auditor = _user(organization, UserRole.AUDITOR, f"auditor-{suffix}@example.com", "Aoki Auditor")
    auditee_user = _user(organization, UserRole.AUDITEE, f"finance-{suffix}@example.com", "Finance Dept")
    session.add_all([head, manager, auditor, auditee_user])
    await session.flush()

    auditee = Auditee(
        organization_id=organization.id,
        name="Finance Dept",
        official_email=auditee_user.email,
        user_id=auditee_user.id,
        created_by=head.id,
    )
    session.add(auditee)
    await session.flush()

    items = [
        AuditUniverseItem(
            organization_id=organization.id,
            auditee_id=auditee.id,
            audit_area="Cash Handling",
            process="Petty cash count",
            control_measure="Daily count sheet",
        ),
        AuditUniverseItem(
            organization_id=organization.id,
            auditee_id=auditee.id,
            audit_area="Cash Handling",
            process="Bank reconciliation",
            control_measure="Monthly reconciliation review",
        ),
        AuditUniverseItem(
            organization_id=organization.id,
            auditee_id=auditee.id,
            audit_area="Procurement",
            process="Vendor onboarding",
            control_measure="Dual approval",
        ),
    ]
    session.add_all(items)

    audit = Audit(
        organization_id=organization.id,
        name=f"FY2026 Finance Audit ({suffix})",
        auditee_id=auditee.id,
        team_leader_id=head.id,
        start_date=date(2026, 1, 5),
        end_date=date(2026, 3, 31),
        status="fieldwork",
        created_by=head.id,
    )
    session.add(audit)
    await session.flush()
    session.add_all(
        [
            AuditTeamMember(audit_id=audit.id, user_id=head.id),
            AuditTeamMember(audit_id=audit.id, user_id=auditor.id),
        ]
    )
    await session.commit()

    return Seed(
        organization=organization,
        head=head,
        manager=manager,
        auditor=auditor,
        auditee_user=auditee_user,
        auditee=auditee,
        audit=audit,
        items=items,
        now=now,
    )


async def select_items(
    session: AsyncSession,
    seed: Seed,
    scores: list[tuple[int, int]] | None = None,
) -> list[int]:
    """ユニバース全件を選択済みで保存し、リスク評価IDをユニバース順で返す"""
    scores = scores or [(4, 5), (2, 2), (3, 3)]
    items = [
        AssessmentItem(
            universe_id=item.id,
            likelihood=likelihood,
            impact=impact,
            is_selected=True,
            assigned_auditor_id=seed.auditor.id,
        )
        for item, (likelihood, impact) in zip(seed.items, scores, strict=False)
    ]
    service = RiskAssessmentService(session)
    await service.save_assessments(seed.auditor_ctx, seed.audit.id, items)
    rows = await service.list_assessments(seed.auditor_ctx, seed.audit.id)
    by_universe = {row.universe_item.id: row.assessment.id for row in rows}
    return [by_universe[item.id] for item in seed.items if item.id in by_universe]


async def make_procedure(
    session: AsyncSession,
    seed: Seed,
    risk_assessment_id: int,
    likelihood: int | None = 3,
    impact: int | None = 3,
) -> AuditProcedure:
    fields = ProcedureFields(
        audit_objective="Confirm cash is safeguarded",
        record_of_work="Counted petty cash on two dates",
        conclusion="Shortfalls were not investigated",
        result="fail",
        likelihood=likelihood,
        impact=impact,
    )
    return await ProcedureService(session).save_procedure(seed.auditor_ctx, seed.audit.id, risk_assessment_id, fields)


def issue_fields(title: str = "Petty cash shortfalls not investigated") -> IssueFields:
    return IssueFields(
        title=title,
        criteria="Shortfalls over 1,000 JPY must be investigated within 2 days",
        condition="Three shortfalls in January were not investigated",
        cause="No owner for the daily count sheet",
        consequence="Misappropriation may go undetected",
        corrective_action="Assign an owner and escalate shortfalls",
        corrective_date=date(2026, 6, 30),
    )


async def make_approved_issue(session: AsyncSession, seed: Seed, procedure_id: int) -> AuditIssue:
    """起票 → 査閲依頼 → 承認まで進めた課題"""
    issues = IssueService(session)
    issue = await issues.submit_for_verification(seed.auditor_ctx, procedure_id, issue_fields())
    return await issues.approve(seed.manager_ctx, issue.id)


async def approved_issue_world(session: AsyncSession, seed: Seed) -> int:
    """リスク評価選択 → 手続 → 承認済み課題を作成し、課題IDを返す"""
    ra_ids = await select_items(session, seed)
    procedure = await make_procedure(session, seed, ra_ids[0])
    issue = await make_approved_issue(session, seed, procedure.id)
    return issue.id
