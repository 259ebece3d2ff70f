"""組織・ユーザー管理 テスト"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import UserRole
from src.db.models.tenant import User
from src.workflow.accounts import AccountService, UserFields
from src.workflow.context import RequestContext
from src.workflow.errors import PermissionDeniedError, ValidationError
from tests.factories import TEST_PASSWORD, Seed, ctx_for, password_hash


@pytest.fixture
async def admin_ctx(session: AsyncSession, world: Seed) -> RequestContext:
    admin = User(
        organization_id=None,
        email="root@example.com",
        hashed_password=password_hash(),
        full_name="System Admin",
        role=UserRole.SYSTEM_ADMIN.value,
    )
    session.add(admin)
    await session.commit()
    return ctx_for(admin, world.now)


@pytest.mark.unit
class TestOrganizations:
    async def test_create_and_list(self, session: AsyncSession, admin_ctx: RequestContext) -> None:
        service = AccountService(session)
        created = await service.create_organization(admin_ctx, "  Acme Holdings ")
        assert created.name == "Acme Holdings"
        names = [o.name for o in await service.list_organizations(admin_ctx)]
        assert "Acme Holdings" in names

    async def test_duplicate_name(self, session: AsyncSession, admin_ctx: RequestContext, world: Seed) -> None:
        with pytest.raises(ValidationError):
            await AccountService(session).create_organization(admin_ctx, world.organization.name)

    async def test_head_cannot_create_organization(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(PermissionDeniedError):
            await AccountService(session).create_organization(world.head_ctx, "Nope")


@pytest.mark.unit
class TestUsers:
    async def test_head_creates_staff_in_own_organization(self, session: AsyncSession, world: Seed) -> None:
        user = await AccountService(session).create_user(
            world.head_ctx,
            UserFields(email="New.Auditor@Example.com", full_name="New Auditor", password="longenough", role=UserRole.AUDITOR),
        )
        assert user.organization_id == world.organization.id
        assert user.email == "new.auditor@example.com"
        assert user.hashed_password != "longenough"

    async def test_head_cannot_create_auditee_or_admin(self, session: AsyncSession, world: Seed) -> None:
        service = AccountService(session)
        for role in (UserRole.AUDITEE, UserRole.SYSTEM_ADMIN):
            with pytest.raises(ValidationError):
                await service.create_user(
                    world.head_ctx, UserFields(email=f"{role}@example.com", full_name="x", password="longenough", role=role)
                )

    async def test_admin_requires_organization_for_staff(self, session: AsyncSession, admin_ctx: RequestContext) -> None:
        with pytest.raises(ValidationError):
            await AccountService(session).create_user(
                admin_ctx, UserFields(email="m@example.com", full_name="M", password="longenough", role=UserRole.MANAGER)
            )

    async def test_admin_creates_head_for_organization(
        self, session: AsyncSession, admin_ctx: RequestContext, other_world: Seed
    ) -> None:
        user = await AccountService(session).create_user(
            admin_ctx,
            UserFields(
                email="head2@example.com",
                full_name="Second Head",
                password="longenough",
                role=UserRole.HEAD_OF_AUDIT,
                organization_id=other_world.organization.id,
            ),
        )
        assert user.organization_id == other_world.organization.id

    @pytest.mark.parametrize(
        ("email", "password"),
        [("not-an-email", "longenough"), ("short@example.com", "short")],
    )
    async def test_invalid_input(self, session: AsyncSession, world: Seed, email: str, password: str) -> None:
        with pytest.raises(ValidationError):
            await AccountService(session).create_user(
                world.head_ctx, UserFields(email=email, full_name="x", password=password, role=UserRole.AUDITOR)
            )

    async def test_duplicate_email_case_insensitive(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(ValidationError):
            await AccountService(session).create_user(
                world.head_ctx,
                UserFields(email=world.auditor.email.upper(), full_name="x", password="longenough", role=UserRole.AUDITOR),
            )

    async def test_list_users_scoped_for_head(self, session: AsyncSession, world: Seed, other_world: Seed) -> None:
        users = await AccountService(session).list_users(world.head_ctx)
        assert {u.organization_id for u in users} == {world.organization.id}
        assert len(users) == 4

    async def test_auditor_cannot_list_users(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(PermissionDeniedError):
            await AccountService(session).list_users(world.auditor_ctx)


@pytest.mark.unit
class TestAuthenticate:
    async def test_success_records_login(self, session: AsyncSession, world: Seed) -> None:
        user = await AccountService(session).authenticate(world.auditor.email.upper(), TEST_PASSWORD)
        assert user is not None
        assert user.id == world.auditor.id
        assert user.last_login_at is not None

    async def test_wrong_password(self, session: AsyncSession, world: Seed) -> None:
        assert await AccountService(session).authenticate(world.auditor.email, "wrong-password") is None

    async def test_inactive_organization(self, session: AsyncSession, world: Seed) -> None:
        world.organization.is_active = False
        await session.commit()
        assert await AccountService(session).authenticate(world.auditor.email, TEST_PASSWORD) is None
