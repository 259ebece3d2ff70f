"""組織・ユーザー管理とログイン認証"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import UserRole
from src.db.base import utcnow
from src.db.models.tenant import Organization, User
from src.security.auth import AuthService
from src.workflow.context import RequestContext
from src.workflow.errors import ValidationError
from src.workflow.transaction import atomic

_SYSTEM_ADMIN = frozenset({UserRole.SYSTEM_ADMIN})
_USER_ADMINS = frozenset({UserRole.SYSTEM_ADMIN, UserRole.HEAD_OF_AUDIT})


@dataclass
class UserFields:
    email: str
    full_name: str
    password: str
    role: UserRole
    organization_id: int | None = None


class AccountService:
    """組織・ユーザーのCRUD"""

    def __init__(self, session: AsyncSession, auth_service: AuthService | None = None) -> None:
        self._session = session
        self._auth = auth_service or AuthService()

    async def create_organization(self, ctx: RequestContext, name: str, description: str | None = None) -> Organization:
        ctx.require_roles(_SYSTEM_ADMIN, "組織の作成")
        if not name or not name.strip():
            raise ValidationError("組織名は必須です")
        duplicate = await self._session.execute(select(Organization.id).where(Organization.name == name.strip()))
        if duplicate.first() is not None:
            raise ValidationError(f"同名の組織が既に存在します: {name}")

        async with atomic(self._session, "create_organization"):
            organization = Organization(name=name.strip(), description=description)
            self._session.add(organization)
        logger.info("組織作成", organization_id=organization.id)
        return organization

    async def list_organizations(self, ctx: RequestContext) -> list[Organization]:
        ctx.require_roles(_SYSTEM_ADMIN, "組織一覧")
        result = await self._session.execute(select(Organization).order_by(Organization.name))
        return list(result.scalars().all())

    async def create_user(self, ctx: RequestContext, fields: UserFields) -> User:
        """ユーザー作成

        system_admin は任意の組織に作成できる。head_of_audit は自組織の監査部門ユーザーのみ。
        """
        ctx.require_roles(_USER_ADMINS, "ユーザーの作成")
        if ctx.principal.role == UserRole.SYSTEM_ADMIN:
            organization_id = fields.organization_id
        else:
            if fields.role in (UserRole.SYSTEM_ADMIN, UserRole.AUDITEE):
                raise ValidationError(f"作成できないロールです: {fields.role}")
            organization_id = ctx.organization_id

        if fields.role != UserRole.SYSTEM_ADMIN and organization_id is None:
            raise ValidationError("組織IDは必須です")
        if organization_id is not None and await self._session.get(Organization, organization_id) is None:
            raise ValidationError("組織が見つかりません")
        if not fields.email or "@" not in fields.email:
            raise ValidationError("メールアドレスが不正です")
        if len(fields.password) < 8:
            raise ValidationError("パスワードは8文字以上で指定してください")

        email = fields.email.strip().lower()
        existing = await self._session.execute(select(User.id).where(func.lower(User.email) == email))
        if existing.first() is not None:
            raise ValidationError(f"メールアドレスは既に登録されています: {email}")

        async with atomic(self._session, "create_user"):
            user = User(
                organization_id=organization_id,
                email=email,
                hashed_password=self._auth.hash_password(fields.password),
                full_name=fields.full_name,
                role=fields.role.value,
            )
            self._session.add(user)
        logger.info("ユーザー作成", user_id=user.id, role=user.role, organization_id=organization_id)
        return user

    async def list_users(self, ctx: RequestContext, organization_id: int | None = None) -> list[User]:
        ctx.require_roles(_USER_ADMINS, "ユーザー一覧")
        query = select(User).order_by(User.full_name, User.id)
        if ctx.principal.role != UserRole.SYSTEM_ADMIN:
            query = query.where(User.organization_id == ctx.organization_id)
        elif organization_id is not None:
            query = query.where(User.organization_id == organization_id)
        return list((await self._session.execute(query)).scalars().all())

    async def authenticate(self, email: str, password: str) -> User | None:
        """メール + パスワードで認証し、成功時は最終ログイン日時を更新"""
        query = select(User).where(func.lower(User.email) == email.strip().lower(), User.is_active.is_(True))
        user = (await self._session.execute(query)).scalar_one_or_none()
        if user is None or not self._auth.verify_password(password, user.hashed_password):
            logger.warning("ログイン失敗", email=email)
            return None

        if user.organization_id is not None:
            organization = await self._session.get(Organization, user.organization_id)
            if organization is None or not organization.is_active:
                logger.warning("無効な組織のユーザー", user_id=user.id)
                return None

        async with atomic(self._session, "record_login"):
            user.last_login_at = utcnow()
        return user

    async def get_user(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)
