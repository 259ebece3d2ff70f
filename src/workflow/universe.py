"""被監査部門・監査ユニバース管理"""

import secrets
import string
from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy import exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import GENERATED_PASSWORD_LENGTH, UserRole
from src.db.models.audit import Audit, Auditee, AuditeeDepartment, AuditUniverseItem
from src.db.models.fieldwork import RiskAssessment
from src.db.models.tenant import User
from src.db.repositories.base import BaseRepository
from src.security.auth import AuthService
from src.workflow.context import RequestContext
from src.workflow.errors import InvalidTransitionError, ValidationError
from src.workflow.scope import get_owned_auditee, get_owned_universe_item, not_found
from src.workflow.transaction import atomic

_HEAD_ONLY = frozenset({UserRole.HEAD_OF_AUDIT})


@dataclass
class UniverseItemFields:
    audit_area: str
    process: str | None = None
    inherent_risk: str | None = None
    control_measure: str | None = None
    audit_procedure: str | None = None
    department_id: int | None = None


@dataclass
class AuditeeCreated:
    """被監査部門作成結果 — 初期パスワードは一度だけ返す"""

    auditee: Auditee
    user: User
    initial_password: str
    departments: list[AuditeeDepartment] = field(default_factory=list)


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


class UniverseService:
    """被監査部門と監査ユニバースのCRUD"""

    def __init__(self, session: AsyncSession, auth_service: AuthService | None = None) -> None:
        self._session = session
        self._auth = auth_service or AuthService()

    # ── 被監査部門 ────────────────────────────────────

    async def create_auditee(
        self,
        ctx: RequestContext,
        name: str,
        official_email: str,
        departments: list[str] | None = None,
    ) -> AuditeeCreated:
        """被監査部門 + ログインユーザー + 部署を1トランザクションで作成"""
        ctx.require_roles(_HEAD_ONLY, "被監査部門の作成")
        name = (name or "").strip()
        official_email = (official_email or "").strip().lower()
        if not name or not official_email:
            raise ValidationError("名称と公式メールアドレスは必須です")

        taken = await self._session.execute(select(User.id).where(User.email == official_email))
        if taken.scalar_one_or_none() is not None:
            raise ValidationError("このメールアドレスは既に登録されています")

        dept_names = list(dict.fromkeys(d.strip() for d in (departments or []) if d and d.strip()))
        password = generate_password()

        async with atomic(self._session, "create_auditee"):
            user = User(
                organization_id=ctx.organization_id,
                email=official_email,
                hashed_password=self._auth.hash_password(password),
                full_name=name,
                role=UserRole.AUDITEE.value,
                is_active=True,
            )
            self._session.add(user)
            await self._session.flush()

            auditee = Auditee(
                organization_id=ctx.organization_id,
                name=name,
                official_email=official_email,
                user_id=user.id,
                created_by=ctx.user_id,
            )
            self._session.add(auditee)
            await self._session.flush()

            created_departments = [AuditeeDepartment(auditee_id=auditee.id, name=d) for d in dept_names]
            self._session.add_all(created_departments)

        logger.info("被監査部門作成", auditee_id=auditee.id, departments=len(created_departments))
        return AuditeeCreated(
            auditee=auditee,
            user=user,
            initial_password=password,
            departments=created_departments,
        )

    async def reset_auditee_password(self, ctx: RequestContext, auditee_id: int) -> tuple[Auditee, str]:
        """認証情報再送用にパスワードを再発行"""
        ctx.require_roles(_HEAD_ONLY, "認証情報の再発行")
        auditee = await get_owned_auditee(self._session, ctx, auditee_id)
        if auditee.user_id is None:
            raise InvalidTransitionError("ログインユーザーが紐付いていません")
        user = await self._session.get(User, auditee.user_id)
        if user is None:
            raise not_found("ユーザーが見つかりません")
        password = generate_password()
        async with atomic(self._session, "reset_auditee_password"):
            user.hashed_password = self._auth.hash_password(password)
        return auditee, password

    async def list_auditees(self, ctx: RequestContext) -> list[Auditee]:
        return await BaseRepository(Auditee, self._session).list(ctx.organization_id, limit=1000, order_by="name")

    async def get_auditee(self, ctx: RequestContext, auditee_id: int) -> Auditee:
        return await get_owned_auditee(self._session, ctx, auditee_id)

    async def update_auditee(
        self, ctx: RequestContext, auditee_id: int, name: str, new_departments: list[str] | None = None
    ) -> Auditee:
        """名称変更と部署追加（既存の部署は残す。公式メールアドレスは変更不可）"""
        ctx.require_roles(_HEAD_ONLY, "被監査部門の編集")
        auditee = await get_owned_auditee(self._session, ctx, auditee_id)
        name = (name or "").strip()
        if not name:
            raise ValidationError("名称は必須です")
        existing = {d.name for d in await self.list_departments(ctx, auditee.id)}
        added = [d for d in dict.fromkeys(x.strip() for x in (new_departments or []) if x and x.strip()) if d not in existing]

        async with atomic(self._session, "update_auditee"):
            auditee.name = name
            self._session.add_all([AuditeeDepartment(auditee_id=auditee.id, name=d) for d in added])
        return auditee

    async def list_departments(self, ctx: RequestContext, auditee_id: int) -> list[AuditeeDepartment]:
        await get_owned_auditee(self._session, ctx, auditee_id)
        query = (
            select(AuditeeDepartment)
            .where(AuditeeDepartment.auditee_id == auditee_id)
            .order_by(AuditeeDepartment.name)
        )
        return list((await self._session.execute(query)).scalars().all())

    async def delete_auditee(self, ctx: RequestContext, auditee_id: int) -> None:
        """リスク評価・監査から参照されている場合は削除不可"""
        ctx.require_roles(_HEAD_ONLY, "被監査部門の削除")
        auditee = await get_owned_auditee(self._session, ctx, auditee_id)

        in_use = await self._session.execute(
            select(
                or_(
                    exists().where(Audit.auditee_id == auditee.id),
                    exists().where(
                        RiskAssessment.universe_item_id == AuditUniverseItem.id,
                        AuditUniverseItem.auditee_id == auditee.id,
                    ),
                )
            )
        )
        if in_use.scalar():
            raise InvalidTransitionError("監査またはリスク評価で使用中の被監査部門は削除できません")

        async with atomic(self._session, "delete_auditee"):
            items = select(AuditUniverseItem).where(AuditUniverseItem.auditee_id == auditee.id)
            for item in (await self._session.execute(items)).scalars().all():
                await self._session.delete(item)
            await self._session.flush()
            user_id = auditee.user_id
            await self._session.delete(auditee)
            await self._session.flush()
            if user_id is not None:
                user = await self._session.get(User, user_id)
                if user is not None:
                    await self._session.delete(user)
        logger.info("被監査部門削除", auditee_id=auditee_id)

    # ── 監査ユニバース ────────────────────────────────

    async def _check_department(self, auditee_id: int, department_id: int | None) -> None:
        if department_id is None:
            return
        dept = await self._session.get(AuditeeDepartment, department_id)
        if dept is None or dept.auditee_id != auditee_id:
            raise not_found("部署が見つかりません")

    async def add_universe_item(
        self, ctx: RequestContext, auditee_id: int, fields: UniverseItemFields
    ) -> AuditUniverseItem:
        ctx.require_roles(_HEAD_ONLY, "監査ユニバースの編集")
        auditee = await get_owned_auditee(self._session, ctx, auditee_id)
        if not fields.audit_area or not fields.audit_area.strip():
            raise ValidationError("監査領域は必須です")
        await self._check_department(auditee.id, fields.department_id)

        async with atomic(self._session, "add_universe_item"):
            item = AuditUniverseItem(
                organization_id=ctx.organization_id,
                auditee_id=auditee.id,
                department_id=fields.department_id,
                audit_area=fields.audit_area.strip(),
                process=fields.process,
                inherent_risk=fields.inherent_risk,
                control_measure=fields.control_measure,
                audit_procedure=fields.audit_procedure,
                created_by=ctx.user_id,
            )
            self._session.add(item)
        return item

    async def update_universe_item(
        self, ctx: RequestContext, item_id: int, fields: UniverseItemFields
    ) -> AuditUniverseItem:
        ctx.require_roles(_HEAD_ONLY, "監査ユニバースの編集")
        item = await get_owned_universe_item(self._session, ctx, item_id)
        if not fields.audit_area or not fields.audit_area.strip():
            raise ValidationError("監査領域は必須です")
        await self._check_department(item.auditee_id, fields.department_id)

        async with atomic(self._session, "update_universe_item"):
            item.audit_area = fields.audit_area.strip()
            item.process = fields.process
            item.inherent_risk = fields.inherent_risk
            item.control_measure = fields.control_measure
            item.audit_procedure = fields.audit_procedure
            item.department_id = fields.department_id
        return item

    async def delete_universe_item(self, ctx: RequestContext, item_id: int) -> None:
        """リスク評価から参照されている項目は削除不可"""
        ctx.require_roles(_HEAD_ONLY, "監査ユニバースの編集")
        item = await get_owned_universe_item(self._session, ctx, item_id)

        referenced = await self._session.execute(
            select(func.count()).select_from(RiskAssessment).where(RiskAssessment.universe_item_id == item.id)
        )
        if referenced.scalar_one() > 0:
            raise InvalidTransitionError("リスク評価で使用中の監査ユニバース項目は削除できません")

        async with atomic(self._session, "delete_universe_item"):
            await self._session.delete(item)
        logger.info("監査ユニバース項目削除", item_id=item_id)

    async def list_universe(self, ctx: RequestContext, auditee_id: int) -> list[AuditUniverseItem]:
        """被監査部門の監査ユニバース（部署・監査領域順）"""
        await get_owned_auditee(self._session, ctx, auditee_id)
        query = (
            select(AuditUniverseItem)
            .outerjoin(AuditeeDepartment, AuditeeDepartment.id == AuditUniverseItem.department_id)
            .where(
                AuditUniverseItem.auditee_id == auditee_id,
                AuditUniverseItem.organization_id == ctx.organization_id,
            )
            .order_by(AuditeeDepartment.name, AuditUniverseItem.audit_area, AuditUniverseItem.id)
        )
        return list((await self._session.execute(query)).scalars().all())
