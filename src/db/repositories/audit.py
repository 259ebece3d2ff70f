"""監査Repository"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.audit import Audit, Auditee, AuditTeamMember
from src.db.models.tenant import User
from src.db.repositories.base import BaseRepository


class AuditRepository(BaseRepository[Audit]):
    """監査固有のクエリ"""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Audit, session)

    async def get_with_auditee(self, audit_id: int, organization_id: int) -> tuple[Audit, Auditee] | None:
        """監査と被監査部門をまとめて取得"""
        query = (
            select(Audit, Auditee)
            .join(Auditee, Auditee.id == Audit.auditee_id)
            .where(Audit.id == audit_id, Audit.organization_id == organization_id)
        )
        row = (await self._session.execute(query)).one_or_none()
        return (row[0], row[1]) if row else None

    async def team_members(self, audit_id: int) -> list[User]:
        """監査チームメンバー一覧"""
        query = (
            select(User)
            .join(AuditTeamMember, AuditTeamMember.user_id == User.id)
            .where(AuditTeamMember.audit_id == audit_id)
            .order_by(User.full_name)
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def replace_team(self, audit_id: int, user_ids: list[int]) -> None:
        """チームメンバーを総入れ替え"""
        await self._session.execute(delete(AuditTeamMember).where(AuditTeamMember.audit_id == audit_id))
        for user_id in user_ids:
            self._session.add(AuditTeamMember(audit_id=audit_id, user_id=user_id))
        await self._session.flush()
