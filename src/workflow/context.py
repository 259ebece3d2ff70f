"""リクエストコンテキスト — 認証済みプリンシパル + 注入された現在時刻"""

from dataclasses import dataclass
from datetime import UTC, datetime

from src.config.constants import AUDIT_STAFF_ROLES, REVIEWER_ROLES, UserRole
from src.workflow.errors import NotFoundError, PermissionDeniedError


@dataclass(frozen=True)
class Principal:
    """認証済みユーザー"""

    id: int
    role: UserRole
    organization_id: int | None

    @property
    def is_audit_staff(self) -> bool:
        return self.role in AUDIT_STAFF_ROLES

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


@dataclass(frozen=True)
class RequestContext:
    """全ワークフロー操作に渡す明示的コンテキスト

    now はシステム時計から直接読まず呼び出し側で注入する（期限判定を決定的にするため）。
    """

    principal: Principal
    now: datetime

    @classmethod
    def at(cls, principal: Principal, now: datetime | None = None) -> "RequestContext":
        return cls(principal=principal, now=now or datetime.now(UTC))

    @property
    def organization_id(self) -> int:
        """組織ID — 組織に属さないプリンシパルは組織データへアクセスできない"""
        if self.principal.organization_id is None:
            raise NotFoundError("組織が見つかりません")
        return self.principal.organization_id

    @property
    def user_id(self) -> int:
        return self.principal.id

    def require_roles(self, roles: frozenset[UserRole] | set[UserRole], action: str) -> None:
        """ロールチェック

        Raises:
            PermissionDeniedError: 許可されていないロール
        """
        if self.principal.role not in roles:
            raise PermissionDeniedError(f"この操作を行う権限がありません: {action}")

    def require_audit_staff(self, action: str) -> None:
        self.require_roles(AUDIT_STAFF_ROLES, action)

    def require_reviewer(self, action: str) -> None:
        self.require_roles(REVIEWER_ROLES, action)
