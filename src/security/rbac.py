"""ロールベースアクセス制御（RBAC）

ルート単位の粗い権限チェック。課題の査閲者判定などの細かいロール規則は
ワークフローサービス側で RequestContext により判定する。
"""

from dataclasses import dataclass

from src.config.constants import UserRole


@dataclass(frozen=True)
class Permission:
    """操作権限定義"""

    resource: str
    action: str

    def __str__(self) -> str:
        return f"{self.resource}:{self.action}"


# ── 権限定義 ──────────────────────────────────────────
PERMISSIONS = {
    # 監査
    "audit:read": Permission("audit", "read"),
    "audit:manage": Permission("audit", "manage"),
    # 往査（リスク評価・フォルダ・監査手続）
    "fieldwork:write": Permission("fieldwork", "write"),
    # 監査課題
    "issue:author": Permission("issue", "author"),
    "issue:verify": Permission("issue", "verify"),
    "issue:track": Permission("issue", "track"),
    # 被監査部門ポータル
    "auditee:respond": Permission("auditee", "respond"),
    # マスタ
    "working_paper:manage": Permission("working_paper", "manage"),
    "universe:manage": Permission("universe", "manage"),
    # 報告書
    "report:export": Permission("report", "export"),
    # 管理
    "admin:organizations": Permission("admin", "organizations"),
    "admin:users": Permission("admin", "users"),
}

_AUDITOR_PERMISSIONS = {
    "audit:read",
    "fieldwork:write",
    "issue:author",
    "issue:track",
    "working_paper:manage",
    "report:export",
}

# ── ロール別権限マッピング ────────────────────────────
ROLE_PERMISSIONS: dict[UserRole, set[str]] = {
    UserRole.SYSTEM_ADMIN: {"admin:organizations", "admin:users"},
    UserRole.HEAD_OF_AUDIT: _AUDITOR_PERMISSIONS
    | {"audit:manage", "issue:verify", "universe:manage", "admin:users"},
    UserRole.MANAGER: _AUDITOR_PERMISSIONS | {"issue:verify"},
    UserRole.AUDITOR: set(_AUDITOR_PERMISSIONS),
    UserRole.AUDITEE: {"auditee:respond"},
}


class RBACService:
    """RBAC権限チェックサービス"""

    def has_permission(self, role: str, permission_key: str) -> bool:
        """指定ロールが指定権限を持つか"""
        try:
            user_role = UserRole(role)
        except ValueError:
            return False
        return permission_key in ROLE_PERMISSIONS.get(user_role, set())

    def get_permissions(self, role: str) -> set[str]:
        """指定ロールの全権限を返す"""
        try:
            user_role = UserRole(role)
        except ValueError:
            return set()
        return ROLE_PERMISSIONS.get(user_role, set())

    def check_permission(self, role: str, permission_key: str) -> None:
        """権限チェック。不正アクセス時はPermissionError送出

        Raises:
            PermissionError: 権限なし
        """
        if not self.has_permission(role, permission_key):
            raise PermissionError(f"Role '{role}' does not have permission '{permission_key}'")
