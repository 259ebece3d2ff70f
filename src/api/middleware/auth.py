"""JWT認証ミドルウェア"""

from datetime import UTC, datetime

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config.constants import UserRole
from src.monitoring.logging import bind_request_context
from src.security.auth import AuthService, TokenPayload
from src.security.rbac import RBACService
from src.workflow.context import Principal, RequestContext

security = HTTPBearer()
_auth_service = AuthService()
_rbac_service = RBACService()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> TokenPayload:
    """現在のユーザーをJWTトークンから取得"""
    try:
        payload = _auth_service.verify_token(credentials.credentials)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"認証エラー: {e!s}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    bind_request_context(payload.organization_id, payload.sub)
    return payload


def require_permission(permission: str):  # type: ignore[no-untyped-def]
    """権限チェックの依存性注入デコレータ"""

    async def _check(user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
        if not _rbac_service.has_permission(user.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"権限不足: {permission}",
            )
        return user

    return _check


def _context_for(user: TokenPayload) -> RequestContext:
    """ワークフロー操作用コンテキスト（現在時刻はリクエスト受付時点）"""
    try:
        role = UserRole(user.role)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="不明なロールです") from e
    principal = Principal(id=user.user_id, role=role, organization_id=user.org_id)
    return RequestContext(principal=principal, now=datetime.now(UTC))


async def get_request_context(user: TokenPayload = Depends(get_current_user)) -> RequestContext:
    return _context_for(user)


def context_with(permission: str):  # type: ignore[no-untyped-def]
    """権限チェック済みのワークフローコンテキストを返す依存性"""

    async def _ctx(user: TokenPayload = Depends(require_permission(permission))) -> RequestContext:
        return _context_for(user)

    return _ctx
