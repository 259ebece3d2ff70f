"""認証エンドポイント — DB連携"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session
from src.api.middleware.auth import get_current_user
from src.api.schemas.auth import LoginRequest, RefreshRequest, TokenResponse, UserResponse
from src.security.auth import AuthService, TokenPair, TokenPayload
from src.workflow.accounts import AccountService

router = APIRouter()
_auth_service = AuthService()


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    session: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    """ログイン — DB認証 + JWTトークンペア発行"""
    user = await AccountService(session, _auth_service).authenticate(request.email, request.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="メールアドレスまたはパスワードが正しくありません",
        )

    pair = _auth_service.create_token_pair(
        user_id=user.id,
        organization_id=user.organization_id,
        role=user.role,
    )
    return _token_response(pair)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    request: RefreshRequest,
    session: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    """トークンリフレッシュ（無効化されたユーザーには再発行しない）"""
    try:
        payload = _auth_service.verify_token(request.refresh_token, expected_type="refresh")
    except Exception as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"リフレッシュトークンが無効: {err!s}",
        ) from err

    user = await AccountService(session, _auth_service).get_user(payload.user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="ユーザーが無効です")

    pair = _auth_service.create_token_pair(
        user_id=user.id,
        organization_id=user.organization_id,
        role=user.role,
    )
    return _token_response(pair)


@router.get("/me", response_model=UserResponse)
async def get_me(
    user: TokenPayload = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    """現在のユーザー情報"""
    db_user = await AccountService(session, _auth_service).get_user(user.user_id)
    if db_user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="ユーザーが見つかりません",
        )
    return UserResponse.model_validate(db_user)
