"""JWT認証サービス — トークン発行・検証"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from loguru import logger
from passlib.context import CryptContext
from pydantic import BaseModel

from src.config.settings import get_settings


class TokenPayload(BaseModel):
    """JWTトークンペイロード"""

    sub: str  # user_id
    organization_id: str | None  # system_adminはNone
    role: str  # ユーザーロール
    exp: datetime  # 有効期限
    iat: datetime  # 発行日時
    jti: str  # トークンID（ユニーク）
    token_type: str  # access / refresh

    @property
    def user_id(self) -> int:
        return int(self.sub)

    @property
    def org_id(self) -> int | None:
        return int(self.organization_id) if self.organization_id is not None else None


class TokenPair(BaseModel):
    """アクセストークン + リフレッシュトークンのペア"""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"  # noqa: S105
    expires_in: int  # アクセストークン有効期限（秒）


class AuthService:
    """認証サービス — パスワードハッシュ化 + JWT管理"""

    def __init__(self) -> None:
        self._pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
        self._settings = get_settings()

    def hash_password(self, password: str) -> str:
        """パスワードをbcryptハッシュ化"""
        return self._pwd_context.hash(password)  # type: ignore[no-any-return]

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """パスワード検証"""
        return self._pwd_context.verify(plain_password, hashed_password)  # type: ignore[no-any-return]

    def _encode(self, claims: dict[str, Any], token_type: str, lifetime: timedelta, now: datetime) -> str:
        payload = {
            **claims,
            "exp": now + lifetime,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "token_type": token_type,
        }
        return jwt.encode(payload, self._settings.jwt_secret_key, algorithm=self._settings.jwt_algorithm)

    def create_token_pair(self, user_id: int, organization_id: int | None, role: str) -> TokenPair:
        """アクセス + リフレッシュトークンペアを発行"""
        now = datetime.now(UTC)
        claims = {
            "sub": str(user_id),
            "organization_id": str(organization_id) if organization_id is not None else None,
            "role": role,
        }
        access_token = self._encode(
            claims, "access", timedelta(minutes=self._settings.jwt_access_token_expire_minutes), now
        )
        refresh_token = self._encode(
            claims, "refresh", timedelta(days=self._settings.jwt_refresh_token_expire_days), now
        )

        logger.info("トークンペア発行", user_id=user_id, organization_id=organization_id, role=role)

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._settings.jwt_access_token_expire_minutes * 60,
        )

    def verify_token(self, token: str, expected_type: str = "access") -> TokenPayload:
        """JWTトークンを検証してペイロードを返す

        Raises:
            jwt.ExpiredSignatureError: トークン有効期限切れ
            jwt.InvalidTokenError: 不正なトークン
            ValueError: トークンタイプ不一致
        """
        payload: dict[str, Any] = jwt.decode(
            token,
            self._settings.jwt_secret_key,
            algorithms=[self._settings.jwt_algorithm],
        )

        if payload.get("token_type") != expected_type:
            raise ValueError(f"Expected token type '{expected_type}', got '{payload.get('token_type')}'")

        return TokenPayload(
            sub=payload["sub"],
            organization_id=payload.get("organization_id"),
            role=payload["role"],
            exp=datetime.fromtimestamp(payload["exp"], tz=UTC),
            iat=datetime.fromtimestamp(payload["iat"], tz=UTC),
            jti=payload["jti"],
            token_type=payload["token_type"],
        )
