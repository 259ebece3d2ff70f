"""認証サービス テスト"""

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from src.config.settings import get_settings
from src.security.auth import AuthService


@pytest.fixture
def auth_service() -> AuthService:
    return AuthService()


@pytest.mark.unit
class TestAuthService:
    """認証サービスのユニットテスト"""

    def test_hash_password(self, auth_service: AuthService) -> None:
        hashed = auth_service.hash_password("SecurePassword123!")
        assert hashed != "SecurePassword123!"
        assert hashed.startswith("$2b$")

    def test_verify_password(self, auth_service: AuthService) -> None:
        hashed = auth_service.hash_password("SecurePassword123!")
        assert auth_service.verify_password("SecurePassword123!", hashed) is True
        assert auth_service.verify_password("WrongPassword", hashed) is False

    def test_create_token_pair(self, auth_service: AuthService) -> None:
        pair = auth_service.create_token_pair(7, 3, "auditor")
        assert pair.access_token
        assert pair.refresh_token
        assert pair.token_type == "bearer"
        assert pair.expires_in == get_settings().jwt_access_token_expire_minutes * 60

    def test_verify_access_token(self, auth_service: AuthService) -> None:
        pair = auth_service.create_token_pair(7, 3, "manager")
        payload = auth_service.verify_token(pair.access_token)
        assert payload.user_id == 7
        assert payload.org_id == 3
        assert payload.role == "manager"
        assert payload.token_type == "access"
        assert payload.exp > payload.iat

    def test_system_admin_without_organization(self, auth_service: AuthService) -> None:
        pair = auth_service.create_token_pair(1, None, "system_admin")
        payload = auth_service.verify_token(pair.access_token)
        assert payload.organization_id is None
        assert payload.org_id is None

    def test_verify_refresh_token(self, auth_service: AuthService) -> None:
        pair = auth_service.create_token_pair(7, 3, "auditor")
        payload = auth_service.verify_token(pair.refresh_token, expected_type="refresh")
        assert payload.token_type == "refresh"

    def test_token_type_mismatch(self, auth_service: AuthService) -> None:
        """リフレッシュトークンをアクセストークンとして使えない"""
        pair = auth_service.create_token_pair(7, 3, "auditor")
        with pytest.raises(ValueError, match="token type"):
            auth_service.verify_token(pair.refresh_token)

    def test_unique_jti(self, auth_service: AuthService) -> None:
        first = auth_service.verify_token(auth_service.create_token_pair(7, 3, "auditor").access_token)
        second = auth_service.verify_token(auth_service.create_token_pair(7, 3, "auditor").access_token)
        assert first.jti != second.jti

    def test_expired_token(self, auth_service: AuthService) -> None:
        settings = get_settings()
        past = datetime.now(UTC) - timedelta(hours=2)
        token = jwt.encode(
            {
                "sub": "7",
                "organization_id": "3",
                "role": "auditor",
                "exp": past + timedelta(minutes=1),
                "iat": past,
                "jti": "x",
                "token_type": "access",
            },
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(jwt.ExpiredSignatureError):
            auth_service.verify_token(token)

    def test_wrong_signing_key(self, auth_service: AuthService) -> None:
        settings = get_settings()
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "7",
                "organization_id": "3",
                "role": "head_of_audit",
                "exp": now + timedelta(minutes=5),
                "iat": now,
                "jti": "forged",
                "token_type": "access",
            },
            "another-secret-key-of-sufficient-length",
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(jwt.InvalidTokenError):
            auth_service.verify_token(token)
