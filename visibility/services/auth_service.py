"""Access JWT 검증. 토큰 발급·세션 관리는 인증 서비스 소관(HS256 공유 시크릿)."""

import logging
import uuid
from typing import Any

import jwt

from visibility.core.config import settings

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Auth 관련 예외. Router에서 HTTPException(401)으로 변환."""

    pass


def verify_access_token(encoded: str) -> dict[str, Any]:
    """Access JWT 검증. 서명·만료·iss/aud·type=access 확인."""
    try:
        payload = jwt.decode(
            encoded,
            settings.jwt_secret.get_secret_value(),
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options={"require": ["exp", "iat", "sub", "type"]},
        )
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid access token: %s", e)
        raise AuthError("Invalid or expired token") from e
    if payload.get("type") != "access":
        raise AuthError("Invalid token type")
    return payload


def account_id_from_token(encoded: str) -> uuid.UUID:
    """검증 후 sub(계정 UUID) 반환."""
    payload = verify_access_token(encoded)
    try:
        return uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError) as e:
        raise AuthError("Invalid token subject") from e
