"""FastAPI 의존성. 앱 lifespan에서 만든 객체·세션 팩토리 주입."""

import uuid
from typing import Any

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from visibility.core.database_sync import SessionFactory, get_sync_session
from visibility.services.auth_service import AuthError, account_id_from_token

security = HTTPBearer(auto_error=False)


def get_redis_health_client(request: Request) -> Any:
    """lifespan에서 생성한 헬스체크용 Redis 비동기 클라이언트. 미설정 시 None."""
    return getattr(request.app.state, "redis_health_client", None)


def get_session_factory() -> SessionFactory:
    """디스패치 게이트웨이용 동기 세션 팩토리. 테스트에서 dependency_overrides로 교체."""
    return get_sync_session


def get_current_account_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> uuid.UUID:
    """Authorization Bearer에서 Access JWT 검증 후 계정 UUID 반환."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization")
    try:
        return account_id_from_token(credentials.credentials)
    except AuthError:
        raise HTTPException(status_code=401, detail="Invalid or expired token") from None
