"""Redis 비동기 클라이언트. 헬스체크용(브로커 연결은 Celery가 직접 관리)."""

import logging
from typing import Any

from visibility.core.config import settings

logger = logging.getLogger(__name__)


def _redis_pool_kwargs() -> dict:
    """Redis ConnectionPool 공통 옵션. 타임아웃·디코드."""
    return {
        "decode_responses": True,
        "socket_timeout": settings.redis_socket_timeout,
        "socket_connect_timeout": settings.redis_socket_connect_timeout,
    }


def create_health_client() -> Any:
    """
    헬스체크용 비동기 Redis 클라이언트. redis_url 없으면 None.
    lifespan에서 한 번 생성해 app.state에 보관.
    """
    if not settings.redis_url:
        return None
    import redis.asyncio as redis

    pool = redis.ConnectionPool.from_url(
        settings.redis_url,
        max_connections=2,
        **_redis_pool_kwargs(),
    )
    return redis.Redis(connection_pool=pool)
