"""Health check 엔드포인트. Redis는 app.state 비동기 클라이언트 재사용."""

import asyncio
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text

from visibility.core.database import get_async_session_maker
from visibility.core.deps import get_redis_health_client

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)

HEALTH_REDIS_PING_TIMEOUT = 2.0


async def _check_db() -> str:
    """DB 연결 상태. SELECT 1 실행. 'ok' 또는 'error'. DB 미초기화 시 'error'."""
    maker = get_async_session_maker()
    if not maker:
        return "error"
    try:
        async with maker() as session:
            await session.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        logger.warning("Health DB check failed: %s", e)
        return "error"


async def _check_redis(client) -> str:
    """Redis 연결 상태. PING에 짧은 timeout. 클라이언트 미설정 시 'ok'(브로커 미사용 환경)."""
    if client is None:
        return "ok"
    try:
        await asyncio.wait_for(client.ping(), timeout=HEALTH_REDIS_PING_TIMEOUT)
        return "ok"
    except Exception as e:
        logger.warning("Health Redis check failed: %s", e)
        return "error"


@router.get("/health")
async def get_health(redis_client=Depends(get_redis_health_client)) -> dict[str, str]:
    """헬스 체크. DB(SELECT 1)·Redis(PING). status: ok | degraded."""
    db_status = await _check_db()
    redis_status = await _check_redis(redis_client)
    status = "ok" if db_status == "ok" and redis_status == "ok" else "degraded"
    return {
        "status": status,
        "db": db_status,
        "redis": redis_status,
    }
