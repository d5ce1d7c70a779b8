"""Health 엔드포인트 테스트."""

from unittest.mock import AsyncMock

import pytest

from visibility.api.health import _check_redis


def test_health_returns_200(client):
    """GET /health → 200 + status, db, redis 키. (lifespan 미실행이므로 DB는 error, status는 degraded 가능)."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] in ("ok", "degraded")
    assert data["db"] in ("ok", "error")
    assert data["redis"] in ("ok", "error")
    if data["db"] == "error":
        assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_check_redis_without_client_is_ok() -> None:
    assert await _check_redis(None) == "ok"


@pytest.mark.asyncio
async def test_check_redis_ping_failure_is_error() -> None:
    redis_client = AsyncMock()
    redis_client.ping = AsyncMock(side_effect=ConnectionError("refused"))
    assert await _check_redis(redis_client) == "error"
