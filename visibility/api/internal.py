"""
내부 전용 API (Cron·관리). 보안 키는 Header만 허용(X-Scan-Trigger-Secret 또는 Authorization: Bearer).
Query 파라미터 시크릿 미지원(Access Log 유출 방지).
"""

import asyncio
import logging
import secrets
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from visibility.core.config import settings
from visibility.core.database import get_db
from visibility.core.database_sync import SessionFactory
from visibility.core.deps import get_session_factory
from visibility.repositories.scan_run_repository import get_scan_stats
from visibility.services.dispatch_service import dispatch_scheduled_scans

router = APIRouter(prefix="/internal", tags=["internal"])
logger = logging.getLogger(__name__)


def _validate_trigger_secret(
    x_scan_trigger_secret: str | None = Header(None, alias="X-Scan-Trigger-Secret"),
    authorization: str | None = Header(None),
) -> None:
    """SCAN_TRIGGER_SECRET 검증. Header만 사용. timing-safe 비교. 실패 시 HTTPException."""
    if not settings.scan_trigger_secret:
        raise HTTPException(
            status_code=503,
            detail="Scan trigger not configured (SCAN_TRIGGER_SECRET missing)",
        )
    provided = (
        x_scan_trigger_secret
        or (authorization and authorization.startswith("Bearer ") and authorization[7:].strip())
    ) or ""
    expected = settings.scan_trigger_secret.get_secret_value()
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing scan trigger secret")


@router.post("/trigger-scheduled-scans", dependencies=[Depends(_validate_trigger_secret)])
async def post_trigger_scheduled_scans(
    session_factory: SessionFactory = Depends(get_session_factory),
) -> dict:
    """외부 Cron용. Beat와 같은 디스패치를 즉시 1회 실행. 같은 시간대 중복 호출은 게이트웨이가 건너뜀."""
    run_ids = await asyncio.to_thread(
        dispatch_scheduled_scans, session_factory, now=datetime.now(UTC)
    )
    logger.info("Scheduled scans triggered via internal API: created=%d", len(run_ids))
    return {"created": len(run_ids), "scan_ids": [str(r) for r in run_ids]}


@router.get("/scan-stats", dependencies=[Depends(_validate_trigger_secret)])
async def get_internal_scan_stats(
    hours: int = Query(24, ge=1, le=24 * 30),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """최근 런 상태별 건수와 목록(모니터링)."""
    return await get_scan_stats(db, hours=hours, limit=limit)
