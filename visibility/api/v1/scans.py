"""최초 스캔 생성·상태 폴링 API. 익명 접근."""

import asyncio
import uuid

from fastapi import APIRouter, Depends, HTTPException

from visibility.core.database_sync import SessionFactory
from visibility.core.deps import get_session_factory
from visibility.schemas.scan import ScanCreateRequest, ScanCreateResponse, ScanStatusResponse
from visibility.services.dispatch_service import (
    EnqueueFailed,
    InvalidScanRequest,
    RunNotFound,
    get_run_status,
    start_first_touch_scan,
)

router = APIRouter(prefix="/scans", tags=["scans"])


@router.post("", response_model=ScanCreateResponse, status_code=202)
async def post_scan(
    payload: ScanCreateRequest,
    session_factory: SessionFactory = Depends(get_session_factory),
) -> ScanCreateResponse:
    """(email, domain)으로 스캔 시작. 형식 오류는 400, 런은 만들지 않음."""
    try:
        run_id = await asyncio.to_thread(
            start_first_touch_scan, session_factory, payload.email, payload.domain
        )
    except InvalidScanRequest as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except EnqueueFailed as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return ScanCreateResponse(scan_id=run_id)


@router.get("/{scan_id}/status", response_model=ScanStatusResponse)
async def get_scan_status(
    scan_id: uuid.UUID,
    session_factory: SessionFactory = Depends(get_session_factory),
) -> ScanStatusResponse:
    try:
        view = await asyncio.to_thread(get_run_status, session_factory, scan_id)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="Scan not found") from None
    return ScanStatusResponse(
        scan_id=view.scan_id,
        domain=view.domain,
        status=view.status,
        progress=view.progress,
        status_message=view.status_message,
        estimated_seconds_remaining=view.estimated_seconds_remaining,
        error=view.error,
        report_token=view.report_token,
    )
