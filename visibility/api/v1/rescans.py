"""
구독자 수동 재스캔 API (Bearer JWT).
정책 거부: 404 없음, 403 소유자 아님·비활성, 409 진행 중(scan_id), 429 쿨다운(Retry-After).
"""

import asyncio
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from visibility.core.database_sync import SessionFactory
from visibility.core.deps import get_current_account_id, get_session_factory
from visibility.schemas.rescan import CooldownStateResponse, RescanAccepted, RescanRequest
from visibility.services.dispatch_service import (
    CooldownActive,
    DispatchError,
    EnqueueFailed,
    NotSubscriptionOwner,
    ScanAlreadyRunning,
    SubscriptionInactive,
    SubscriptionNotFound,
    get_cooldown_state,
    request_rescan,
)

router = APIRouter(prefix="/rescans", tags=["rescans"])


def dispatch_error_to_http(exc: DispatchError) -> HTTPException:
    """게이트웨이 정책 예외 → HTTPException. 본문에 reason과 후속 동작용 필드 포함."""
    detail: dict = {"reason": exc.reason, "message": str(exc)}
    if isinstance(exc, SubscriptionNotFound):
        return HTTPException(status_code=404, detail=detail)
    if isinstance(exc, (NotSubscriptionOwner, SubscriptionInactive)):
        return HTTPException(status_code=403, detail=detail)
    if isinstance(exc, ScanAlreadyRunning):
        detail["scan_id"] = str(exc.run_id)
        return HTTPException(status_code=409, detail=detail)
    if isinstance(exc, CooldownActive):
        detail["retry_after"] = exc.retry_after_seconds
        detail["cooldown_ends_at"] = exc.cooldown_ends_at.isoformat()
        return HTTPException(
            status_code=429,
            detail=detail,
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )
    if isinstance(exc, EnqueueFailed):
        return HTTPException(status_code=503, detail=detail)
    return HTTPException(status_code=400, detail=detail)


@router.post("", response_model=RescanAccepted, status_code=202)
async def post_rescan(
    payload: RescanRequest,
    account_id: uuid.UUID = Depends(get_current_account_id),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> RescanAccepted:
    try:
        run_id = await asyncio.to_thread(
            request_rescan, session_factory, account_id, payload.subscription_id
        )
    except DispatchError as e:
        raise dispatch_error_to_http(e) from e
    return RescanAccepted(scan_id=run_id)


@router.get("/status", response_model=CooldownStateResponse)
async def get_rescan_status(
    subscription_id: uuid.UUID = Query(...),
    account_id: uuid.UUID = Depends(get_current_account_id),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> CooldownStateResponse:
    """재스캔 버튼 상태. 쿨다운이면 남은 초·종료 시각 포함."""
    try:
        state = await asyncio.to_thread(
            get_cooldown_state, session_factory, subscription_id, account_id=account_id
        )
    except DispatchError as e:
        raise dispatch_error_to_http(e) from e
    return CooldownStateResponse(
        can_trigger=state.can_trigger,
        reason=state.reason,
        retry_after_seconds=state.retry_after_seconds,
        cooldown_ends_at=state.cooldown_ends_at,
        scan_in_progress=state.scan_in_progress,
        scan_id=state.scan_id,
        last_manual_scan_at=state.last_manual_scan_at,
    )
