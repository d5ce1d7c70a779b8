"""ScanRun Repository. 런 생성·조회·상태 갱신, 내부 통계."""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from visibility.models.scan_run import NON_TERMINAL_STATUSES, RunStatus, ScanRun, TriggerType


def create_scan_run_sync(
    session: Session,
    *,
    account_id: uuid.UUID,
    domain: str,
    trigger_type: TriggerType,
    subscription_id: uuid.UUID | None = None,
) -> ScanRun:
    """pending 런 1건 생성. 커밋은 호출 측 세션 컨텍스트가 담당."""
    run = ScanRun(
        account_id=account_id,
        subscription_id=subscription_id,
        domain=domain,
        status=RunStatus.PENDING.value,
        progress=0,
        trigger_type=trigger_type.value,
        created_at=datetime.now(UTC),
    )
    session.add(run)
    session.flush()
    return run


def get_scan_run_sync(session: Session, run_id: uuid.UUID, *, for_update: bool = False) -> ScanRun | None:
    stmt = select(ScanRun).where(ScanRun.id == run_id)
    if for_update:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalars().one_or_none()


def set_celery_task_id_sync(session: Session, run_id: uuid.UUID, celery_task_id: str) -> None:
    run = session.get(ScanRun, run_id)
    if run is not None:
        run.celery_task_id = celery_task_id
        session.flush()


def find_in_flight_run_sync(session: Session, subscription_id: uuid.UUID) -> ScanRun | None:
    """구독의 비종료 런(가장 최근 1건). 영속 상태 기준 진행 중 검사."""
    result = session.execute(
        select(ScanRun)
        .where(
            ScanRun.subscription_id == subscription_id,
            ScanRun.status.in_(NON_TERMINAL_STATUSES),
        )
        .order_by(ScanRun.created_at.desc())
        .limit(1)
    )
    return result.scalars().one_or_none()


def get_latest_manual_run_sync(session: Session, subscription_id: uuid.UUID) -> ScanRun | None:
    """쿨다운 기준 런. failed가 아닌 가장 최근 manual 런."""
    result = session.execute(
        select(ScanRun)
        .where(
            ScanRun.subscription_id == subscription_id,
            ScanRun.trigger_type == TriggerType.MANUAL.value,
            ScanRun.status != RunStatus.FAILED.value,
        )
        .order_by(ScanRun.created_at.desc())
        .limit(1)
    )
    return result.scalars().one_or_none()


def list_stale_runs_sync(session: Session, created_before: datetime) -> list[ScanRun]:
    """created_before 이전에 생성됐는데 아직 비종료 상태인 런."""
    result = session.execute(
        select(ScanRun)
        .where(
            ScanRun.status.in_(NON_TERMINAL_STATUSES),
            ScanRun.created_at < created_before,
        )
        .order_by(ScanRun.created_at)
    )
    return list(result.scalars().all())


async def get_scan_stats(session: AsyncSession, *, hours: int = 24, limit: int = 50) -> dict[str, Any]:
    """최근 N시간 상태별 건수 + 최근 런 목록. GET /internal/scan-stats용."""
    since = datetime.now(UTC) - timedelta(hours=hours)
    counts_result = await session.execute(
        select(ScanRun.status, func.count())
        .where(ScanRun.created_at >= since)
        .group_by(ScanRun.status)
    )
    counts = {status: int(n) for status, n in counts_result.all()}
    recent_result = await session.execute(
        select(ScanRun).order_by(ScanRun.created_at.desc()).limit(limit)
    )
    recent = [
        {
            "scan_id": str(run.id),
            "domain": run.domain,
            "status": run.status,
            "progress": run.progress,
            "trigger_type": run.trigger_type,
            "created_at": run.created_at.isoformat() if run.created_at else None,
            "completed_at": run.completed_at.isoformat() if run.completed_at else None,
            "error_message": run.error_message,
        }
        for run in recent_result.scalars().all()
    ]
    return {"window_hours": hours, "counts": counts, "recent": recent}


def has_run_since_sync(
    session: Session, subscription_id: uuid.UUID, trigger_type: TriggerType, since: datetime
) -> bool:
    """since 이후 생성된 해당 트리거 런 존재 여부. 스케줄러 중복 실행 방지."""
    result = session.execute(
        select(ScanRun.id)
        .where(
            ScanRun.subscription_id == subscription_id,
            ScanRun.trigger_type == trigger_type.value,
            ScanRun.created_at >= since,
        )
        .limit(1)
    )
    return result.first() is not None
