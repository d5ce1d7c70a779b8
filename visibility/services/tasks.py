"""
Celery 워커가 실행할 작업(Task) 정의.
동기 DB(psycopg3) 사용. 파이프라인 예외는 오케스트레이터가 failed로 기록하므로 자동 재시도 없음.
"""

import logging
from datetime import UTC, datetime

from celery import shared_task

from visibility.core.config import settings
from visibility.core.database_sync import get_sync_session
from visibility.services.dispatch_service import dispatch_scheduled_scans, reap_stale_runs
from visibility.services.orchestrator import process_scan

logger = logging.getLogger(__name__)


def _set_task_context(task_id: str | None, run_id: str | None = None):
    """Sentry·로그용 컨텍스트. task_id·run_id 태그."""
    try:
        import sentry_sdk
        if task_id:
            sentry_sdk.set_tag("celery.task_id", task_id)
        if run_id:
            sentry_sdk.set_tag("scan.run_id", run_id)
    except ImportError:
        pass


@shared_task(
    name="visibility.services.tasks.process_scan_task",
    bind=True,
    acks_late=True,
    soft_time_limit=settings.run_hard_time_limit_seconds - 30,
    time_limit=settings.run_hard_time_limit_seconds,
)
def process_scan_task(self, run_id: str):
    """런 1건 실행. 최종 상태 문자열 반환. 재전달돼도 pending이 아니면 재실행하지 않음."""
    task_id = getattr(self.request, "id", None) or ""
    _set_task_context(str(task_id) if task_id else None, run_id)
    logger.info("Task Started: task_id=%s run_id=%s", task_id, run_id)
    status = process_scan(run_id)
    logger.info("Task Finished: task_id=%s run_id=%s status=%s", task_id, run_id, status.value)
    return {"run_id": run_id, "status": status.value}


@shared_task(name="visibility.services.tasks.dispatch_scheduled_scans_task")
def dispatch_scheduled_scans_task():
    """Beat 매시 정각. 로컬 스케줄이 맞는 구독마다 scheduled 런 생성."""
    run_ids = dispatch_scheduled_scans(get_sync_session, now=datetime.now(UTC))
    return {"created": len(run_ids), "run_ids": [str(r) for r in run_ids]}


@shared_task(name="visibility.services.tasks.reap_stale_runs_task")
def reap_stale_runs_task():
    """Beat 10분 주기. 시간 예산 초과 런 정리."""
    return {"reaped": reap_stale_runs(get_sync_session, now=datetime.now(UTC))}