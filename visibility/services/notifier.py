"""스캔 완료 알림. 외부 이메일 디스패처가 소비하는 Celery 태스크로 이벤트 발행."""

import logging
import uuid
from collections.abc import Callable
from typing import Any

from visibility.core.config import settings

logger = logging.getLogger(__name__)

# (task_name, kwargs) → None. 테스트에서 교체.
SendTask = Callable[[str, dict[str, Any]], None]


def report_url(url_token: str) -> str:
    return f"{settings.public_app_url.rstrip('/')}/report/{url_token}"


def build_scan_complete_event(
    *,
    email: str,
    domain: str,
    url_token: str,
    overall_score: int,
    run_id: uuid.UUID,
    previous_score: int | None = None,
) -> dict[str, Any]:
    return {
        "email": email,
        "domain": domain,
        "report_url": report_url(url_token),
        "overall_score": overall_score,
        "run_id": str(run_id),
        "previous_score": previous_score,
    }


def celery_send_task(task_name: str, kwargs: dict[str, Any]) -> None:
    """브로커로 이름 기반 발행. 소비자 코드는 이 저장소에 없음."""
    from visibility.worker import celery_app

    celery_app.send_task(task_name, kwargs=kwargs)


def notify_scan_complete(event: dict[str, Any], send_task: SendTask | None = None) -> bool:
    """발행 성공 여부 반환. 실패는 로그만 남기고 런 상태에 영향 없음."""
    sender = send_task or celery_send_task
    try:
        sender(settings.notification_task_name, event)
    except Exception:
        logger.warning(
            "Scan-complete notification failed: run_id=%s domain=%s",
            event.get("run_id"),
            event.get("domain"),
            exc_info=True,
        )
        return False
    logger.info("Scan-complete notification sent: run_id=%s", event.get("run_id"))
    return True
