"""
Celery 워커 진입점. broker=Redis, result_backend 설정.
redis://·rediss://(TLS) 모두 지원. Beat 스케줄: 주간 스캔 디스패치(매시), 시간 초과 런 정리(10분).
"""

import logging
import ssl

from celery import Celery
from celery.schedules import crontab

from visibility.core.config import settings

logger = logging.getLogger(__name__)

# broker_url 없으면 기본값(로컬 개발 시 수동 설정 필요)
broker_url = settings.redis_url or "redis://localhost:6379/0"
result_backend = settings.redis_url or "redis://localhost:6379/0"

celery_app = Celery(
    "visibility",
    broker=broker_url,
    backend=result_backend,
    include=["visibility.services.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    # 스캔 하드 리밋보다 길게. 짧으면 실행 중 태스크가 재전달됨.
    broker_transport_options={"visibility_timeout": settings.run_hard_time_limit_seconds * 2},
    worker_prefetch_multiplier=1,
    result_expires=86400,
    beat_schedule={
        "dispatch-scheduled-scans": {
            "task": "visibility.services.tasks.dispatch_scheduled_scans_task",
            "schedule": crontab(minute=0),
        },
        "reap-stale-runs": {
            "task": "visibility.services.tasks.reap_stale_runs_task",
            "schedule": crontab(minute="*/10"),
        },
    },
)

# rediss://(TLS)일 때 SSL 옵션 적용
if broker_url.startswith("rediss://"):
    celery_app.conf.broker_use_ssl = {
        "ssl_cert_reqs": ssl.CERT_NONE,
    }
    celery_app.conf.redis_backend_use_ssl = {
        "ssl_cert_reqs": ssl.CERT_NONE,
    }

# 태스크 등록 (visibility.services.tasks가 이 app에 바인딩되도록 로드)
from visibility.services import tasks  # noqa: F401, E402

# Sentry: 워커 진입 시 초기화
if settings.sentry_dsn:
    try:
        import sentry_sdk
        from sentry_sdk.integrations.celery import CeleryIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn.get_secret_value(),
            integrations=[
                CeleryIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            traces_sample_rate=0.1,
            environment=settings.environment,
        )
        logger.info("Sentry initialized for worker")
    except ImportError:
        logger.error(
            "Sentry is enabled (SENTRY_DSN set) but sentry_sdk is missing. Install sentry-sdk."
        )
