"""
디스패치 게이트웨이. 세 진입 경로(최초 스캔·주간 스케줄·수동 재스캔) 모두 pending 런 생성 후 _enqueue로 수렴.
정책 거부는 런을 만들기 전에 DispatchError 하위 예외로 동기 반환. Router에서 HTTP 코드로 변환.
웹에서는 asyncio.to_thread로 호출(동기 세션).
"""

import logging
import math
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from visibility.core.config import settings
from visibility.core.database_sync import SessionFactory
from visibility.models.scan_run import QUERY_PROGRESS_END, QUERY_PROGRESS_START, RunStatus, TriggerType
from visibility.models.subscription import SUBSCRIPTION_ACTIVE
from visibility.repositories.account_repository import get_or_create_account_sync
from visibility.repositories.report_repository import get_report_for_run_sync
from visibility.repositories.scan_run_repository import (
    create_scan_run_sync,
    find_in_flight_run_sync,
    get_latest_manual_run_sync,
    get_scan_run_sync,
    has_run_since_sync,
    list_stale_runs_sync,
    set_celery_task_id_sync,
)
from visibility.repositories.subscription_repository import (
    get_subscription_sync,
    list_active_subscriptions_sync,
)
from visibility.services.orchestrator import fail_run

logger = logging.getLogger(__name__)

# run_id → celery task id. 테스트에서 교체.
Enqueuer = Callable[[uuid.UUID], str | None]

STATUS_MESSAGES: dict[str, str] = {
    "pending": "Queued for processing...",
    "crawling": "Crawling your website...",
    "analyzing": "Analyzing your content...",
    "generating": "Generating questions for AI...",
    "querying": "Querying AI assistants...",
    "complete": "Report ready!",
    "failed": "Something went wrong",
}

# 상태별 예상 남은 시간(초). querying은 진행률로 보정.
ESTIMATED_SECONDS: dict[str, int] = {
    "pending": 300,
    "crawling": 240,
    "analyzing": 180,
    "generating": 150,
    "querying": 90,
    "complete": 0,
    "failed": 0,
}

# 리퍼 유예 시간. Celery hard limit 직후 정상 종료 처리 중인 런을 건드리지 않기 위함.
STALE_RUN_GRACE_SECONDS = 120
STALE_RUN_MESSAGE = "Run exceeded time budget"

_DOMAIN_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InvalidScanRequest(ValueError):
    """도메인·이메일 형식 오류. 런 생성 전에 거부."""

    pass


class DispatchError(Exception):
    """정책 거부. reason은 응답 본문의 기계 판독용 코드."""

    reason = "rejected"


class SubscriptionNotFound(DispatchError):
    reason = "not_found"


class NotSubscriptionOwner(DispatchError):
    reason = "not_owner"


class SubscriptionInactive(DispatchError):
    reason = "subscription_inactive"


class ScanAlreadyRunning(DispatchError):
    reason = "scan_in_progress"

    def __init__(self, run_id: uuid.UUID) -> None:
        super().__init__(f"Scan already running: {run_id}")
        self.run_id = run_id


class CooldownActive(DispatchError):
    reason = "cooldown"

    def __init__(self, retry_after_seconds: int, cooldown_ends_at: datetime) -> None:
        super().__init__(f"Rescan cooldown active for {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds
        self.cooldown_ends_at = cooldown_ends_at


class RunNotFound(DispatchError):
    reason = "not_found"


class EnqueueFailed(DispatchError):
    """런은 생성됐으나 큐 적재 실패. 런은 failed로 정리됨."""

    reason = "enqueue_failed"

    def __init__(self, run_id: uuid.UUID, message: str) -> None:
        super().__init__(message)
        self.run_id = run_id


@dataclass(frozen=True)
class CooldownState:
    can_trigger: bool
    reason: str | None = None
    retry_after_seconds: int | None = None
    cooldown_ends_at: datetime | None = None
    scan_in_progress: bool = False
    scan_id: uuid.UUID | None = None
    last_manual_scan_at: datetime | None = None


@dataclass(frozen=True)
class RunStatusView:
    scan_id: uuid.UUID
    domain: str
    status: str
    progress: int
    status_message: str
    estimated_seconds_remaining: int
    error: str | None = None
    report_token: str | None = None


def ensure_utc(value: datetime) -> datetime:
    """SQLite 등 tz 정보 없이 돌아오는 값은 UTC로 간주."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_domain(raw: str) -> str:
    """URL·호스트 입력 → 소문자, 스킴·www.·경로·포트 제거한 도메인. 형식 오류면 InvalidScanRequest."""
    value = (raw or "").strip().lower()
    if not value:
        raise InvalidScanRequest("Domain is required")
    value = re.sub(r"^[a-z][a-z0-9+.-]*://", "", value)
    value = re.split(r"[/?#]", value, maxsplit=1)[0]
    value = value.rsplit("@", 1)[-1]
    value = value.split(":", 1)[0].rstrip(".")
    if value.startswith("www."):
        value = value[4:]
    labels = value.split(".")
    if len(value) > 253 or len(labels) < 2 or not all(_DOMAIN_LABEL_RE.match(label) for label in labels):
        raise InvalidScanRequest(f"Invalid domain: {raw!r}")
    if labels[-1].isdigit():
        raise InvalidScanRequest(f"IP addresses are not supported: {raw!r}")
    return value


def validate_email(raw: str) -> str:
    value = (raw or "").strip().lower()
    if not value:
        raise InvalidScanRequest("Email is required")
    if len(value) > 320 or not _EMAIL_RE.match(value):
        raise InvalidScanRequest(f"Invalid email: {raw!r}")
    return value


def celery_enqueue(run_id: uuid.UUID) -> str | None:
    from visibility.services.tasks import process_scan_task

    result = process_scan_task.delay(str(run_id))
    return getattr(result, "id", None)


def _enqueue(
    session_factory: SessionFactory, run_id: uuid.UUID, enqueue: Enqueuer | None
) -> None:
    """큐 적재. 실패 시 런을 failed로 바꿔 이후 트리거를 막지 않게 함."""
    try:
        task_id = (enqueue or celery_enqueue)(run_id)
    except Exception as e:
        logger.error("Enqueue failed: run_id=%s error=%s", run_id, e, exc_info=True)
        fail_run(session_factory, run_id, f"Failed to enqueue scan: {e}")
        raise EnqueueFailed(run_id, "Could not queue scan, please retry") from e
    if task_id:
        with session_factory() as session:
            set_celery_task_id_sync(session, run_id, str(task_id))
    logger.info("Run enqueued: run_id=%s task_id=%s", run_id, task_id)


def create_run(
    session_factory: SessionFactory,
    *,
    domain: str,
    trigger_type: TriggerType,
    email: str | None = None,
    account_id: uuid.UUID | None = None,
    subscription_id: uuid.UUID | None = None,
    enqueue: Enqueuer | None = None,
) -> uuid.UUID:
    """
    pending 런 생성·커밋 후 큐 적재. email이 주어지면 계정 lookup-or-create.
    최초 스캔·수동 호출용. 재스캔·스케줄은 정책 검사와 같은 트랜잭션에서 직접 생성.
    """
    if account_id is None and not email:
        raise InvalidScanRequest("Either email or account_id is required")
    with session_factory() as session:
        if account_id is None:
            account_id = get_or_create_account_sync(session, email, domain).id
        run = create_scan_run_sync(
            session,
            account_id=account_id,
            domain=domain,
            trigger_type=trigger_type,
            subscription_id=subscription_id,
        )
        run_id = run.id
    logger.info("Run created: run_id=%s domain=%s trigger=%s", run_id, domain, trigger_type.value)
    _enqueue(session_factory, run_id, enqueue)
    return run_id


def start_first_touch_scan(
    session_factory: SessionFactory,
    email: str,
    domain: str,
    *,
    enqueue: Enqueuer | None = None,
) -> uuid.UUID:
    """익명 방문자 최초 스캔. 검증 실패 시 아무것도 쓰지 않음."""
    email = validate_email(email)
    domain = normalize_domain(domain)
    return create_run(
        session_factory,
        domain=domain,
        trigger_type=TriggerType.AUTOMATIC,
        email=email,
        enqueue=enqueue,
    )


def _cooldown_from(last_manual_at: datetime | None, now: datetime) -> tuple[int, datetime] | None:
    """쿨다운 중이면 (남은 초, 종료 시각), 아니면 None."""
    if last_manual_at is None:
        return None
    ends_at = ensure_utc(last_manual_at) + timedelta(hours=settings.rescan_cooldown_hours)
    remaining = (ends_at - ensure_utc(now)).total_seconds()
    if remaining <= 0:
        return None
    return math.ceil(remaining), ends_at


def request_rescan(
    session_factory: SessionFactory,
    account_id: uuid.UUID,
    subscription_id: uuid.UUID,
    *,
    now: datetime | None = None,
    enqueue: Enqueuer | None = None,
) -> uuid.UUID:
    """
    수동 재스캔. 존재 → 소유 → active → 진행 중 런 → 24시간 쿨다운 순으로 검사.
    구독 행을 잠근 트랜잭션 안에서 검사·생성하므로 동시 요청이 둘 다 통과하지 않음.
    """
    now = now or datetime.now(UTC)
    with session_factory() as session:
        subscription = get_subscription_sync(session, subscription_id, for_update=True)
        if subscription is None:
            raise SubscriptionNotFound(f"Subscription not found: {subscription_id}")
        if subscription.account_id != account_id:
            raise NotSubscriptionOwner("Subscription belongs to another account")
        if subscription.status != SUBSCRIPTION_ACTIVE:
            raise SubscriptionInactive(f"Subscription is {subscription.status}")
        in_flight = find_in_flight_run_sync(session, subscription_id)
        if in_flight is not None:
            raise ScanAlreadyRunning(in_flight.id)
        last_manual = get_latest_manual_run_sync(session, subscription_id)
        cooldown = _cooldown_from(last_manual.created_at if last_manual else None, now)
        if cooldown is not None:
            raise CooldownActive(*cooldown)
        run = create_scan_run_sync(
            session,
            account_id=subscription.account_id,
            domain=subscription.domain,
            trigger_type=TriggerType.MANUAL,
            subscription_id=subscription_id,
        )
        run.created_at = now
        run_id = run.id
    logger.info("Rescan accepted: run_id=%s subscription_id=%s", run_id, subscription_id)
    _enqueue(session_factory, run_id, enqueue)
    return run_id


def get_cooldown_state(
    session_factory: SessionFactory,
    subscription_id: uuid.UUID,
    *,
    account_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> CooldownState:
    """재스캔 가능 여부(저장하지 않는 파생 값). account_id가 주어지면 소유권도 검사."""
    now = now or datetime.now(UTC)
    with session_factory() as session:
        subscription = get_subscription_sync(session, subscription_id)
        if subscription is None:
            raise SubscriptionNotFound(f"Subscription not found: {subscription_id}")
        if account_id is not None and subscription.account_id != account_id:
            raise NotSubscriptionOwner("Subscription belongs to another account")
        in_flight = find_in_flight_run_sync(session, subscription_id)
        in_flight_id = in_flight.id if in_flight is not None else None
        last_manual = get_latest_manual_run_sync(session, subscription_id)
        last_manual_at = ensure_utc(last_manual.created_at) if last_manual else None
        active = subscription.status == SUBSCRIPTION_ACTIVE

    cooldown = _cooldown_from(last_manual_at, now)
    base = {
        "scan_in_progress": in_flight_id is not None,
        "scan_id": in_flight_id,
        "last_manual_scan_at": last_manual_at,
    }
    if not active:
        return CooldownState(can_trigger=False, reason=SubscriptionInactive.reason, **base)
    if in_flight_id is not None:
        return CooldownState(can_trigger=False, reason=ScanAlreadyRunning.reason, **base)
    if cooldown is not None:
        retry_after, ends_at = cooldown
        return CooldownState(
            can_trigger=False,
            reason=CooldownActive.reason,
            retry_after_seconds=retry_after,
            cooldown_ends_at=ends_at,
            **base,
        )
    return CooldownState(can_trigger=True, **base)


def _schedule_matches(day: int, hour: int, tz_name: str, now: datetime) -> bool:
    """구독 타임존 기준 로컬 요일(0=일)·시각이 스케줄과 같은지."""
    local = ensure_utc(now).astimezone(ZoneInfo(tz_name))
    local_day = (local.weekday() + 1) % 7
    return local_day == day and local.hour == hour


def dispatch_scheduled_scans(
    session_factory: SessionFactory,
    *,
    now: datetime | None = None,
    enqueue: Enqueuer | None = None,
) -> list[uuid.UUID]:
    """
    매시 실행. 스케줄이 현재 로컬 시각과 맞는 active 구독마다 scheduled 런 생성.
    진행 중 런이 있거나 최근 1시간 안에 이미 생성된 구독은 건너뜀.
    구독 1건 실패가 나머지를 막지 않음.
    """
    now = now or datetime.now(UTC)
    with session_factory() as session:
        due: list[tuple[uuid.UUID, uuid.UUID, str]] = []
        for sub in list_active_subscriptions_sync(session):
            try:
                matches = _schedule_matches(sub.scan_schedule_day, sub.scan_schedule_hour, sub.scan_timezone, now)
            except (ZoneInfoNotFoundError, ValueError) as e:
                logger.warning("Invalid schedule timezone: subscription_id=%s tz=%s error=%s", sub.id, sub.scan_timezone, e)
                continue
            if matches:
                due.append((sub.id, sub.account_id, sub.domain))

    created: list[uuid.UUID] = []
    for subscription_id, account_id, domain in due:
        try:
            with session_factory() as session:
                if find_in_flight_run_sync(session, subscription_id) is not None:
                    logger.info("Scheduled scan skipped (in flight): subscription_id=%s", subscription_id)
                    continue
                if has_run_since_sync(session, subscription_id, TriggerType.SCHEDULED, now - timedelta(hours=1)):
                    logger.info("Scheduled scan skipped (already dispatched): subscription_id=%s", subscription_id)
                    continue
                run = create_scan_run_sync(
                    session,
                    account_id=account_id,
                    domain=domain,
                    trigger_type=TriggerType.SCHEDULED,
                    subscription_id=subscription_id,
                )
                run.created_at = now
                run_id = run.id
            _enqueue(session_factory, run_id, enqueue)
            created.append(run_id)
        except Exception:
            logger.exception("Scheduled scan dispatch failed: subscription_id=%s", subscription_id)
    logger.info("Scheduled scans dispatched: due=%d created=%d", len(due), len(created))
    return created


def estimate_seconds_remaining(status: str, progress: int) -> int:
    estimate = ESTIMATED_SECONDS.get(status, 0)
    if status == RunStatus.QUERYING.value and progress > QUERY_PROGRESS_START:
        span = QUERY_PROGRESS_END - QUERY_PROGRESS_START
        fraction = min(1.0, (progress - QUERY_PROGRESS_START) / span)
        estimate = math.ceil(estimate * (1 - fraction))
    return max(0, estimate)


def get_run_status(session_factory: SessionFactory, run_id: uuid.UUID) -> RunStatusView:
    """폴링용 런 상태. error는 failed일 때만, report_token은 complete일 때만."""
    with session_factory() as session:
        run = get_scan_run_sync(session, run_id)
        if run is None:
            raise RunNotFound(f"Scan not found: {run_id}")
        report_token = None
        if run.status == RunStatus.COMPLETE.value:
            report = get_report_for_run_sync(session, run.id)
            report_token = report.url_token if report else None
        return RunStatusView(
            scan_id=run.id,
            domain=run.domain,
            status=run.status,
            progress=run.progress,
            status_message=STATUS_MESSAGES.get(run.status, "Processing..."),
            estimated_seconds_remaining=estimate_seconds_remaining(run.status, run.progress),
            error=run.error_message if run.status == RunStatus.FAILED.value else None,
            report_token=report_token,
        )


def reap_stale_runs(session_factory: SessionFactory, *, now: datetime | None = None) -> int:
    """하드 타임 리밋 + 유예를 넘긴 비종료 런을 failed로. 정리한 건수 반환."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(seconds=settings.run_hard_time_limit_seconds + STALE_RUN_GRACE_SECONDS)
    with session_factory() as session:
        stale_ids = [run.id for run in list_stale_runs_sync(session, cutoff)]
    reaped = 0
    for run_id in stale_ids:
        if fail_run(session_factory, run_id, STALE_RUN_MESSAGE, now=now):
            reaped += 1
    if reaped:
        logger.warning("Reaped stale runs: count=%d", reaped)
    return reaped
