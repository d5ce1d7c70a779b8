"""
스캔 파이프라인(상태 머신).
pending → crawling → analyzing → generating → querying → complete, 비종료 상태 어디서든 failed.
각 전이는 다음 단계 시작 전에 커밋. 단계 예외는 여기서 한 번만 잡아 failed로 기록하고
호출자에게 재전파하지 않음(자동 재시도 없음, 복구는 수동 재스캔).
"""

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError
from sqlalchemy.orm import Session

from visibility.core.config import Settings, settings
from visibility.core.database_sync import SessionFactory, get_sync_session
from visibility.models.account import Account
from visibility.models.scan_run import (
    STAGE_PROGRESS,
    RunStatus,
    ScanRun,
    can_transition,
    querying_progress,
)
from visibility.models.subscriber_question import SubscriberQuestion
from visibility.repositories.report_repository import (
    add_score_history_sync,
    create_report_sync,
    get_previous_score_sync,
)
from visibility.repositories.scan_result_repository import (
    save_platform_responses_sync,
    save_prompts_sync,
    save_site_analysis_sync,
)
from visibility.repositories.scan_run_repository import get_scan_run_sync
from visibility.repositories.subscription_repository import (
    list_active_questions_sync,
    list_tracked_competitor_names_sync,
    seed_questions_sync,
)
from visibility.schemas.analysis import GeneratedPrompt
from visibility.services.analyzer import analyze_content, raw_content_excerpt
from visibility.services.crawler import SiteCrawler, combine_content
from visibility.services.fanout import QueryFanout
from visibility.services.mentions import build_target
from visibility.services.notifier import SendTask, build_scan_complete_event, notify_scan_complete
from visibility.services.platforms import (
    PlatformClient,
    QueryClient,
    build_analysis_client,
    build_platform_roster,
)
from visibility.services.prompt_generator import generate_prompts
from visibility.services.scoring import ScoreResult, build_summary, compute_scores

logger = logging.getLogger(__name__)

# runs.error_message 저장 상한(문자).
ERROR_MESSAGE_MAX_CHARS = 2000

INTERRUPTED_MESSAGE = "Run was interrupted before completion"


class InvalidTransition(Exception):
    """허용되지 않는 상태 전이(역방향·종료 상태에서의 전이)."""

    pass


@dataclass(frozen=True)
class RunContext:
    """claim 시점에 읽은 런 정보. 세션 밖에서 단계 실행에 사용."""

    run_id: uuid.UUID
    account_id: uuid.UUID
    subscription_id: uuid.UUID | None
    domain: str
    email: str


def _utcnow() -> datetime:
    return datetime.now(UTC)


def questions_to_prompts(questions: Sequence[SubscriberQuestion]) -> list[GeneratedPrompt]:
    """구독자 질문 → GeneratedPrompt. 검증 실패(빈 문구·과도한 길이) 질문은 건너뜀."""
    prompts: list[GeneratedPrompt] = []
    for question in questions:
        try:
            prompts.append(GeneratedPrompt(text=question.prompt_text, category=question.category))
        except ValidationError:
            logger.warning("Subscriber question skipped: question_id=%s", question.id)
    return prompts


def transition(
    run: ScanRun,
    target: RunStatus,
    *,
    now: datetime,
    progress: int | None = None,
    error_message: str | None = None,
) -> None:
    """
    단방향 전이 적용(커밋은 호출 측). progress는 max(현재, 신규)로만 갱신.
    crawling 진입 시 started_at, 종료 상태 진입 시 completed_at 기록.
    """
    if not can_transition(run.status, target):
        raise InvalidTransition(f"Run {run.id}: {run.status} -> {target.value} is not allowed")
    run.status = target.value
    new_progress = STAGE_PROGRESS.get(target) if progress is None else progress
    if new_progress is not None:
        run.progress = max(run.progress or 0, new_progress)
    if target is RunStatus.CRAWLING and run.started_at is None:
        run.started_at = now
    if target.is_terminal:
        run.completed_at = now
    if error_message is not None:
        run.error_message = error_message[:ERROR_MESSAGE_MAX_CHARS]


def fail_run(
    session_factory: SessionFactory,
    run_id: uuid.UUID,
    message: str,
    *,
    now: datetime | None = None,
) -> bool:
    """런을 failed로 기록. 이미 종료 상태면 아무것도 하지 않고 False."""
    with session_factory() as session:
        run = get_scan_run_sync(session, run_id, for_update=True)
        if run is None:
            logger.warning("fail_run: run not found run_id=%s", run_id)
            return False
        if RunStatus(run.status).is_terminal:
            return False
        transition(run, RunStatus.FAILED, now=now or _utcnow(), error_message=message or "Unknown error")
    logger.info("Run failed: run_id=%s error=%s", run_id, (message or "")[:200])
    return True


class _QueryProgressWriter:
    """
    팬아웃 진행 콜백. 50–85 구간으로 매핑해 최소 간격마다 DB 기록.
    마지막 호출(completed == total)은 간격과 무관하게 기록. 감소 값은 기록하지 않음.
    """

    def __init__(
        self,
        pipeline: "ScanPipeline",
        run_id: uuid.UUID,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.pipeline = pipeline
        self.run_id = run_id
        self.interval = interval
        self.clock = clock
        self.written = STAGE_PROGRESS[RunStatus.QUERYING]
        self.last_write: float | None = None

    def __call__(self, completed: int, total: int) -> None:
        value = querying_progress(completed, total)
        now = self.clock()
        final = completed >= total
        if not final and self.last_write is not None and now - self.last_write < self.interval:
            return
        if value <= self.written:
            return
        self.pipeline.write_query_progress(self.run_id, value)
        self.written = value
        self.last_write = now


class ScanPipeline:
    """
    런 1건 실행기. 세션 팩토리·크롤러·LLM 클라이언트·알림 발행을 주입 가능.
    주입하지 않은 클라이언트는 execute 동안만 생성 후 닫음.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_sync_session,
        *,
        crawler: SiteCrawler | None = None,
        analysis_client: PlatformClient | None = None,
        platform_clients: Sequence[QueryClient] | None = None,
        send_task: SendTask | None = None,
        cfg: Settings = settings,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.crawler = crawler
        self.analysis_client = analysis_client
        self.platform_clients = list(platform_clients) if platform_clients is not None else None
        self.send_task = send_task
        self.cfg = cfg
        self.now = now

    def execute(self, run_id: uuid.UUID) -> RunStatus:
        """런 실행. 최종 상태 반환. 예외를 던지지 않음."""
        try:
            ctx, status = self._claim(run_id)
        except Exception as e:
            logger.exception("Run claim failed: run_id=%s", run_id)
            self._fail_quietly(run_id, f"{type(e).__name__}: {e}")
            return RunStatus.FAILED
        if ctx is None:
            return status

        owned: list[PlatformClient] = []
        try:
            result = self._run_stages(ctx, owned)
        except Exception as e:
            logger.exception("Run stage failed: run_id=%s domain=%s", run_id, ctx.domain)
            self._fail_quietly(run_id, f"{type(e).__name__}: {e}")
            return RunStatus.FAILED
        finally:
            for client in owned:
                client.close()

        self._after_complete(ctx, *result)
        return RunStatus.COMPLETE

    def _fail_quietly(self, run_id: uuid.UUID, message: str) -> None:
        try:
            fail_run(self.session_factory, run_id, message, now=self.now())
        except Exception:
            # DB까지 죽은 경우. 리퍼가 시간 초과 런으로 정리.
            logger.exception("Could not persist failed state: run_id=%s", run_id)

    def _claim(self, run_id: uuid.UUID) -> tuple[RunContext | None, RunStatus]:
        """pending 런만 crawling으로 전이 후 실행. 그 외 상태는 재실행하지 않음."""
        with self.session_factory() as session:
            run = get_scan_run_sync(session, run_id, for_update=True)
            if run is None:
                logger.warning("Run not found: run_id=%s", run_id)
                return None, RunStatus.FAILED
            status = RunStatus(run.status)
            if status.is_terminal:
                logger.info("Run already terminal, skipping: run_id=%s status=%s", run_id, status)
                return None, status
            if status is not RunStatus.PENDING:
                logger.warning("Run found mid-pipeline, marking interrupted: run_id=%s status=%s", run_id, status)
                transition(run, RunStatus.FAILED, now=self.now(), error_message=INTERRUPTED_MESSAGE)
                return None, RunStatus.FAILED
            account = session.get(Account, run.account_id)
            ctx = RunContext(
                run_id=run.id,
                account_id=run.account_id,
                subscription_id=run.subscription_id,
                domain=run.domain,
                email=account.email if account is not None else "",
            )
            transition(run, RunStatus.CRAWLING, now=self.now())
        logger.info("Stage start: run_id=%s stage=crawling domain=%s", run_id, ctx.domain)
        return ctx, RunStatus.CRAWLING

    def _advance(self, session: Session, run_id: uuid.UUID, target: RunStatus) -> None:
        run = get_scan_run_sync(session, run_id, for_update=True)
        if run is None:
            raise InvalidTransition(f"Run {run_id} disappeared")
        transition(run, target, now=self.now())

    def write_query_progress(self, run_id: uuid.UUID, value: int) -> None:
        with self.session_factory() as session:
            run = get_scan_run_sync(session, run_id, for_update=True)
            if run is None or run.status != RunStatus.QUERYING.value:
                return
            transition(run, RunStatus.QUERYING, now=self.now(), progress=value)

    def _run_stages(self, ctx: RunContext, owned: list[PlatformClient]) -> tuple[ScoreResult, str]:
        run_id = ctx.run_id

        crawler = self.crawler or SiteCrawler()
        crawl = crawler.crawl(ctx.domain)
        content = combine_content(crawl)
        with self.session_factory() as session:
            self._advance(session, run_id, RunStatus.ANALYZING)
        logger.info("Stage start: run_id=%s stage=analyzing pages=%d", run_id, crawl.page_count)

        analysis_client = self.analysis_client
        if analysis_client is None:
            analysis_client = build_analysis_client(self.cfg)
            owned.append(analysis_client)
        analysis = analyze_content(analysis_client, content, page_count=crawl.page_count)
        with self.session_factory() as session:
            save_site_analysis_sync(
                session,
                run_id,
                analysis,
                pages_crawled=crawl.page_count,
                raw_content=raw_content_excerpt(content),
            )
            self._advance(session, run_id, RunStatus.GENERATING)
        logger.info("Stage start: run_id=%s stage=generating", run_id)

        with self.session_factory() as session:
            prompts = questions_to_prompts(list_active_questions_sync(session, ctx.subscription_id))
        reused = bool(prompts)
        if reused:
            logger.info("Using subscriber questions: run_id=%s count=%d", run_id, len(prompts))
        else:
            prompts = generate_prompts(analysis_client, analysis, ctx.domain, count=self.cfg.prompt_count)
        with self.session_factory() as session:
            prompt_rows = save_prompts_sync(session, run_id, prompts)
            if ctx.subscription_id is not None and not reused:
                seeded = seed_questions_sync(session, ctx.subscription_id, prompts, source_run_id=run_id)
                if seeded:
                    logger.info("Subscriber questions seeded: run_id=%s count=%d", run_id, seeded)
            prompt_ids = [row.id for row in prompt_rows]
            known = list_tracked_competitor_names_sync(session, ctx.subscription_id)
            self._advance(session, run_id, RunStatus.QUERYING)

        clients = self.platform_clients
        if clients is None:
            built = build_platform_roster(self.cfg)
            owned.extend(built)
            clients = built
        platform_names = [c.name for c in clients]
        logger.info(
            "Stage start: run_id=%s stage=querying prompts=%d platforms=%s",
            run_id,
            len(prompts),
            ",".join(platform_names),
        )
        target = build_target(ctx.domain, analysis.business_name)
        progress = _QueryProgressWriter(self, run_id, self.cfg.progress_write_interval_seconds)
        outcomes = QueryFanout(clients).run(
            [p.text for p in prompts],
            target,
            known_competitors=known,
            on_progress=progress,
        )
        with self.session_factory() as session:
            save_platform_responses_sync(session, run_id, prompt_ids, outcomes)

        scores = compute_scores(outcomes, platform_names)
        summary = build_summary(
            scores,
            business_name=analysis.business_name,
            domain=ctx.domain,
            platforms=platform_names,
        )
        now = self.now()
        expires_at = (
            now + timedelta(days=self.cfg.free_report_expiry_days) if ctx.subscription_id is None else None
        )
        with self.session_factory() as session:
            report = create_report_sync(
                session,
                run_id,
                visibility_score=scores.overall_score,
                prominence_score=scores.prominence_score,
                platform_scores=scores.platform_scores,
                top_competitors=[c.as_dict() for c in scores.top_competitors],
                all_competitors=[c.as_dict() for c in scores.all_competitors],
                total_mentions=scores.total_mentions,
                total_queries=scores.total_queries,
                failed_queries=scores.failed_queries,
                summary=summary,
                expires_at=expires_at,
            )
            url_token = report.url_token
            self._advance(session, run_id, RunStatus.COMPLETE)
        logger.info(
            "Run complete: run_id=%s score=%d mentions=%d/%d failed=%d",
            run_id,
            scores.overall_score,
            scores.total_mentions,
            scores.total_queries,
            scores.failed_queries,
        )
        return scores, url_token

    def _after_complete(self, ctx: RunContext, scores: ScoreResult, url_token: str) -> None:
        """점수 이력·완료 알림. 둘 다 실패해도 런 상태는 complete 유지."""
        previous_score: int | None = None
        if ctx.subscription_id is not None:
            try:
                with self.session_factory() as session:
                    previous_score = get_previous_score_sync(
                        session, ctx.subscription_id, exclude_run_id=ctx.run_id
                    )
                    add_score_history_sync(
                        session,
                        subscription_id=ctx.subscription_id,
                        run_id=ctx.run_id,
                        visibility_score=scores.overall_score,
                        platform_scores=scores.platform_scores,
                        total_mentions=scores.total_mentions,
                        total_queries=scores.total_queries,
                    )
            except Exception:
                logger.warning("Score history write failed: run_id=%s", ctx.run_id, exc_info=True)

        if not ctx.email:
            return
        event = build_scan_complete_event(
            email=ctx.email,
            domain=ctx.domain,
            url_token=url_token,
            overall_score=scores.overall_score,
            run_id=ctx.run_id,
            previous_score=previous_score,
        )
        notify_scan_complete(event, self.send_task)


def process_scan(run_id: uuid.UUID | str) -> RunStatus:
    """워커 진입점. 문자열 id도 허용."""
    if isinstance(run_id, str):
        run_id = uuid.UUID(run_id)
    return ScanPipeline(get_sync_session).execute(run_id)
