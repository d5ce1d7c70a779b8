"""
스캔 파이프라인 통합 테스트. SQLite + 가짜 크롤러·LLM·플랫폼.
acme-plumbing.com, 질문 9개 × 플랫폼 3개, 그중 2개 실패 → 27행, complete.
"""

import json
import uuid

import pytest
from sqlalchemy import func, select

from visibility.core.config import settings
from visibility.models import (
    PlatformResponse,
    Report,
    ScanPrompt,
    ScanRun,
    ScoreHistory,
    SiteAnalysis,
    SubscriberQuestion,
    TrackedCompetitor,
)
from visibility.models.scan_run import RunStatus, TriggerType
from visibility.services.dispatch_service import start_first_touch_scan
from visibility.services.orchestrator import (
    INTERRUPTED_MESSAGE,
    InvalidTransition,
    ScanPipeline,
    _QueryProgressWriter,
    transition,
)

DOMAIN = "acme-plumbing.com"
ANALYSIS_JSON = json.dumps(
    {
        "business_name": "Acme Plumbing Co",
        "business_type": "plumbing services",
        "services": ["Blocked drains", "Hot water systems"],
        "location": "Sydney, Australia",
        "industry": "Home Services",
    }
)
PROMPT_TEXTS = [f"Question {i}: who is a good plumber in Sydney?" for i in range(9)]
PROMPTS_JSON = json.dumps([{"text": t, "category": "location"} for t in PROMPT_TEXTS])
CFG = settings.model_copy(update={"prompt_count": 9, "progress_write_interval_seconds": 0.0})


class RecordingPipeline(ScanPipeline):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.progress_writes: list[int] = []

    def write_query_progress(self, run_id, value):
        self.progress_writes.append(value)
        super().write_query_progress(run_id, value)


@pytest.fixture
def roster(fake_platform_client):
    return [
        fake_platform_client(
            "chatgpt",
            lambda p: "I recommend Acme Plumbing for this. Also, RotoRooter is a popular choice.",
        ),
        fake_platform_client("claude", lambda p: "You could try FlowFix Plumbing for quick service."),
        fake_platform_client(
            "gemini",
            lambda p: "There are many options available.",
            fail_on={PROMPT_TEXTS[2], PROMPT_TEXTS[5]},
        ),
    ]


@pytest.fixture
def sent():
    return []


@pytest.fixture
def build_pipeline(session_factory, fake_crawler, fake_analysis_client, page_factory, roster, sent):
    def _build(*, crawler=None, analysis_client=None, send_task=None, platform_clients=None, cls=ScanPipeline):
        return cls(
            session_factory,
            crawler=crawler or fake_crawler([page_factory("/"), page_factory("/services")]),
            analysis_client=analysis_client or fake_analysis_client(ANALYSIS_JSON, PROMPTS_JSON),
            platform_clients=platform_clients or roster,
            send_task=send_task or (lambda name, kwargs: sent.append((name, kwargs))),
            cfg=CFG,
        )

    return _build


def _count(session, model, run_id) -> int:
    return session.execute(select(func.count()).select_from(model).where(model.run_id == run_id)).scalar_one()


def _first_touch(session_factory) -> uuid.UUID:
    return start_first_touch_scan(session_factory, "owner@acme-plumbing.com", DOMAIN, enqueue=lambda run_id: "task-1")


def test_full_scan_completes_with_partial_failures(session_factory, build_pipeline, sent) -> None:
    run_id = _first_touch(session_factory)
    status = build_pipeline().execute(run_id)
    assert status is RunStatus.COMPLETE

    with session_factory() as session:
        run = session.get(ScanRun, run_id)
        assert run.status == "complete"
        assert run.progress == 100
        assert run.started_at is not None and run.completed_at is not None
        assert run.error_message is None

        assert _count(session, ScanPrompt, run_id) == 9
        assert _count(session, PlatformResponse, run_id) == 27
        failed = session.execute(
            select(func.count())
            .select_from(PlatformResponse)
            .where(PlatformResponse.run_id == run_id, PlatformResponse.error_message.is_not(None))
        ).scalar_one()
        assert failed == 2

        analysis = session.execute(select(SiteAnalysis).where(SiteAnalysis.run_id == run_id)).scalar_one()
        assert analysis.business_name == "Acme Plumbing Co"
        assert analysis.pages_crawled == 2

        report = session.execute(select(Report).where(Report.run_id == run_id)).scalar_one()
        assert report.visibility_score == 36
        assert report.visibility_score > 25
        assert report.platform_scores == {"chatgpt": 100, "claude": 0, "gemini": 0}
        assert report.total_queries == 25
        assert report.failed_queries == 2
        assert report.top_competitors[0] == {"name": "RotoRooter", "count": 9}
        assert report.expires_at is not None
        url_token = report.url_token

    assert len(sent) == 1
    task_name, event = sent[0]
    assert task_name == settings.notification_task_name
    assert event["email"] == "owner@acme-plumbing.com"
    assert event["overall_score"] == 36
    assert event["report_url"].endswith(f"/report/{url_token}")


def test_analysis_failure_fails_run_without_later_rows(
    session_factory, build_pipeline, fake_analysis_client, roster, sent
) -> None:
    run_id = _first_touch(session_factory)
    pipeline = build_pipeline(analysis_client=fake_analysis_client(ANALYSIS_JSON, PROMPTS_JSON, fail=True))
    assert pipeline.execute(run_id) is RunStatus.FAILED

    with session_factory() as session:
        run = session.get(ScanRun, run_id)
        assert run.status == "failed"
        assert "Analysis call failed" in run.error_message
        assert run.completed_at is not None
        for model in (SiteAnalysis, ScanPrompt, PlatformResponse, Report):
            assert _count(session, model, run_id) == 0
    assert all(not client.calls for client in roster)
    assert sent == []


def test_zero_pages_still_completes(session_factory, build_pipeline, fake_crawler, fake_analysis_client) -> None:
    run_id = _first_touch(session_factory)
    analysis_client = fake_analysis_client(ANALYSIS_JSON, PROMPTS_JSON)
    status = build_pipeline(crawler=fake_crawler([]), analysis_client=analysis_client).execute(run_id)
    assert status is RunStatus.COMPLETE
    assert "could not retrieve any pages" in analysis_client.prompts[0]
    with session_factory() as session:
        analysis = session.execute(select(SiteAnalysis).where(SiteAnalysis.run_id == run_id)).scalar_one()
        assert analysis.pages_crawled == 0


def test_query_progress_is_monotonic(session_factory, build_pipeline) -> None:
    run_id = _first_touch(session_factory)
    pipeline = build_pipeline(cls=RecordingPipeline)
    assert pipeline.execute(run_id) is RunStatus.COMPLETE
    writes = pipeline.progress_writes
    assert writes, "querying progress should be written"
    assert writes == sorted(set(writes))
    assert writes[-1] == 85
    assert all(50 < w <= 85 for w in writes)


def test_progress_writer_throttles_but_always_writes_final() -> None:
    class Sink:
        def __init__(self):
            self.values = []

        def write_query_progress(self, run_id, value):
            self.values.append(value)

    sink = Sink()
    writer = _QueryProgressWriter(sink, uuid.uuid4(), interval=10.0, clock=lambda: 0.0)
    for done in range(1, 28):
        writer(done, 27)
    writer(27, 27)
    assert sink.values == [51, 85]


def test_transition_rules() -> None:
    run = ScanRun(id=uuid.uuid4(), status="querying", progress=80)
    transition(run, RunStatus.QUERYING, now=None, progress=60)
    assert run.progress == 80
    with pytest.raises(InvalidTransition):
        transition(run, RunStatus.CRAWLING, now=None)
    transition(run, RunStatus.FAILED, now=None, error_message="x" * 5000)
    assert len(run.error_message) == 2000
    with pytest.raises(InvalidTransition):
        transition(run, RunStatus.COMPLETE, now=None)


def test_terminal_run_is_not_rerun(session_factory, make_run, build_pipeline, fake_crawler) -> None:
    run_id = make_run(status=RunStatus.COMPLETE, progress=100)
    crawler = fake_crawler()
    assert build_pipeline(crawler=crawler).execute(run_id) is RunStatus.COMPLETE
    assert crawler.domains == []


def test_mid_pipeline_run_is_marked_interrupted(session_factory, make_run, build_pipeline, fake_crawler) -> None:
    run_id = make_run(status=RunStatus.QUERYING, progress=60)
    crawler = fake_crawler()
    assert build_pipeline(crawler=crawler).execute(run_id) is RunStatus.FAILED
    assert crawler.domains == []
    with session_factory() as session:
        run = session.get(ScanRun, run_id)
        assert run.status == "failed"
        assert run.error_message == INTERRUPTED_MESSAGE


def test_missing_run_is_reported_failed(build_pipeline) -> None:
    assert build_pipeline().execute(uuid.uuid4()) is RunStatus.FAILED


def test_notification_failure_keeps_run_complete(session_factory, build_pipeline) -> None:
    def broken_send(name, kwargs):
        raise ConnectionError("broker down")

    run_id = _first_touch(session_factory)
    assert build_pipeline(send_task=broken_send).execute(run_id) is RunStatus.COMPLETE
    with session_factory() as session:
        assert session.get(ScanRun, run_id).status == "complete"


def test_subscription_run_records_history_and_uses_tracked_competitors(
    session_factory, make_subscription, make_run, build_pipeline, roster
) -> None:
    subscription_id = make_subscription()
    with session_factory() as session:
        session.add(TrackedCompetitor(subscription_id=subscription_id, name="FlowFix Plumbing"))
    run_id = make_run(subscription_id=subscription_id, trigger_type=TriggerType.MANUAL)

    assert build_pipeline().execute(run_id) is RunStatus.COMPLETE
    with session_factory() as session:
        report = session.execute(select(Report).where(Report.run_id == run_id)).scalar_one()
        assert report.expires_at is None
        history = session.execute(select(ScoreHistory).where(ScoreHistory.run_id == run_id)).scalar_one()
        assert history.visibility_score == report.visibility_score
        assert history.subscription_id == subscription_id


def test_all_platform_calls_failing_still_completes(
    session_factory, build_pipeline, fake_platform_client, sent
) -> None:
    everything = set(PROMPT_TEXTS)
    down = [
        fake_platform_client(name, lambda p: "unused", fail_on=everything)
        for name in ("chatgpt", "claude", "gemini")
    ]
    run_id = _first_touch(session_factory)
    assert build_pipeline(platform_clients=down).execute(run_id) is RunStatus.COMPLETE

    with session_factory() as session:
        run = session.get(ScanRun, run_id)
        assert run.status == "complete"
        assert run.progress == 100
        assert _count(session, PlatformResponse, run_id) == len(PROMPT_TEXTS) * len(down)
        report = session.execute(select(Report).where(Report.run_id == run_id)).scalar_one()
        assert report.visibility_score == 0
        assert report.total_queries == 0
        assert report.failed_queries == len(PROMPT_TEXTS) * len(down)
        assert report.platform_scores == {"chatgpt": 0, "claude": 0, "gemini": 0}
    assert len(sent) == 1


@pytest.mark.parametrize(
    "prompts_json, message",
    [
        ("[]", "zero prompts"),
        ('[{"text": "   "}, {"category": "location"}]', "zero prompts"),
        ("Sorry, I cannot help with that.", "No JSON array"),
    ],
)
def test_prompt_generation_failure_fails_run(
    session_factory, build_pipeline, fake_analysis_client, roster, sent, prompts_json, message
) -> None:
    run_id = _first_touch(session_factory)
    pipeline = build_pipeline(analysis_client=fake_analysis_client(ANALYSIS_JSON, prompts_json))
    assert pipeline.execute(run_id) is RunStatus.FAILED

    with session_factory() as session:
        run = session.get(ScanRun, run_id)
        assert run.status == "failed"
        assert "PromptGenerationError" in run.error_message
        assert message in run.error_message
        assert _count(session, SiteAnalysis, run_id) == 1
        for model in (ScanPrompt, PlatformResponse, Report):
            assert _count(session, model, run_id) == 0
    assert all(not client.calls for client in roster)
    assert sent == []


def test_first_subscription_run_seeds_subscriber_questions(
    session_factory, make_subscription, make_run, build_pipeline
) -> None:
    subscription_id = make_subscription()
    run_id = make_run(subscription_id=subscription_id, trigger_type=TriggerType.SCHEDULED)
    assert build_pipeline().execute(run_id) is RunStatus.COMPLETE

    with session_factory() as session:
        questions = (
            session.execute(
                select(SubscriberQuestion)
                .where(SubscriberQuestion.subscription_id == subscription_id)
                .order_by(SubscriberQuestion.sort_order)
            )
            .scalars()
            .all()
        )
        assert [q.prompt_text for q in questions] == PROMPT_TEXTS
        assert [q.sort_order for q in questions] == list(range(len(PROMPT_TEXTS)))
        assert all(q.source == "ai_generated" and q.is_active for q in questions)
        assert all(q.source_run_id == run_id for q in questions)
        assert all(q.category == "location" for q in questions)


def test_subscription_run_reuses_active_subscriber_questions(
    session_factory, make_subscription, make_run, build_pipeline, fake_analysis_client, roster
) -> None:
    subscription_id = make_subscription()
    with session_factory() as session:
        session.add_all(
            [
                SubscriberQuestion(
                    subscription_id=subscription_id,
                    prompt_text="Best emergency plumber in Sydney?",
                    category="location",
                    sort_order=1,
                ),
                SubscriberQuestion(
                    subscription_id=subscription_id,
                    prompt_text="Who fixes blocked drains fast?",
                    category="made-up",
                    sort_order=0,
                ),
                SubscriberQuestion(
                    subscription_id=subscription_id,
                    prompt_text="Archived question",
                    is_archived=True,
                    sort_order=2,
                ),
                SubscriberQuestion(
                    subscription_id=subscription_id,
                    prompt_text="Paused question",
                    is_active=False,
                    sort_order=3,
                ),
            ]
        )
    run_id = make_run(subscription_id=subscription_id, trigger_type=TriggerType.MANUAL)
    analysis_client = fake_analysis_client(ANALYSIS_JSON, PROMPTS_JSON)

    assert build_pipeline(analysis_client=analysis_client).execute(run_id) is RunStatus.COMPLETE
    # 분석 호출 1회만, 질문 생성 호출 없음.
    assert len(analysis_client.prompts) == 1
    assert sorted(roster[0].calls) == ["Best emergency plumber in Sydney?", "Who fixes blocked drains fast?"]

    with session_factory() as session:
        prompts = (
            session.execute(select(ScanPrompt).where(ScanPrompt.run_id == run_id).order_by(ScanPrompt.sort_order))
            .scalars()
            .all()
        )
        assert [p.prompt_text for p in prompts] == [
            "Who fixes blocked drains fast?",
            "Best emergency plumber in Sydney?",
        ]
        assert [p.category for p in prompts] == ["general", "location"]
        assert _count(session, PlatformResponse, run_id) == 2 * len(roster)
        total_questions = session.execute(
            select(func.count())
            .select_from(SubscriberQuestion)
            .where(SubscriberQuestion.subscription_id == subscription_id)
        ).scalar_one()
        assert total_questions == 4


def test_first_touch_run_does_not_seed_questions(session_factory, build_pipeline) -> None:
    run_id = _first_touch(session_factory)
    assert build_pipeline().execute(run_id) is RunStatus.COMPLETE
    with session_factory() as session:
        assert session.execute(select(func.count()).select_from(SubscriberQuestion)).scalar_one() == 0
