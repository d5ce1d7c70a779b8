"""Pytest fixtures. 테스트 시 외부 DB·Redis·LLM 없이 실행 가능하도록 환경 조정."""

import os
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

# CI에서 DATABASE_URL이 주입되면 그대로 사용. 로컬에서 비어 있으면 DB 없이 부팅 가능하도록 빈 문자열.
if not os.environ.get("DATABASE_URL"):
    os.environ["DATABASE_URL"] = ""
# Settings Fail-fast 대비: 테스트 시 필수 Auth env 설정
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-pytest")

from visibility.models import Account, Base, ScanRun, Subscription  # noqa: E402
from visibility.models.scan_run import RunStatus, TriggerType  # noqa: E402
from visibility.services.crawler import CrawledPage, CrawlResult  # noqa: E402
from visibility.services.platforms import PlatformError, PlatformReply  # noqa: E402


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "visibility-test.db"


@pytest.fixture
def sync_engine(db_path):
    """파일 SQLite. 스레드(asyncio.to_thread·팬아웃)에서 같이 쓰므로 check_same_thread 해제."""
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})

    # pysqlite 트랜잭션 처리 보정(SAVEPOINT 사용).
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sync_engine):
    """get_sync_session과 같은 계약(정상 종료 commit, 예외 rollback)의 테스트용 팩토리."""
    maker = sessionmaker(bind=sync_engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def _factory():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _factory


@pytest.fixture
def async_session_maker(sync_engine, db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def make_account(session_factory):
    def _make(email: str = "owner@example.com", domain: str = "acme-plumbing.com") -> uuid.UUID:
        with session_factory() as session:
            account = Account(email=email, domain=domain)
            session.add(account)
            session.flush()
            return account.id

    return _make


@pytest.fixture
def make_subscription(session_factory, make_account):
    def _make(
        account_id: uuid.UUID | None = None,
        *,
        domain: str = "acme-plumbing.com",
        status: str = "active",
        day: int = 1,
        hour: int = 9,
        tz: str = "UTC",
    ) -> uuid.UUID:
        account_id = account_id or make_account(email=f"owner-{uuid.uuid4().hex[:8]}@example.com", domain=domain)
        with session_factory() as session:
            sub = Subscription(
                account_id=account_id,
                domain=domain,
                status=status,
                scan_schedule_day=day,
                scan_schedule_hour=hour,
                scan_timezone=tz,
            )
            session.add(sub)
            session.flush()
            return sub.id

    return _make


@pytest.fixture
def make_run(session_factory, make_account):
    def _make(
        *,
        account_id: uuid.UUID | None = None,
        subscription_id: uuid.UUID | None = None,
        domain: str = "acme-plumbing.com",
        status: RunStatus = RunStatus.PENDING,
        trigger_type: TriggerType = TriggerType.AUTOMATIC,
        created_at: datetime | None = None,
        progress: int = 0,
    ) -> uuid.UUID:
        if account_id is None:
            if subscription_id is not None:
                with session_factory() as session:
                    account_id = session.get(Subscription, subscription_id).account_id
            else:
                account_id = make_account(email=f"lead-{uuid.uuid4().hex[:8]}@example.com", domain=domain)
        with session_factory() as session:
            run = ScanRun(
                account_id=account_id,
                subscription_id=subscription_id,
                domain=domain,
                status=status.value,
                progress=progress,
                trigger_type=trigger_type.value,
                created_at=created_at or datetime.now(UTC),
            )
            session.add(run)
            session.flush()
            return run.id

    return _make


class FakePlatformClient:
    """PlatformClient 대역. prompt 텍스트 → 응답 텍스트 함수, fail_on에 든 질문은 실패."""

    def __init__(self, name: str, answer, *, fail_on=()):
        self.name = name
        self.answer = answer
        self.fail_on = set(fail_on)
        self.calls: list[str] = []

    def query(self, prompt_text: str) -> PlatformReply:
        self.calls.append(prompt_text)
        if prompt_text in self.fail_on:
            return PlatformReply(text="", latency_ms=5, error=f"{self.name}: request timed out after 60s")
        return PlatformReply(text=self.answer(prompt_text), latency_ms=5)


class FakeAnalysisClient:
    """분석·질문 생성 LLM 대역. 프롬프트 종류에 따라 미리 준비한 응답 반환."""

    def __init__(self, analysis_json: str, prompts_json: str, *, fail: bool = False):
        self.analysis_json = analysis_json
        self.prompts_json = prompts_json
        self.fail = fail
        self.prompts: list[str] = []

    def complete(self, prompt: str, *, system=None, max_tokens=None) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise PlatformError("chatgpt: HTTP 500 upstream error")
        if "business analyst" in prompt:
            return self.analysis_json
        return self.prompts_json


class FakeCrawler:
    def __init__(self, pages: list[CrawledPage] | None = None):
        self.pages = pages or []
        self.domains: list[str] = []

    def crawl(self, domain: str) -> CrawlResult:
        self.domains.append(domain)
        return CrawlResult(domain=domain, pages=list(self.pages))


def crawled_page(path: str = "/", body: str = "Acme Plumbing fixes leaks in Sydney.") -> CrawledPage:
    return CrawledPage(
        url=f"https://acme-plumbing.com{path}",
        path=path,
        title="Acme Plumbing Co",
        description="Emergency plumbing in Sydney",
        h1="Acme Plumbing",
        headings=["Blocked drains", "Hot water"],
        body_text=body,
        word_count=len(body.split()),
    )


@pytest.fixture
def fake_platform_client():
    return FakePlatformClient


@pytest.fixture
def fake_analysis_client():
    return FakeAnalysisClient


@pytest.fixture
def fake_crawler():
    return FakeCrawler


@pytest.fixture
def page_factory():
    return crawled_page


@pytest.fixture
def client(session_factory, async_session_maker) -> TestClient:
    """FastAPI TestClient. 게이트웨이 세션 팩토리·조회 세션을 테스트 SQLite로 교체."""
    from visibility.core.database import get_db
    from visibility.core.deps import get_session_factory
    from visibility.main import app

    async def _get_db():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_token():
    """외부 인증 서비스가 발급하는 것과 같은 형태의 Access JWT. claim 값이 None이면 생략."""
    import jwt

    from visibility.core.config import settings

    def _make(sub: str, *, secret: str | None = None, **claims) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": sub,
            "type": "access",
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "iat": now,
            "exp": now + timedelta(minutes=15),
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        return jwt.encode(payload, secret or settings.jwt_secret.get_secret_value(), algorithm="HS256")

    return _make
