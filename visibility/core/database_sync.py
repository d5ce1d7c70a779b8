"""
동기 DB 연결. SQLAlchemy 2.0 + psycopg (sync).
Celery 워커(파이프라인)와 디스패치 게이트웨이 쓰기 경로 전용. 웹 조회는 asyncpg 모듈 사용.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from visibility.core.config import settings

logger = logging.getLogger(__name__)

# 세션 컨텍스트 팩토리 타입. 오케스트레이터·게이트웨이가 주입받아 테스트에서 SQLite로 교체.
SessionFactory = Callable[[], AbstractContextManager[Session]]

sync_engine = None
sync_session_factory = None


def sync_database_url() -> str | None:
    """asyncpg URL을 동기 드라이버(psycopg3)용으로 변환. 워커·마이그레이션 공용."""
    url = settings.database_url
    if not url:
        return None
    if "postgresql+asyncpg" in url:
        return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def init_sync_db() -> None:
    """DATABASE_URL이 있으면 동기 엔진·세션 팩토리 초기화."""
    global sync_engine, sync_session_factory
    url = sync_database_url()
    if not url:
        logger.warning("DATABASE_URL not set. Sync DB features disabled.")
        return
    sync_engine = create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=2,
        max_overflow=2,
    )
    sync_session_factory = sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """동기 세션 컨텍스트. 정상 종료 시 commit, 예외 시 rollback."""
    if not sync_session_factory:
        init_sync_db()
    if not sync_session_factory:
        raise RuntimeError("Sync database not initialized. Set DATABASE_URL.")
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_sync_engine() -> None:
    """앱 종료 시 동기 커넥션 풀 정리."""
    global sync_engine, sync_session_factory
    if sync_engine is not None:
        sync_engine.dispose()
    sync_engine = None
    sync_session_factory = None
