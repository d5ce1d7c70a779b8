"""SQLAlchemy Declarative Base 및 공통 컬럼 타입."""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# PostgreSQL은 JSONB, 그 외(테스트 SQLite)는 JSON.
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """공통 베이스 클래스."""

    pass
