"""SiteAnalysis 모델. 런당 1행, 생성 후 불변."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility.models.base import Base, JSONType

# 보관용 원문 발췌 상한(문자).
RAW_CONTENT_MAX_CHARS = 50_000


class SiteAnalysis(Base):
    """크롤 본문에서 LLM이 추출한 비즈니스 속성 + 원문 발췌."""

    __tablename__ = "site_analyses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("scan_runs.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    business_type: Mapped[str] = mapped_column(String(255), nullable=False)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    services: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    target_audience: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_phrases: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    industry: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pages_crawled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    raw_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
