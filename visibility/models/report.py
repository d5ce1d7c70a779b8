"""Report 모델. 런이 complete일 때만 존재, 생성 후 불변. url_token으로 비인증 조회."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility.models.base import Base, JSONType


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("scan_runs.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    url_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    visibility_score: Mapped[int] = mapped_column(Integer, nullable=False)
    # 위치 가중 점수(0–100). 전체 점수와 별도로 보고.
    prominence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # {"chatgpt": 40, "claude": 33, ...}
    platform_scores: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    # 공개 리포트용 상위 5개 / 내부 경쟁사 추적용 상위 20개. [{"name", "count"}]
    top_competitors: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    all_competitors: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    total_mentions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_queries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_queries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # 무료(구독 없는) 런만 만료. 구독 런은 NULL.
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
