"""PlatformResponse 모델. (run, prompt, platform) 조합당 정확히 1행, 실패 포함."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility.models.base import Base, JSONType


class PlatformResponse(Base):
    __tablename__ = "platform_responses"
    __table_args__ = (
        UniqueConstraint("run_id", "prompt_id", "platform", name="uq_platform_response_run_prompt_platform"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("scan_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prompt_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("scan_prompts.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    # 실패 시 NULL.
    response_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    domain_mentioned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 응답 전체를 3등분했을 때 첫 언급 위치(1..3). 미언급·판정 불가면 NULL.
    mention_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # [{"name": str, "count": int}, ...]
    competitors_mentioned: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    response_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
