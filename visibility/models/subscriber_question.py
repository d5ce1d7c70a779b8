"""SubscriberQuestion 모델. 구독자 고정 질문 세트(주간 점수 비교용). 편집 CRUD는 관리 API 소관."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility.models.base import Base
from visibility.models.scan_prompt import PromptCategory

QUESTION_SOURCE_AI = "ai_generated"
QUESTION_SOURCE_USER = "user_created"


class SubscriberQuestion(Base):
    __tablename__ = "subscriber_questions"
    __table_args__ = (
        Index("ix_subscriber_questions_active", "subscription_id", "is_active", "is_archived"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prompt_text: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default=PromptCategory.GENERAL.value)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default=QUESTION_SOURCE_USER)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # 시드한 런. 런이 지워져도 질문은 유지.
    source_run_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("scan_runs.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
