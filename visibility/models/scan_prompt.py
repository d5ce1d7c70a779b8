"""ScanPrompt 모델. 생성된 질문 1개 = 1행."""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from visibility.models.base import Base


class PromptCategory(StrEnum):
    GENERAL = "general"
    LOCATION = "location"
    SERVICE = "service"
    COMPARISON = "comparison"
    RECOMMENDATION = "recommendation"


class ScanPrompt(Base):
    __tablename__ = "scan_prompts"
    __table_args__ = (Index("ix_scan_prompts_run_sort", "run_id", "sort_order"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("scan_runs.id", ondelete="CASCADE"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    prompt_text: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default=PromptCategory.GENERAL.value)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
