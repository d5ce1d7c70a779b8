"""ScanRun(스캔 실행) 모델과 상태 머신 상수. 계정·도메인별 append-only 이력."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visibility.models.account import Account

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from visibility.models.base import Base


class RunStatus(StrEnum):
    PENDING = "pending"
    CRAWLING = "crawling"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    QUERYING = "querying"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class TriggerType(StrEnum):
    AUTOMATIC = "automatic"  # 익명 방문자 최초 스캔
    MANUAL = "manual"  # 구독자 수동 재스캔 (쿨다운 대상)
    SCHEDULED = "scheduled"  # 주간 크론


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETE, RunStatus.FAILED})
NON_TERMINAL_STATUSES = tuple(s.value for s in RunStatus if s not in TERMINAL_STATUSES)

# 정방향 순서. failed는 비종료 상태 어디서든 진입 가능.
STATUS_ORDER: tuple[RunStatus, ...] = (
    RunStatus.PENDING,
    RunStatus.CRAWLING,
    RunStatus.ANALYZING,
    RunStatus.GENERATING,
    RunStatus.QUERYING,
    RunStatus.COMPLETE,
)

# 단계 진입 시 진행률. querying은 50에서 시작해 QUERY_PROGRESS_END까지 선형 증가.
STAGE_PROGRESS: dict[RunStatus, int] = {
    RunStatus.PENDING: 0,
    RunStatus.CRAWLING: 10,
    RunStatus.ANALYZING: 25,
    RunStatus.GENERATING: 40,
    RunStatus.QUERYING: 50,
    RunStatus.COMPLETE: 100,
}
QUERY_PROGRESS_START = 50
QUERY_PROGRESS_END = 85


def can_transition(current: RunStatus | str, target: RunStatus | str) -> bool:
    """단방향 전이 검사. 같은 상태 유지(querying 진행률 갱신)는 비종료 상태에서만 허용."""
    current = RunStatus(current)
    target = RunStatus(target)
    if current.is_terminal:
        return False
    if target is RunStatus.FAILED:
        return True
    return STATUS_ORDER.index(target) >= STATUS_ORDER.index(current)


def querying_progress(completed: int, total: int) -> int:
    """완료 비율을 50–85 구간에 선형 매핑."""
    if total <= 0:
        return QUERY_PROGRESS_END
    span = QUERY_PROGRESS_END - QUERY_PROGRESS_START
    fraction = min(max(completed, 0), total) / total
    return QUERY_PROGRESS_START + int(fraction * span + 0.5)


class ScanRun(Base):
    """스캔 1회 실행. 디스패치 게이트웨이가 생성, 오케스트레이터만 변경. 삭제하지 않음."""

    __tablename__ = "scan_runs"
    __table_args__ = (
        # 진행 중 런 검사·쿨다운 조회용.
        Index("ix_scan_runs_subscription_status", "subscription_id", "status"),
        Index("ix_scan_runs_subscription_trigger_created", "subscription_id", "trigger_type", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
    )
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RunStatus.PENDING.value, index=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trigger_type: Mapped[str] = mapped_column(String(32), nullable=False, default=TriggerType.AUTOMATIC.value)
    celery_task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    account: Mapped["Account"] = relationship("Account", back_populates="scan_runs")
