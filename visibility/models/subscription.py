"""Subscription(도메인 구독) 모델. 결제 수명주기는 빌링 서비스가 관리, 여기서는 읽기만."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visibility.models.account import Account
    from visibility.models.tracked_competitor import TrackedCompetitor

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from visibility.models.base import Base

SUBSCRIPTION_ACTIVE = "active"


class Subscription(Base):
    """모니터링 도메인 1개 = 구독 1건. 주간 자동 스캔 스케줄(로컬 요일·시각) 포함."""

    __tablename__ = "subscriptions"
    __table_args__ = (UniqueConstraint("account_id", "domain", name="uq_subscription_account_domain"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    tier: Mapped[str] = mapped_column(String(32), nullable=False, default="starter")
    # active | canceled | past_due | trialing | incomplete
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=SUBSCRIPTION_ACTIVE, index=True)

    # 0=일 ... 6=토. 시각은 scan_timezone 기준 로컬 시각.
    scan_schedule_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    scan_schedule_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=9)
    scan_timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Australia/Sydney")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    account: Mapped["Account"] = relationship("Account", back_populates="subscriptions")
    tracked_competitors: Mapped[list["TrackedCompetitor"]] = relationship(
        "TrackedCompetitor", back_populates="subscription"
    )
