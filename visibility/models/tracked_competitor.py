"""TrackedCompetitor 모델. 구독자가 등록한 경쟁사 이름(CRUD는 관리 API 소관)."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visibility.models.subscription import Subscription

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from visibility.models.base import Base


class TrackedCompetitor(Base):
    __tablename__ = "tracked_competitors"
    __table_args__ = (
        UniqueConstraint("subscription_id", "name", name="uq_tracked_competitor_subscription_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    subscription: Mapped["Subscription"] = relationship(
        "Subscription", back_populates="tracked_competitors"
    )
