"""Account(리드) 모델. 익명 방문자가 (email, domain)으로 최초 스캔 시 생성."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visibility.models.scan_run import ScanRun
    from visibility.models.subscription import Subscription

from sqlalchemy import DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from visibility.models.base import Base


class Account(Base):
    """이메일+도메인 단위 계정. 인증·결제 정보는 외부 서비스 소관."""

    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("email", "domain", name="uq_account_email_domain"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    subscriptions: Mapped[list["Subscription"]] = relationship(
        "Subscription", back_populates="account"
    )
    scan_runs: Mapped[list["ScanRun"]] = relationship("ScanRun", back_populates="account")
