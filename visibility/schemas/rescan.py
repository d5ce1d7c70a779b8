"""수동 재스캔·쿨다운 상태 스키마."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class RescanRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subscription_id: uuid.UUID


class RescanAccepted(BaseModel):
    scan_id: uuid.UUID
    status: str = "pending"


class CooldownStateResponse(BaseModel):
    """재스캔 가능 여부. 불가 시 reason과 남은 시간(초)·종료 시각을 함께 반환."""

    can_trigger: bool
    reason: str | None = None
    retry_after_seconds: int | None = None
    cooldown_ends_at: datetime | None = None
    scan_in_progress: bool = False
    scan_id: uuid.UUID | None = None
    last_manual_scan_at: datetime | None = None
