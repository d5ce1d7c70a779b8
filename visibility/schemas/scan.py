"""스캔 생성·상태 조회 스키마."""

import uuid

from pydantic import BaseModel, ConfigDict, Field


class ScanCreateRequest(BaseModel):
    """최초 스캔 요청 (익명 방문자). 형식 검증은 디스패치 게이트웨이에서 수행."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., min_length=1, max_length=320)
    domain: str = Field(..., min_length=1, max_length=2048)


class ScanCreateResponse(BaseModel):
    scan_id: uuid.UUID


class ScanStatusResponse(BaseModel):
    """폴링 응답. error는 failed일 때만, report_token은 complete일 때만."""

    scan_id: uuid.UUID
    domain: str
    status: str
    progress: int = Field(..., ge=0, le=100)
    status_message: str
    estimated_seconds_remaining: int = Field(..., ge=0)
    error: str | None = None
    report_token: str | None = None
