"""공개 리포트 응답 스키마 (url_token 조회)."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CompetitorCount(BaseModel):
    name: str
    count: int


class PlatformResult(BaseModel):
    """플랫폼 응답 1건의 공개 뷰."""

    model_config = ConfigDict(from_attributes=True)

    platform: str
    prompt: str
    category: str
    response_text: str | None = None
    domain_mentioned: bool
    mention_position: int | None = None
    error_message: str | None = None


class ReportResponse(BaseModel):
    url_token: str
    domain: str
    business_name: str | None = None
    business_type: str | None = None
    visibility_score: int
    prominence_score: float
    platform_scores: dict[str, int]
    top_competitors: list[CompetitorCount]
    total_mentions: int
    total_queries: int
    failed_queries: int
    summary: str
    created_at: datetime
    expires_at: datetime | None = None
    responses: list[PlatformResult] = []
