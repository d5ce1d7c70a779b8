"""공개 리포트 조회 API. url_token만으로 접근, 무료 리포트는 만료 후 410."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from visibility.core.database import get_db
from visibility.repositories.report_repository import get_report_bundle
from visibility.schemas.report import CompetitorCount, PlatformResult, ReportResponse
from visibility.services.dispatch_service import ensure_utc

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/{url_token}", response_model=ReportResponse)
async def get_report(url_token: str, db: AsyncSession = Depends(get_db)) -> ReportResponse:
    if not url_token or len(url_token) > 64:
        raise HTTPException(status_code=404, detail="Report not found")
    bundle = await get_report_bundle(db, url_token)
    if bundle is None:
        raise HTTPException(status_code=404, detail="Report not found")
    report = bundle["report"]
    run = bundle["run"]
    analysis = bundle["analysis"]
    expires_at = ensure_utc(report.expires_at) if report.expires_at else None
    if expires_at is not None and expires_at <= datetime.now(UTC):
        raise HTTPException(status_code=410, detail="Report has expired")
    return ReportResponse(
        url_token=report.url_token,
        domain=run.domain,
        business_name=analysis.business_name if analysis else None,
        business_type=analysis.business_type if analysis else None,
        visibility_score=report.visibility_score,
        prominence_score=report.prominence_score,
        platform_scores=report.platform_scores,
        top_competitors=[CompetitorCount(**c) for c in report.top_competitors],
        total_mentions=report.total_mentions,
        total_queries=report.total_queries,
        failed_queries=report.failed_queries,
        summary=report.summary,
        created_at=ensure_utc(report.created_at),
        expires_at=expires_at,
        responses=[PlatformResult(**r) for r in bundle["responses"]],
    )
