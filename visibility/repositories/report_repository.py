"""Report·ScoreHistory Repository."""

import secrets
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from visibility.models.platform_response import PlatformResponse
from visibility.models.report import Report
from visibility.models.scan_prompt import ScanPrompt
from visibility.models.scan_run import ScanRun
from visibility.models.score_history import ScoreHistory
from visibility.models.site_analysis import SiteAnalysis


def new_url_token() -> str:
    """공개 리포트용 불투명 토큰(16 hex)."""
    return secrets.token_hex(8)


def create_report_sync(
    session: Session,
    run_id: uuid.UUID,
    *,
    visibility_score: int,
    prominence_score: float,
    platform_scores: dict[str, int],
    top_competitors: list[dict[str, Any]],
    all_competitors: list[dict[str, Any]],
    total_mentions: int,
    total_queries: int,
    failed_queries: int,
    summary: str,
    expires_at: datetime | None,
) -> Report:
    report = Report(
        run_id=run_id,
        url_token=new_url_token(),
        visibility_score=visibility_score,
        prominence_score=prominence_score,
        platform_scores=platform_scores,
        top_competitors=top_competitors,
        all_competitors=all_competitors,
        total_mentions=total_mentions,
        total_queries=total_queries,
        failed_queries=failed_queries,
        summary=summary,
        expires_at=expires_at,
    )
    session.add(report)
    session.flush()
    return report


def get_report_for_run_sync(session: Session, run_id: uuid.UUID) -> Report | None:
    result = session.execute(select(Report).where(Report.run_id == run_id).limit(1))
    return result.scalars().one_or_none()


def get_previous_score_sync(
    session: Session, subscription_id: uuid.UUID, *, exclude_run_id: uuid.UUID
) -> int | None:
    """해당 구독의 직전 점수 스냅샷(알림의 증감 표시용)."""
    result = session.execute(
        select(ScoreHistory.visibility_score)
        .where(
            ScoreHistory.subscription_id == subscription_id,
            ScoreHistory.run_id != exclude_run_id,
        )
        .order_by(ScoreHistory.recorded_at.desc())
        .limit(1)
    )
    return result.scalars().one_or_none()


def add_score_history_sync(
    session: Session,
    *,
    subscription_id: uuid.UUID,
    run_id: uuid.UUID,
    visibility_score: int,
    platform_scores: dict[str, int],
    total_mentions: int,
    total_queries: int,
) -> ScoreHistory:
    row = ScoreHistory(
        subscription_id=subscription_id,
        run_id=run_id,
        visibility_score=visibility_score,
        platform_scores=platform_scores,
        total_mentions=total_mentions,
        total_queries=total_queries,
    )
    session.add(row)
    session.flush()
    return row


async def get_report_bundle(session: AsyncSession, url_token: str) -> dict[str, Any] | None:
    """url_token으로 리포트 + 런 + 분석 + 응답 목록 조회. 없으면 None."""
    result = await session.execute(
        select(Report, ScanRun)
        .join(ScanRun, Report.run_id == ScanRun.id)
        .where(Report.url_token == url_token)
        .limit(1)
    )
    row = result.first()
    if row is None:
        return None
    report, run = row
    analysis_result = await session.execute(
        select(SiteAnalysis).where(SiteAnalysis.run_id == run.id).limit(1)
    )
    analysis = analysis_result.scalars().one_or_none()
    responses_result = await session.execute(
        select(PlatformResponse, ScanPrompt)
        .join(ScanPrompt, PlatformResponse.prompt_id == ScanPrompt.id)
        .where(PlatformResponse.run_id == run.id)
        .order_by(ScanPrompt.sort_order, PlatformResponse.platform)
    )
    responses = [
        {
            "platform": response.platform,
            "prompt": prompt.prompt_text,
            "category": prompt.category,
            "response_text": response.response_text,
            "domain_mentioned": response.domain_mentioned,
            "mention_position": response.mention_position,
            "error_message": response.error_message,
        }
        for response, prompt in responses_result.all()
    ]
    return {"report": report, "run": run, "analysis": analysis, "responses": responses}
