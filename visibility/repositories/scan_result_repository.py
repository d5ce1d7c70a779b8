"""파이프라인 중간 산출물(분석·질문·플랫폼 응답) 저장."""

import uuid
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from visibility.models.platform_response import PlatformResponse
from visibility.models.scan_prompt import ScanPrompt
from visibility.models.site_analysis import RAW_CONTENT_MAX_CHARS, SiteAnalysis
from visibility.schemas.analysis import BusinessAnalysis, GeneratedPrompt

if TYPE_CHECKING:
    from visibility.services.fanout import QueryOutcome


def save_site_analysis_sync(
    session: Session,
    run_id: uuid.UUID,
    analysis: BusinessAnalysis,
    *,
    pages_crawled: int,
    raw_content: str,
) -> SiteAnalysis:
    row = SiteAnalysis(
        run_id=run_id,
        business_type=analysis.business_type,
        business_name=analysis.business_name,
        services=list(analysis.services),
        location=analysis.location,
        target_audience=analysis.target_audience,
        key_phrases=list(analysis.key_phrases),
        industry=analysis.industry,
        pages_crawled=pages_crawled,
        raw_content=raw_content[:RAW_CONTENT_MAX_CHARS],
    )
    session.add(row)
    session.flush()
    return row


def get_site_analysis_sync(session: Session, run_id: uuid.UUID) -> SiteAnalysis | None:
    result = session.execute(select(SiteAnalysis).where(SiteAnalysis.run_id == run_id).limit(1))
    return result.scalars().one_or_none()


def save_prompts_sync(
    session: Session, run_id: uuid.UUID, prompts: Sequence[GeneratedPrompt]
) -> list[ScanPrompt]:
    """생성 순서를 sort_order로 보존."""
    rows = [
        ScanPrompt(
            run_id=run_id,
            sort_order=index,
            prompt_text=prompt.text,
            category=prompt.category.value,
        )
        for index, prompt in enumerate(prompts)
    ]
    session.add_all(rows)
    session.flush()
    return rows


def save_platform_responses_sync(
    session: Session,
    run_id: uuid.UUID,
    prompt_ids: Sequence[uuid.UUID],
    outcomes: Iterable["QueryOutcome"],
) -> int:
    """outcome.prompt_index → prompt_ids로 매핑해 일괄 저장. 저장 행 수 반환."""
    rows = [
        PlatformResponse(
            run_id=run_id,
            prompt_id=prompt_ids[outcome.prompt_index],
            platform=outcome.platform,
            response_text=outcome.response_text,
            domain_mentioned=outcome.domain_mentioned,
            mention_position=outcome.mention_position,
            competitors_mentioned=[
                {"name": c.name, "count": c.count} for c in outcome.competitors
            ],
            response_time_ms=outcome.response_time_ms,
            error_message=outcome.error_message,
        )
        for outcome in outcomes
    ]
    session.add_all(rows)
    session.flush()
    return len(rows)


def count_platform_responses_sync(session: Session, run_id: uuid.UUID) -> int:
    result = session.execute(
        select(func.count()).select_from(PlatformResponse).where(PlatformResponse.run_id == run_id)
    )
    return int(result.scalar_one())
