"""사이트 분석: 크롤 본문 → LLM 1회 호출 → BusinessAnalysis. 실패 시 AnalysisError(부분 허용 없음)."""

import json
import logging
import re

from pydantic import ValidationError

from visibility.models.site_analysis import RAW_CONTENT_MAX_CHARS
from visibility.schemas.analysis import BusinessAnalysis
from visibility.services.platforms import PlatformClient, PlatformError

logger = logging.getLogger(__name__)

# LLM에 넘기는 본문 상한(문자).
ANALYSIS_CONTENT_MAX_CHARS = 8000

ANALYSIS_PROMPT = """You are a business analyst. Analyze the following website content and extract key information about what this business does.
{confidence_note}
Website Content:
{content}

---

Respond with a JSON object containing:
- business_name: The name of the business (or null if not clear)
- business_type: A short description of what kind of business this is (e.g. "plumbing services", "SaaS platform")
- services: An array of specific services or products offered (max 10)
- location: Geographic location if mentioned (e.g. "Sydney, Australia") or null
- target_audience: Who the business serves (e.g. "homeowners", "small businesses") or null
- key_phrases: Important phrases that describe what they do (max 10)
- industry: The broader industry category (e.g. "Home Services", "Technology")

Return ONLY valid JSON, no other text."""

LOW_CONTENT_NOTE = (
    "\nNOTE: The crawler could not retrieve any pages from this website. "
    "Infer what you can from the domain name alone and keep answers conservative.\n"
)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class AnalysisError(Exception):
    """분석 LLM 호출 실패 또는 응답 파싱·검증 실패."""

    pass


def raw_content_excerpt(content: str) -> str:
    """보관용 원문 발췌(저장 용량 상한)."""
    return (content or "")[:RAW_CONTENT_MAX_CHARS]


def build_analysis_prompt(content: str, *, page_count: int) -> str:
    note = LOW_CONTENT_NOTE if page_count == 0 else ""
    return ANALYSIS_PROMPT.format(
        confidence_note=note,
        content=(content or "")[:ANALYSIS_CONTENT_MAX_CHARS],
    )


def parse_analysis(text: str) -> BusinessAnalysis:
    """응답 텍스트에서 첫 JSON 객체를 찾아 검증. 코드펜스·앞뒤 설명문 허용."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise AnalysisError("No JSON object found in analysis response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Analysis response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AnalysisError("Analysis response JSON is not an object")
    try:
        return BusinessAnalysis.model_validate(data)
    except ValidationError as e:
        raise AnalysisError(f"Analysis response failed validation: {e.error_count()} error(s)") from e


def analyze_content(client: PlatformClient, content: str, *, page_count: int) -> BusinessAnalysis:
    """LLM 1회 호출로 비즈니스 속성 추출. page_count=0이면 저신뢰 안내를 프롬프트에 포함."""
    prompt = build_analysis_prompt(content, page_count=page_count)
    try:
        text = client.complete(prompt)
    except PlatformError as e:
        raise AnalysisError(f"Analysis call failed: {e}") from e
    analysis = parse_analysis(text)
    logger.info(
        "Site analyzed: business_type=%s business_name=%s services=%d",
        analysis.business_type,
        analysis.business_name,
        len(analysis.services),
    )
    return analysis
