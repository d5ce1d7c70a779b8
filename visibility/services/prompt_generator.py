"""질문 생성: BusinessAnalysis → 카테고리별 자연어 질문 N개(LLM 1회). 0개면 PromptGenerationError."""

import json
import logging
import re

from pydantic import ValidationError

from visibility.core.config import settings
from visibility.schemas.analysis import BusinessAnalysis, GeneratedPrompt
from visibility.services.platforms import PlatformClient, PlatformError

logger = logging.getLogger(__name__)

PROMPT_GENERATION_TEMPLATE = """You are helping generate search prompts to test if AI assistants (ChatGPT, Claude, Gemini) will recommend a specific business.

Business Details:
- Name: {business_name}
- Type: {business_type}
- Services: {services}
- Location: {location}
- Target Audience: {target_audience}
- Industry: {industry}
- Key Phrases: {key_phrases}

---

Generate exactly {count} prompts that a potential customer might ask an AI assistant when looking for this type of business. The prompts should be natural questions someone would ask.

Categories to cover:
1. General discovery: "What companies offer X?"
2. Location-specific: "Who provides X in [location]?" (only if location is known)
3. Service-specific: "I need help with [specific service]"
4. Comparison: "What are the best [business type] companies?"
5. Recommendation: "Can you recommend a [business type]?"

Do not mention the business name or the domain in the prompts.

Respond with a JSON array of objects, each with:
- text: The prompt text
- category: One of "general", "location", "service", "comparison", "recommendation"

Return ONLY a valid JSON array, no other text."""

# 질문 생성은 출력이 길어 기본 상한보다 크게.
GENERATION_MAX_TOKENS = 1500

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class PromptGenerationError(Exception):
    """질문 생성 LLM 호출 실패, 파싱 실패, 또는 유효 질문 0개."""

    pass


def build_generation_prompt(analysis: BusinessAnalysis, domain: str, *, count: int) -> str:
    return PROMPT_GENERATION_TEMPLATE.format(
        business_name=analysis.business_name or domain,
        business_type=analysis.business_type,
        services=", ".join(analysis.services) or "Not specified",
        location=analysis.location or "Not specified",
        target_audience=analysis.target_audience or "Not specified",
        industry=analysis.industry or "General",
        key_phrases=", ".join(analysis.key_phrases) or "None",
        count=count,
    )


def parse_prompts(text: str, *, limit: int) -> list[GeneratedPrompt]:
    """JSON 배열 파싱. 빈 텍스트·중복(대소문자 무시)·잘못된 항목은 버리고 limit개까지."""
    match = _JSON_ARRAY_RE.search(text or "")
    if not match:
        raise PromptGenerationError("No JSON array found in prompt generation response")
    try:
        items = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise PromptGenerationError(f"Prompt generation response is not valid JSON: {e}") from e
    if not isinstance(items, list):
        raise PromptGenerationError("Prompt generation response JSON is not an array")

    prompts: list[GeneratedPrompt] = []
    seen: set[str] = set()
    for item in items:
        if isinstance(item, str):
            item = {"text": item}
        if not isinstance(item, dict):
            continue
        try:
            prompt = GeneratedPrompt.model_validate(item)
        except ValidationError:
            logger.debug("Dropping invalid prompt item: %r", item)
            continue
        key = prompt.text.lower()
        if key in seen:
            continue
        seen.add(key)
        prompts.append(prompt)
        if len(prompts) >= limit:
            break
    return prompts


def generate_prompts(
    client: PlatformClient,
    analysis: BusinessAnalysis,
    domain: str,
    *,
    count: int | None = None,
) -> list[GeneratedPrompt]:
    count = count or settings.prompt_count
    request = build_generation_prompt(analysis, domain, count=count)
    try:
        text = client.complete(request, max_tokens=GENERATION_MAX_TOKENS)
    except PlatformError as e:
        raise PromptGenerationError(f"Prompt generation call failed: {e}") from e
    prompts = parse_prompts(text, limit=count)
    if not prompts:
        raise PromptGenerationError("Prompt generation produced zero prompts")
    logger.info("Prompts generated: domain=%s count=%d", domain, len(prompts))
    return prompts
