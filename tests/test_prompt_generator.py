"""질문 생성기 테스트."""

import pytest

from visibility.models.scan_prompt import PromptCategory
from visibility.schemas.analysis import BusinessAnalysis
from visibility.services.prompt_generator import (
    PromptGenerationError,
    build_generation_prompt,
    generate_prompts,
    parse_prompts,
)

ANALYSIS = BusinessAnalysis(
    business_name="Acme Plumbing Co",
    business_type="plumbing services",
    services=["Blocked drains"],
    location="Sydney, Australia",
)


def test_parse_prompts_cleans_items() -> None:
    text = """Sure! [
        {"text": "Who fixes blocked drains in Sydney?", "category": "location"},
        {"text": "who fixes blocked drains in sydney?", "category": "service"},
        {"text": "   ", "category": "general"},
        "Can you recommend a plumber?",
        {"text": "Best plumbing companies?", "category": "ranking"},
        42
    ]"""
    prompts = parse_prompts(text, limit=10)
    assert [p.text for p in prompts] == [
        "Who fixes blocked drains in Sydney?",
        "Can you recommend a plumber?",
        "Best plumbing companies?",
    ]
    assert prompts[0].category is PromptCategory.LOCATION
    assert prompts[1].category is PromptCategory.GENERAL
    assert prompts[2].category is PromptCategory.GENERAL


def test_parse_prompts_respects_limit() -> None:
    text = "[" + ",".join(f'{{"text": "Question {i}?"}}' for i in range(8)) + "]"
    assert len(parse_prompts(text, limit=5)) == 5


def test_parse_prompts_without_array_raises() -> None:
    with pytest.raises(PromptGenerationError):
        parse_prompts("no prompts today", limit=5)


def test_generation_prompt_uses_defaults_for_missing_fields() -> None:
    text = build_generation_prompt(BusinessAnalysis(business_type="bakery"), "bread.com", count=4)
    assert "- Name: bread.com" in text
    assert "- Location: Not specified" in text
    assert "Generate exactly 4 prompts" in text


def test_generate_prompts_zero_valid_raises(fake_analysis_client) -> None:
    client = fake_analysis_client("{}", '[{"text": ""}]')
    with pytest.raises(PromptGenerationError, match="zero prompts"):
        generate_prompts(client, ANALYSIS, "acme-plumbing.com", count=5)


def test_generate_prompts_returns_ordered_prompts(fake_analysis_client) -> None:
    client = fake_analysis_client("{}", '[{"text": "A?", "category": "general"}, {"text": "B?", "category": "comparison"}]')
    prompts = generate_prompts(client, ANALYSIS, "acme-plumbing.com", count=5)
    assert [p.text for p in prompts] == ["A?", "B?"]
    assert prompts[1].category is PromptCategory.COMPARISON
