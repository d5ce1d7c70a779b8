"""
가시성 점수 계산(순수 함수, I/O 없음).
입력은 (prompt_index, platform) 정렬로 정규화하므로 입력 순서와 무관하게 같은 결과.
실패 조합(error_message 있음)은 분모에서 제외.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

# 공개 리포트 / 내부 추적용 경쟁사 목록 길이.
TOP_COMPETITORS_PUBLIC = 5
TOP_COMPETITORS_INTERNAL = 20


class CompetitorLike(Protocol):
    name: str
    count: int


class ScorableResponse(Protocol):
    prompt_index: int
    platform: str
    domain_mentioned: bool
    mention_position: int | None
    error_message: str | None

    @property
    def competitors(self) -> Sequence[CompetitorLike]:
        ...


@dataclass(frozen=True)
class CompetitorTotal:
    name: str
    count: int

    def as_dict(self) -> dict:
        return {"name": self.name, "count": self.count}


@dataclass(frozen=True)
class ScoreResult:
    overall_score: int
    platform_scores: dict[str, int]
    prominence_score: float
    total_mentions: int
    total_queries: int
    failed_queries: int
    top_competitors: list[CompetitorTotal] = field(default_factory=list)
    all_competitors: list[CompetitorTotal] = field(default_factory=list)


def percentage(numerator: int, denominator: int) -> int:
    """100 * n / d를 0.5 올림으로 정수화(부동소수 오차 없는 정수 연산). d가 0이면 0."""
    if denominator <= 0:
        return 0
    return (200 * numerator + denominator) // (2 * denominator)


def position_weight(position: int | None) -> float:
    """언급 위치 가중치. 1구간 1.0, 2구간 2/3, 3구간·불명 1/3."""
    if position == 1:
        return 1.0
    if position == 2:
        return 2 / 3
    return 1 / 3


def _canonical(responses: Iterable[ScorableResponse]) -> list[ScorableResponse]:
    return sorted(responses, key=lambda r: (r.prompt_index, r.platform))


def rank_competitors(responses: Sequence[ScorableResponse]) -> list[CompetitorTotal]:
    """대소문자 무시 합산, 총합 내림차순, 동률은 정규 순서상 첫 등장 순. 첫 표기 유지."""
    totals: dict[str, int] = {}
    display: dict[str, str] = {}
    first_seen: dict[str, int] = {}
    for response in responses:
        if response.error_message is not None:
            continue
        for competitor in response.competitors:
            key = competitor.name.strip().lower()
            if not key:
                continue
            if key not in totals:
                totals[key] = 0
                display[key] = competitor.name.strip()
                first_seen[key] = len(first_seen)
            totals[key] += max(0, int(competitor.count))
    ranked = sorted(totals, key=lambda k: (-totals[k], first_seen[k]))
    return [CompetitorTotal(name=display[k], count=totals[k]) for k in ranked]


def compute_scores(responses: Iterable[ScorableResponse], platforms: Sequence[str]) -> ScoreResult:
    """
    overall = percentage(언급 수, 응답 성공 수), 성공 0건이면 0.
    플랫폼별 점수도 같은 공식. 로스터의 모든 플랫폼이 결과에 포함됨.
    prominence는 언급된 응답의 위치 가중치 합 / 응답 성공 수(0–100, 소수 1자리).
    """
    ordered = _canonical(responses)
    answered = [r for r in ordered if r.error_message is None]
    mentioned = [r for r in answered if r.domain_mentioned]

    per_platform_total: dict[str, int] = {name: 0 for name in platforms}
    per_platform_mentions: dict[str, int] = {name: 0 for name in platforms}
    for r in answered:
        per_platform_total[r.platform] = per_platform_total.get(r.platform, 0) + 1
        if r.domain_mentioned:
            per_platform_mentions[r.platform] = per_platform_mentions.get(r.platform, 0) + 1
    platform_scores = {
        name: percentage(per_platform_mentions.get(name, 0), per_platform_total.get(name, 0))
        for name in per_platform_total
    }

    weighted = sum(position_weight(r.mention_position) for r in mentioned)
    prominence = round(100 * weighted / len(answered), 1) if answered else 0.0

    ranked = rank_competitors(ordered)
    return ScoreResult(
        overall_score=percentage(len(mentioned), len(answered)),
        platform_scores=platform_scores,
        prominence_score=prominence,
        total_mentions=len(mentioned),
        total_queries=len(answered),
        failed_queries=len(ordered) - len(answered),
        top_competitors=ranked[:TOP_COMPETITORS_PUBLIC],
        all_competitors=ranked[:TOP_COMPETITORS_INTERNAL],
    )


def _describe(score: int) -> str:
    if score >= 70:
        return "strong"
    if score >= 40:
        return "moderate"
    if score >= 20:
        return "low"
    return "very low"


def build_summary(
    result: ScoreResult,
    *,
    business_name: str | None,
    domain: str,
    platforms: Sequence[str],
) -> str:
    """리포트 상단 요약문."""
    name = business_name or domain
    parts = [
        f"{name} has {_describe(result.overall_score)} AI visibility "
        f"with an overall score of {result.overall_score}%.",
        f"The site was mentioned in {result.total_mentions} out of {result.total_queries} AI queries "
        f"across {', '.join(platforms)}.",
    ]
    if result.failed_queries:
        parts.append(f"{result.failed_queries} queries could not be completed and were excluded from the score.")
    if result.top_competitors:
        names = ", ".join(c.name for c in result.top_competitors[:3])
        parts.append(f"Top competitors mentioned by AI include: {names}.")
    if result.overall_score < 50:
        parts.append(
            "There is significant opportunity to improve your AI visibility "
            "through targeted content optimization."
        )
    return " ".join(parts)
