"""응답 텍스트 분석: 대상 도메인 언급 여부·위치, 경쟁사 이름 추출(순수 함수)."""

import re
from dataclasses import dataclass

# 응답 1건당 경쟁사 상한.
MAX_COMPETITORS_PER_RESPONSE = 10

# 도메인 어간이 이보다 짧으면 오탐이 많아 변형으로 쓰지 않음.
MIN_STEM_LENGTH = 3

COMPETITOR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:recommend|suggest|consider|try|check out|look at)\s+([A-Z][a-zA-Z0-9]+(?:\s+[A-Z][a-zA-Z0-9]+)?)"),
    re.compile(r"([A-Z][a-zA-Z0-9]+(?:\.[a-z]{2,4})?)\s+(?:is|are|offers|provides)"),
    re.compile(r"companies?\s+(?:like|such as)\s+([A-Z][a-zA-Z0-9]+(?:,\s*[A-Z][a-zA-Z0-9]+)*)"),
)

# 패턴에 걸리지만 회사 이름이 아닌 단어.
COMPETITOR_STOPWORDS = frozenset(
    {"The", "This", "That", "Some", "Many", "Here", "These", "There", "They", "It", "You", "Your", "Yes", "No"}
)


@dataclass(frozen=True)
class CompetitorMention:
    name: str
    count: int


@dataclass(frozen=True)
class MentionTarget:
    """언급 판정 대상. variants는 소문자."""

    domain: str
    variants: tuple[str, ...]


def domain_stem(domain: str) -> str:
    return domain.lower().split(".")[0]


def build_target(domain: str, business_name: str | None = None) -> MentionTarget:
    """도메인 전체, 어간, 어간의 하이픈→공백, 비즈니스 이름."""
    domain = domain.lower().strip()
    variants: list[str] = [domain]
    stem = domain_stem(domain)
    if len(stem) >= MIN_STEM_LENGTH:
        variants.append(stem)
        if "-" in stem:
            variants.append(stem.replace("-", " "))
    if business_name and len(business_name.strip()) >= MIN_STEM_LENGTH:
        variants.append(business_name.strip().lower())
    return MentionTarget(domain=domain, variants=tuple(dict.fromkeys(variants)))


def mention_position(index: int, length: int) -> int:
    """응답을 3등분했을 때 index가 속한 구간(1..3)."""
    if length <= 0:
        return 1
    return min(3, max(1, -(-(index + 1) * 3 // length)))


def detect_mention(text: str, target: MentionTarget) -> tuple[bool, int | None]:
    """대소문자 무시 부분 문자열 매칭. 가장 앞선 변형 위치로 구간 계산."""
    if not text:
        return False, None
    lowered = text.lower()
    indexes = [i for i in (lowered.find(v) for v in target.variants) if i != -1]
    if not indexes:
        return False, None
    return True, mention_position(min(indexes), len(text))


def _is_target(name: str, target: MentionTarget) -> bool:
    lowered = name.lower()
    if lowered in target.variants:
        return True
    stem = domain_stem(target.domain)
    return len(stem) >= MIN_STEM_LENGTH and stem in lowered.replace(" ", "-")


def _count_occurrences(text: str, name: str) -> int:
    return len(re.findall(rf"(?<![A-Za-z0-9]){re.escape(name)}(?![A-Za-z0-9])", text, re.IGNORECASE))


def extract_competitors(
    text: str,
    target: MentionTarget,
    known_names: list[str] | tuple[str, ...] = (),
) -> list[CompetitorMention]:
    """
    알려진 경쟁사 이름 + 패턴 휴리스틱으로 추출. 대상 자신은 제외.
    이름은 대소문자 무시로 중복 제거(첫 표기 유지), 각각 응답 내 출현 횟수 포함.
    """
    if not text:
        return []
    found: dict[str, CompetitorMention] = {}

    def _add(name: str) -> None:
        name = name.strip().strip(",.")
        key = name.lower()
        if not name or key in found or name in COMPETITOR_STOPWORDS or _is_target(name, target):
            return
        count = _count_occurrences(text, name)
        if count > 0:
            found[key] = CompetitorMention(name=name, count=count)

    for known in known_names:
        _add(known)
    for pattern in COMPETITOR_PATTERNS:
        for match in pattern.finditer(text):
            for name in match.group(1).split(","):
                _add(name)
    return list(found.values())[:MAX_COMPETITORS_PER_RESPONSE]
