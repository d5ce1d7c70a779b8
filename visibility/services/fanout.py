"""
질문 × 플랫폼 팬아웃. 모든 조합을 스레드 풀에서 동시 실행하고
조합당 정확히 1개의 QueryOutcome을 (prompt, platform) 순서로 반환.
동시성 상한은 각 PlatformClient의 세마포어(프로바이더 단위)가 담당.
"""

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from visibility.services.mentions import (
    CompetitorMention,
    MentionTarget,
    detect_mention,
    extract_competitors,
)
from visibility.services.platforms import ERROR_MESSAGE_MAX_CHARS, PlatformReply, QueryClient

logger = logging.getLogger(__name__)

# (completed, total). 수집 스레드(호출 스레드)에서만 호출됨.
ProgressCallback = Callable[[int, int], None]

# 풀 크기 상한. 실제 동시 호출 수는 프로바이더 세마포어가 제한.
MAX_POOL_WORKERS = 32


@dataclass(frozen=True)
class QueryOutcome:
    prompt_index: int
    platform: str
    response_text: str | None
    domain_mentioned: bool
    mention_position: int | None
    competitors: tuple[CompetitorMention, ...] = field(default_factory=tuple)
    response_time_ms: int | None = None
    error_message: str | None = None

    @property
    def failed(self) -> bool:
        return self.error_message is not None


def _failure(prompt_index: int, platform: str, error: str, latency_ms: int | None = None) -> QueryOutcome:
    return QueryOutcome(
        prompt_index=prompt_index,
        platform=platform,
        response_text=None,
        domain_mentioned=False,
        mention_position=None,
        response_time_ms=latency_ms,
        error_message=(error or "Unknown error")[:ERROR_MESSAGE_MAX_CHARS],
    )


def evaluate_reply(
    prompt_index: int,
    platform: str,
    reply: PlatformReply,
    target: MentionTarget,
    known_competitors: Sequence[str] = (),
) -> QueryOutcome:
    """PlatformReply → QueryOutcome. 실패면 텍스트 없이 에러만 기록."""
    if reply.error is not None:
        return _failure(prompt_index, platform, reply.error, reply.latency_ms)
    mentioned, position = detect_mention(reply.text, target)
    return QueryOutcome(
        prompt_index=prompt_index,
        platform=platform,
        response_text=reply.text,
        domain_mentioned=mentioned,
        mention_position=position,
        competitors=tuple(extract_competitors(reply.text, target, list(known_competitors))),
        response_time_ms=reply.latency_ms,
    )


class QueryFanout:
    """플랫폼 로스터에 대해 질문 목록을 팬아웃. 로스터 구성과 무관하게 한 번만 작성."""

    def __init__(self, clients: Sequence[QueryClient], *, max_workers: int | None = None) -> None:
        if not clients:
            raise ValueError("QueryFanout requires at least one platform client")
        self.clients = list(clients)
        self.max_workers = max_workers

    def run(
        self,
        prompts: Sequence[str],
        target: MentionTarget,
        *,
        known_competitors: Sequence[str] = (),
        on_progress: ProgressCallback | None = None,
    ) -> list[QueryOutcome]:
        pairs = [(p, c) for p in range(len(prompts)) for c in range(len(self.clients))]
        total = len(pairs)
        results: dict[tuple[int, int], QueryOutcome] = {}
        if total == 0:
            return []

        workers = self.max_workers or min(MAX_POOL_WORKERS, total)
        logger.info("Fan-out start: domain=%s pairs=%d workers=%d", target.domain, total, workers)

        def _call(prompt_index: int, client_index: int) -> QueryOutcome:
            client = self.clients[client_index]
            reply = client.query(prompts[prompt_index])
            return evaluate_reply(prompt_index, client.name, reply, target, known_competitors)

        completed = 0
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fanout") as pool:
            futures = {pool.submit(_call, p, c): (p, c) for p, c in pairs}
            for future in as_completed(futures):
                p, c = futures[future]
                try:
                    results[(p, c)] = future.result()
                except Exception as e:
                    # query()는 예외를 던지지 않지만 분석 단계 버그도 조합 1행으로 격리.
                    logger.warning(
                        "Fan-out call raised: platform=%s prompt=%d error=%s",
                        self.clients[c].name,
                        p,
                        e,
                        exc_info=True,
                    )
                    results[(p, c)] = _failure(p, self.clients[c].name, f"{type(e).__name__}: {e}")
                completed += 1
                if on_progress is not None:
                    try:
                        on_progress(completed, total)
                    except Exception:
                        logger.warning("Progress callback failed", exc_info=True)

        outcomes = [results[pair] for pair in pairs]
        failed = sum(1 for o in outcomes if o.failed)
        logger.info("Fan-out finished: domain=%s pairs=%d failed=%d", target.domain, total, failed)
        return outcomes
