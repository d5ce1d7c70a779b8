"""팬아웃 엔진 테스트. 조합당 1개 결과·순서·실패 격리."""

import threading
import time

import pytest

from visibility.services.fanout import QueryFanout
from visibility.services.mentions import build_target
from visibility.services.platforms import PlatformReply

TARGET = build_target("acme-plumbing.com", "Acme Plumbing")
PROMPTS = ["Who fixes drains?", "Best plumber in Sydney?", "Emergency plumber near me?"]


def test_every_pair_has_exactly_one_outcome_in_order(fake_platform_client) -> None:
    clients = [
        fake_platform_client("chatgpt", lambda p: "Call Acme Plumbing today."),
        fake_platform_client("claude", lambda p: "You could try RotoRooter for this.", fail_on={PROMPTS[1]}),
    ]
    outcomes = QueryFanout(clients).run(PROMPTS, TARGET)
    assert [(o.prompt_index, o.platform) for o in outcomes] == [
        (0, "chatgpt"),
        (0, "claude"),
        (1, "chatgpt"),
        (1, "claude"),
        (2, "chatgpt"),
        (2, "claude"),
    ]
    failed = [o for o in outcomes if o.failed]
    assert [(o.prompt_index, o.platform) for o in failed] == [(1, "claude")]
    assert failed[0].response_text is None
    assert failed[0].domain_mentioned is False
    assert all(o.domain_mentioned for o in outcomes if o.platform == "chatgpt")
    assert outcomes[1].competitors[0].name == "RotoRooter"


def test_raising_client_is_isolated(fake_platform_client) -> None:
    class Broken:
        name = "gemini"

        def query(self, prompt_text: str) -> PlatformReply:
            raise RuntimeError("bug")

    clients = [fake_platform_client("chatgpt", lambda p: "nothing here"), Broken()]
    outcomes = QueryFanout(clients).run(PROMPTS[:1], TARGET)
    assert len(outcomes) == 2
    assert outcomes[1].failed
    assert "RuntimeError" in outcomes[1].error_message


def test_progress_reports_every_completion(fake_platform_client) -> None:
    seen: list[tuple[int, int]] = []
    clients = [fake_platform_client("chatgpt", lambda p: "x"), fake_platform_client("claude", lambda p: "y")]
    QueryFanout(clients).run(PROMPTS, TARGET, on_progress=lambda done, total: seen.append((done, total)))
    assert seen == [(i, 6) for i in range(1, 7)]


def test_calls_run_concurrently() -> None:
    active = 0
    peak = 0
    lock = threading.Lock()

    class Slow:
        def __init__(self, name):
            self.name = name

        def query(self, prompt_text: str) -> PlatformReply:
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return PlatformReply(text="ok", latency_ms=50)

    QueryFanout([Slow("chatgpt"), Slow("claude"), Slow("gemini")]).run(PROMPTS, TARGET)
    assert peak > 1


def test_empty_roster_rejected() -> None:
    with pytest.raises(ValueError):
        QueryFanout([])


def test_no_prompts_returns_empty(fake_platform_client) -> None:
    assert QueryFanout([fake_platform_client("chatgpt", lambda p: "x")]).run([], TARGET) == []
