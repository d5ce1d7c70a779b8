"""
AI 플랫폼 클라이언트(Strategy Pattern). 프로바이더별 REST 호출만 다르고
동시성 상한·타이밍·에러 래핑은 PlatformClient 공통 로직이 담당.
새 프로바이더는 _request만 구현하면 됨.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from visibility.core.config import Settings, settings

logger = logging.getLogger(__name__)

# 플랫폼 응답 조회 시 기본 시스템 프롬프트. 실제 사용자 질문처럼 답하게 함.
QUERY_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the user's question naturally, "
    "recommending specific businesses, websites or services where relevant."
)

# 에러 메시지 저장 상한(문자).
ERROR_MESSAGE_MAX_CHARS = 500


class PlatformError(Exception):
    """프로바이더 호출 실패(네트워크·타임아웃·비정상 응답·빈 응답)."""

    pass


@dataclass(frozen=True)
class PlatformReply:
    """query() 결과. 실패 시 text는 빈 문자열, error에 사유."""

    text: str
    latency_ms: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueryClient(Protocol):
    """팬아웃 엔진이 의존하는 최소 인터페이스."""

    name: str

    def query(self, prompt_text: str) -> PlatformReply:
        ...


class PlatformClient:
    """
    프로바이더 1개에 대한 동기 클라이언트. 워커 스레드 여러 개가 공유.
    BoundedSemaphore로 프로바이더 단위 동시 호출 수 제한(전역 직렬화 아님).
    """

    name: str = ""
    base_url: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        timeout: float,
        max_concurrency: int,
        max_output_tokens: int,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self._semaphore = threading.BoundedSemaphore(max(1, max_concurrency))
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def complete(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None) -> str:
        """단일 호출. 실패·빈 응답이면 PlatformError. 분석기·질문 생성기용."""
        with self._semaphore:
            try:
                text = self._request(prompt, system, max_tokens or self.max_output_tokens)
            except PlatformError:
                raise
            except httpx.TimeoutException as e:
                raise PlatformError(f"{self.name}: request timed out after {self.timeout:.0f}s") from e
            except httpx.HTTPStatusError as e:
                raise PlatformError(
                    f"{self.name}: HTTP {e.response.status_code} {e.response.text[:200]}"
                ) from e
            except httpx.HTTPError as e:
                raise PlatformError(f"{self.name}: {type(e).__name__}: {e}") from e
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise PlatformError(f"{self.name}: unexpected response shape: {e}") from e
        if not text or not text.strip():
            raise PlatformError(f"{self.name}: empty response")
        return text

    def query(self, prompt_text: str) -> PlatformReply:
        """질문 1건 조회. 예외를 던지지 않고 PlatformReply.error로 반환."""
        started = time.monotonic()
        try:
            text = self.complete(prompt_text, system=QUERY_SYSTEM_PROMPT)
        except PlatformError as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            logger.warning("Platform query failed: platform=%s error=%s", self.name, e)
            return PlatformReply(text="", latency_ms=latency_ms, error=str(e)[:ERROR_MESSAGE_MAX_CHARS])
        latency_ms = int((time.monotonic() - started) * 1000)
        return PlatformReply(text=text, latency_ms=latency_ms)

    def _request(self, prompt: str, system: str | None, max_tokens: int) -> str:
        raise NotImplementedError

    def _post(self, url: str, *, headers: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        resp = self._http.post(url, headers=headers, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()


class OpenAIClient(PlatformClient):
    """OpenAI Chat Completions. Perplexity도 동일 포맷."""

    name = "chatgpt"
    base_url = "https://api.openai.com/v1"

    def _request(self, prompt: str, system: str | None, max_tokens: int) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        data = self._post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            payload={"model": self.model, "messages": messages, "max_tokens": max_tokens},
        )
        return data["choices"][0]["message"]["content"] or ""


class PerplexityClient(OpenAIClient):
    name = "perplexity"
    base_url = "https://api.perplexity.ai"


class AnthropicClient(PlatformClient):
    name = "claude"
    base_url = "https://api.anthropic.com/v1"
    api_version = "2023-06-01"

    def _request(self, prompt: str, system: str | None, max_tokens: int) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        data = self._post(
            f"{self.base_url}/messages",
            headers={"x-api-key": self.api_key, "anthropic-version": self.api_version},
            payload=payload,
        )
        return "".join(
            block.get("text", "") for block in data["content"] if block.get("type") == "text"
        )


class GeminiClient(PlatformClient):
    name = "gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _request(self, prompt: str, system: str | None, max_tokens: int) -> str:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": max_tokens},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        data = self._post(
            f"{self.base_url}/models/{self.model}:generateContent",
            headers={"x-goog-api-key": self.api_key},
            payload=payload,
        )
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)


# 플랫폼 이름 → (클라이언트 클래스, API 키 필드, 모델 필드).
PLATFORM_REGISTRY: dict[str, tuple[type[PlatformClient], str, str]] = {
    "chatgpt": (OpenAIClient, "openai_api_key", "openai_model"),
    "claude": (AnthropicClient, "anthropic_api_key", "anthropic_model"),
    "gemini": (GeminiClient, "google_ai_api_key", "gemini_model"),
    "perplexity": (PerplexityClient, "perplexity_api_key", "perplexity_model"),
}


def _secret(cfg: Settings, field_name: str) -> str:
    value = getattr(cfg, field_name)
    return value.get_secret_value() if value is not None else ""


def build_platform_client(name: str, cfg: Settings = settings, *, model: str | None = None) -> PlatformClient:
    """설정에서 키·모델·타임아웃을 읽어 클라이언트 생성. 키가 없으면 PlatformError."""
    try:
        client_cls, key_field, model_field = PLATFORM_REGISTRY[name]
    except KeyError as e:
        raise PlatformError(f"Unknown platform: {name}") from e
    api_key = _secret(cfg, key_field)
    if not api_key:
        raise PlatformError(f"{name}: {key_field.upper()} is not configured")
    return client_cls(
        api_key,
        model or getattr(cfg, model_field),
        timeout=cfg.platform_timeout_seconds,
        max_concurrency=cfg.platform_max_concurrency,
        max_output_tokens=cfg.platform_max_output_tokens,
    )


def build_platform_roster(cfg: Settings = settings) -> list[PlatformClient]:
    """scan_platforms 순서대로 클라이언트 목록."""
    return [build_platform_client(name, cfg) for name in cfg.platform_names]


def build_analysis_client(cfg: Settings = settings) -> PlatformClient:
    """분석·질문 생성용 OpenAI 클라이언트(analysis_model)."""
    return build_platform_client("chatgpt", cfg, model=cfg.analysis_model)
