"""환경 변수 기반 설정. pydantic-settings 사용."""

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 플랫폼 이름 → 해당 API 키 필드. 프로덕션 Fail-fast 검사용.
PLATFORM_KEY_FIELDS: dict[str, str] = {
    "chatgpt": "openai_api_key",
    "claude": "anthropic_api_key",
    "gemini": "google_ai_api_key",
    "perplexity": "perplexity_api_key",
}


class Settings(BaseSettings):
    """앱 설정. 환경변수에서 로드. 시크릿은 SecretStr로 마스킹, 필수 시크릿은 기본값 없음(Fail-fast)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    sentry_dsn: SecretStr | None = None
    environment: str = "development"  # Sentry/로깅용. production, staging, development 등.

    database_url: str | None = None
    db_connect_retries: int = Field(5, ge=1, le=20)
    db_connect_retry_interval_sec: float = Field(2.0, ge=0.5, le=60.0)

    # Celery broker·result backend 겸 헬스체크 대상.
    redis_url: str | None = None
    redis_socket_timeout: float = Field(5.0, ge=1.0, le=60.0)
    redis_socket_connect_timeout: float = Field(2.0, ge=0.5, le=30.0)

    # Access JWT 검증 전용(발급은 인증 서비스 담당).
    jwt_secret: SecretStr
    jwt_issuer: str = "outrank"
    jwt_audience: str = "outrank-api"

    # /internal/* (Cron·관리) 헤더 시크릿.
    scan_trigger_secret: SecretStr | None = None
    allowed_origins: str = ""

    # AI 플랫폼 API 키. 쉼표 구분 scan_platforms에 포함된 플랫폼만 사용.
    openai_api_key: SecretStr | None = None
    anthropic_api_key: SecretStr | None = None
    google_ai_api_key: SecretStr | None = None
    perplexity_api_key: SecretStr | None = None
    scan_platforms: str = "chatgpt,claude,gemini"

    openai_model: str = "gpt-4o"
    anthropic_model: str = "claude-sonnet-4-20250514"
    gemini_model: str = "gemini-2.5-flash"
    perplexity_model: str = "sonar-pro"
    analysis_model: str = "gpt-4o"  # 사이트 분석·질문 생성용 모델(OpenAI).

    platform_timeout_seconds: float = Field(60.0, ge=1.0, le=300.0)
    # 플랫폼(프로바이더)별 동시 호출 상한. 전체 직렬화가 아니라 프로바이더 단위로 제한.
    platform_max_concurrency: int = Field(4, ge=1, le=32)
    platform_max_output_tokens: int = Field(1000, ge=64, le=8192)

    crawl_max_pages: int = Field(15, ge=1, le=50)
    crawl_page_timeout_seconds: float = Field(10.0, ge=1.0, le=60.0)
    crawl_polite_delay_seconds: float = Field(0.1, ge=0.0, le=10.0)

    prompt_count: int = Field(10, ge=1, le=30)
    # querying 단계 진행률 DB 기록 최소 간격(초). 마지막 호출 완료 시에는 항상 기록.
    progress_write_interval_seconds: float = Field(1.0, ge=0.0, le=30.0)
    # 런 1회 최대 실행 시간(초). Celery time_limit·리퍼 기준.
    run_hard_time_limit_seconds: int = Field(600, ge=60, le=3600)

    rescan_cooldown_hours: int = Field(24, ge=1, le=168)
    free_report_expiry_days: int = Field(7, ge=1, le=90)

    public_app_url: str = "http://localhost:3000"
    # 완료 알림 이벤트를 소비하는 (외부) 이메일 디스패처의 Celery 태스크 이름.
    notification_task_name: str = "notifications.scan_complete"

    @property
    def platform_names(self) -> list[str]:
        """scan_platforms 쉼표 문자열 → 순서 유지·중복 제거 리스트."""
        names: list[str] = []
        for raw in self.scan_platforms.split(","):
            name = raw.strip().lower()
            if name and name not in names:
                names.append(name)
        return names

    @model_validator(mode="after")
    def validate_platforms(self: "Settings") -> "Settings":
        """알 수 없는 플랫폼 이름이 있거나 로스터가 비면 부팅 거부."""
        names = self.platform_names
        if not names:
            raise ValueError("SCAN_PLATFORMS must name at least one platform.")
        unknown = [n for n in names if n not in PLATFORM_KEY_FIELDS]
        if unknown:
            raise ValueError(
                f"Unknown platform(s) in SCAN_PLATFORMS: {', '.join(unknown)}. "
                f"Valid: {', '.join(PLATFORM_KEY_FIELDS)}"
            )
        return self

    @model_validator(mode="after")
    def fail_fast_production(self: "Settings") -> "Settings":
        """프로덕션 환경 시 필수 변수 누락이면 부팅 거부(Fail-Fast)."""
        if (self.environment or "").strip().lower() != "production":
            return self
        missing: list[str] = []
        if not (self.database_url or "").strip():
            missing.append("DATABASE_URL")
        if not (self.redis_url or "").strip():
            missing.append("REDIS_URL")
        if not (self.jwt_secret.get_secret_value() or "").strip():
            missing.append("JWT_SECRET")
        required_keys = {PLATFORM_KEY_FIELDS[n] for n in self.platform_names}
        required_keys.add("openai_api_key")  # 분석·질문 생성
        for field_name in sorted(required_keys):
            value = getattr(self, field_name)
            if value is None or not value.get_secret_value().strip():
                missing.append(field_name.upper())
        if missing:
            raise ValueError(
                f"Production environment requires these variables to be set: {', '.join(missing)}. "
                "Set them in Secret Manager or environment before boot."
            )
        return self


settings = Settings()
