"""LLM 출력 검증용 스키마. 프로바이더 응답은 반드시 model_validate를 거친다."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from visibility.models.scan_prompt import PromptCategory

MAX_LIST_ITEMS = 10
# site_analyses 문자열 컬럼 길이.
MAX_SHORT_TEXT = 255


def _clean_str_list(value: object) -> list[str]:
    """문자열 리스트 정규화: 공백 제거·빈 값 제외·중복 제거·상한 적용."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError("expected a list of strings")
    out: list[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, str):
            continue
        text = item.strip()
        if text and text.lower() not in seen:
            seen.add(text.lower())
            out.append(text)
        if len(out) >= MAX_LIST_ITEMS:
            break
    return out


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _clip(value: object) -> object:
    """초과분은 거부하지 않고 잘라냄."""
    if isinstance(value, str):
        return value.strip()[:MAX_SHORT_TEXT].rstrip()
    return value


class BusinessAnalysis(BaseModel):
    """사이트 분석 결과. business_name은 판별 불가 시 None."""

    model_config = ConfigDict(extra="ignore")

    # LLM이 camelCase로 답하는 경우도 허용.
    business_type: str = Field(
        ..., min_length=1, max_length=MAX_SHORT_TEXT, validation_alias=AliasChoices("business_type", "businessType")
    )
    business_name: str | None = Field(
        None, max_length=MAX_SHORT_TEXT, validation_alias=AliasChoices("business_name", "businessName")
    )
    services: list[str] = Field(default_factory=list)
    location: str | None = Field(None, max_length=MAX_SHORT_TEXT)
    target_audience: str | None = Field(
        None, validation_alias=AliasChoices("target_audience", "targetAudience")
    )
    key_phrases: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("key_phrases", "keyPhrases")
    )
    industry: str | None = Field(None, max_length=MAX_SHORT_TEXT)

    @field_validator("business_type", mode="before")
    @classmethod
    def _strip_type(cls, v: object) -> object:
        return _clip(v)

    @field_validator("business_name", "location", "industry", mode="before")
    @classmethod
    def _optional_short_text(cls, v: object) -> object:
        return _clip(_blank_to_none(v))

    @field_validator("target_audience", mode="before")
    @classmethod
    def _optional_text(cls, v: object) -> object:
        v = _blank_to_none(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("services", "key_phrases", mode="before")
    @classmethod
    def _lists(cls, v: object) -> list[str]:
        return _clean_str_list(v)


class GeneratedPrompt(BaseModel):
    """생성된 질문 1개. 알 수 없는 카테고리는 general로 강등."""

    model_config = ConfigDict(extra="ignore")

    text: str = Field(..., min_length=1, max_length=1000)
    category: PromptCategory = PromptCategory.GENERAL

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, v: object) -> PromptCategory:
        if isinstance(v, str):
            try:
                return PromptCategory(v.strip().lower())
            except ValueError:
                pass
        return PromptCategory.GENERAL
