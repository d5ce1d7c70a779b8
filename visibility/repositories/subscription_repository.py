"""Subscription Repository. 구독 자체는 읽기 전용(수명주기는 빌링 서비스). 구독자 질문은 첫 시드만 기록."""

import uuid
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from visibility.models.subscription import SUBSCRIPTION_ACTIVE, Subscription
from visibility.models.subscriber_question import QUESTION_SOURCE_AI, SubscriberQuestion
from visibility.models.tracked_competitor import TrackedCompetitor
from visibility.schemas.analysis import GeneratedPrompt


def get_subscription_sync(
    session: Session, subscription_id: uuid.UUID, *, for_update: bool = False
) -> Subscription | None:
    """for_update=True면 행 잠금. 같은 구독의 동시 재스캔 요청을 직렬화."""
    return session.get(Subscription, subscription_id, with_for_update=for_update)


def list_active_subscriptions_sync(session: Session) -> list[Subscription]:
    """스케줄러용. active 구독 전체(스케줄 매칭은 호출 측에서 로컬 시각 기준으로)."""
    result = session.execute(
        select(Subscription)
        .where(Subscription.status == SUBSCRIPTION_ACTIVE)
        .order_by(Subscription.created_at)
    )
    return list(result.scalars().all())


def list_tracked_competitor_names_sync(
    session: Session, subscription_id: uuid.UUID | None
) -> list[str]:
    """구독자가 등록한 경쟁사 이름. 구독 없는 런이면 빈 리스트."""
    if subscription_id is None:
        return []
    result = session.execute(
        select(TrackedCompetitor.name)
        .where(TrackedCompetitor.subscription_id == subscription_id)
        .order_by(TrackedCompetitor.name)
    )
    return [name for name in result.scalars().all() if name and name.strip()]


def list_active_questions_sync(
    session: Session, subscription_id: uuid.UUID | None
) -> list[SubscriberQuestion]:
    """런에 사용할 구독자 질문. active·미보관만, sort_order 순."""
    if subscription_id is None:
        return []
    result = session.execute(
        select(SubscriberQuestion)
        .where(
            SubscriberQuestion.subscription_id == subscription_id,
            SubscriberQuestion.is_active.is_(True),
            SubscriberQuestion.is_archived.is_(False),
        )
        .order_by(SubscriberQuestion.sort_order, SubscriberQuestion.created_at)
    )
    return list(result.scalars().all())


def seed_questions_sync(
    session: Session,
    subscription_id: uuid.UUID,
    prompts: Sequence[GeneratedPrompt],
    *,
    source_run_id: uuid.UUID,
) -> int:
    """
    질문이 한 건도 없는 구독(보관·비활성 포함)에만 생성 질문을 시드.
    이미 질문이 있으면 0 반환(사용자가 전부 끈 경우 덮어쓰지 않음).
    """
    existing = session.execute(
        select(func.count())
        .select_from(SubscriberQuestion)
        .where(SubscriberQuestion.subscription_id == subscription_id)
    ).scalar_one()
    if existing:
        return 0
    session.add_all(
        SubscriberQuestion(
            subscription_id=subscription_id,
            prompt_text=prompt.text,
            category=prompt.category.value,
            source=QUESTION_SOURCE_AI,
            sort_order=index,
            source_run_id=source_run_id,
        )
        for index, prompt in enumerate(prompts)
    )
    session.flush()
    return len(prompts)
