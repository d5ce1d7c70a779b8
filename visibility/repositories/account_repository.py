"""Account Repository. (email, domain) 기준 조회·생성."""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from visibility.models.account import Account


def get_account_sync(session: Session, email: str, domain: str) -> Account | None:
    result = session.execute(
        select(Account).where(Account.email == email, Account.domain == domain).limit(1)
    )
    return result.scalars().one_or_none()


def get_or_create_account_sync(session: Session, email: str, domain: str) -> Account:
    """
    (email, domain)으로 조회, 없으면 생성.
    동시 최초 스캔으로 unique 충돌 시 SAVEPOINT 롤백 후 기존 행 재조회.
    """
    existing = get_account_sync(session, email, domain)
    if existing is not None:
        return existing
    account = Account(email=email, domain=domain)
    try:
        with session.begin_nested():
            session.add(account)
            session.flush()
    except IntegrityError:
        existing = get_account_sync(session, email, domain)
        if existing is None:
            raise
        return existing
    return account
