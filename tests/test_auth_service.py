"""Access JWT 검증 단위 테스트. 발급은 외부 서비스이므로 테스트에서 직접 서명."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from visibility.services.auth_service import AuthError, account_id_from_token, verify_access_token


def test_valid_token_returns_account_id(make_token) -> None:
    account_id = uuid.uuid4()
    assert account_id_from_token(make_token(str(account_id))) == account_id


def test_expired_token_rejected(make_token) -> None:
    token = make_token(str(uuid.uuid4()), exp=datetime.now(UTC) - timedelta(seconds=5))
    with pytest.raises(AuthError):
        verify_access_token(token)


@pytest.mark.parametrize(
    "overrides",
    [
        {"aud": "someone-else"},
        {"iss": "evil"},
        {"type": "refresh"},
        {"type": None},
        {"secret": "wrong-secret"},
    ],
)
def test_invalid_claims_rejected(make_token, overrides: dict) -> None:
    with pytest.raises(AuthError):
        verify_access_token(make_token(str(uuid.uuid4()), **overrides))


def test_non_uuid_subject_rejected(make_token) -> None:
    with pytest.raises(AuthError):
        account_id_from_token(make_token("12345"))
