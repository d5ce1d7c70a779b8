"""HTTP API 테스트. TestClient + SQLite, 큐 적재는 monkeypatch."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import SecretStr

from visibility.core.config import settings
from visibility.models import PlatformResponse, Report, ScanPrompt, SiteAnalysis, Subscription
from visibility.models.scan_run import RunStatus, TriggerType


@pytest.fixture(autouse=True)
def queued(monkeypatch):
    """Celery 대신 큐 적재 기록."""
    calls: list[uuid.UUID] = []

    def _enqueue(run_id):
        calls.append(run_id)
        return f"task-{len(calls)}"

    monkeypatch.setattr("visibility.services.dispatch_service.celery_enqueue", _enqueue)
    return calls


@pytest.fixture
def owner(session_factory, make_subscription, make_token):
    subscription_id = make_subscription()
    with session_factory() as session:
        account_id = session.get(Subscription, subscription_id).account_id
    return subscription_id, {"Authorization": f"Bearer {make_token(str(account_id))}"}


def test_create_scan_and_poll_status(client, queued) -> None:
    response = client.post("/v1/scans", json={"email": "lead@acme-plumbing.com", "domain": "https://acme-plumbing.com/"})
    assert response.status_code == 202
    scan_id = response.json()["scan_id"]
    assert [str(r) for r in queued] == [scan_id]

    status = client.get(f"/v1/scans/{scan_id}/status")
    assert status.status_code == 200
    body = status.json()
    assert body["domain"] == "acme-plumbing.com"
    assert body["status"] == "pending"
    assert body["progress"] == 0
    assert body["status_message"] == "Queued for processing..."
    assert body["error"] is None
    assert body["report_token"] is None


@pytest.mark.parametrize(
    "payload",
    [
        {"email": "lead@acme-plumbing.com", "domain": "not a domain"},
        {"email": "nope", "domain": "acme-plumbing.com"},
    ],
)
def test_create_scan_rejects_bad_input(client, queued, payload) -> None:
    response = client.post("/v1/scans", json=payload)
    assert response.status_code == 400
    assert queued == []


def test_create_scan_rejects_unknown_fields(client) -> None:
    response = client.post("/v1/scans", json={"email": "a@b.com", "domain": "b.com", "plan": "pro"})
    assert response.status_code == 422


def test_create_scan_enqueue_failure_is_503(client, monkeypatch) -> None:
    def broken(run_id):
        raise ConnectionError("redis down")

    monkeypatch.setattr("visibility.services.dispatch_service.celery_enqueue", broken)
    response = client.post("/v1/scans", json={"email": "a@b.com", "domain": "acme-plumbing.com"})
    assert response.status_code == 503


def test_unknown_scan_status_is_404(client) -> None:
    assert client.get(f"/v1/scans/{uuid.uuid4()}/status").status_code == 404


def test_failed_run_exposes_error(client, make_run, session_factory) -> None:
    from visibility.models import ScanRun

    run_id = make_run(status=RunStatus.FAILED)
    with session_factory() as session:
        session.get(ScanRun, run_id).error_message = "AnalysisError: boom"
    body = client.get(f"/v1/scans/{run_id}/status").json()
    assert body["status"] == "failed"
    assert body["error"] == "AnalysisError: boom"
    assert body["estimated_seconds_remaining"] == 0


def test_rescan_requires_token(client) -> None:
    response = client.post("/v1/rescans", json={"subscription_id": str(uuid.uuid4())})
    assert response.status_code == 401
    bad = client.post(
        "/v1/rescans",
        json={"subscription_id": str(uuid.uuid4())},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert bad.status_code == 401


def test_rescan_accepted_then_conflict(client, owner, queued) -> None:
    subscription_id, headers = owner
    first = client.post("/v1/rescans", json={"subscription_id": str(subscription_id)}, headers=headers)
    assert first.status_code == 202
    assert first.json()["status"] == "pending"
    scan_id = first.json()["scan_id"]

    second = client.post("/v1/rescans", json={"subscription_id": str(subscription_id)}, headers=headers)
    assert second.status_code == 409
    detail = second.json()["detail"]
    assert detail["reason"] == "scan_in_progress"
    assert detail["scan_id"] == scan_id
    assert len(queued) == 1


def test_rescan_cooldown_is_429_with_retry_after(client, owner, make_run) -> None:
    subscription_id, headers = owner
    make_run(
        subscription_id=subscription_id,
        trigger_type=TriggerType.MANUAL,
        status=RunStatus.COMPLETE,
        created_at=datetime.now(UTC) - timedelta(hours=1),
    )
    response = client.post("/v1/rescans", json={"subscription_id": str(subscription_id)}, headers=headers)
    assert response.status_code == 429
    detail = response.json()["detail"]
    assert detail["reason"] == "cooldown"
    assert 22 * 3600 < detail["retry_after"] <= 23 * 3600
    assert response.headers["Retry-After"] == str(detail["retry_after"])

    state = client.get("/v1/rescans/status", params={"subscription_id": str(subscription_id)}, headers=headers)
    assert state.status_code == 200
    assert state.json()["can_trigger"] is False
    assert state.json()["reason"] == "cooldown"


def test_rescan_for_someone_elses_subscription_is_403(client, make_subscription, make_token, make_account) -> None:
    subscription_id = make_subscription()
    stranger = make_account(email="stranger@example.com")
    headers = {"Authorization": f"Bearer {make_token(str(stranger))}"}
    response = client.post("/v1/rescans", json={"subscription_id": str(subscription_id)}, headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"]["reason"] == "not_owner"

    missing = client.post("/v1/rescans", json={"subscription_id": str(uuid.uuid4())}, headers=headers)
    assert missing.status_code == 404


def test_rescan_status_when_idle(client, owner) -> None:
    subscription_id, headers = owner
    response = client.get("/v1/rescans/status", params={"subscription_id": str(subscription_id)}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["can_trigger"] is True
    assert body["scan_in_progress"] is False


@pytest.fixture
def stored_report(session_factory, make_run):
    def _store(*, expires_at=None) -> str:
        run_id = make_run(status=RunStatus.COMPLETE, progress=100)
        token = uuid.uuid4().hex[:16]
        with session_factory() as session:
            session.add(SiteAnalysis(run_id=run_id, business_type="plumbing services", business_name="Acme Plumbing Co"))
            prompt = ScanPrompt(run_id=run_id, sort_order=0, prompt_text="Who fixes drains?", category="service")
            session.add(prompt)
            session.flush()
            session.add_all(
                [
                    PlatformResponse(
                        run_id=run_id,
                        prompt_id=prompt.id,
                        platform="chatgpt",
                        response_text="Call Acme Plumbing.",
                        domain_mentioned=True,
                        mention_position=1,
                        competitors_mentioned=[],
                    ),
                    PlatformResponse(
                        run_id=run_id,
                        prompt_id=prompt.id,
                        platform="claude",
                        response_text=None,
                        domain_mentioned=False,
                        competitors_mentioned=[],
                        error_message="claude: request timed out after 60s",
                    ),
                ]
            )
            session.add(
                Report(
                    run_id=run_id,
                    url_token=token,
                    visibility_score=100,
                    prominence_score=100.0,
                    platform_scores={"chatgpt": 100, "claude": 0},
                    top_competitors=[{"name": "RotoRooter", "count": 2}],
                    all_competitors=[{"name": "RotoRooter", "count": 2}],
                    total_mentions=1,
                    total_queries=1,
                    failed_queries=1,
                    summary="Acme Plumbing Co has strong AI visibility.",
                    expires_at=expires_at,
                )
            )
        return token

    return _store


def test_get_report(client, stored_report) -> None:
    token = stored_report(expires_at=datetime.now(UTC) + timedelta(days=7))
    response = client.get(f"/v1/reports/{token}")
    assert response.status_code == 200
    body = response.json()
    assert body["domain"] == "acme-plumbing.com"
    assert body["business_name"] == "Acme Plumbing Co"
    assert body["visibility_score"] == 100
    assert body["top_competitors"] == [{"name": "RotoRooter", "count": 2}]
    assert [r["platform"] for r in body["responses"]] == ["chatgpt", "claude"]
    assert body["responses"][1]["error_message"].startswith("claude:")


def test_report_status_links_token(client, stored_report, session_factory) -> None:
    from sqlalchemy import select

    token = stored_report()
    with session_factory() as session:
        run_id = session.execute(select(Report.run_id).where(Report.url_token == token)).scalar_one()
    body = client.get(f"/v1/scans/{run_id}/status").json()
    assert body["status"] == "complete"
    assert body["report_token"] == token


def test_expired_report_is_410(client, stored_report) -> None:
    token = stored_report(expires_at=datetime.now(UTC) - timedelta(minutes=1))
    assert client.get(f"/v1/reports/{token}").status_code == 410


def test_unknown_report_is_404(client) -> None:
    assert client.get("/v1/reports/does-not-exist").status_code == 404


def test_internal_trigger_requires_configured_secret(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "scan_trigger_secret", None)
    assert client.post("/internal/trigger-scheduled-scans").status_code == 503

    monkeypatch.setattr(settings, "scan_trigger_secret", SecretStr("s3cret"))
    wrong = client.post("/internal/trigger-scheduled-scans", headers={"X-Scan-Trigger-Secret": "nope"})
    assert wrong.status_code == 401

    ok = client.post("/internal/trigger-scheduled-scans", headers={"X-Scan-Trigger-Secret": "s3cret"})
    assert ok.status_code == 200
    assert ok.json() == {"created": 0, "scan_ids": []}


def test_internal_scan_stats(client, monkeypatch, make_run) -> None:
    monkeypatch.setattr(settings, "scan_trigger_secret", SecretStr("s3cret"))
    make_run(status=RunStatus.COMPLETE)
    make_run(status=RunStatus.FAILED)
    response = client.get("/internal/scan-stats", headers={"Authorization": "Bearer s3cret"})
    assert response.status_code == 200
    body = response.json()
    assert body["counts"] == {"complete": 1, "failed": 1}
    assert len(body["recent"]) == 2
