import uuid
from datetime import datetime, timedelta

import jwt
import pytest

from casegate.core.config import settings
from casegate.db.models import User
from casegate.services import document_registry as docs

CASE_PAYLOAD = {
    "title": "Dismissed without a hearing",
    "dispute_type": "Employment",
    "key_facts": [
        "I worked as a warehouse supervisor for Acme Logistics Ltd for four years",
        "On 3 March my manager told me I was dismissed with immediate effect",
        "No disciplinary meeting was ever held",
        "I had no prior warnings on my record",
        "My final payslip did not include my notice pay",
    ],
    "desired_outcome": "reinstatement and £4,000 back pay",
}


@pytest.fixture
def case_id(client, auth_headers):
    response = client.post("/api/v1/cases/", json=CASE_PAYLOAD, headers=auth_headers)
    assert response.status_code == 201
    cid = response.json()["id"]
    response = client.post(
        f"/api/v1/cases/{cid}/evidence",
        json={"title": "Dismissal letter", "file_type": "pdf"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    return cid


@pytest.fixture
def generated(client, auth_headers, case_id, inline_pipeline):
    response = client.post(f"/api/v1/cases/{case_id}/generate", headers=auth_headers)
    assert response.status_code == 202
    return case_id


# ============================================================================
# Auth
# ============================================================================

def test_requests_need_a_token(client, db):
    assert client.post("/api/v1/cases/", json=CASE_PAYLOAD).status_code in (401, 403)


def test_expired_token_is_rejected(client, user):
    token = jwt.encode(
        {"sub": str(user.id), "exp": datetime.utcnow() - timedelta(minutes=5)},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    response = client.get(f"/api/v1/cases/{uuid.uuid4()}", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_other_users_cannot_see_a_case(client, db, case_id):
    stranger = User(email="stranger@example.com")
    db.add(stranger)
    db.commit()
    token = jwt.encode({"sub": str(stranger.id)}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    response = client.get(f"/api/v1/cases/{case_id}", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403


def test_unknown_case(client, auth_headers):
    assert client.get(f"/api/v1/cases/{uuid.uuid4()}", headers=auth_headers).status_code == 404


# ============================================================================
# Intake
# ============================================================================

def test_case_status_shows_phase_and_facts(client, auth_headers, case_id):
    body = client.get(f"/api/v1/cases/{case_id}", headers=auth_headers).json()

    assert body["phase"] == "GATHERING"
    assert body["phase_message"] == "Tell us about your case"
    assert body["conversation_locked"] is False
    assert body["strategy"]["dispute_type"] == "employment"
    assert [e["evidence_index"] for e in body["evidence"]] == [1]


def test_sufficiency_reports_what_is_missing(client, auth_headers):
    cid = client.post("/api/v1/cases/", json={"title": "Unpaid wages"}, headers=auth_headers).json()["id"]

    body = client.get(f"/api/v1/cases/{cid}/sufficiency", headers=auth_headers).json()

    assert body["sufficient"] is False
    assert body["score"] == 0
    assert len(body["missing"]) == 4


def test_generate_with_missing_facts_changes_nothing(client, auth_headers, inline_pipeline):
    cid = client.post("/api/v1/cases/", json={"title": "Unpaid wages"}, headers=auth_headers).json()["id"]

    body = client.post(f"/api/v1/cases/{cid}/generate", headers=auth_headers).json()

    assert body["accepted"] is False
    assert body["phase"] == "GATHERING"
    assert "evidence upload" in body["missing"]


def test_facts_update_merges(client, auth_headers, case_id):
    response = client.patch(
        f"/api/v1/cases/{case_id}/facts",
        json={"key_facts": ["Two colleagues were kept on in the same role"], "counterparty_name": "Acme Logistics Ltd"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    strategy = response.json()["strategy"]
    assert len(strategy["key_facts"]) == 6
    assert strategy["counterparty_name"] == "Acme Logistics Ltd"


# ============================================================================
# Generation
# ============================================================================

def test_generate_runs_the_pipeline(client, auth_headers, generated):
    case = client.get(f"/api/v1/cases/{generated}", headers=auth_headers).json()
    assert case["phase"] == "COMPLETED"
    assert case["conversation_locked"] is True
    assert case["generation_attempt"] == 1

    listing = client.get(f"/api/v1/cases/{generated}/documents", headers=auth_headers).json()
    assert listing["summary"] == "1 of 1 documents generated"
    assert listing["documents"][0]["document_type"] == docs.ET1_CLAIM_FORM
    assert listing["documents"][0]["status"] == "COMPLETED"
    assert listing["documents"][0]["official_name"] == "Employment Tribunal Claim Form (ET1)"

    routing = client.get(f"/api/v1/cases/{generated}/routing", headers=auth_headers).json()
    assert routing["decision"]["forum"] == "employment_tribunal"
    assert routing["decision"]["prerequisites_met"] is True
    assert routing["gate"]["gate_name"] == "ALL_GATES_PASSED"


def test_generate_again_only_reports_the_phase(client, auth_headers, generated):
    body = client.post(f"/api/v1/cases/{generated}/generate", headers=auth_headers).json()

    assert body["accepted"] is False
    assert body["phase"] == "COMPLETED"
    assert body["message"] == "Your documents are ready"


def test_facts_are_frozen_after_generation(client, auth_headers, generated):
    response = client.patch(
        f"/api/v1/cases/{generated}/facts", json={"key_facts": ["late fact"]}, headers=auth_headers
    )

    assert response.status_code == 409


def test_routing_before_generation_is_404(client, auth_headers, case_id):
    assert client.get(f"/api/v1/cases/{case_id}/routing", headers=auth_headers).status_code == 404


def test_failed_document_can_be_retried(client, auth_headers, case_id, inline_pipeline, make_orchestrator, monkeypatch):
    from casegate.api.v1.endpoints import documents

    inline_pipeline["fail_on"] = {docs.ET1_CLAIM_FORM}
    client.post(f"/api/v1/cases/{case_id}/generate", headers=auth_headers)
    listing = client.get(f"/api/v1/cases/{case_id}/documents", headers=auth_headers).json()
    job = listing["documents"][0]
    assert listing["failed"] == 1
    assert listing["phase"] == "COMPLETED"
    assert job["status"] == "FAILED"
    assert job["retries_remaining"] == 2

    monkeypatch.setattr(documents, "document_generation_orchestrator", make_orchestrator())
    response = client.post(f"/api/v1/documents/{job['id']}/retry", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"


def test_completed_document_cannot_be_retried(client, auth_headers, generated):
    job = client.get(f"/api/v1/cases/{generated}/documents", headers=auth_headers).json()["documents"][0]

    assert client.post(f"/api/v1/documents/{job['id']}/retry", headers=auth_headers).status_code == 409


def test_reset_reopens_the_case(client, auth_headers, generated):
    body = client.post(f"/api/v1/cases/{generated}/reset", headers=auth_headers).json()

    assert body["phase"] == "GATHERING"
    assert body["conversation_locked"] is False


# ============================================================================
# After generation
# ============================================================================

def test_send_and_receive_a_response(client, auth_headers, generated):
    job = client.get(f"/api/v1/cases/{generated}/documents", headers=auth_headers).json()["documents"][0]

    sent = client.post(f"/api/v1/documents/{job['id']}/sent", headers=auth_headers)
    assert sent.status_code == 200
    assert sent.json()["sent_at"] is not None

    case = client.get(f"/api/v1/cases/{generated}", headers=auth_headers).json()
    assert case["status"] == "AWAITING_RESPONSE"
    assert case["days_remaining"] == 14

    case = client.post(f"/api/v1/cases/{generated}/response-received", headers=auth_headers).json()
    assert case["status"] == "RESPONSE_RECEIVED"


def test_send_without_tracking_a_response(client, auth_headers, generated):
    job = client.get(f"/api/v1/cases/{generated}/documents", headers=auth_headers).json()["documents"][0]

    sent = client.post(
        f"/api/v1/documents/{job['id']}/sent", params={"track_response": "false"}, headers=auth_headers
    )
    assert sent.status_code == 200

    case = client.get(f"/api/v1/cases/{generated}", headers=auth_headers).json()
    assert case["status"] == "DOCUMENT_SENT"
    assert case["days_remaining"] is None


def test_response_without_sending_is_409(client, auth_headers, case_id):
    assert client.post(f"/api/v1/cases/{case_id}/response-received", headers=auth_headers).status_code == 409


def test_close_case(client, auth_headers, case_id):
    body = client.post(f"/api/v1/cases/{case_id}/close", headers=auth_headers).json()

    assert body["status"] == "CLOSED"
    assert body["conversation_locked"] is True
    generate = client.post(f"/api/v1/cases/{case_id}/generate", headers=auth_headers).json()
    assert generate["accepted"] is False


# ============================================================================
# Worker & health
# ============================================================================

def test_worker_needs_its_token(client, db):
    assert client.post("/api/v1/generation-worker/run-due").status_code == 401
    assert client.post(
        "/api/v1/generation-worker/run-due", headers={"x-worker-token": "wrong"}
    ).status_code == 401


def test_worker_disabled_without_a_token(client, db, monkeypatch):
    monkeypatch.setattr(settings, "WORKER_TOKEN", "")

    assert client.post("/api/v1/generation-worker/run-due").status_code == 503


def test_worker_run_with_an_empty_queue(client, db):
    response = client.post(
        "/api/v1/generation-worker/run-due?batch_size=5",
        headers={"x-worker-token": "test-worker-token"},
    )

    assert response.status_code == 200
    assert response.json()["processed"] == 0


def test_health(client, db):
    response = client.get("/api/v1/health", headers={"X-Correlation-ID": "abc-123"})

    assert response.status_code == 200
    assert response.json()["database"]["status"] == "ok"
    assert response.headers["X-Correlation-ID"] == "abc-123"
