"""
Shared fixtures.

The environment is configured before anything from ``casegate`` is imported:
settings are read once at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["WORKER_TOKEN"] = "test-worker-token"
os.environ["GENERATION_WORKER_ENABLED"] = "false"
os.environ["DEADLINE_SWEEP_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import date, datetime, timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from casegate.core.config import settings
from casegate.db.database import Base, SessionLocal, engine
from casegate.db.models import User
from casegate.db.schemas import CaseCreate, EvidenceCreate
from casegate.services.case_service import case_service
from casegate.services.fact_snapshot import EvidenceRef, FactSnapshot
from casegate.services.generation_orchestrator import DocumentGenerationOrchestrator
from casegate.services.routing.types import RoutingDecision, RoutingStatus

EMPLOYMENT_FACTS = {
    "dispute_type": "employment",
    "key_facts": [
        "I worked as a warehouse supervisor for Acme Logistics Ltd for four years",
        "On 3 March my manager told me I was dismissed with immediate effect",
        "No disciplinary meeting was ever held",
        "I had no prior warnings on my record",
        "My final payslip did not include my notice pay",
        "Two colleagues were kept on in the same role",
    ],
    "desired_outcome": "reinstatement and £4,000 back pay",
}

_BODY = (
    "This document has been prepared on behalf of the claimant and sets out the "
    "background to the dispute, the events complained of and the remedy sought. "
    "The claimant has tried to resolve matters directly with the other party but "
    "no satisfactory answer has been received, and the claimant now asks for the "
    "matter to be determined. Each fact below is drawn from the claimant's own "
    "account and the documents disclosed with this claim."
)


class SyntheticGenerator:
    """Returns a body that passes every document type's validator."""

    def __init__(self):
        self.calls = []

    def generate(self, document_type, snapshot, context):
        self.calls.append(document_type)
        lines = [_BODY, ""]
        lines.extend(f"- {fact}" for fact in snapshot.key_facts)
        if snapshot.evidence:
            lines.append(f"The claimant relies on Evidence Item #{snapshot.evidence[0].index}.")
        lines.append("")
        lines.append("Statement of truth: I believe that the facts stated in this document are true.")
        return "\n".join(lines)


class FailingGenerator(SyntheticGenerator):
    """Raises for the listed document types and succeeds for the rest."""

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = set(fail_on)

    def generate(self, document_type, snapshot, context):
        if document_type in self.fail_on:
            self.calls.append(document_type)
            raise RuntimeError(f"model timed out drafting {document_type}")
        return super().generate(document_type, snapshot, context)


class FakeRenderer:
    def __init__(self):
        self.rendered = []

    def render(self, text, document_type):
        self.rendered.append(document_type)
        return f"test/{document_type}/{len(self.rendered)}.pdf"


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db):
    u = User(email="claimant@example.com", full_name="Sam Claimant")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def make_case(db, user):
    def _make(evidence=2, title="Dismissed without a hearing", **facts):
        payload = CaseCreate(title=title, **{**EMPLOYMENT_FACTS, **facts})
        case = case_service.create_case(db, user, payload)
        for i in range(evidence):
            case_service.add_evidence(db, case, EvidenceCreate(title=f"Exhibit {i + 1}", file_type="pdf"))
        db.refresh(case)
        return case
    return _make


@pytest.fixture
def force_phase(db):
    """Put a case straight into a phase, for tests that start mid-pipeline."""
    def _force(case, phase, attempt=1):
        case.phase = phase
        case.generation_attempt = attempt
        db.commit()
        db.refresh(case)
        return case
    return _force


# ============================================================================
# Collaborators
# ============================================================================

@pytest.fixture
def generator():
    return SyntheticGenerator()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def orchestrator(generator, renderer):
    return DocumentGenerationOrchestrator(content_generator=generator, renderer=renderer)


@pytest.fixture
def make_orchestrator(renderer):
    def _make(fail_on=()):
        gen = FailingGenerator(fail_on) if fail_on else SyntheticGenerator()
        return DocumentGenerationOrchestrator(content_generator=gen, renderer=renderer)
    return _make


@pytest.fixture
def snapshot():
    def _snapshot(**overrides):
        values = {
            "case_id": "case-1",
            "title": "Dismissed without a hearing",
            "dispute_type": EMPLOYMENT_FACTS["dispute_type"],
            "key_facts": tuple(EMPLOYMENT_FACTS["key_facts"]),
            "desired_outcome": EMPLOYMENT_FACTS["desired_outcome"],
            "evidence": (EvidenceRef(1, "Dismissal letter"), EvidenceRef(2, "Payslips")),
        }
        values.update(overrides)
        return FactSnapshot(**values)
    return _snapshot


@pytest.fixture
def make_decision():
    def _decision(**overrides):
        values = {
            "case_id": "case-1",
            "status": RoutingStatus.APPROVED,
            "confidence": 0.9,
            "jurisdiction": "england_wales",
            "relationship": "employee",
            "counterparty": "private_company",
            "domain": "employment",
            "forum": "employment_tribunal",
            "forum_reasoning": "Employees bring claims in the Employment Tribunal",
            "allowed_docs": ["UK-ET1-EMPLOYMENT-TRIBUNAL-2024"],
            "blocked_docs": ["UK-N1-COUNTY-COURT-CLAIM"],
        }
        values.update(overrides)
        return RoutingDecision(**values)
    return _decision


# ============================================================================
# API
# ============================================================================

@pytest.fixture
def client(db):
    from casegate.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers(user):
    token = jwt.encode(
        {"sub": str(user.id), "exp": datetime.utcnow() + timedelta(hours=1)},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def inline_pipeline(monkeypatch):
    """Run background generation with synthetic collaborators instead of Bedrock/S3."""
    from casegate.api.v1.endpoints import cases
    from casegate.services.generation_queue import run_task

    state = {"fail_on": set()}

    def _run(task_id):
        session = SessionLocal()
        try:
            gen = FailingGenerator(state["fail_on"]) if state["fail_on"] else SyntheticGenerator()
            run_task(
                session,
                task_id,
                orchestrator=DocumentGenerationOrchestrator(content_generator=gen, renderer=FakeRenderer()),
            )
        finally:
            session.close()

    monkeypatch.setattr(cases, "process_task_in_background", _run)
    return state


@pytest.fixture
def today():
    return date(2026, 6, 1)


