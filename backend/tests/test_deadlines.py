from datetime import datetime, timedelta

import pytest

from casegate.db.models import CasePhase, DocumentJob, DocumentJobStatus, LifecycleStatus
from casegate.services import document_registry as docs
from casegate.services.deadline_service import (
    check_missed_deadlines,
    days_remaining,
    mark_document_sent,
    record_response,
)
from casegate.services.lifecycle_service import lifecycle_controller
from casegate.utils.exceptions import InvalidLifecycleAction

SENT_AT = datetime(2026, 6, 1, 9, 0)


@pytest.fixture
def completed_job(db, make_case, force_phase):
    case = force_phase(make_case(), CasePhase.COMPLETED)
    job = DocumentJob(
        case_id=case.id,
        document_type=docs.ET1_CLAIM_FORM,
        ordinal=1,
        status=DocumentJobStatus.COMPLETED,
        content="Details of claim",
    )
    db.add(job)
    db.commit()
    return case, job


def test_sending_starts_the_response_clock(db, completed_job):
    case, job = completed_job

    mark_document_sent(db, job, now=SENT_AT)

    assert case.status == LifecycleStatus.AWAITING_RESPONSE
    assert case.waiting_until == SENT_AT + timedelta(days=14)
    assert job.sent_at == SENT_AT
    assert days_remaining(case, now=SENT_AT) == 14
    assert days_remaining(case, now=SENT_AT + timedelta(days=13, hours=12)) == 1


def test_untracked_send_marks_the_case_sent(db, completed_job):
    case, job = completed_job

    mark_document_sent(db, job, now=SENT_AT, track_response=False)

    assert case.status == LifecycleStatus.DOCUMENT_SENT
    assert case.waiting_until is None
    assert days_remaining(case) is None
    assert check_missed_deadlines(db, now=SENT_AT + timedelta(days=30)) == 0

    record_response(db, case)
    assert case.status == LifecycleStatus.RESPONSE_RECEIVED


def test_untracked_send_keeps_a_running_clock(db, completed_job):
    case, job = completed_job
    mark_document_sent(db, job, now=SENT_AT)

    mark_document_sent(db, job, now=SENT_AT + timedelta(days=2), track_response=False)

    assert case.status == LifecycleStatus.AWAITING_RESPONSE
    assert case.waiting_until == SENT_AT + timedelta(days=14)


def test_only_completed_documents_can_be_sent(db, completed_job):
    _, job = completed_job
    job.status = DocumentJobStatus.FAILED
    db.commit()

    with pytest.raises(InvalidLifecycleAction):
        mark_document_sent(db, job)


def test_closed_cases_cannot_send(db, completed_job):
    case, job = completed_job
    lifecycle_controller.close_case(db, case)

    with pytest.raises(InvalidLifecycleAction):
        mark_document_sent(db, job)


def test_sweep_marks_overdue_cases(db, completed_job):
    case, job = completed_job
    mark_document_sent(db, job, now=SENT_AT)

    assert check_missed_deadlines(db, now=SENT_AT + timedelta(days=13)) == 0
    assert check_missed_deadlines(db, now=SENT_AT + timedelta(days=15)) == 1

    db.refresh(case)
    assert case.status == LifecycleStatus.DEADLINE_MISSED
    assert check_missed_deadlines(db, now=SENT_AT + timedelta(days=16)) == 0


def test_response_can_arrive_after_the_deadline(db, completed_job):
    case, job = completed_job
    mark_document_sent(db, job, now=SENT_AT)
    check_missed_deadlines(db, now=SENT_AT + timedelta(days=20))
    db.refresh(case)

    record_response(db, case)

    assert case.status == LifecycleStatus.RESPONSE_RECEIVED
    assert case.waiting_until is None
    assert days_remaining(case) is None


def test_response_without_a_sent_document_is_rejected(db, completed_job):
    case, _ = completed_job

    with pytest.raises(InvalidLifecycleAction):
        record_response(db, case)
