"""
Response deadlines after a document has been sent.

    COMPLETED document sent → AWAITING_RESPONSE (waiting_until = now + N days)
    COMPLETED document sent, no response expected → DOCUMENT_SENT
    AWAITING_RESPONSE past waiting_until → DEADLINE_MISSED (periodic sweep)
    DOCUMENT_SENT | AWAITING_RESPONSE | DEADLINE_MISSED → RESPONSE_RECEIVED
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.models import (
    Case,
    CaseEvent,
    CaseEventType,
    DocumentJob,
    DocumentJobStatus,
    LifecycleStatus,
)
from casegate.utils.exceptions import InvalidLifecycleAction

# A running response clock is never replaced by an untracked send.
_TRACKING = (LifecycleStatus.AWAITING_RESPONSE, LifecycleStatus.DEADLINE_MISSED)


def mark_document_sent(
    db: Session,
    job: DocumentJob,
    now: Optional[datetime] = None,
    track_response: bool = True,
) -> Case:
    if job.status != DocumentJobStatus.COMPLETED:
        raise InvalidLifecycleAction("Only completed documents can be marked as sent")

    case = db.query(Case).filter(Case.id == job.case_id).first()
    if case.status == LifecycleStatus.CLOSED:
        raise InvalidLifecycleAction("This case is closed")

    sent_at = now or datetime.utcnow()
    job.sent_at = sent_at
    details = {"job_id": str(job.id)}
    if track_response:
        case.status = LifecycleStatus.AWAITING_RESPONSE
        case.waiting_until = sent_at + timedelta(days=settings.RESPONSE_DEADLINE_DAYS)
        details["waiting_until"] = case.waiting_until.isoformat()
    elif case.status not in _TRACKING:
        case.status = LifecycleStatus.DOCUMENT_SENT
    db.add(CaseEvent(
        case_id=case.id,
        event_type=CaseEventType.DOCUMENT_SENT,
        description=f"Document '{job.document_type}' was sent",
        details=details,
        occurred_at=sent_at,
    ))
    db.commit()
    if case.waiting_until is not None:
        logger.info("Case %s awaiting response until %s", case.id, case.waiting_until.isoformat())
    else:
        logger.info("Case %s document %s sent, no response tracked", case.id, job.id)
    return case


def record_response(db: Session, case: Case) -> Case:
    if case.status not in (LifecycleStatus.DOCUMENT_SENT, *_TRACKING):
        raise InvalidLifecycleAction("No response is expected for this case")
    case.status = LifecycleStatus.RESPONSE_RECEIVED
    case.waiting_until = None
    db.add(CaseEvent(
        case_id=case.id,
        event_type=CaseEventType.RESPONSE_RECEIVED,
        description="Response received from the other party",
    ))
    db.commit()
    return case


def days_remaining(case: Case, now: Optional[datetime] = None) -> Optional[int]:
    if case.waiting_until is None:
        return None
    delta = case.waiting_until - (now or datetime.utcnow())
    # Round partial days up, matching what the user sees on a calendar.
    return delta.days + (1 if delta.seconds or delta.microseconds else 0)


def check_missed_deadlines(db: Session, now: Optional[datetime] = None) -> int:
    """Move every overdue AWAITING_RESPONSE case to DEADLINE_MISSED."""
    now = now or datetime.utcnow()
    overdue = (
        db.query(Case)
        .filter(
            Case.status == LifecycleStatus.AWAITING_RESPONSE,
            Case.waiting_until != None,  # noqa: E711
            Case.waiting_until < now,
        )
        .all()
    )
    for case in overdue:
        case.status = LifecycleStatus.DEADLINE_MISSED
        db.add(CaseEvent(
            case_id=case.id,
            event_type=CaseEventType.DEADLINE_MISSED,
            description="Response deadline missed",
            occurred_at=now,
        ))
    db.commit()
    if overdue:
        logger.info("Deadline sweep: %d case(s) moved to DEADLINE_MISSED", len(overdue))
    return len(overdue)
