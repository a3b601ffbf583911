"""
Persistence of routing decisions (one row per case, keyed by attempt).
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from casegate.db.models import Case, RoutingDecisionRecord
from casegate.services.routing.types import RoutingDecision


def save_decision(db: Session, case: Case, attempt: int, decision: RoutingDecision) -> RoutingDecisionRecord:
    """Insert or overwrite the case's decision. Does not commit."""
    record = db.query(RoutingDecisionRecord).filter(RoutingDecisionRecord.case_id == case.id).first()
    if record is None:
        record = RoutingDecisionRecord(case_id=case.id)
        db.add(record)
    record.attempt = attempt
    record.status = decision.status.value
    record.forum = decision.forum
    record.confidence = decision.confidence
    record.decision = decision.model_dump(mode="json")
    db.flush()
    return record


def load_decision(db: Session, case: Case, attempt: Optional[int] = None) -> Optional[RoutingDecision]:
    """The stored decision, or None. With ``attempt`` only a decision made for that run counts."""
    query = db.query(RoutingDecisionRecord).filter(RoutingDecisionRecord.case_id == case.id)
    if attempt is not None:
        query = query.filter(RoutingDecisionRecord.attempt == attempt)
    record = query.first()
    if record is None:
        return None
    return RoutingDecision.model_validate(record.decision)
