"""
Case lifecycle controller.

The only code that writes ``Case.phase``:

    GATHERING -> ROUTING -> GENERATING -> COMPLETED
                    |            |
                    +-> BLOCKED <+
    ROUTING -> GATHERING          (classification failure)
    BLOCKED | COMPLETED -> GATHERING (explicit reset)

Every transition is a compare-and-set UPDATE on (phase, generation_attempt)
so two triggers racing on the same case cannot both win.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from casegate.core.logger import logger
from casegate.db.models import (
    Case,
    CaseEvent,
    CaseEventType,
    CasePhase,
    LifecycleStatus,
)
from casegate.services.sufficiency_service import SufficiencyResult
from casegate.utils.exceptions import (
    InsufficientFactsError,
    InvalidLifecycleAction,
    InvalidPhaseTransition,
)

CLASSIFICATION_FAILED = "CLASSIFICATION_FAILED"
GENERATION_FAILED = "GENERATION_FAILED"
GENERATION_FAILED_MESSAGE = "Document generation failed. Please try again later."

PHASE_MESSAGES = {
    CasePhase.GATHERING: "Tell us about your case",
    CasePhase.ROUTING: "Analysing the legal route for your case",
    CasePhase.GENERATING: "Generating your documents",
    CasePhase.COMPLETED: "Your documents are ready",
    CasePhase.BLOCKED: "Document generation is blocked",
}

LOCK_REASONS = {
    CasePhase.ROUTING: "Working out where your case belongs",
    CasePhase.GENERATING: "Your documents are being prepared",
    CasePhase.COMPLETED: "Documents have been generated for this case",
}


def phase_message(case: Case) -> str:
    """Canonical user-facing status message for the case's phase."""
    if case.phase == CasePhase.BLOCKED and case.blocked_message:
        return case.blocked_message
    if (case.phase == CasePhase.GATHERING
            and case.blocked_gate == CLASSIFICATION_FAILED
            and case.blocked_message):
        return case.blocked_message
    return PHASE_MESSAGES[case.phase]


class LifecycleController:

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _transition(
        self,
        db: Session,
        case: Case,
        allowed_from: Iterable[CasePhase],
        target: CasePhase,
        attempt: Optional[int] = None,
        values: Optional[dict] = None,
        event_details: Optional[dict] = None,
        commit: bool = True,
    ) -> bool:
        allowed_from = list(allowed_from)
        previous = case.phase

        query = db.query(Case).filter(Case.id == case.id, Case.phase.in_(allowed_from))
        if attempt is not None:
            query = query.filter(Case.generation_attempt == attempt)

        now = datetime.utcnow()
        update = {Case.phase: target, Case.updated_at: now}
        if target == CasePhase.GATHERING:
            update.update({Case.lock_reason: None, Case.locked_at: None})
        else:
            update.update({
                Case.lock_reason: (values or {}).pop("lock_reason", None) or LOCK_REASONS.get(target),
                Case.locked_at: now,
            })
        for key, value in (values or {}).items():
            update[getattr(Case, key)] = value

        changed = query.update(update, synchronize_session=False)
        db.refresh(case)
        if not changed:
            return False

        db.add(CaseEvent(
            case_id=case.id,
            event_type=CaseEventType.PHASE_CHANGED,
            description=f"{previous.value} -> {target.value}",
            details={"from": previous.value, "to": target.value, "attempt": case.generation_attempt,
                     **(event_details or {})},
        ))
        if commit:
            db.commit()
        logger.info(
            "Case %s phase %s -> %s (attempt=%s)",
            case.id, previous.value, target.value, case.generation_attempt,
        )
        return True

    def _require(self, changed: bool, case: Case, target: CasePhase) -> None:
        if not changed:
            raise InvalidPhaseTransition(case.phase, target)

    # ------------------------------------------------------------------
    # Pipeline transitions
    # ------------------------------------------------------------------

    def begin_routing(
        self,
        db: Session,
        case: Case,
        sufficiency: SufficiencyResult,
        commit: bool = True,
    ) -> Optional[int]:
        """
        GATHERING -> ROUTING. Returns the new generation attempt, or None
        when another trigger already moved the case on.
        """
        if not sufficiency.sufficient:
            raise InsufficientFactsError(sufficiency.missing)
        if case.status == LifecycleStatus.CLOSED:
            raise InvalidLifecycleAction("Closed cases cannot generate documents")

        expected = case.generation_attempt
        changed = self._transition(
            db,
            case,
            [CasePhase.GATHERING],
            CasePhase.ROUTING,
            attempt=expected,
            values={
                "generation_attempt": expected + 1,
                "blocked_gate": None,
                "blocked_message": None,
            },
            commit=commit,
        )
        return case.generation_attempt if changed else None

    def begin_generating(self, db: Session, case: Case, attempt: int) -> None:
        changed = self._transition(db, case, [CasePhase.ROUTING], CasePhase.GENERATING, attempt=attempt)
        self._require(changed, case, CasePhase.GENERATING)

    def block(
        self,
        db: Session,
        case: Case,
        gate_name: str,
        user_message: str,
        attempt: Optional[int] = None,
    ) -> None:
        changed = self._transition(
            db,
            case,
            [CasePhase.ROUTING, CasePhase.GENERATING],
            CasePhase.BLOCKED,
            attempt=attempt,
            values={
                "lock_reason": user_message,
                "blocked_gate": gate_name,
                "blocked_message": user_message,
            },
            event_details={"gate": gate_name},
        )
        self._require(changed, case, CasePhase.BLOCKED)

    def complete(self, db: Session, case: Case, attempt: int, summary: Optional[dict] = None) -> None:
        changed = self._transition(
            db, case, [CasePhase.GENERATING], CasePhase.COMPLETED,
            attempt=attempt, event_details=summary,
        )
        self._require(changed, case, CasePhase.COMPLETED)

    def revert_to_gathering(
        self,
        db: Session,
        case: Case,
        attempt: int,
        message: str,
        questions: Optional[list[str]] = None,
    ) -> None:
        """Classification failed: unlock and ask the user for more information."""
        changed = self._transition(
            db,
            case,
            [CasePhase.ROUTING],
            CasePhase.GATHERING,
            attempt=attempt,
            values={"blocked_gate": CLASSIFICATION_FAILED, "blocked_message": message},
            event_details={"reason": message, "questions": questions or []},
        )
        self._require(changed, case, CasePhase.GATHERING)

    # ------------------------------------------------------------------
    # User-initiated transitions
    # ------------------------------------------------------------------

    def reset_to_gathering(self, db: Session, case: Case) -> None:
        """Reopen a finished or blocked case for new facts."""
        if case.phase == CasePhase.GATHERING:
            return
        changed = self._transition(
            db,
            case,
            [CasePhase.BLOCKED, CasePhase.COMPLETED],
            CasePhase.GATHERING,
            values={"blocked_gate": None, "blocked_message": None},
            event_details={"reason": "reset"},
        )
        self._require(changed, case, CasePhase.GATHERING)

    def close_case(self, db: Session, case: Case) -> None:
        if case.status == LifecycleStatus.CLOSED:
            return
        if case.phase in (CasePhase.ROUTING, CasePhase.GENERATING):
            raise InvalidLifecycleAction("Cannot close a case while documents are being prepared")
        now = datetime.utcnow()
        case.status = LifecycleStatus.CLOSED
        case.closed_at = now
        case.lock_reason = "Case closed"
        case.locked_at = now
        db.add(CaseEvent(
            case_id=case.id,
            event_type=CaseEventType.CASE_CLOSED,
            description="Case closed",
        ))
        db.commit()
        logger.info("Case %s closed", case.id)


lifecycle_controller = LifecycleController()
