import pytest

from casegate.db.database import SessionLocal
from casegate.db.models import Case, CaseEvent, CaseEventType, CasePhase, LifecycleStatus
from casegate.services.fact_snapshot import load_snapshot
from casegate.services.lifecycle_service import (
    CLASSIFICATION_FAILED,
    PHASE_MESSAGES,
    lifecycle_controller,
    phase_message,
)
from casegate.services.sufficiency_service import check_sufficiency
from casegate.utils.exceptions import (
    InsufficientFactsError,
    InvalidLifecycleAction,
    InvalidPhaseTransition,
)


def _route(db, case):
    return lifecycle_controller.begin_routing(db, case, check_sufficiency(load_snapshot(db, case)))


def test_begin_routing_locks_the_conversation_and_bumps_the_attempt(db, make_case):
    case = make_case()
    assert case.conversation_writable

    attempt = _route(db, case)

    assert attempt == 1
    assert case.phase == CasePhase.ROUTING
    assert case.conversation_locked
    assert case.locked_at is not None
    assert case.lock_reason


def test_begin_routing_requires_sufficient_facts(db, make_case):
    case = make_case(evidence=0)

    with pytest.raises(InsufficientFactsError) as exc:
        _route(db, case)

    assert exc.value.missing == ["evidence upload"]
    assert case.phase == CasePhase.GATHERING


def test_second_trigger_loses_the_race(db, make_case):
    case = make_case()
    other = SessionLocal()
    try:
        stale = other.query(Case).filter(Case.id == case.id).first()
        sufficiency = check_sufficiency(load_snapshot(other, stale))

        assert _route(db, case) == 1
        assert lifecycle_controller.begin_routing(other, stale, sufficiency) is None
    finally:
        other.close()

    db.refresh(case)
    assert case.generation_attempt == 1


def test_begin_routing_is_refused_for_closed_cases(db, make_case):
    case = make_case()
    lifecycle_controller.close_case(db, case)

    with pytest.raises(InvalidLifecycleAction):
        _route(db, case)


def test_happy_path_transitions_are_recorded(db, make_case):
    case = make_case()
    attempt = _route(db, case)
    lifecycle_controller.begin_generating(db, case, attempt)
    lifecycle_controller.complete(db, case, attempt, summary={"summary": "1 of 1 documents generated"})

    assert case.phase == CasePhase.COMPLETED
    assert case.conversation_locked
    assert phase_message(case) == PHASE_MESSAGES[CasePhase.COMPLETED]
    changes = (
        db.query(CaseEvent)
        .filter(CaseEvent.case_id == case.id, CaseEvent.event_type == CaseEventType.PHASE_CHANGED)
        .all()
    )
    assert [e.details["to"] for e in changes] == ["ROUTING", "GENERATING", "COMPLETED"]


def test_transition_with_a_stale_attempt_is_rejected(db, make_case):
    case = make_case()
    attempt = _route(db, case)

    with pytest.raises(InvalidPhaseTransition):
        lifecycle_controller.begin_generating(db, case, attempt + 1)
    assert case.phase == CasePhase.ROUTING


def test_cannot_block_a_gathering_case(db, make_case):
    case = make_case()

    with pytest.raises(InvalidPhaseTransition):
        lifecycle_controller.block(db, case, "TIME_LIMIT_EXPIRED", "Out of time")


def test_block_keeps_the_gate_and_message(db, make_case):
    case = make_case()
    attempt = _route(db, case)

    lifecycle_controller.block(db, case, "TIME_LIMIT_EXPIRED", "Your claim is out of time.", attempt=attempt)

    assert case.phase == CasePhase.BLOCKED
    assert case.blocked_gate == "TIME_LIMIT_EXPIRED"
    assert phase_message(case) == "Your claim is out of time."
    assert case.conversation_locked


def test_classification_failure_reopens_the_conversation(db, make_case):
    case = make_case()
    attempt = _route(db, case)

    lifecycle_controller.revert_to_gathering(db, case, attempt, "Could not work out the dispute", ["What happened?"])

    assert case.phase == CasePhase.GATHERING
    assert case.conversation_writable
    assert case.blocked_gate == CLASSIFICATION_FAILED
    assert phase_message(case) == "Could not work out the dispute"
    assert case.locked_at is None


def test_reset_from_blocked_clears_the_block(db, make_case):
    case = make_case()
    attempt = _route(db, case)
    lifecycle_controller.block(db, case, "PREREQUISITE_UNMET", "Send a letter first", attempt=attempt)

    lifecycle_controller.reset_to_gathering(db, case)

    assert case.phase == CasePhase.GATHERING
    assert case.blocked_gate is None
    assert case.blocked_message is None
    assert phase_message(case) == PHASE_MESSAGES[CasePhase.GATHERING]
    assert _route(db, case) == 2


def test_reset_while_generating_is_rejected(db, make_case):
    case = make_case()
    attempt = _route(db, case)
    lifecycle_controller.begin_generating(db, case, attempt)

    with pytest.raises(InvalidPhaseTransition):
        lifecycle_controller.reset_to_gathering(db, case)


def test_reset_of_a_gathering_case_is_a_no_op(db, make_case):
    case = make_case()

    lifecycle_controller.reset_to_gathering(db, case)

    assert case.phase == CasePhase.GATHERING
    assert case.generation_attempt == 0


def test_close_is_refused_mid_pipeline(db, make_case):
    case = make_case()
    _route(db, case)

    with pytest.raises(InvalidLifecycleAction):
        lifecycle_controller.close_case(db, case)


def test_closed_case_is_locked(db, make_case):
    case = make_case()

    lifecycle_controller.close_case(db, case)

    assert case.status == LifecycleStatus.CLOSED
    assert case.closed_at is not None
    assert case.conversation_locked
