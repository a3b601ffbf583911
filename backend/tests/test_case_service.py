import pytest

from casegate.db.models import CaseEvent, CaseEventType, CasePhase
from casegate.db.schemas import EvidenceCreate, FactsUpdate
from casegate.services.case_service import case_service
from casegate.utils.exceptions import FactsFrozenError


def test_create_case_records_facts_and_an_event(db, make_case):
    case = make_case(evidence=0)

    assert case.phase == CasePhase.GATHERING
    assert case.strategy.dispute_type == "employment"
    assert len(case.strategy.key_facts) == 6
    events = db.query(CaseEvent).filter(CaseEvent.case_id == case.id).all()
    assert [e.event_type for e in events] == [CaseEventType.CASE_CREATED]


def test_facts_are_merged_not_replaced(db, make_case):
    case = make_case(evidence=0)

    strategy = case_service.update_facts(
        db,
        case,
        FactsUpdate(
            key_facts=["No disciplinary meeting was ever held", "I was given no reason in writing"],
            counterparty_name="Acme Logistics Ltd",
            pre_action_steps={"grievance_raised": True},
        ),
    )

    assert len(strategy.key_facts) == 7
    assert strategy.key_facts[-1] == "I was given no reason in writing"
    assert strategy.counterparty_name == "Acme Logistics Ltd"
    assert strategy.dispute_type == "employment"
    assert strategy.pre_action_steps == {"grievance_raised": True}


def test_labels_are_normalised(db, make_case):
    case = make_case(evidence=0)

    strategy = case_service.update_facts(db, case, FactsUpdate(dispute_type="  Employment ", chosen_forum="Employment_Tribunal"))

    assert strategy.dispute_type == "employment"
    assert strategy.chosen_forum == "employment_tribunal"


def test_evidence_is_numbered_in_order(db, make_case):
    case = make_case(evidence=2)

    item = case_service.add_evidence(db, case, EvidenceCreate(title="Payslips"))

    assert item.evidence_index == 3


def test_facts_are_frozen_outside_gathering(db, make_case, force_phase):
    case = force_phase(make_case(), CasePhase.GENERATING)

    with pytest.raises(FactsFrozenError):
        case_service.update_facts(db, case, FactsUpdate(key_facts=["late fact"]))
    with pytest.raises(FactsFrozenError):
        case_service.add_evidence(db, case, EvidenceCreate(title="Late upload"))
