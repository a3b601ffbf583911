from casegate.services.fact_snapshot import EvidenceRef
from casegate.services.sufficiency_service import (
    MISSING_DOMAIN,
    MISSING_EVIDENCE,
    MISSING_FACTS,
    MISSING_OUTCOME,
    check_sufficiency,
)


def test_complete_case_is_sufficient(snapshot):
    result = check_sufficiency(snapshot())

    assert result.sufficient
    assert result.score == 100
    assert result.missing == []
    assert result.reason == "Case has all required information"


def test_every_missing_item_is_reported(snapshot):
    result = check_sufficiency(
        snapshot(dispute_type=None, key_facts=(), desired_outcome="", evidence=())
    )

    assert not result.sufficient
    assert result.score == 0
    assert result.missing == [MISSING_DOMAIN, MISSING_FACTS, MISSING_OUTCOME, MISSING_EVIDENCE]


def test_unknown_domain_counts_as_missing(snapshot):
    result = check_sufficiency(snapshot(dispute_type="unknown"))

    assert result.missing == [MISSING_DOMAIN]
    assert result.score == 75


def test_four_facts_are_not_enough(snapshot):
    result = check_sufficiency(snapshot(key_facts=("a", "b", "c", "d")))

    assert result.missing == [MISSING_FACTS]


def test_blank_facts_do_not_count(snapshot):
    result = check_sufficiency(snapshot(key_facts=("a", "b", "c", "d", "   ")))

    assert MISSING_FACTS in result.missing


def test_outcome_must_be_longer_than_fifteen_characters(snapshot):
    assert MISSING_OUTCOME in check_sufficiency(snapshot(desired_outcome="x" * 15)).missing
    assert MISSING_OUTCOME not in check_sufficiency(snapshot(desired_outcome="x" * 16)).missing


def test_one_evidence_item_is_enough(snapshot):
    result = check_sufficiency(snapshot(evidence=(EvidenceRef(1, "Contract"),)))

    assert result.sufficient
    assert "Missing" not in result.reason
