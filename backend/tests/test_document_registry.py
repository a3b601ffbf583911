import pytest

from casegate.services import document_registry as docs


@pytest.fixture
def et1():
    return docs.get_document_type(docs.ET1_CLAIM_FORM)


def _body(n=260):
    return ("The respondent dismissed the claimant without any procedure. " * 10)[:n]


def test_valid_content_has_no_errors(et1, snapshot):
    assert et1.validate(_body() + " See Evidence Item #2.", snapshot()) == []


def test_short_content_is_rejected(et1, snapshot):
    errors = et1.validate("Too short.", snapshot())

    assert errors and "too short" in errors[0].lower()


@pytest.mark.parametrize("placeholder", ["[INSERT DATE]", "Lorem ipsum dolor", "{{ claimant_name }}", "amount TBC"])
def test_placeholders_are_rejected(et1, snapshot, placeholder):
    errors = et1.validate(_body() + " " + placeholder, snapshot())

    assert any("placeholder" in e for e in errors)


def test_unknown_evidence_reference_is_rejected(et1, snapshot):
    errors = et1.validate(_body() + " See Evidence Item #7.", snapshot())

    assert errors == ["References unknown Evidence Item #7"]


def test_witness_statement_needs_statement_of_truth(snapshot):
    spec = docs.get_document_type(docs.WITNESS_STATEMENT)

    assert spec.validate(_body(), snapshot()) == ["Missing required section: statement of truth"]
    assert spec.validate(_body() + "\nStatement of Truth: I believe the facts are true.", snapshot()) == []


def test_prompt_carries_facts_and_numbered_evidence(et1, snapshot):
    prompt = et1.build_prompt(snapshot(), {"forum": "employment_tribunal"})

    assert "Employment Tribunal" in prompt or "employment tribunal" in prompt
    assert "- No disciplinary meeting was ever held" in prompt
    assert "Evidence Item #1 (Dismissal letter)" in prompt
    assert "reinstatement and £4,000 back pay" in prompt


def test_unknown_document_type():
    assert docs.get_document_type("UK-NOT-A-FORM") is None
