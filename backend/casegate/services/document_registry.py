"""
Document type registry.

Maps a document type identifier to everything the orchestrator needs to
produce it: the prompt, the post-generation validator and whether a binary
artifact has to be rendered. Adding a document type means adding an entry
to ``DOCUMENT_TYPES``; no control flow changes.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Optional

from casegate.core.config import settings
from casegate.services.fact_snapshot import FactSnapshot


# ============================================================================
# Document type identifiers
# ============================================================================

ET1_CLAIM_FORM = "UK-ET1-EMPLOYMENT-TRIBUNAL-2024"
ET_SCHEDULE_OF_LOSS = "UK-ET-SCHEDULE-OF-LOSS"
GRIEVANCE_LETTER = "UK-GRIEVANCE-LETTER-EMPLOYMENT"
N1_CLAIM_FORM = "UK-N1-COUNTY-COURT-CLAIM"
PARTICULARS_OF_CLAIM = "UK-N1-PARTICULARS-OF-CLAIM"
LETTER_BEFORE_ACTION = "UK-LBA-GENERAL"
DEMAND_LETTER = "UK-DEMAND-LETTER-GENERAL"
FORMAL_COMPLAINT_LETTER = "UK-COMPLAINT-LETTER-GENERAL"
WITNESS_STATEMENT = "UK-CPR32-WITNESS-STATEMENT"
EVIDENCE_BUNDLE_INDEX = "UK-EVIDENCE-BUNDLE-INDEX"
SSCS1_APPEAL_FORM = "UK-SSCS1-SOCIAL-SECURITY-APPEAL"
MANDATORY_RECONSIDERATION_REQUEST = "UK-SSCS5-MANDATORY-RECONSIDERATION"
PROPERTY_TRIBUNAL_APPLICATION = "UK-FTT-PROP-APPLICATION"
ADMIN_REVIEW_REQUEST = "UK-HO-ADMIN-REVIEW-REQUEST"
GUILTY_PLEA_LETTER = "UK-MAG-GUILTY-PLEA-LETTER"
MITIGATION_STATEMENT = "UK-MAG-MITIGATION-STATEMENT"
MEANS_FORM = "UK-MAG-MC100-MEANS-FORM"
POPLA_APPEAL = "UK-POPLA-PARKING-APPEAL"
FOS_COMPLAINT = "UK-FOS-COMPLAINT-FORM"


class RendererKind(str, enum.Enum):
    text = "text"
    pdf = "pdf"


_PLACEHOLDER_PATTERNS = [
    re.compile(r"\[\s*insert", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"\{\{.*?\}\}"),
    re.compile(r"\bTBC\b"),
]

_EVIDENCE_REF = re.compile(r"Evidence Item #(\d+)")

BASE_PROMPT = """You are a UK legal document writer. Write formal British English suitable for {official_name}.

Case: {title}
Dispute type: {dispute_type}
Forum: {forum}
Other party: {counterparty}

Key facts:
{facts}

Desired outcome: {outcome}

Evidence (reference ONLY as "Evidence Item #N"):
{evidence}

{instructions}

Rules:
- Never invent facts, dates or amounts that are not listed above.
- Never leave placeholders such as [INSERT ...].
- Return only the document body."""


@dataclass(frozen=True)
class DocumentTypeSpec:
    id: str
    official_name: str
    instructions: str
    renderer: RendererKind = RendererKind.text
    min_length: Optional[int] = None
    required_phrases: tuple[str, ...] = ()

    def build_prompt(self, snapshot: FactSnapshot, context: dict) -> str:
        facts = "\n".join(f"- {f}" for f in snapshot.key_facts) or "- (none)"
        evidence = "\n".join(f"- {e}" for e in snapshot.evidence_summary) or "- (none uploaded)"
        return BASE_PROMPT.format(
            official_name=self.official_name,
            title=snapshot.title or "Untitled dispute",
            dispute_type=snapshot.dispute_type or "not specified",
            forum=str(context.get("forum", "")).replace("_", " "),
            counterparty=snapshot.counterparty_name or "the respondent",
            facts=facts,
            outcome=snapshot.desired_outcome or "not specified",
            evidence=evidence,
            instructions=self.instructions,
        )

    def validate(self, text: str, snapshot: FactSnapshot) -> list[str]:
        """Return validation errors for generated ``text``; empty means valid."""
        errors: list[str] = []
        body = (text or "").strip()
        min_length = self.min_length or settings.CONTENT_MIN_LENGTH
        if len(body) < min_length:
            errors.append(f"Content too short: {len(body)} chars (need {min_length})")

        for pattern in _PLACEHOLDER_PATTERNS:
            if pattern.search(body):
                errors.append(f"Content contains placeholder text matching {pattern.pattern!r}")

        lowered = body.lower()
        for phrase in self.required_phrases:
            if phrase.lower() not in lowered:
                errors.append(f"Missing required section: {phrase}")

        known = {e.index for e in snapshot.evidence}
        for ref in sorted({int(n) for n in _EVIDENCE_REF.findall(body)}):
            if ref not in known:
                errors.append(f"References unknown Evidence Item #{ref}")
        return errors


def _spec(id: str, name: str, instructions: str, **kwargs) -> DocumentTypeSpec:
    return DocumentTypeSpec(id=id, official_name=name, instructions=instructions, **kwargs)


DOCUMENT_TYPES: dict[str, DocumentTypeSpec] = {
    spec.id: spec
    for spec in [
        _spec(
            ET1_CLAIM_FORM,
            "Employment Tribunal Claim Form (ET1)",
            "Write the details of claim for section 8.2 of the ET1: what happened, "
            "in date order, and the remedy sought in section 9.",
            renderer=RendererKind.pdf,
            min_length=200,
        ),
        _spec(
            ET_SCHEDULE_OF_LOSS,
            "Schedule of Loss",
            "List each head of loss with the amount and how it is calculated.",
        ),
        _spec(
            GRIEVANCE_LETTER,
            "Formal Grievance Letter",
            "Write a formal grievance to the employer setting out each complaint "
            "and asking for a grievance meeting.",
        ),
        _spec(
            N1_CLAIM_FORM,
            "County Court Claim Form (N1)",
            "Write the brief details of claim and the value of the claim for the N1.",
            renderer=RendererKind.pdf,
            min_length=150,
        ),
        _spec(
            PARTICULARS_OF_CLAIM,
            "Particulars of Claim",
            "Write numbered paragraphs: the parties, the agreement, the breach, "
            "the loss, and the relief claimed including interest.",
            renderer=RendererKind.pdf,
            min_length=300,
        ),
        _spec(
            LETTER_BEFORE_ACTION,
            "Letter Before Action",
            "Write a pre-action letter that sets out the claim, the amount owed, "
            "and gives 14 days to respond before court proceedings are issued.",
        ),
        _spec(
            DEMAND_LETTER,
            "Letter of Demand",
            "Write a firm demand for payment stating the sum and a deadline.",
        ),
        _spec(
            FORMAL_COMPLAINT_LETTER,
            "Formal Complaint Letter",
            "Write a formal complaint that sets out the problem and the resolution "
            "wanted, and asks for a final response within 8 weeks.",
        ),
        _spec(
            WITNESS_STATEMENT,
            "Witness Statement (CPR 32)",
            "Write a first-person witness statement in numbered paragraphs ending "
            "with the statement of truth.",
            renderer=RendererKind.pdf,
            required_phrases=("statement of truth",),
        ),
        _spec(
            EVIDENCE_BUNDLE_INDEX,
            "Evidence Bundle Index",
            "List every evidence item in order with a one-line description.",
        ),
        _spec(
            SSCS1_APPEAL_FORM,
            "Social Security Appeal Form (SSCS1)",
            "Write the grounds of appeal: why the decision is wrong and what it should be.",
            renderer=RendererKind.pdf,
        ),
        _spec(
            MANDATORY_RECONSIDERATION_REQUEST,
            "Mandatory Reconsideration Request",
            "Write a request to the DWP to look at the decision again, with reasons.",
        ),
        _spec(
            PROPERTY_TRIBUNAL_APPLICATION,
            "First-tier Tribunal (Property Chamber) Application",
            "Write the grounds of the application and the order sought.",
            renderer=RendererKind.pdf,
        ),
        _spec(
            ADMIN_REVIEW_REQUEST,
            "Administrative Review Request",
            "Identify each caseworking error in the refusal and explain why it is wrong.",
        ),
        _spec(
            GUILTY_PLEA_LETTER,
            "Guilty Plea Letter",
            "Write a short letter to the court entering a plea and asking for the "
            "mitigation to be considered.",
        ),
        _spec(
            MITIGATION_STATEMENT,
            "Statement of Mitigation",
            "Set out the personal circumstances the court should consider.",
        ),
        _spec(
            MEANS_FORM,
            "Statement of Means (MC100)",
            "Summarise income, outgoings and dependants for the means form.",
            renderer=RendererKind.pdf,
        ),
        _spec(
            POPLA_APPEAL,
            "POPLA Parking Appeal",
            "Write the appeal grounds against the parking charge notice.",
        ),
        _spec(
            FOS_COMPLAINT,
            "Financial Ombudsman Complaint",
            "Summarise the complaint, the firm's final response, and what would put it right.",
        ),
    ]
}


def get_document_type(document_type: str) -> Optional[DocumentTypeSpec]:
    return DOCUMENT_TYPES.get(document_type)
