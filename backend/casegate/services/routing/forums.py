"""
Forum registry.

Each forum declares which documents may be produced for it, which are
forbidden, what must have happened before a claim is brought and how long
the claimant has to bring it. The engine reads this table; it never
branches on forum names.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from casegate.services import document_registry as docs
from casegate.services.routing.types import AlternativeRoute

# ============================================================================
# Forum identifiers
# ============================================================================

EMPLOYMENT_TRIBUNAL = "employment_tribunal"
COUNTY_COURT_SMALL_CLAIMS = "county_court_small_claims"
SSCS_TRIBUNAL = "first_tier_tribunal_sscs"
PROPERTY_TRIBUNAL = "first_tier_tribunal_property"
HOME_OFFICE_ADMIN_REVIEW = "home_office_admin_review"
MAGISTRATES_COURT = "magistrates_court"
POPLA = "popla_parking_appeal"
FINANCIAL_OMBUDSMAN = "financial_ombudsman"
INFORMAL_RESOLUTION = "informal_resolution"


@dataclass(frozen=True)
class PrerequisiteRule:
    id: str
    description: str
    # Asked when the facts do not say whether the step happened.
    question: str
    instruction: str


@dataclass(frozen=True)
class TimeLimitRule:
    description: str
    months: int = 0
    days: int = 0

    def deadline_from(self, trigger: date) -> date:
        return add_months(trigger, self.months) + timedelta(days=self.days)


@dataclass(frozen=True)
class Forum:
    id: str
    name: str
    allowed_docs: tuple[str, ...]
    blocked_docs: tuple[str, ...] = ()
    prerequisites: tuple[PrerequisiteRule, ...] = ()
    time_limit: Optional[TimeLimitRule] = None
    alternatives: tuple[AlternativeRoute, ...] = field(default_factory=tuple)


def add_months(d: date, months: int) -> date:
    """Calendar-month addition, clamped to the last day of the target month."""
    if not months:
        return d
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


_LETTER_BEFORE_ACTION = PrerequisiteRule(
    id="letter_before_action",
    description="Letter before action sent and 14 days allowed for a reply",
    question="Have you already sent the other side a letter before action and waited at least 14 days?",
    instruction="Send a letter before action and wait 14 days before issuing a claim.",
)

_MANDATORY_RECONSIDERATION = PrerequisiteRule(
    id="mandatory_reconsideration",
    description="Mandatory reconsideration notice received from the DWP",
    question="Have you asked the DWP for a mandatory reconsideration and received the notice?",
    instruction="Ask the DWP for a mandatory reconsideration before appealing.",
)

_OPERATOR_APPEAL = PrerequisiteRule(
    id="operator_appeal_rejected",
    description="Appeal to the parking operator rejected",
    question="Have you appealed to the parking operator and had the appeal rejected?",
    instruction="Appeal to the parking operator first; POPLA only hears rejected appeals.",
)

_FINAL_RESPONSE = PrerequisiteRule(
    id="final_response_received",
    description="Firm's final response received or 8 weeks passed since complaining",
    question="Has the firm sent a final response, or have 8 weeks passed since you complained?",
    instruction="Complain to the firm and wait for its final response or 8 weeks.",
)


FORUMS: dict[str, Forum] = {
    f.id: f
    for f in [
        Forum(
            id=EMPLOYMENT_TRIBUNAL,
            name="Employment Tribunal",
            allowed_docs=(docs.ET1_CLAIM_FORM,),
            blocked_docs=(docs.N1_CLAIM_FORM, docs.PARTICULARS_OF_CLAIM),
            time_limit=TimeLimitRule(
                months=3,
                days=-1,
                description="Employment Tribunal claims must be brought within 3 months less one day of the act complained of",
            ),
            alternatives=(
                AlternativeRoute(
                    forum=INFORMAL_RESOLUTION,
                    description="Raise a formal grievance with the employer",
                    allowed_docs=[docs.GRIEVANCE_LETTER],
                ),
                AlternativeRoute(
                    forum="acas_early_conciliation",
                    description="Start ACAS early conciliation",
                    conditions=["Required before the ET1 is accepted by the tribunal"],
                ),
            ),
        ),
        Forum(
            id=COUNTY_COURT_SMALL_CLAIMS,
            name="County Court (Small Claims Track)",
            allowed_docs=(
                docs.N1_CLAIM_FORM,
                docs.PARTICULARS_OF_CLAIM,
                docs.WITNESS_STATEMENT,
                docs.EVIDENCE_BUNDLE_INDEX,
            ),
            blocked_docs=(docs.ET1_CLAIM_FORM,),
            prerequisites=(_LETTER_BEFORE_ACTION,),
            time_limit=TimeLimitRule(
                months=72,
                description="Contract and debt claims must be issued within 6 years",
            ),
            alternatives=(
                AlternativeRoute(
                    forum=INFORMAL_RESOLUTION,
                    description="Send a letter before action",
                    allowed_docs=[docs.LETTER_BEFORE_ACTION],
                    conditions=["Required before a court claim is issued"],
                ),
            ),
        ),
        Forum(
            id=SSCS_TRIBUNAL,
            name="First-tier Tribunal (Social Security and Child Support)",
            allowed_docs=(docs.SSCS1_APPEAL_FORM, docs.EVIDENCE_BUNDLE_INDEX),
            prerequisites=(_MANDATORY_RECONSIDERATION,),
            time_limit=TimeLimitRule(
                months=1,
                description="Appeal within 1 month of the mandatory reconsideration notice",
            ),
            alternatives=(
                AlternativeRoute(
                    forum=INFORMAL_RESOLUTION,
                    description="Request a mandatory reconsideration",
                    allowed_docs=[docs.MANDATORY_RECONSIDERATION_REQUEST],
                ),
            ),
        ),
        Forum(
            id=PROPERTY_TRIBUNAL,
            name="First-tier Tribunal (Property Chamber)",
            allowed_docs=(docs.PROPERTY_TRIBUNAL_APPLICATION, docs.EVIDENCE_BUNDLE_INDEX),
        ),
        Forum(
            id=HOME_OFFICE_ADMIN_REVIEW,
            name="Home Office Administrative Review",
            allowed_docs=(docs.ADMIN_REVIEW_REQUEST,),
            time_limit=TimeLimitRule(
                days=14,
                description="Administrative review must be requested within 14 days of the decision",
            ),
        ),
        Forum(
            id=MAGISTRATES_COURT,
            name="Magistrates' Court",
            allowed_docs=(docs.GUILTY_PLEA_LETTER, docs.MITIGATION_STATEMENT, docs.MEANS_FORM),
            blocked_docs=(docs.N1_CLAIM_FORM, docs.LETTER_BEFORE_ACTION),
        ),
        Forum(
            id=POPLA,
            name="POPLA (Parking on Private Land Appeals)",
            allowed_docs=(docs.POPLA_APPEAL,),
            prerequisites=(_OPERATOR_APPEAL,),
            time_limit=TimeLimitRule(
                days=28,
                description="Appeal to POPLA within 28 days of the operator's rejection",
            ),
        ),
        Forum(
            id=FINANCIAL_OMBUDSMAN,
            name="Financial Ombudsman Service",
            allowed_docs=(docs.FOS_COMPLAINT,),
            prerequisites=(_FINAL_RESPONSE,),
            time_limit=TimeLimitRule(
                months=6,
                description="Refer to the ombudsman within 6 months of the final response",
            ),
            alternatives=(
                AlternativeRoute(
                    forum=INFORMAL_RESOLUTION,
                    description="Complain to the firm first",
                    allowed_docs=[docs.FORMAL_COMPLAINT_LETTER],
                ),
            ),
        ),
        Forum(
            id=INFORMAL_RESOLUTION,
            name="Informal resolution",
            allowed_docs=(docs.FORMAL_COMPLAINT_LETTER, docs.DEMAND_LETTER),
        ),
    ]
}


def get_forum(forum_id: str) -> Optional[Forum]:
    return FORUMS.get((forum_id or "").strip().lower())
