"""
Keyword classification signals for the routing engine.

Each function returns a ``Signal``: the value found and whether it came
from something the user stated explicitly, was inferred from the facts, or
is just a default. The engine turns that into a confidence score.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from casegate.services.fact_snapshot import FactSnapshot

EXPLICIT = "explicit"
INFERRED = "inferred"
DEFAULT = "default"

UNKNOWN_DOMAIN = "other"


@dataclass(frozen=True)
class Signal:
    value: str
    source: str

    @property
    def explicit(self) -> bool:
        return self.source == EXPLICIT


# Free-form dispute type labels mapped onto the domains the forum mapping knows.
DOMAIN_ALIASES: dict[str, str] = {
    "employment": "employment",
    "unfair_dismissal": "employment",
    "unpaid_wages": "employment",
    "discrimination": "employment",
    "workplace": "employment",
    "consumer": "consumer",
    "faulty_goods": "consumer",
    "refund": "consumer",
    "contract": "contract",
    "breach_of_contract": "contract",
    "debt": "debt",
    "unpaid_invoice": "debt",
    "money_owed": "debt",
    "flight_delay": "flight_delay",
    "flight": "flight_delay",
    "housing": "housing",
    "landlord": "housing",
    "tenancy": "housing",
    "deposit": "housing",
    "benefits": "social_security",
    "social_security": "social_security",
    "universal_credit": "social_security",
    "immigration": "immigration",
    "visa": "immigration",
    "traffic": "traffic_offence",
    "traffic_offence": "traffic_offence",
    "speeding": "traffic_offence",
    "parking": "parking",
    "parking_ticket": "parking",
    "financial_services": "financial_services",
    "banking": "financial_services",
    "insurance": "financial_services",
    "other": UNKNOWN_DOMAIN,
}

# Order matters: the first domain whose keywords appear wins.
_DOMAIN_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("parking", ("parking charge", "parking ticket", "pcn", "parking fine")),
    ("traffic_offence", ("speeding", "driving offence", "traffic offence", "points on my licence")),
    ("flight_delay", ("flight", "airline", "delayed flight", "cancelled flight")),
    ("social_security", ("universal credit", "dwp", "benefit", "pip ", "esa ")),
    ("immigration", ("visa", "home office", "immigration", "leave to remain")),
    ("financial_services", ("bank", "insurer", "insurance", "credit card", "loan")),
    ("employment", ("employer", "dismissed", "sacked", "my job", "wages", "redundan")),
    ("housing", ("landlord", "tenant", "tenancy", "deposit", "rent")),
    ("debt", ("unpaid invoice", "owes me", "owed", "invoice")),
    ("consumer", ("bought", "purchased", "faulty", "refund", "retailer")),
    ("contract", ("contract", "agreement", "builder", "workmanship")),
]

_RELATIONSHIP_DEFAULTS: dict[str, str] = {
    "employment": "employee",
    "consumer": "consumer",
    "contract": "contracting_party",
    "debt": "creditor",
    "flight_delay": "consumer",
    "housing": "assured_shorthold_tenant",
    "social_security": "benefit_claimant",
    "immigration": "visa_applicant",
    "traffic_offence": "driver",
    "parking": "driver",
    "financial_services": "consumer",
}

_MONETARY_PATTERN = re.compile(
    r"£\s?\d|\b\d[\d,]*(?:\.\d{2})?\s?(?:pounds|gbp)\b|"
    r"\b(?:refund|compensation|back pay|repay|reimburse|owed|damages|money back)\b"
)


def _normalise(label: Optional[str]) -> str:
    return re.sub(r"[\s\-]+", "_", (label or "").strip().lower())


def determine_jurisdiction(text: str) -> str:
    if "scotland" in text or "scottish" in text:
        return "scotland"
    if "northern ireland" in text or "belfast" in text:
        return "northern_ireland"
    return "england_wales"


def determine_domain(snapshot: FactSnapshot, domain_hint: Optional[str]) -> Signal:
    hint = _normalise(domain_hint)
    if hint and hint != "unknown":
        return Signal(DOMAIN_ALIASES.get(hint, hint), EXPLICIT)

    text = snapshot.text
    for domain, keywords in _DOMAIN_KEYWORDS:
        if any(k in text for k in keywords):
            return Signal(domain, INFERRED)
    return Signal(UNKNOWN_DOMAIN, DEFAULT)


def determine_relationship(snapshot: FactSnapshot, domain: str) -> Signal:
    hint = _normalise(snapshot.relationship)
    if hint:
        return Signal(hint, EXPLICIT)

    text = snapshot.text
    if domain == "employment":
        if any(k in text for k in ("self-employed", "self employed", "contractor", "freelance")):
            return Signal("self_employed", INFERRED)
        if any(k in text for k in ("zero hours", "zero-hours", "casual", "agency")):
            return Signal("worker", INFERRED)
        if "employee" in text or "employed" in text:
            return Signal("employee", INFERRED)
    if domain == "housing":
        if "council" in text or "housing association" in text:
            return Signal("secure_tenant", INFERRED)
        if "lodger" in text:
            return Signal("lodger", INFERRED)
        if "tenant" in text:
            return Signal("assured_shorthold_tenant", INFERRED)

    return Signal(_RELATIONSHIP_DEFAULTS.get(domain, "complainant"), DEFAULT)


def determine_counterparty(text: str) -> str:
    if any(k in text for k in ("dwp", "hmrc", "home office", "council")):
        return "government_body"
    if any(k in text for k in ("nhs", "police", "school")):
        return "public_body"
    if any(k in text for k in (" ltd", "limited", " plc", "company", "airline", "bank")):
        return "private_company"
    return "unknown"


def seeks_money(snapshot: FactSnapshot) -> bool:
    if snapshot.claimed_amount is not None and snapshot.claimed_amount > 0:
        return True
    return bool(_MONETARY_PATTERN.search(snapshot.text))
