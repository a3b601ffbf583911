"""
Case sufficiency check.

Decides whether the gathered facts are enough to leave GATHERING. Every rule
is evaluated so the caller can tell the user everything that is missing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from casegate.core.config import Settings, settings as default_settings
from casegate.services.fact_snapshot import FactSnapshot

_POINTS_PER_RULE = 25

MISSING_DOMAIN = "dispute type"
MISSING_FACTS = "facts about what happened"
MISSING_OUTCOME = "desired outcome"
MISSING_EVIDENCE = "evidence upload"


@dataclass
class SufficiencyResult:
    sufficient: bool
    score: int
    missing: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        if self.sufficient:
            return "Case has all required information"
        return f"Missing: {', '.join(self.missing)}"


def check_sufficiency(
    snapshot: FactSnapshot,
    config: Optional[Settings] = None,
) -> SufficiencyResult:
    cfg = config or default_settings
    missing: list[str] = []
    score = 0

    domain = (snapshot.dispute_type or "").strip().lower()
    if not domain or domain == "unknown":
        missing.append(MISSING_DOMAIN)
    else:
        score += _POINTS_PER_RULE

    facts = [f for f in snapshot.key_facts if f and f.strip()]
    if len(facts) < cfg.SUFFICIENCY_MIN_KEY_FACTS:
        missing.append(MISSING_FACTS)
    else:
        score += _POINTS_PER_RULE

    if len((snapshot.desired_outcome or "").strip()) <= cfg.SUFFICIENCY_MIN_OUTCOME_LENGTH:
        missing.append(MISSING_OUTCOME)
    else:
        score += _POINTS_PER_RULE

    if len(snapshot.evidence) < max(cfg.SUFFICIENCY_MIN_EVIDENCE_ITEMS, 1):
        missing.append(MISSING_EVIDENCE)
    else:
        score += _POINTS_PER_RULE

    return SufficiencyResult(sufficient=not missing, score=score, missing=missing)
