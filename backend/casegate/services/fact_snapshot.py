"""
Read-only fact snapshot of a case.

The routing engine, sufficiency checker and content generator never touch
ORM rows directly; they receive a frozen ``FactSnapshot`` built here.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from casegate.db.models import Case, CaseStrategy, EvidenceItem


@dataclass(frozen=True)
class EvidenceRef:
    index: int
    title: str
    file_type: Optional[str] = None
    evidence_date: Optional[date] = None

    @property
    def label(self) -> str:
        label = f"Evidence Item #{self.index} ({self.title})"
        if self.evidence_date:
            label += f" dated {self.evidence_date.strftime('%d/%m/%Y')}"
        return label


@dataclass(frozen=True)
class FactSnapshot:
    case_id: str
    title: str = ""
    dispute_type: Optional[str] = None
    key_facts: tuple[str, ...] = ()
    desired_outcome: str = ""
    evidence: tuple[EvidenceRef, ...] = ()
    relationship: Optional[str] = None
    counterparty_name: Optional[str] = None
    chosen_forum: Optional[str] = None
    incident_date: Optional[date] = None
    claimed_amount: Optional[Decimal] = None
    pre_action_steps: dict = field(default_factory=dict)

    @property
    def evidence_summary(self) -> list[str]:
        return [e.label for e in self.evidence]

    @property
    def text(self) -> str:
        """Lower-cased free text used for keyword classification."""
        return " ".join([self.title, *self.key_facts, self.desired_outcome]).lower()


def load_snapshot(db: Session, case: Case) -> FactSnapshot:
    strategy: Optional[CaseStrategy] = (
        db.query(CaseStrategy).filter(CaseStrategy.case_id == case.id).first()
    )
    evidence = (
        db.query(EvidenceItem)
        .filter(EvidenceItem.case_id == case.id)
        .order_by(EvidenceItem.evidence_index.asc())
        .all()
    )
    refs = tuple(
        EvidenceRef(
            index=e.evidence_index,
            title=e.title,
            file_type=e.file_type,
            evidence_date=e.evidence_date,
        )
        for e in evidence
    )

    if strategy is None:
        return FactSnapshot(case_id=str(case.id), title=case.title or "", evidence=refs)

    return FactSnapshot(
        case_id=str(case.id),
        title=case.title or "",
        dispute_type=strategy.dispute_type,
        key_facts=tuple(f for f in (strategy.key_facts or []) if isinstance(f, str)),
        desired_outcome=strategy.desired_outcome or "",
        evidence=refs,
        relationship=strategy.relationship_hint,
        counterparty_name=strategy.counterparty_name,
        chosen_forum=strategy.chosen_forum,
        incident_date=strategy.incident_date,
        claimed_amount=strategy.claimed_amount,
        pre_action_steps=dict(strategy.pre_action_steps or {}),
    )
