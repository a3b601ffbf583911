"""
Case intake and fact capture.

Facts only ever grow while a case is GATHERING; once the pipeline has
started they are frozen until the case is reset.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from casegate.core.logger import logger
from casegate.db.models import (
    Case,
    CaseEvent,
    CaseEventType,
    CaseStrategy,
    EvidenceItem,
    User,
)
from casegate.db.schemas import CaseCreate, EvidenceCreate, FactsUpdate
from casegate.utils.exceptions import FactsFrozenError

_SCALAR_FACTS = (
    "dispute_type",
    "desired_outcome",
    "relationship_hint",
    "counterparty_name",
    "chosen_forum",
    "incident_date",
    "claimed_amount",
)


class CaseService:

    def _assert_writable(self, case: Case) -> None:
        if not case.conversation_writable:
            raise FactsFrozenError(
                f"Case {case.id} is {case.phase.value}; facts can only change while gathering"
            )

    def _merge(self, strategy: CaseStrategy, facts: FactsUpdate) -> None:
        provided = facts.model_dump(exclude_unset=True)
        for name in _SCALAR_FACTS:
            if provided.get(name) is not None:
                setattr(strategy, name, provided[name])

        if facts.key_facts:
            existing = list(strategy.key_facts or [])
            existing.extend(f for f in facts.key_facts if f not in existing)
            strategy.key_facts = existing

        if facts.pre_action_steps:
            steps = dict(strategy.pre_action_steps or {})
            steps.update(facts.pre_action_steps)
            strategy.pre_action_steps = steps

    def create_case(self, db: Session, owner: User, payload: CaseCreate) -> Case:
        case = Case(owner_id=owner.id, title=payload.title.strip())
        db.add(case)
        db.flush()

        strategy = CaseStrategy(case_id=case.id, key_facts=[], pre_action_steps={})
        self._merge(strategy, payload)
        db.add(strategy)
        db.add(CaseEvent(
            case_id=case.id,
            event_type=CaseEventType.CASE_CREATED,
            description=f"Case '{case.title}' created",
        ))
        db.commit()
        db.refresh(case)
        logger.info("Case %s created for user %s", case.id, owner.id)
        return case

    def update_facts(self, db: Session, case: Case, facts: FactsUpdate) -> CaseStrategy:
        self._assert_writable(case)
        strategy: Optional[CaseStrategy] = (
            db.query(CaseStrategy).filter(CaseStrategy.case_id == case.id).first()
        )
        if strategy is None:
            strategy = CaseStrategy(case_id=case.id, key_facts=[], pre_action_steps={})
            db.add(strategy)
        self._merge(strategy, facts)
        db.commit()
        db.refresh(strategy)
        return strategy

    def add_evidence(self, db: Session, case: Case, payload: EvidenceCreate) -> EvidenceItem:
        self._assert_writable(case)
        last_index = (
            db.query(func.max(EvidenceItem.evidence_index))
            .filter(EvidenceItem.case_id == case.id)
            .scalar()
        )
        item = EvidenceItem(
            case_id=case.id,
            evidence_index=(last_index or 0) + 1,
            **payload.model_dump(),
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info("Evidence Item #%s added to case %s", item.evidence_index, case.id)
        return item


case_service = CaseService()
