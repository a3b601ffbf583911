"""
Routing decision types.

A ``RoutingDecision`` is built once per pipeline attempt and persisted as
JSON; the gate validator and the orchestrator only ever read it.
"""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator


class RoutingStatus(str, enum.Enum):
    APPROVED = "APPROVED"
    BLOCKED = "BLOCKED"
    REQUIRES_CLARIFICATION = "REQUIRES_CLARIFICATION"
    PENDING = "PENDING"


class BlockType(str, enum.Enum):
    missing_prerequisite = "missing_prerequisite"
    out_of_time = "out_of_time"
    no_jurisdiction = "no_jurisdiction"
    insufficient_information = "insufficient_information"


class Prerequisite(BaseModel):
    id: str
    description: str
    met: bool
    # False when the facts say nothing either way; ``met`` is then False too.
    assessed: bool = True
    instruction: Optional[str] = None


class TimeLimit(BaseModel):
    trigger_date: date
    deadline: date
    days_remaining: int
    met: bool
    description: str


class AlternativeRoute(BaseModel):
    forum: str
    description: str
    allowed_docs: List[str] = Field(default_factory=list)
    conditions: List[str] = Field(default_factory=list)


class RoutingDecision(BaseModel):
    case_id: str
    status: RoutingStatus
    confidence: float = Field(ge=0.0, le=1.0)

    jurisdiction: str
    relationship: str
    counterparty: str
    domain: str

    forum: str
    forum_reasoning: str

    allowed_docs: List[str] = Field(default_factory=list)
    blocked_docs: List[str] = Field(default_factory=list)

    prerequisites: List[Prerequisite] = Field(default_factory=list)
    time_limit: Optional[TimeLimit] = None
    alternative_routes: List[AlternativeRoute] = Field(default_factory=list)

    reason: str = ""
    user_message: str = ""
    block_type: Optional[BlockType] = None
    clarification_questions: List[str] = Field(default_factory=list)

    classified_at: datetime = Field(default_factory=datetime.utcnow)

    @computed_field  # type: ignore[misc]
    @property
    def prerequisites_met(self) -> bool:
        return all(p.met for p in self.prerequisites)

    @property
    def unmet_prerequisites(self) -> List[Prerequisite]:
        return [p for p in self.prerequisites if p.assessed and not p.met]

    @property
    def unassessed_prerequisites(self) -> List[Prerequisite]:
        return [p for p in self.prerequisites if not p.assessed]

    @property
    def time_limit_expired(self) -> bool:
        return self.time_limit is not None and not self.time_limit.met

    @model_validator(mode="after")
    def _check_invariants(self) -> "RoutingDecision":
        overlap = set(self.allowed_docs) & set(self.blocked_docs)
        if overlap:
            raise ValueError(f"Documents both allowed and blocked: {sorted(overlap)}")
        if self.status != RoutingStatus.APPROVED:
            if not (self.unmet_prerequisites or self.unassessed_prerequisites
                    or self.time_limit_expired or self.reason.strip()):
                raise ValueError("A non-approved decision must state why")
        return self
