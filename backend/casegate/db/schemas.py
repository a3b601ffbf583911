"""
Pydantic validation schemas
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from casegate.db.models import CasePhase, DocumentJobStatus, LifecycleStatus

# ============================================================================
# Fact Schemas
# ============================================================================

class FactsBase(BaseModel):
    dispute_type: Optional[str] = Field(None, max_length=50)
    desired_outcome: Optional[str] = None
    relationship_hint: Optional[str] = Field(None, max_length=50)
    counterparty_name: Optional[str] = Field(None, max_length=255)
    chosen_forum: Optional[str] = Field(None, max_length=50)
    incident_date: Optional[date] = None
    claimed_amount: Optional[Decimal] = Field(None, ge=0)
    pre_action_steps: Dict[str, bool] = Field(default_factory=dict)

    @field_validator("dispute_type", "relationship_hint", "chosen_forum")
    @classmethod
    def normalise_label(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        return v or None


class FactsUpdate(FactsBase):
    """Merge-only: key facts are appended, pre-action steps merged, scalars overwritten when given."""
    key_facts: List[str] = Field(default_factory=list)

    @field_validator("key_facts")
    @classmethod
    def drop_blank_facts(cls, v: List[str]) -> List[str]:
        return [f.strip() for f in v if f and f.strip()]


class CaseCreate(FactsUpdate):
    title: str = Field(..., min_length=3, max_length=255)


class StrategyResponse(BaseModel):
    dispute_type: Optional[str]
    key_facts: List[str]
    desired_outcome: Optional[str]
    relationship_hint: Optional[str]
    counterparty_name: Optional[str]
    chosen_forum: Optional[str]
    incident_date: Optional[date]
    claimed_amount: Optional[Decimal]
    pre_action_steps: Dict[str, bool]

    class Config:
        from_attributes = True

# ============================================================================
# Evidence Schemas
# ============================================================================

class EvidenceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    file_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    evidence_date: Optional[date] = None
    storage_key: Optional[str] = Field(None, max_length=500)


class EvidenceResponse(BaseModel):
    id: UUID
    evidence_index: int
    title: str
    file_type: Optional[str]
    description: Optional[str]
    evidence_date: Optional[date]
    storage_key: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True

# ============================================================================
# Case Schemas
# ============================================================================

class CaseResponse(BaseModel):
    id: UUID
    title: str
    status: LifecycleStatus
    phase: CasePhase
    phase_message: str
    conversation_locked: bool
    lock_reason: Optional[str]
    locked_at: Optional[datetime]
    blocked_gate: Optional[str]
    generation_attempt: int
    waiting_until: Optional[datetime]
    days_remaining: Optional[int] = None
    closed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    strategy: Optional[StrategyResponse] = None
    evidence: List[EvidenceResponse] = []


class SufficiencyResponse(BaseModel):
    sufficient: bool
    score: int
    missing: List[str]
    reason: str

# ============================================================================
# Generation Schemas
# ============================================================================

class GenerationResponse(BaseModel):
    accepted: bool
    phase: CasePhase
    message: str
    attempt: Optional[int] = None
    task_id: Optional[str] = None
    missing: List[str] = []


class GateResponse(BaseModel):
    allowed: bool
    gate_name: str
    error: Optional[str] = None
    user_message: Optional[str] = None
    next_action: Optional[str] = None


class RoutingResponse(BaseModel):
    case_id: UUID
    attempt: int
    decision: Dict[str, Any]
    gate: GateResponse


class DocumentJobResponse(BaseModel):
    id: UUID
    document_type: str
    official_name: Optional[str] = None
    ordinal: int
    status: DocumentJobStatus
    retry_count: int
    retries_remaining: int = 0
    last_error: Optional[str]
    content: Optional[str]
    artifact_key: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    sent_at: Optional[datetime]

    class Config:
        from_attributes = True


class DocumentListResponse(BaseModel):
    case_id: UUID
    phase: CasePhase
    phase_message: str
    summary: str
    total: int
    completed: int
    failed: int
    documents: List[DocumentJobResponse]
