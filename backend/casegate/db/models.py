"""
SQLAlchemy ORM Models
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from casegate.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# ============================================================================
# Enums
# ============================================================================

class LifecycleStatus(str, enum.Enum):
    """User-facing case status"""
    DRAFT = "DRAFT"
    DOCUMENT_SENT = "DOCUMENT_SENT"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    RESPONSE_RECEIVED = "RESPONSE_RECEIVED"
    DEADLINE_MISSED = "DEADLINE_MISSED"
    CLOSED = "CLOSED"

class CasePhase(str, enum.Enum):
    """Pipeline-facing case phase"""
    GATHERING = "GATHERING"
    ROUTING = "ROUTING"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"

class DocumentJobStatus(str, enum.Enum):
    """Per-document generation status"""
    PENDING = "PENDING"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class GenerationTaskStatus(str, enum.Enum):
    """Work-queue delivery status"""
    queued = "queued"
    running = "running"
    done = "done"
    failed = "failed"

class CaseEventType(str, enum.Enum):
    """Timeline event types"""
    CASE_CREATED = "CASE_CREATED"
    PHASE_CHANGED = "PHASE_CHANGED"
    ROUTING_DECIDED = "ROUTING_DECIDED"
    DOCUMENTS_GENERATED = "DOCUMENTS_GENERATED"
    DOCUMENT_RETRIED = "DOCUMENT_RETRIED"
    DOCUMENT_SENT = "DOCUMENT_SENT"
    RESPONSE_RECEIVED = "RESPONSE_RECEIVED"
    DEADLINE_MISSED = "DEADLINE_MISSED"
    CASE_CLOSED = "CASE_CLOSED"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Case owner"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)

    cases = relationship("Case", back_populates="owner")


class Case(Base):
    """
    One dispute being pursued.

    ``phase`` is written only by the lifecycle controller; the conversation
    lock is derived from it rather than stored.
    """
    __tablename__ = "cases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)

    status = Column(SQLEnum(LifecycleStatus), nullable=False, default=LifecycleStatus.DRAFT)
    phase = Column(SQLEnum(CasePhase), nullable=False, default=CasePhase.GATHERING, index=True)

    # Display-only; the lock itself is derived from ``phase``.
    lock_reason = Column(String(500), nullable=True)
    locked_at = Column(TIMESTAMP, nullable=True)
    blocked_gate = Column(String(50), nullable=True)
    blocked_message = Column(Text, nullable=True)

    # Bumped on every GATHERING -> ROUTING; identifies one pipeline run.
    generation_attempt = Column(Integer, nullable=False, default=0)

    waiting_until = Column(TIMESTAMP, nullable=True)
    closed_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", back_populates="cases")
    strategy = relationship("CaseStrategy", back_populates="case", uselist=False, cascade="all, delete-orphan")
    evidence_items = relationship(
        "EvidenceItem",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="EvidenceItem.evidence_index",
    )
    routing_decision = relationship("RoutingDecisionRecord", back_populates="case", uselist=False, cascade="all, delete-orphan")
    document_jobs = relationship(
        "DocumentJob",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="DocumentJob.ordinal",
    )
    events = relationship("CaseEvent", back_populates="case", cascade="all, delete-orphan")

    @property
    def conversation_writable(self) -> bool:
        return self.phase == CasePhase.GATHERING and self.status != LifecycleStatus.CLOSED

    @property
    def conversation_locked(self) -> bool:
        return not self.conversation_writable


class CaseStrategy(Base):
    """
    Extracted understanding of the case (the fact snapshot source).
    Append/merge-only while the case is GATHERING.
    """
    __tablename__ = "case_strategies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    dispute_type = Column(String(50), nullable=True)
    key_facts = Column(JSONType, nullable=False, default=list)
    desired_outcome = Column(Text, nullable=True)

    relationship_hint = Column(String(50), nullable=True)
    counterparty_name = Column(String(255), nullable=True)
    chosen_forum = Column(String(50), nullable=True)
    incident_date = Column(Date, nullable=True)
    claimed_amount = Column(Numeric(12, 2), nullable=True)
    pre_action_steps = Column(JSONType, nullable=False, default=dict)

    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="strategy")


class EvidenceItem(Base):
    """Evidence reference, numbered for cross-references ("Evidence Item #3")."""
    __tablename__ = "evidence_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    evidence_index = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    file_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    evidence_date = Column(Date, nullable=True)
    storage_key = Column(String(500), nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)

    case = relationship("Case", back_populates="evidence_items")

    __table_args__ = (
        UniqueConstraint("case_id", "evidence_index", name="uq_evidence_case_index"),
    )


class RoutingDecisionRecord(Base):
    """
    Persisted routing decision, one per case.
    Overwritten only when a new pipeline attempt routes again.
    """
    __tablename__ = "routing_decisions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    attempt = Column(Integer, nullable=False)
    status = Column(String(30), nullable=False)
    forum = Column(String(50), nullable=False)
    confidence = Column(Float, nullable=False)
    decision = Column(JSONType, nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="routing_decision")


class DocumentJob(Base):
    """
    One row per document the orchestrator attempts.
    The whole batch is deleted and recreated on every generation run.
    """
    __tablename__ = "document_jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(String(80), nullable=False)
    ordinal = Column(Integer, nullable=False)
    status = Column(SQLEnum(DocumentJobStatus), nullable=False, default=DocumentJobStatus.PENDING, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    artifact_key = Column(String(500), nullable=True)
    started_at = Column(TIMESTAMP, nullable=True)
    completed_at = Column(TIMESTAMP, nullable=True)
    sent_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="document_jobs")

    __table_args__ = (
        UniqueConstraint("case_id", "ordinal", name="uq_document_job_case_ordinal"),
    )

    @property
    def has_payload(self) -> bool:
        return bool((self.content or "").strip() or self.artifact_key)


class GenerationTask(Base):
    """
    Queue row for one pipeline run (case + attempt).
    Delivered at least once; a stale ``running`` lease is redelivered.
    """
    __tablename__ = "generation_tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt = Column(Integer, nullable=False)
    status = Column(SQLEnum(GenerationTaskStatus), nullable=False, default=GenerationTaskStatus.queued, index=True)
    deliveries = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    claimed_at = Column(TIMESTAMP, nullable=True)
    finished_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("case_id", "attempt", name="uq_generation_task_case_attempt"),
        Index("ix_generation_tasks_status_created", "status", "created_at"),
    )


class CaseEvent(Base):
    """Case timeline entry"""
    __tablename__ = "case_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(SQLEnum(CaseEventType), nullable=False)
    description = Column(Text, nullable=False)
    details = Column(JSONType, nullable=True)
    occurred_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)

    case = relationship("Case", back_populates="events")
