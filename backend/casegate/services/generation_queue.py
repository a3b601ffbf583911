"""
Generation trigger and work queue.

``request_generation`` is the "start generation for case X" operation: it
moves the case to ROUTING and enqueues a ``GenerationTask`` for the new
attempt, then returns. ``run_task`` is the consumer that owns the rest of
the pipeline (routing → gates → orchestrator).

Delivery is at-least-once. A task left ``running`` past its lease (the
process died mid-batch) is picked up again; every stage is safe to repeat
for the same attempt.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.database import SessionLocal
from casegate.db.models import (
    Case,
    CaseEvent,
    CaseEventType,
    CasePhase,
    GenerationTask,
    GenerationTaskStatus,
    LifecycleStatus,
)
from casegate.services import gate_validator
from casegate.services.decision_store import load_decision, save_decision
from casegate.services.fact_snapshot import load_snapshot
from casegate.services.generation_orchestrator import (
    DocumentGenerationOrchestrator,
    document_generation_orchestrator,
)
from casegate.services.lifecycle_service import (
    GENERATION_FAILED,
    GENERATION_FAILED_MESSAGE,
    lifecycle_controller,
    phase_message,
)
from casegate.services.routing.engine import RoutingEngine, routing_engine
from casegate.services.sufficiency_service import check_sufficiency
from casegate.utils.exceptions import ClassificationError, InvalidPhaseTransition, LeaseLostError


@dataclass
class GenerationRequest:
    accepted: bool
    phase: CasePhase
    message: str
    attempt: Optional[int] = None
    task_id: Optional[str] = None
    missing: list[str] = field(default_factory=list)


# ============================================================================
# Trigger
# ============================================================================

def request_generation(db: Session, case: Case) -> GenerationRequest:
    """
    Idempotent trigger. Outside GATHERING it only reports the phase; with
    insufficient facts it reports what is missing and changes nothing.
    """
    if case.status == LifecycleStatus.CLOSED:
        return GenerationRequest(False, case.phase, "This case is closed")

    if case.phase != CasePhase.GATHERING:
        return GenerationRequest(False, case.phase, phase_message(case), attempt=case.generation_attempt)

    sufficiency = check_sufficiency(load_snapshot(db, case))
    if not sufficiency.sufficient:
        return GenerationRequest(False, case.phase, sufficiency.reason, missing=sufficiency.missing)

    attempt = lifecycle_controller.begin_routing(db, case, sufficiency, commit=False)
    if attempt is None:
        # Another trigger won the race.
        db.rollback()
        db.refresh(case)
        return GenerationRequest(False, case.phase, phase_message(case), attempt=case.generation_attempt)

    task = GenerationTask(case_id=case.id, attempt=attempt, status=GenerationTaskStatus.queued)
    db.add(task)
    db.commit()
    logger.info("Queued generation task %s for case %s attempt %s", task.id, case.id, attempt)
    return GenerationRequest(True, case.phase, phase_message(case), attempt=attempt, task_id=str(task.id))


# ============================================================================
# Consumer
# ============================================================================

def _lease_cutoff(now: datetime) -> datetime:
    return now - timedelta(seconds=settings.GENERATION_TASK_LEASE_SECONDS)


def _deliverable(now: datetime):
    return or_(
        GenerationTask.status == GenerationTaskStatus.queued,
        and_(
            GenerationTask.status == GenerationTaskStatus.running,
            GenerationTask.claimed_at < _lease_cutoff(now),
        ),
    )


def _finish(db: Session, task: GenerationTask, status: GenerationTaskStatus, error: Optional[str] = None) -> None:
    task.status = status
    task.last_error = error
    task.finished_at = datetime.utcnow()
    db.commit()
    logger.info("Generation task %s → status=%s", task.id, status.value)


def _renew_lease(db: Session, task_id, delivery: int) -> bool:
    """Extend the lease while delivery number ``delivery`` still holds the task."""
    renewed = (
        db.query(GenerationTask)
        .filter(
            GenerationTask.id == task_id,
            GenerationTask.status == GenerationTaskStatus.running,
            GenerationTask.deliveries == delivery,
        )
        .update({GenerationTask.claimed_at: datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return bool(renewed)


def _fail_pipeline(db: Session, case: Case, attempt: int) -> None:
    try:
        lifecycle_controller.block(db, case, GENERATION_FAILED, GENERATION_FAILED_MESSAGE, attempt=attempt)
    except InvalidPhaseTransition:
        logger.warning("Case %s moved on before it could be blocked (phase=%s)", case.id, case.phase.value)


def _run_pipeline(
    db: Session,
    case: Case,
    attempt: int,
    heartbeat,
    engine: RoutingEngine,
    orchestrator: DocumentGenerationOrchestrator,
) -> None:
    if case.phase == CasePhase.ROUTING:
        decision = load_decision(db, case, attempt=attempt)
        if decision is None:
            snapshot = load_snapshot(db, case)
            try:
                decision = engine.classify(
                    str(case.id),
                    snapshot,
                    snapshot.dispute_type,
                    snapshot.evidence_summary,
                    user_chosen_forum=snapshot.chosen_forum,
                )
            except ClassificationError as exc:
                logger.info("Case %s could not be classified: %s", case.id, exc)
                lifecycle_controller.revert_to_gathering(db, case, attempt, str(exc), exc.questions)
                return
            save_decision(db, case, attempt, decision)
            db.add(CaseEvent(
                case_id=case.id,
                event_type=CaseEventType.ROUTING_DECIDED,
                description=f"{decision.status.value}: {decision.forum}",
                details={"forum": decision.forum, "status": decision.status.value,
                         "confidence": decision.confidence},
            ))
            db.commit()

        gate = gate_validator.validate(decision, min_confidence=engine.config.ROUTING_MIN_CONFIDENCE)
        if not gate.allowed:
            logger.info("Case %s blocked at gate %s", case.id, gate.gate_name)
            lifecycle_controller.block(db, case, gate.gate_name, gate.user_message or gate.error, attempt=attempt)
            return
        lifecycle_controller.begin_generating(db, case, attempt)

    if case.phase == CasePhase.GENERATING:
        orchestrator.generate_batch(db, case.id, attempt, heartbeat=heartbeat)


def run_task(
    db: Session,
    task_id,
    engine: Optional[RoutingEngine] = None,
    orchestrator: Optional[DocumentGenerationOrchestrator] = None,
) -> Optional[GenerationTask]:
    """
    Claim and run one task. Returns None when the task was not deliverable
    (already done, or held by a live lease).
    """
    engine = engine or routing_engine
    orchestrator = orchestrator or document_generation_orchestrator
    task_id = task_id if isinstance(task_id, uuid.UUID) else uuid.UUID(str(task_id))
    now = datetime.utcnow()

    claimed = (
        db.query(GenerationTask)
        .filter(GenerationTask.id == task_id, _deliverable(now))
        .update(
            {
                GenerationTask.status: GenerationTaskStatus.running,
                GenerationTask.claimed_at: now,
                GenerationTask.deliveries: GenerationTask.deliveries + 1,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if not claimed:
        return None

    task = db.query(GenerationTask).filter(GenerationTask.id == task_id).first()
    case = db.query(Case).filter(Case.id == task.case_id).first()

    if (case is None or case.generation_attempt != task.attempt
            or case.phase not in (CasePhase.ROUTING, CasePhase.GENERATING)):
        _finish(db, task, GenerationTaskStatus.done, error="stale attempt")
        return task

    if task.deliveries > settings.GENERATION_TASK_MAX_DELIVERIES:
        logger.error(
            "Generation task %s exceeded %s deliveries; blocking case %s",
            task.id, settings.GENERATION_TASK_MAX_DELIVERIES, case.id,
        )
        _fail_pipeline(db, case, task.attempt)
        _finish(db, task, GenerationTaskStatus.failed, error="delivery limit exceeded")
        return task

    delivery = task.deliveries
    try:
        _run_pipeline(
            db, case, task.attempt,
            lambda: _renew_lease(db, task_id, delivery),
            engine, orchestrator,
        )
        _finish(db, task, GenerationTaskStatus.done)
    except LeaseLostError:
        db.rollback()
        logger.warning("Generation task %s was redelivered mid-batch; leaving it to the new delivery", task.id)
    except Exception as exc:
        db.rollback()
        logger.exception("Generation pipeline failed for case %s attempt %s", case.id, task.attempt)
        db.refresh(case)
        _fail_pipeline(db, case, task.attempt)
        _finish(db, task, GenerationTaskStatus.failed, error=str(exc)[:1000])
    return task


def due_task_ids(db: Session, limit: int) -> list:
    now = datetime.utcnow()
    rows = (
        db.query(GenerationTask.id)
        .filter(_deliverable(now))
        .order_by(GenerationTask.created_at.asc())
        .limit(limit)
        .all()
    )
    return [row[0] for row in rows]


def run_due_tasks(
    db: Session,
    batch_size: Optional[int] = None,
    engine: Optional[RoutingEngine] = None,
    orchestrator: Optional[DocumentGenerationOrchestrator] = None,
) -> dict:
    """Drain up to ``batch_size`` due tasks, oldest first."""
    limit = batch_size or settings.GENERATION_WORKER_BATCH_SIZE
    processed = done = failed = skipped = 0
    for task_id in due_task_ids(db, limit):
        task = run_task(db, task_id, engine=engine, orchestrator=orchestrator)
        if task is None or task.status == GenerationTaskStatus.running:
            skipped += 1
            continue
        processed += 1
        if task.status == GenerationTaskStatus.failed:
            failed += 1
        else:
            done += 1
    if processed or skipped:
        logger.info(
            "Generation queue drained: processed=%d done=%d failed=%d skipped=%d",
            processed, done, failed, skipped,
        )
    return {"processed": processed, "done": done, "failed": failed, "skipped": skipped}


def process_task_in_background(task_id) -> None:
    """Entry point for FastAPI ``BackgroundTasks``; owns its own session."""
    db = SessionLocal()
    try:
        run_task(db, task_id)
    except Exception:
        logger.exception("Background generation task %s crashed", task_id)
    finally:
        db.close()
