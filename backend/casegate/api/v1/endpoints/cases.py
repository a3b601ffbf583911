"""
Case endpoints: intake, facts, status, generation trigger and results
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session
from uuid import UUID

from casegate.api.v1.deps import get_current_user, get_owned_case
from casegate.db.database import get_db
from casegate.db.models import Case, DocumentJob, DocumentJobStatus, User
from casegate.db.schemas import (
    CaseCreate,
    CaseResponse,
    DocumentJobResponse,
    DocumentListResponse,
    EvidenceCreate,
    EvidenceResponse,
    FactsUpdate,
    GateResponse,
    GenerationResponse,
    RoutingResponse,
    StrategyResponse,
    SufficiencyResponse,
)
from casegate.services import gate_validator
from casegate.services.case_service import case_service
from casegate.services.deadline_service import days_remaining, record_response
from casegate.services.decision_store import load_decision
from casegate.services.document_registry import get_document_type
from casegate.services.fact_snapshot import load_snapshot
from casegate.services.generation_orchestrator import max_attempts
from casegate.services.generation_queue import process_task_in_background, request_generation
from casegate.services.lifecycle_service import lifecycle_controller, phase_message
from casegate.services.sufficiency_service import check_sufficiency
from casegate.utils.exceptions import (
    FactsFrozenError,
    InvalidLifecycleAction,
    InvalidPhaseTransition,
    PhaseConflictError,
)

router = APIRouter()

# ============================================================================
# Response builders
# ============================================================================

def _case_response(case: Case) -> CaseResponse:
    return CaseResponse(
        id=case.id,
        title=case.title,
        status=case.status,
        phase=case.phase,
        phase_message=phase_message(case),
        conversation_locked=case.conversation_locked,
        lock_reason=case.lock_reason,
        locked_at=case.locked_at,
        blocked_gate=case.blocked_gate,
        generation_attempt=case.generation_attempt,
        waiting_until=case.waiting_until,
        days_remaining=days_remaining(case),
        closed_at=case.closed_at,
        created_at=case.created_at,
        updated_at=case.updated_at,
        strategy=StrategyResponse.model_validate(case.strategy) if case.strategy else None,
        evidence=[EvidenceResponse.model_validate(e) for e in case.evidence_items],
    )


def document_response(job: DocumentJob) -> DocumentJobResponse:
    spec = get_document_type(job.document_type)
    response = DocumentJobResponse.model_validate(job)
    response.official_name = spec.official_name if spec else None
    if job.status == DocumentJobStatus.FAILED:
        response.retries_remaining = max(0, max_attempts() - job.retry_count)
    return response

# ============================================================================
# Intake & Facts
# ============================================================================

@router.post("/", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
def create_case(
    payload: CaseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = case_service.create_case(db, current_user, payload)
    return _case_response(case)


@router.get("/{case_id}", response_model=CaseResponse)
def get_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Case status, with the canonical phase message and lock state
    """
    case = get_owned_case(db, case_id, current_user)
    return _case_response(case)


@router.patch("/{case_id}/facts", response_model=CaseResponse)
def update_facts(
    case_id: UUID,
    payload: FactsUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_owned_case(db, case_id, current_user)
    try:
        case_service.update_facts(db, case, payload)
    except FactsFrozenError as e:
        raise PhaseConflictError(str(e))
    db.refresh(case)
    return _case_response(case)


@router.post("/{case_id}/evidence", response_model=EvidenceResponse, status_code=status.HTTP_201_CREATED)
def add_evidence(
    case_id: UUID,
    payload: EvidenceCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_owned_case(db, case_id, current_user)
    try:
        return case_service.add_evidence(db, case, payload)
    except FactsFrozenError as e:
        raise PhaseConflictError(str(e))


@router.get("/{case_id}/sufficiency", response_model=SufficiencyResponse)
def get_sufficiency(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_owned_case(db, case_id, current_user)
    result = check_sufficiency(load_snapshot(db, case))
    return SufficiencyResponse(
        sufficient=result.sufficient,
        score=result.score,
        missing=result.missing,
        reason=result.reason,
    )

# ============================================================================
# Lifecycle
# ============================================================================

@router.post("/{case_id}/reset", response_model=CaseResponse)
def reset_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Reopen a blocked or completed case so new facts can be added
    """
    case = get_owned_case(db, case_id, current_user)
    try:
        lifecycle_controller.reset_to_gathering(db, case)
    except InvalidPhaseTransition as e:
        raise PhaseConflictError(str(e))
    return _case_response(case)


@router.post("/{case_id}/close", response_model=CaseResponse)
def close_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_owned_case(db, case_id, current_user)
    try:
        lifecycle_controller.close_case(db, case)
    except InvalidLifecycleAction as e:
        raise PhaseConflictError(str(e))
    return _case_response(case)


@router.post("/{case_id}/response-received", response_model=CaseResponse)
def response_received(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_owned_case(db, case_id, current_user)
    try:
        record_response(db, case)
    except InvalidLifecycleAction as e:
        raise PhaseConflictError(str(e))
    return _case_response(case)

# ============================================================================
# Generation
# ============================================================================

@router.post("/{case_id}/generate", response_model=GenerationResponse, status_code=status.HTTP_202_ACCEPTED)
def generate_documents(
    case_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Start document generation. Returns immediately; poll the case or its
    documents for progress. Calling again while work is under way only
    reports the current phase.
    """
    case = get_owned_case(db, case_id, current_user)
    try:
        result = request_generation(db, case)
    except InvalidLifecycleAction as e:
        raise PhaseConflictError(str(e))

    if result.accepted and result.task_id:
        background_tasks.add_task(process_task_in_background, UUID(result.task_id))

    return GenerationResponse(
        accepted=result.accepted,
        phase=result.phase,
        message=result.message,
        attempt=result.attempt,
        task_id=result.task_id,
        missing=result.missing,
    )


@router.get("/{case_id}/routing", response_model=RoutingResponse)
def get_routing(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_owned_case(db, case_id, current_user)
    record = case.routing_decision
    decision = load_decision(db, case)
    if record is None or decision is None:
        raise HTTPException(status_code=404, detail="No routing decision for this case yet")
    gate = gate_validator.validate(decision)
    return RoutingResponse(
        case_id=case.id,
        attempt=record.attempt,
        decision=decision.model_dump(mode="json"),
        gate=GateResponse(
            allowed=gate.allowed,
            gate_name=gate.gate_name,
            error=gate.error,
            user_message=gate.user_message,
            next_action=gate.next_action,
        ),
    )


@router.get("/{case_id}/documents", response_model=DocumentListResponse)
def list_documents(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_owned_case(db, case_id, current_user)
    jobs = (
        db.query(DocumentJob)
        .filter(DocumentJob.case_id == case.id)
        .order_by(DocumentJob.ordinal.asc())
        .all()
    )
    completed = sum(1 for j in jobs if j.status == DocumentJobStatus.COMPLETED)
    failed = sum(1 for j in jobs if j.status == DocumentJobStatus.FAILED)
    return DocumentListResponse(
        case_id=case.id,
        phase=case.phase,
        phase_message=phase_message(case),
        summary=f"{completed} of {len(jobs)} documents generated",
        total=len(jobs),
        completed=completed,
        failed=failed,
        documents=[document_response(j) for j in jobs],
    )
