"""
Document endpoints: single-document retry and send tracking
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID

from casegate.api.v1.deps import get_current_user, get_owned_job
from casegate.api.v1.endpoints.cases import document_response
from casegate.db.database import get_db
from casegate.db.models import User
from casegate.db.schemas import DocumentJobResponse
from casegate.services.deadline_service import mark_document_sent
from casegate.services.generation_orchestrator import document_generation_orchestrator
from casegate.utils.exceptions import InvalidLifecycleAction, PhaseConflictError, RetryNotAllowedError

router = APIRouter()


@router.post("/{job_id}/retry", response_model=DocumentJobResponse)
def retry_document(
    job_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Re-attempt one failed document. The rest of the batch and the routing
    decision are left untouched.
    """
    job = get_owned_job(db, job_id, current_user)
    try:
        job = document_generation_orchestrator.retry_job(db, job)
    except RetryNotAllowedError as e:
        raise PhaseConflictError(str(e))
    return document_response(job)


@router.post("/{job_id}/sent", response_model=DocumentJobResponse)
def mark_sent(
    job_id: UUID,
    track_response: bool = Query(True, description="Start the response deadline clock"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    job = get_owned_job(db, job_id, current_user)
    try:
        mark_document_sent(db, job, track_response=track_response)
    except InvalidLifecycleAction as e:
        raise PhaseConflictError(str(e))
    db.refresh(job)
    return document_response(job)
