"""
Document generation orchestrator.

Runs one batch per pipeline attempt:
  delete old jobs → one PENDING job per allowed document → each job
  GENERATING → COMPLETED | FAILED (sequentially, in ordinal order) →
  case COMPLETED

A failing document never stops the batch. Only exceptions raised outside
the per-job handler escape, and the caller treats those as fatal.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.models import (
    Case,
    CaseEvent,
    CaseEventType,
    CasePhase,
    DocumentJob,
    DocumentJobStatus,
    LifecycleStatus,
)
from casegate.services import gate_validator
from casegate.services.artifact_renderer import ArtifactRenderer
from casegate.services.content_generator import ContentGenerator
from casegate.services.decision_store import load_decision
from casegate.services.document_registry import RendererKind, get_document_type
from casegate.services.fact_snapshot import FactSnapshot, load_snapshot
from casegate.services.lifecycle_service import LifecycleController, lifecycle_controller
from casegate.services.routing.types import RoutingDecision
from casegate.utils.exceptions import (
    ContentValidationError,
    GenerationPreconditionError,
    LeaseLostError,
    RetryNotAllowedError,
)

_MAX_ERROR_LENGTH = 1000


@dataclass
class BatchResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def summary(self) -> str:
        return f"{len(self.succeeded)} of {self.total} documents generated"


def max_attempts() -> int:
    return settings.MAX_DOCUMENT_RETRIES + 1


def decision_context(decision: RoutingDecision) -> dict:
    return {
        "forum": decision.forum,
        "forum_reasoning": decision.forum_reasoning,
        "jurisdiction": decision.jurisdiction,
        "relationship": decision.relationship,
        "domain": decision.domain,
        "allowed_docs": list(decision.allowed_docs),
        "time_limit": decision.time_limit.model_dump(mode="json") if decision.time_limit else None,
    }


class DocumentGenerationOrchestrator:
    """
    Produces the document batch for a case that has passed the gates.

    Collaborators are created lazily so that tests can inject synthetic
    ones without any AWS configuration.
    """

    def __init__(
        self,
        content_generator: Optional[ContentGenerator] = None,
        renderer: Optional[ArtifactRenderer] = None,
        lifecycle: Optional[LifecycleController] = None,
    ) -> None:
        self._content_generator = content_generator
        self._renderer = renderer
        self.lifecycle = lifecycle or lifecycle_controller

    @property
    def content_generator(self) -> ContentGenerator:
        if self._content_generator is None:
            from casegate.services.content_generator import BedrockContentGenerator
            self._content_generator = BedrockContentGenerator()
        return self._content_generator

    @property
    def renderer(self) -> ArtifactRenderer:
        if self._renderer is None:
            from casegate.services.artifact_renderer import S3PdfRenderer
            self._renderer = S3PdfRenderer()
        return self._renderer

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set_status(
        self,
        db: Session,
        job: DocumentJob,
        status: DocumentJobStatus,
        error: Optional[str] = None,
    ) -> None:
        job.status = status
        now = datetime.utcnow()
        if status == DocumentJobStatus.GENERATING:
            job.started_at = now
        elif status == DocumentJobStatus.COMPLETED:
            job.completed_at = now
            job.last_error = None
        elif status == DocumentJobStatus.FAILED:
            job.retry_count = (job.retry_count or 0) + 1
            job.last_error = (error or "Unknown error")[:_MAX_ERROR_LENGTH]
        db.commit()
        logger.info(
            "Document job %s (%s #%s) → status=%s retry_count=%s",
            job.id, job.document_type, job.ordinal, status.value, job.retry_count,
        )

    def _run_job(
        self,
        db: Session,
        job: DocumentJob,
        snapshot: FactSnapshot,
        decision: RoutingDecision,
    ) -> Optional[str]:
        """Attempt one document. Returns the error text, or None on success."""
        gate = gate_validator.validate_document(job.document_type, decision)
        if not gate.allowed:
            self._set_status(db, job, DocumentJobStatus.FAILED, error=gate.error)
            return gate.error

        spec = get_document_type(job.document_type)
        if spec is None:
            error = f"Unknown document type: {job.document_type}"
            self._set_status(db, job, DocumentJobStatus.FAILED, error=error)
            return error

        if job.status != DocumentJobStatus.GENERATING:
            self._set_status(db, job, DocumentJobStatus.GENERATING)

        try:
            text = self.content_generator.generate(job.document_type, snapshot, decision_context(decision))
            errors = spec.validate(text, snapshot)
            if errors:
                raise ContentValidationError("; ".join(errors))

            artifact_key = None
            if spec.renderer == RendererKind.pdf:
                artifact_key = self.renderer.render(text, job.document_type)

            job.content = text
            job.artifact_key = artifact_key
            self._set_status(db, job, DocumentJobStatus.COMPLETED)
            return None
        except Exception as exc:
            db.rollback()
            error = str(exc) or exc.__class__.__name__
            logger.warning(
                "Document job %s (%s) failed: %s", job.id, job.document_type, error
            )
            self._set_status(db, job, DocumentJobStatus.FAILED, error=error)
            return error

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_batch(
        self,
        db: Session,
        case_id,
        attempt: Optional[int] = None,
        heartbeat: Optional[Callable[[], bool]] = None,
    ) -> BatchResult:
        """
        Generate every allowed document for the case, then mark it COMPLETED.

        ``heartbeat`` is called before each job; returning False means the
        caller no longer owns the batch and LeaseLostError is raised.

        Raises GenerationPreconditionError when the case is not GENERATING or
        its decision does not pass the gates.
        """
        case = db.query(Case).filter(Case.id == case_id).first()
        if case is None:
            raise GenerationPreconditionError(f"Case {case_id} not found")
        attempt = case.generation_attempt if attempt is None else attempt

        if case.phase != CasePhase.GENERATING or not case.conversation_locked:
            raise GenerationPreconditionError(
                f"Case {case.id} is {case.phase.value}, expected GENERATING"
            )
        if case.generation_attempt != attempt:
            raise GenerationPreconditionError(
                f"Case {case.id} attempt {case.generation_attempt} != {attempt}"
            )

        decision = load_decision(db, case, attempt=attempt)
        gate = gate_validator.validate(decision)
        if not gate.allowed:
            raise GenerationPreconditionError(f"Gate {gate.gate_name} failed: {gate.error}")

        # Never leave a stale partial batch behind.
        db.query(DocumentJob).filter(DocumentJob.case_id == case.id).delete(synchronize_session=False)
        jobs = [
            DocumentJob(
                case_id=case.id,
                document_type=document_type,
                ordinal=position,
                status=DocumentJobStatus.PENDING,
                retry_count=0,
            )
            for position, document_type in enumerate(decision.allowed_docs, start=1)
        ]
        db.add_all(jobs)
        db.commit()
        db.expire(case, ["document_jobs"])

        snapshot = load_snapshot(db, case)
        result = BatchResult()
        for job in jobs:
            if heartbeat is not None and not heartbeat():
                raise LeaseLostError(f"Lost the batch for case {case.id} attempt {attempt}")
            error = self._run_job(db, job, snapshot, decision)
            if error is None:
                result.succeeded.append(str(job.id))
            else:
                result.failed.append({"id": str(job.id), "document_type": job.document_type, "error": error})

        db.add(CaseEvent(
            case_id=case.id,
            event_type=CaseEventType.DOCUMENTS_GENERATED,
            description=result.summary,
            details={"succeeded": len(result.succeeded), "failed": len(result.failed)},
        ))
        self.lifecycle.complete(db, case, attempt, summary={"summary": result.summary})
        logger.info("Batch for case %s finished: %s", case.id, result.summary)
        return result

    def retry_job(self, db: Session, job: DocumentJob) -> DocumentJob:
        """
        Re-attempt one FAILED job. Does not re-route the case or touch the
        rest of the batch.
        """
        if job.status != DocumentJobStatus.FAILED:
            raise RetryNotAllowedError("Only failed documents can be retried")
        if job.retry_count >= max_attempts():
            raise RetryNotAllowedError(
                f"Retry limit reached ({job.retry_count} of {max_attempts()} attempts used)"
            )

        case = db.query(Case).filter(Case.id == job.case_id).first()
        if case is None or case.phase != CasePhase.COMPLETED:
            raise RetryNotAllowedError("Documents can only be retried once the batch has finished")
        if case.status == LifecycleStatus.CLOSED:
            raise RetryNotAllowedError("This case is closed")

        decision = load_decision(db, case)
        gate = gate_validator.validate_document(job.document_type, decision)
        if not gate.allowed:
            raise RetryNotAllowedError(gate.user_message or gate.error or "Document not allowed")

        # Claim the job so two concurrent retries cannot both run.
        claimed = (
            db.query(DocumentJob)
            .filter(
                DocumentJob.id == job.id,
                DocumentJob.status == DocumentJobStatus.FAILED,
                DocumentJob.retry_count == job.retry_count,
            )
            .update(
                {
                    DocumentJob.status: DocumentJobStatus.GENERATING,
                    DocumentJob.started_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
        db.commit()
        if not claimed:
            raise RetryNotAllowedError("This document is already being retried")
        db.refresh(job)

        attempt_number = job.retry_count + 1
        db.add(CaseEvent(
            case_id=case.id,
            event_type=CaseEventType.DOCUMENT_RETRIED,
            description=f"Retrying {job.document_type} (attempt {attempt_number} of {max_attempts()})",
            details={"job_id": str(job.id), "attempt": attempt_number},
        ))
        db.commit()

        self._run_job(db, job, load_snapshot(db, case), decision)
        db.refresh(job)
        return job


document_generation_orchestrator = DocumentGenerationOrchestrator()
