"""
Custom exception classes
"""
from fastapi import HTTPException


# ============================================================================
# HTTP errors
# ============================================================================

class CaseNotFoundError(HTTPException):
    """Raised when case doesn't exist"""
    def __init__(self, case_id: str):
        super().__init__(
            status_code=404,
            detail=f"Case {case_id} not found"
        )


class DocumentJobNotFoundError(HTTPException):
    """Raised when a document job doesn't exist"""
    def __init__(self, job_id: str):
        super().__init__(
            status_code=404,
            detail=f"Document {job_id} not found"
        )


class UnauthorizedError(HTTPException):
    """Raised when user doesn't own resource"""
    def __init__(self):
        super().__init__(
            status_code=403,
            detail="You don't have permission to access this resource"
        )


class PhaseConflictError(HTTPException):
    """Raised when an operation is not allowed in the case's current phase"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=409,
            detail=reason
        )


# ============================================================================
# Domain errors (translated to HTTP by the routers)
# ============================================================================

class ClassificationError(Exception):
    """The routing engine could not map the dispute to any known forum."""

    def __init__(self, message: str, questions: list[str] | None = None):
        super().__init__(message)
        self.questions = questions or []


class InvalidPhaseTransition(Exception):
    """A phase change the lifecycle state machine does not permit."""

    def __init__(self, current, target):
        super().__init__(f"Cannot move case from {current.value} to {target.value}")
        self.current = current
        self.target = target


class FactsFrozenError(Exception):
    """Facts were written after the case left GATHERING."""


class RetryNotAllowedError(Exception):
    """A manual document retry was requested for an ineligible job."""


class ContentValidationError(Exception):
    """Generated content failed its document type's validator."""


class GenerationPreconditionError(Exception):
    """Batch generation was started without an allowed routing decision."""


class LeaseLostError(Exception):
    """A later delivery of the same generation task took over the batch."""


class InsufficientFactsError(Exception):
    """Routing was requested before the case had enough information."""

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing: {', '.join(missing)}")
        self.missing = missing


class InvalidLifecycleAction(Exception):
    """A send/response/close action that the case's current status does not allow."""
