# casegate/api/v1/deps.py

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt
from datetime import datetime
from uuid import UUID

from casegate.db.database import get_db
from casegate.db.models import Case, DocumentJob, User
from casegate.core.config import settings
from casegate.utils.exceptions import CaseNotFoundError, DocumentJobNotFoundError, UnauthorizedError

security = HTTPBearer()

# ============================================================================
# JWT Dependency
# ============================================================================

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Validate JWT token and return current user.
    """
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )

        # Accept either "user_id" or the standard "sub"
        user_id = payload.get("user_id") or payload.get("sub")
        if user_id is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        exp = payload.get("exp")
        if exp and datetime.utcfromtimestamp(exp) < datetime.utcnow():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )

        user_uuid = UUID(str(user_id))
    except (jwt.PyJWTError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    user = db.query(User).filter(User.id == user_uuid).first()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    return user

# ============================================================================
# Ownership helpers
# ============================================================================

def get_owned_case(db: Session, case_id: UUID, user: User) -> Case:
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise CaseNotFoundError(str(case_id))
    if case.owner_id != user.id:
        raise UnauthorizedError()
    return case


def get_owned_job(db: Session, job_id: UUID, user: User) -> DocumentJob:
    job = db.query(DocumentJob).filter(DocumentJob.id == job_id).first()
    if not job:
        raise DocumentJobNotFoundError(str(job_id))
    get_owned_case(db, job.case_id, user)
    return job
