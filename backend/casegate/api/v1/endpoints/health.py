"""
Health check – verifies database connectivity.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.database import get_db

router = APIRouter()


def _check_database(db: Session) -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    try:
        db.execute(text("SELECT 1"))
        return "ok", "Database reachable"
    except Exception as e:
        logger.exception("Database health check failed")
        return "error", f"Database: {str(e)}"


@router.get("")
def health(db: Session = Depends(get_db)):
    db_status, db_detail = _check_database(db)
    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "app": settings.APP_NAME,
        "database": {"status": db_status, "detail": db_detail},
    }
