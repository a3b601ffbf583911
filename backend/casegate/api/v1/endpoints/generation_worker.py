"""
Generation worker endpoint, called by an external scheduler (cron, Lambda).

POST /api/v1/generation-worker/run-due?batch_size=<N>

Authentication: x-worker-token header must match settings.WORKER_TOKEN.
The in-process APScheduler consumer does the same work; this endpoint lets
deployments that disable it drive the queue from outside.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.database import get_db
from casegate.services.generation_queue import run_due_tasks

router = APIRouter()


# ── Security ──────────────────────────────────────────────────────────────────


def _verify_worker_token(x_worker_token: Optional[str] = Header(None)) -> None:
    """
    If WORKER_TOKEN is empty the endpoint is disabled (returns 503).
    """
    expected = (settings.WORKER_TOKEN or "").strip()
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Worker endpoint not configured (WORKER_TOKEN unset)",
        )
    if not x_worker_token or x_worker_token.strip() != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing x-worker-token",
        )


# ── Endpoint ──────────────────────────────────────────────────────────────────


@router.post("/run-due")
def run_due(
    batch_size: int = Query(
        10, ge=1, le=100,
        description="Number of due generation tasks to process per run",
    ),
    db: Session = Depends(get_db),
    _: None = Depends(_verify_worker_token),
) -> Dict[str, Any]:
    """
    Process queued generation tasks oldest-first, including tasks whose
    lease expired because a previous worker died mid-batch.
    """
    started_at = datetime.utcnow().isoformat()
    summary = run_due_tasks(db, batch_size=batch_size)
    logger.info("generation-worker run-due: %s", summary)
    return {
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        **summary,
    }
