"""
services/background_jobs.py

Scheduled background jobs.

Jobs:
  1. drain_generation_queue
     - Runs due GenerationTasks (new ones and expired leases).
     - Every GENERATION_WORKER_INTERVAL_SECONDS.

  2. sweep_missed_deadlines
     - Moves AWAITING_RESPONSE cases past their deadline to DEADLINE_MISSED.
     - Every DEADLINE_SWEEP_INTERVAL_MINUTES.

Started and stopped from the FastAPI lifespan in casegate.main.
"""

from __future__ import annotations

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.database import SessionLocal

# ── Scheduler singleton ───────────────────────────────────────────────────────
_scheduler: AsyncIOScheduler | None = None


def start_scheduler() -> None:
    """
    Starts the APScheduler background job scheduler.
    Call this from FastAPI lifespan startup.
    """
    global _scheduler

    _scheduler = AsyncIOScheduler(timezone="UTC")
    registered = 0

    if settings.GENERATION_WORKER_ENABLED:
        _scheduler.add_job(
            drain_generation_queue,
            trigger=IntervalTrigger(seconds=settings.GENERATION_WORKER_INTERVAL_SECONDS),
            id="drain_generation_queue",
            name="Drain generation queue",
            replace_existing=True,
            max_instances=1,          # never run two at once
            misfire_grace_time=60,
        )
        registered += 1

    if settings.DEADLINE_SWEEP_ENABLED:
        _scheduler.add_job(
            sweep_missed_deadlines,
            trigger=IntervalTrigger(minutes=settings.DEADLINE_SWEEP_INTERVAL_MINUTES),
            id="sweep_missed_deadlines",
            name="Sweep missed response deadlines",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=300,
        )
        registered += 1

    _scheduler.start()
    logger.info("Background scheduler started: %d jobs registered", registered)


def shutdown_scheduler() -> None:
    """Gracefully shuts down the scheduler. Call from FastAPI lifespan shutdown."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Background scheduler shut down")
    _scheduler = None


# ============================================================================
# Job 1: Generation queue consumer
# ============================================================================

def _drain_generation_queue_sync() -> dict:
    from casegate.services.generation_queue import run_due_tasks

    db = SessionLocal()
    try:
        return run_due_tasks(db)
    finally:
        db.close()


async def drain_generation_queue() -> None:
    """Document generation blocks on Bedrock and S3, so it runs off the event loop."""
    try:
        await asyncio.to_thread(_drain_generation_queue_sync)
    except Exception as e:
        logger.exception("Job: drain_generation_queue: failed: %s", e)


# ============================================================================
# Job 2: Missed deadline sweep
# ============================================================================

async def sweep_missed_deadlines() -> None:
    from casegate.services.deadline_service import check_missed_deadlines

    db = SessionLocal()
    try:
        missed = check_missed_deadlines(db)
        logger.info("Job: sweep_missed_deadlines: done. missed=%d", missed)
    except Exception as e:
        db.rollback()
        logger.exception("Job: sweep_missed_deadlines: failed: %s", e)
    finally:
        db.close()
