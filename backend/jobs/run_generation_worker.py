from __future__ import annotations

import argparse

from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.database import SessionLocal
from casegate.services.deadline_service import check_missed_deadlines
from casegate.services.generation_queue import run_due_tasks


def run_generation_worker(batch_size: int, sweep_deadlines: bool = False) -> dict:
    db = SessionLocal()
    try:
        summary = run_due_tasks(db, batch_size=batch_size)
        if sweep_deadlines:
            summary["deadlines_missed"] = check_missed_deadlines(db)
        logger.info("Generation worker run completed: %s", summary)
        return summary
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Drain the document generation queue once")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.GENERATION_WORKER_BATCH_SIZE,
        help="Maximum number of due tasks to process",
    )
    parser.add_argument(
        "--sweep-deadlines",
        action="store_true",
        help="Also mark cases whose response deadline has passed",
    )
    args = parser.parse_args()

    summary = run_generation_worker(args.batch_size, sweep_deadlines=args.sweep_deadlines)
    print(summary)


if __name__ == "__main__":
    main()
