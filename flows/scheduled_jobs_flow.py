# ==== PREFECT SCHEDULED JOBS FLOW ==== #

"""
Prefect flow for the automation cron tick in Kundedata.

Runs the same service as ``/api/cron/process-jobs``: due scheduled jobs
first, then inactivity and date field triggers. Serve it every few minutes
instead of (or alongside) an external HTTP cron.
"""

import argparse
import asyncio
from typing import Any, Dict, Optional

from prefect import flow, task, get_run_logger

from kundedata.services.scheduled_jobs import process_scheduled_jobs
from kundedata.storage.db import get_session


# ==== TASK DEFINITIONS ==== #


@task(retries=1, retry_delay_seconds=30)
async def run_scheduled_jobs(limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Execute one batch of due jobs and evaluate time-based triggers.

    Args:
        limit (Optional[int]): Maximum jobs to execute, defaults to
            ``SCHEDULED_JOBS_BATCH_SIZE``

    Returns:
        Dict[str, Any]: Counters returned by ``process_scheduled_jobs``
    """
    logger = get_run_logger()

    async with get_session() as db:
        result = await process_scheduled_jobs(db, limit=limit)

    logger.info(
        f"Processed {result['processed']} jobs "
        f"({result['succeeded']} ok, {result['failed']} failed), "
        f"scheduled {result['inactivity_triggered']} inactivity and "
        f"{result['date_field_triggered']} date field runs"
    )
    return result


# ==== MAIN FLOW ==== #


@flow(name="scheduled-jobs", log_prints=True)
async def scheduled_jobs_flow(limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Automation cron tick.

    Args:
        limit (Optional[int]): Maximum jobs to execute in this run

    Returns:
        Dict[str, Any]: Flow summary with the processing counters
    """
    logger = get_run_logger()
    result = await run_scheduled_jobs(limit)

    if result["failed"]:
        logger.warning(f"{result['failed']} scheduled jobs failed")

    return {
        "status": "success",
        **result,
        "summary": f"Processed {result['processed']} scheduled jobs",
    }


# ==== COMMAND LINE INTERFACE ==== #


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Scheduled jobs flow")
    parser.add_argument("--run", action="store_true", help="Run flow locally")
    parser.add_argument("--serve", action="store_true", help="Serve flow locally")
    parser.add_argument("--limit", type=int, default=None, help="Maximum jobs per run")
    parser.add_argument("--interval", type=int, default=300, help="Serve interval (seconds)")

    args = parser.parse_args()

    if args.serve:
        print("Serving scheduled jobs flow locally...")
        scheduled_jobs_flow.serve(
            name="local-scheduled-jobs",
            tags=["automations", "cron", "local"],
            interval=args.interval,
            parameters={"limit": args.limit},
        )

    elif args.run:
        print("Running scheduled jobs flow locally...")
        result = asyncio.run(scheduled_jobs_flow(limit=args.limit))
        print(f"Flow completed: {result}")

    else:
        print("Usage: python flows/scheduled_jobs_flow.py [--run|--serve] [options]")
        print("  --run: Execute flow once locally")
        print("  --serve: Start flow server for scheduled execution")
        print("  --limit N: Maximum jobs per run")
        print("  --interval N: Seconds between served runs (default: 300)")
