# ==== PREFECT RECURRING INVOICES FLOW ==== #

"""
Prefect flow that generates invoices from due recurring templates.

Wraps the service behind ``/api/cron/process-recurring-invoices``; serve it
once a day.
"""

import argparse
import asyncio
from typing import Any, Dict

from prefect import flow, task, get_run_logger

from kundedata.services.recurring_invoices import process_recurring_invoices
from kundedata.storage.db import get_session


# ==== TASK DEFINITIONS ==== #


@task
async def generate_recurring_invoices() -> Dict[str, Any]:
    """
    Generate one invoice per due recurring template.

    Returns:
        Dict[str, Any]: ``{success, processed, results}`` with one entry
            per template
    """
    logger = get_run_logger()

    async with get_session() as db:
        result = await process_recurring_invoices(db)

    for entry in result["results"]:
        if entry["success"]:
            logger.info(f"Template {entry['recurring_id']} -> invoice {entry['invoice_number']}")
        else:
            logger.error(f"Template {entry['recurring_id']} failed: {entry['error']}")
    return result


# ==== MAIN FLOW ==== #


@flow(name="recurring-invoices", log_prints=True)
async def recurring_invoices_flow() -> Dict[str, Any]:
    """
    Daily recurring invoice run.

    Returns:
        Dict[str, Any]: Flow summary with generated and failed counts
    """
    result = await generate_recurring_invoices()
    failed = sum(1 for entry in result["results"] if not entry["success"])

    return {
        "status": "success" if not failed else "partial",
        "processed": result["processed"],
        "failed": failed,
        "results": result["results"],
        "summary": f"Generated {result['processed'] - failed} of {result['processed']} recurring invoices",
    }


# ==== COMMAND LINE INTERFACE ==== #


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Recurring invoices flow")
    parser.add_argument("--run", action="store_true", help="Run flow locally")
    parser.add_argument("--serve", action="store_true", help="Serve flow locally")
    parser.add_argument("--cron", default="0 6 * * *", help="Serve schedule (cron expression)")

    args = parser.parse_args()

    if args.serve:
        print("Serving recurring invoices flow locally...")
        recurring_invoices_flow.serve(
            name="local-recurring-invoices",
            tags=["invoices", "recurring", "local"],
            cron=args.cron,
        )

    elif args.run:
        print("Running recurring invoices flow locally...")
        result = asyncio.run(recurring_invoices_flow())
        print(f"Flow completed: {result}")

    else:
        print("Usage: python flows/recurring_invoices_flow.py [--run|--serve] [options]")
        print("  --run: Execute flow once locally")
        print("  --serve: Start flow server for scheduled execution")
        print("  --cron EXPR: Schedule for served runs (default: daily 06:00)")
