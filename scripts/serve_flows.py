#!/usr/bin/env python3

# ==== PREFECT FLOWS SERVE SCRIPT ==== #

"""
Serve the Kundedata Prefect flows on their schedules.

Served Flows:
1. Scheduled jobs: automation cron tick (PREFECT_JOBS_SCHEDULE_CRON, every 5 minutes by default)
2. Recurring invoices: daily invoice generation (PREFECT_RECURRING_SCHEDULE_CRON, 06:00 UTC by default)

Usage:
    python scripts/serve_flows.py [--dry-run] [--flows FLOW_NAMES]

Examples:
    # Serve both flows
    python scripts/serve_flows.py

    # Serve only the automation tick
    python scripts/serve_flows.py --flows scheduled_jobs
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# Add the root directory to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

from prefect import serve

from flows import recurring_invoices_flow, scheduled_jobs_flow
from kundedata.settings import settings


FLOW_NAMES = ("scheduled_jobs", "recurring_invoices")


def build_deployments(specific_flows: Optional[List[str]] = None) -> list:
    """Deployment objects for the selected flows."""
    deployments = []

    # --► SCHEDULED JOBS FLOW
    if not specific_flows or "scheduled_jobs" in specific_flows:
        deployments.append(scheduled_jobs_flow.to_deployment(
            name="scheduled-jobs",
            tags=["automations", "cron", "kundedata"],
            description="Runs due automation jobs, inactivity and date field triggers",
            cron=settings.PREFECT_JOBS_SCHEDULE_CRON,
        ))

    # --► RECURRING INVOICES FLOW
    if not specific_flows or "recurring_invoices" in specific_flows:
        deployments.append(recurring_invoices_flow.to_deployment(
            name="recurring-invoices",
            tags=["invoices", "recurring", "kundedata"],
            description="Generates invoices from due recurring templates",
            cron=settings.PREFECT_RECURRING_SCHEDULE_CRON,
        ))

    return deployments


def main():
    parser = argparse.ArgumentParser(
        description="Serve Kundedata Prefect flows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the deployments without serving them"
    )
    parser.add_argument(
        "--flows",
        type=str,
        help=f"Comma-separated list of flows to serve ({', '.join(FLOW_NAMES)})"
    )

    args = parser.parse_args()

    specific_flows = None
    if args.flows:
        specific_flows = [name.strip() for name in args.flows.split(",")]
        unknown = [name for name in specific_flows if name not in FLOW_NAMES]
        if unknown:
            parser.error(f"Unknown flows: {', '.join(unknown)}")

    deployments = build_deployments(specific_flows)

    print("🚀 Prefect Flows")
    print("=" * 40)
    for deployment in deployments:
        print(f"   • {deployment.name}: {deployment.schedules[0].schedule.cron if deployment.schedules else 'manual'}")
    print()

    if args.dry_run:
        print("🔍 Dry run completed - nothing served")
        return

    try:
        serve(*deployments)
    except KeyboardInterrupt:
        print("\n⏹️  Flow serving interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
