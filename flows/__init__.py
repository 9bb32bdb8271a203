# ==== PREFECT FLOWS PACKAGE ==== #

"""
Prefect flows for Kundedata background processing.

- scheduled_jobs_flow: automation cron tick (due jobs, inactivity and date field triggers)
- recurring_invoices_flow: daily generation of invoices from recurring templates
"""

from .scheduled_jobs_flow import scheduled_jobs_flow
from .recurring_invoices_flow import recurring_invoices_flow

__all__ = [
    "scheduled_jobs_flow",
    "recurring_invoices_flow"
]
