# ==== CRON ROUTES ==== #

"""
Endpoints hit by an external scheduler (every few minutes for jobs, daily
for recurring invoices). Both accept GET and POST and require
``Authorization: Bearer <CRON_SECRET>`` when a secret is configured.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from kundedata.observability.logging import get_logger
from kundedata.observability.tracing import get_tracer
from kundedata.schemas.automation import ProcessJobsResponse
from kundedata.schemas.invoice import ProcessRecurringResponse
from kundedata.security.auth import require_cron_secret
from kundedata.services.recurring_invoices import process_recurring_invoices
from kundedata.services.scheduled_jobs import process_scheduled_jobs
from kundedata.storage.db import get_db_session


router = APIRouter(dependencies=[Depends(require_cron_secret)])
tracer = get_tracer(__name__)
logger = get_logger(__name__)


@router.api_route("/process-jobs", methods=["GET", "POST"], response_model=ProcessJobsResponse)
async def process_jobs(db: AsyncSession = Depends(get_db_session)) -> ProcessJobsResponse:
    """Run due scheduled jobs and evaluate inactivity and date field triggers."""
    with tracer.start_as_current_span("cron_process_jobs"):
        logger.info("Cron: processing scheduled jobs")
        result = await process_scheduled_jobs(db)
        return ProcessJobsResponse(**result)


@router.api_route(
    "/process-recurring-invoices", methods=["GET", "POST"], response_model=ProcessRecurringResponse
)
async def process_recurring(db: AsyncSession = Depends(get_db_session)) -> ProcessRecurringResponse:
    """Generate invoices from every due recurring template."""
    with tracer.start_as_current_span("cron_process_recurring_invoices"):
        logger.info("Cron: processing recurring invoices")
        result = await process_recurring_invoices(db)
        return ProcessRecurringResponse(**result)
