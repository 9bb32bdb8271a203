"""Management commands: database setup, super admin creation and cron runs."""

import asyncio
import json
from typing import Optional

import click
from sqlalchemy import select
from tabulate import tabulate

from kundedata.business.enums import JobStatus, UserRole
from kundedata.observability.logging import get_logger, init_logging
from kundedata.schemas.common import validate_email, validate_password_strength
from kundedata.security.auth import hash_password
from kundedata.services.recurring_invoices import process_recurring_invoices
from kundedata.services.scheduled_jobs import process_scheduled_jobs
from kundedata.settings import settings
from kundedata.storage.db import close_database, create_all, get_session, init_database
from kundedata.storage.models import ScheduledJob, User


logger = get_logger(__name__)


def _run(coro):
    """Run a coroutine with an initialized engine and dispose it afterwards."""
    async def runner():
        init_database()
        try:
            return await coro
        finally:
            await close_database()

    return asyncio.run(runner())


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def manage(log_level: Optional[str]):
    """Kundedata management commands."""
    init_logging(log_level or settings.LOG_LEVEL, log_to_files=False)


@manage.command("init-db")
def init_db():
    """Create all tables from the ORM models (development databases)."""
    _run(create_all())
    click.echo("✅ Database tables created")


@manage.command("create-super-admin")
@click.option('--email', required=True, help='Login email')
@click.option('--password', required=True, prompt=True, hide_input=True, help='Password')
@click.option('--name', default='Administrator', help='Display name')
def create_super_admin(email: str, password: str, name: str):
    """Create (or promote) the platform operator account."""
    try:
        email = validate_email(email)
        validate_password_strength(password)
    except ValueError as e:
        raise click.BadParameter(str(e))

    async def run():
        async with get_session() as db:
            result = await db.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(email=email, name=name)
                db.add(user)
                created = True
            else:
                created = False
            user.role = UserRole.SUPER_ADMIN.value
            user.password_hash = hash_password(password)
            return created

    created = _run(run())
    click.echo(f"✅ Super admin {'created' if created else 'updated'}: {email}")


@manage.command("process-jobs")
@click.option('--limit', type=int, default=None, help='Maximum jobs to execute')
def process_jobs(limit: Optional[int]):
    """Execute due scheduled jobs and time-based triggers once."""
    async def run():
        async with get_session() as db:
            return await process_scheduled_jobs(db, limit=limit)

    result = _run(run())
    click.echo(json.dumps(result, indent=2))


@manage.command("process-recurring-invoices")
def process_recurring():
    """Generate invoices from due recurring templates once."""
    async def run():
        async with get_session() as db:
            return await process_recurring_invoices(db)

    result = _run(run())
    rows = [
        [r["recurring_id"], r["invoice_number"] or "-", "✅" if r["success"] else "❌", r["error"] or ""]
        for r in result["results"]
    ]
    click.echo(f"Processed {result['processed']} recurring invoices")
    if rows:
        click.echo(tabulate(rows, headers=["Template", "Invoice", "OK", "Error"], tablefmt="grid"))


@manage.command("list-jobs")
@click.option('--status', type=click.Choice([s.value for s in JobStatus]), default=JobStatus.PENDING.value)
@click.option('--limit', type=int, default=20, help='Limit number of results')
def list_jobs(status: str, limit: int):
    """Show scheduled jobs by status, soonest first."""
    async def run():
        async with get_session() as db:
            result = await db.execute(
                select(ScheduledJob)
                .where(ScheduledJob.status == status)
                .order_by(ScheduledJob.scheduled_for)
                .limit(limit)
            )
            return [
                [job.id, job.automation_id, job.submission_id or "-", job.action_index,
                 job.scheduled_for.isoformat(timespec="minutes"), job.error_message or ""]
                for job in result.scalars().all()
            ]

    rows = _run(run())
    if not rows:
        click.echo(f"No {status} jobs")
        return
    headers = ["Job", "Automation", "Submission", "Action", "Scheduled for", "Error"]
    click.echo(tabulate(rows, headers=headers, tablefmt="grid"))


if __name__ == '__main__':
    manage()
