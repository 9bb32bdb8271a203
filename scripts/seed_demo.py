#!/usr/bin/env python3

# ==== DEMO DATA SEED SCRIPT ==== #

"""
Seed a demo organization for local development.

Creates an organization with a customer login, a published contact form,
a welcome email template, a follow-up automation and a monthly recurring
invoice template. Running it twice is safe: an existing demo user is left
untouched and the script exits.

Usage:
    python scripts/seed_demo.py [--email EMAIL] [--password PASSWORD] [--dry-run]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the root directory to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

from sqlalchemy import select

from kundedata.business.enums import (
    ActionType, FieldType, FieldWidth, FormStatus, RecurringInterval, RecurringStatus,
    TriggerType, UserRole
)
from kundedata.observability.logging import get_logger, init_logging
from kundedata.security.auth import hash_password
from kundedata.services.accounts import create_organization, unique_form_slug
from kundedata.storage.db import close_database, create_all, get_session, init_database
from kundedata.storage.models import (
    Automation, AutomationAction, EmailTemplate, Form, FormField, RecurringInvoice, User
)
from kundedata.utils import extract_variables, utcnow


logger = get_logger(__name__)


WELCOME_SUBJECT = "Takk for henvendelsen, {{navn}}!"
WELCOME_HTML = (
    "<p>Hei {{navn}},</p>"
    "<p>Vi har mottatt meldingen din og tar kontakt innen en arbeidsdag.</p>"
    "<p>Hilsen {{organisasjon}}</p>"
)

CONTACT_FIELDS = [
    dict(type=FieldType.TEXT, name="navn", label="Navn", required=True, width=FieldWidth.HALF),
    dict(type=FieldType.EMAIL, name="epost", label="E-post", required=True, width=FieldWidth.HALF),
    dict(type=FieldType.PHONE, name="telefon", label="Telefon", width=FieldWidth.HALF),
    dict(
        type=FieldType.SELECT, name="tjeneste", label="Tjeneste", width=FieldWidth.HALF,
        options=[{"label": "Nettside", "value": "nettside"}, {"label": "Rådgivning", "value": "radgivning"}],
    ),
    dict(type=FieldType.TEXTAREA, name="melding", label="Melding", required=True, max_length=2000),
]


async def seed(email: str, password: str) -> bool:
    """Create the demo data; False when the demo user already exists."""
    async with get_session() as db:
        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.first() is not None:
            logger.info("Demo user already exists, nothing to do", email=email)
            return False

        organization = await create_organization(
            db,
            "Demo Bedrift AS",
            website="https://demo.kundedata.no",
            organization_number="999888777",
            city="Oslo",
            postal_code="0150",
            sender_name="Demo Bedrift",
            bank_account="1234.56.78903",
        )

        db.add(User(
            email=email,
            name="Demo Kunde",
            password_hash=hash_password(password),
            role=UserRole.CUSTOMER.value,
            organization_id=organization.id,
        ))

        # --► CONTACT FORM
        form = Form(
            organization_id=organization.id,
            name="Kontaktskjema",
            slug=await unique_form_slug(db, organization.id, "Kontaktskjema"),
            description="Send oss en melding",
            status=FormStatus.PUBLISHED.value,
            published_at=utcnow(),
        )
        form.fields = [
            FormField(
                type=definition["type"].value,
                name=definition["name"],
                label=definition["label"],
                required=definition.get("required", False),
                width=definition.get("width", FieldWidth.FULL).value,
                max_length=definition.get("max_length"),
                options=definition.get("options"),
                order=index,
            )
            for index, definition in enumerate(CONTACT_FIELDS)
        ]
        db.add(form)

        # --► WELCOME EMAIL AND FOLLOW-UP AUTOMATION
        template = EmailTemplate(
            organization_id=organization.id,
            name="Velkommen",
            subject=WELCOME_SUBJECT,
            html_content=WELCOME_HTML,
            variables=extract_variables(WELCOME_SUBJECT, WELCOME_HTML),
        )
        db.add(template)
        await db.flush()

        automation = Automation(
            organization_id=organization.id,
            form_id=form.id,
            name="Velkomst og oppfølging",
            trigger_type=TriggerType.FORM_SUBMISSION.value,
            trigger_config={},
        )
        automation.actions = [
            AutomationAction(
                type=ActionType.SEND_EMAIL.value,
                config={"send_to_submitter": True, "email_field": "epost"},
                email_template_id=template.id,
                order=0,
            ),
            AutomationAction(
                type=ActionType.WAIT_DELAY.value,
                config={"delay_amount": 3, "delay_unit": "days"},
                order=1,
            ),
            AutomationAction(
                type=ActionType.UPDATE_SUBMISSION_STATUS.value,
                config={"status": "CONTACTED"},
                order=2,
            ),
        ]
        db.add(automation)

        # --► MONTHLY SUBSCRIPTION INVOICE
        start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        db.add(RecurringInvoice(
            organization_id=organization.id,
            name="Månedlig abonnement",
            customer_name=organization.name,
            customer_email=email,
            interval=RecurringInterval.MONTHLY.value,
            interval_count=1,
            start_date=start,
            next_invoice_date=start,
            items=[{"description": "Kundedata Standard", "quantity": 1, "unit": "mnd", "unit_price": 499.0}],
            status=RecurringStatus.ACTIVE.value,
        ))

        logger.info("Demo data seeded", organization_id=organization.id, form_slug=form.slug)
        return True


async def main():
    parser = argparse.ArgumentParser(description="Seed Kundedata demo data")
    parser.add_argument("--email", default="demo@kundedata.no", help="Demo customer login")
    parser.add_argument("--password", default="Demo1234", help="Demo customer password")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be created")

    args = parser.parse_args()
    init_logging("INFO", log_to_files=False)

    print("🌱 Demo Data Seed")
    print("=" * 40)
    print(f"Customer login: {args.email}")
    print()

    if args.dry_run:
        print("🔍 DRY RUN: would create organization, user, form, template, automation, recurring invoice")
        return

    init_database()
    try:
        if args.create_tables:
            await create_all()
        created = await seed(args.email, args.password)
        print("\n✅ Demo data created" if created else "\nℹ️  Demo data already present")
    except Exception as e:
        print(f"\n❌ Seeding failed: {str(e)}")
        logger.error(f"Seeding failed: {str(e)}")
        sys.exit(1)
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(main())
