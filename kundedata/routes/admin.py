# ==== ADMIN CUSTOMER ROUTES ==== #

"""
Super admin management of customer organizations.

Every endpoint requires the SUPER_ADMIN role. Creating a customer creates
the organization, its settings and the contact's CUSTOMER login together.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kundedata.business.enums import UserRole
from kundedata.observability.logging import log_business_event
from kundedata.observability.tracing import get_tracer
from kundedata.routes.organization import apply_settings, load_organization
from kundedata.schemas.common import MessageResponse
from kundedata.schemas.organization import (
    CustomerCreate, CustomerSummary, CustomerUpdate, OrganizationResponse
)
from kundedata.security.auth import SessionUser, hash_password, require_super_admin
from kundedata.services.accounts import create_organization
from kundedata.services.activity import log_activity
from kundedata.storage.db import get_db_session
from kundedata.storage.models import Form, Organization, Submission, User
from kundedata.utils import client_ip


router = APIRouter()
tracer = get_tracer(__name__)


@router.get("/customers", response_model=List[CustomerSummary])
async def list_customers(
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> List[CustomerSummary]:
    """List organizations with user, form and submission counts, newest first."""
    user_count = (
        select(func.count(User.id)).where(User.organization_id == Organization.id).scalar_subquery()
    )
    form_count = (
        select(func.count(Form.id)).where(Form.organization_id == Organization.id).scalar_subquery()
    )
    submission_count = (
        select(func.count(Submission.id))
        .where(Submission.organization_id == Organization.id)
        .scalar_subquery()
    )
    result = await db.execute(
        select(Organization, user_count, form_count, submission_count)
        .order_by(Organization.created_at.desc(), Organization.id.desc())
    )

    return [
        CustomerSummary(
            id=organization.id,
            name=organization.name,
            slug=organization.slug,
            plan=organization.plan,
            max_users=organization.max_users,
            max_forms=organization.max_forms,
            created_at=organization.created_at,
            user_count=users or 0,
            form_count=forms or 0,
            submission_count=submissions or 0,
        )
        for organization, users, forms, submissions in result.all()
    ]


@router.post("/customers", response_model=OrganizationResponse, status_code=201)
async def create_customer(
    payload: CustomerCreate,
    request: Request,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> OrganizationResponse:
    """
    Create a customer organization and its contact login.

    Raises:
        HTTPException: 400 when the contact email is already registered
    """
    with tracer.start_as_current_span("create_customer") as span:
        existing = await db.execute(select(User.id).where(User.email == payload.contact_email))
        if existing.first() is not None:
            raise HTTPException(status_code=400, detail="En bruker med denne e-postadressen finnes allerede")

        organization = await create_organization(
            db,
            payload.company_name,
            organization_number=payload.organization_number,
            website=payload.website,
            phone=payload.contact_phone,
            address=payload.address,
            city=payload.city,
            postal_code=payload.postal_code,
            country=payload.country,
            plan=payload.plan,
            max_users=payload.max_users,
            max_forms=payload.max_forms,
            notes=payload.notes,
            primary_color=payload.primary_color,
            secondary_color=payload.secondary_color,
            logo_url=payload.logo_url,
        )
        contact = User(
            email=payload.contact_email,
            name=payload.contact_name or payload.company_name,
            password_hash=hash_password(payload.password),
            role=UserRole.CUSTOMER.value,
            organization_id=organization.id,
        )
        db.add(contact)
        await db.flush()

        await log_activity(
            db,
            action="admin.customer_created",
            resource="organization",
            resource_id=organization.id,
            user_id=admin.id,
            organization_id=organization.id,
            details={"company_name": organization.name, "contact_email": contact.email},
            ip_address=client_ip(request.headers),
        )
        await db.commit()

        span.set_attribute("organization_id", organization.id)
        log_business_event("customer_created", str(organization.id), contact_user_id=contact.id)
        organization = await load_organization(db, organization.id)
        return OrganizationResponse.model_validate(organization)


@router.get("/customers/{customer_id}", response_model=OrganizationResponse)
async def get_customer(
    customer_id: int,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> OrganizationResponse:
    """Get one customer organization with settings."""
    organization = await load_organization(db, customer_id)
    return OrganizationResponse.model_validate(organization)


@router.patch("/customers/{customer_id}", response_model=OrganizationResponse)
async def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    request: Request,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> OrganizationResponse:
    """Update organization fields and upsert its settings."""
    organization = await load_organization(db, customer_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"settings"})

    company_name = changes.pop("company_name", None)
    if company_name:
        organization.name = company_name.strip()
    for key, value in changes.items():
        if key in ("country", "plan", "max_users", "max_forms") and value is None:
            continue
        setattr(organization, key, value)

    if payload.settings is not None:
        apply_settings(organization, payload.settings)

    await log_activity(
        db,
        action="admin.customer_updated",
        resource="organization",
        resource_id=organization.id,
        user_id=admin.id,
        organization_id=organization.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True).keys())},
        ip_address=client_ip(request.headers),
    )
    await db.commit()
    return OrganizationResponse.model_validate(organization)


@router.delete("/customers/{customer_id}", response_model=MessageResponse)
async def delete_customer(
    customer_id: int,
    request: Request,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """Delete an organization with everything it owns."""
    organization = await load_organization(db, customer_id)
    name = organization.name

    await db.delete(organization)
    await log_activity(
        db,
        action="admin.customer_deleted",
        resource="organization",
        resource_id=customer_id,
        user_id=admin.id,
        details={"company_name": name},
        ip_address=client_ip(request.headers),
    )
    await db.commit()
    return MessageResponse(message=f"Kunden {name} er slettet")
