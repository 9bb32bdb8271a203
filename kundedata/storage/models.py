"""SQLAlchemy models for Kundedata."""

import datetime as dt
from typing import Dict, Any, List, Optional

from sqlalchemy import (
    String, Integer, JSON, ForeignKey, UniqueConstraint,
    Text, DateTime, Float, Boolean, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kundedata.business.enums import (
    AutomationStatus, EmailStatus, FieldWidth, FormStatus, InvoiceStatus,
    JobStatus, RecurringStatus, SubmissionStatus, UserRole
)
from kundedata.storage.db import Base
from kundedata.utils import utcnow


# ==== TENANCY AND USERS ==== #


class Organization(Base):
    """Tenant account owning forms, leads, users and invoices."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Company details used on invoices
    organization_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    country: Mapped[str] = mapped_column(String(100), default="Norge", nullable=False)

    # Subscription limits
    plan: Mapped[str] = mapped_column(String(32), default="standard", nullable=False)
    max_users: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    max_forms: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    settings = relationship(
        "OrganizationSettings", back_populates="organization", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True
    )
    users = relationship("User", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True)
    forms = relationship("Form", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True)
    email_templates = relationship(
        "EmailTemplate", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True
    )
    automations = relationship("Automation", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True)
    invoices = relationship("Invoice", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True)
    recurring_invoices = relationship(
        "RecurringInvoice", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True
    )


class OrganizationSettings(Base):
    """Branding and sender identity of an organization."""

    __tablename__ = "organization_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    primary_color: Mapped[str] = mapped_column(String(16), default="#4F46E5", nullable=False)
    secondary_color: Mapped[str] = mapped_column(String(16), default="#F97316", nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    sender_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    sender_email: Mapped[Optional[str]] = mapped_column(String(254), nullable=True)
    reply_to_email: Mapped[Optional[str]] = mapped_column(String(254), nullable=True)
    bank_account: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    organization = relationship("Organization", back_populates="settings")


class User(Base):
    """Login account; customers belong to exactly one organization."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(254), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(16), default=UserRole.CUSTOMER.value, nullable=False)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    last_login_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    organization = relationship("Organization", back_populates="users")

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value


class VerificationToken(Base):
    """One-time password reset token bound to an email address."""

    __tablename__ = "verification_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(254), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("identifier", "token", name="uq_verification_identifier_token"),
    )


# ==== FORMS AND LEADS ==== #


class Form(Base):
    """Lead-capture form published at a public slug."""

    __tablename__ = "forms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=FormStatus.DRAFT.value, nullable=False)
    submit_button_text: Mapped[str] = mapped_column(String(100), default="Send inn", nullable=False)
    success_message: Mapped[str] = mapped_column(
        Text, default="Takk for din henvendelse!", nullable=False
    )
    redirect_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    published_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_form_org_slug"),
        Index("ix_forms_slug_status", "slug", "status"),
    )

    organization = relationship("Organization", back_populates="forms")
    fields = relationship(
        "FormField", back_populates="form", cascade="all, delete-orphan", passive_deletes=True,
        order_by="FormField.order"
    )
    submissions = relationship("Submission", back_populates="form", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_published(self) -> bool:
        return self.status == FormStatus.PUBLISHED.value


class FormField(Base):
    """Single input (or layout element) of a form."""

    __tablename__ = "form_fields"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    form_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    placeholder: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    help_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    min_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pattern: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    options: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    width: Mapped[str] = mapped_column(String(8), default=FieldWidth.FULL.value, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    form = relationship("Form", back_populates="fields")

    @property
    def option_values(self) -> List[str]:
        """Allowed values for option fields (options are ``{label, value}`` dicts)."""
        values = []
        for option in self.options or []:
            if isinstance(option, dict):
                values.append(str(option.get("value", option.get("label", ""))))
            else:
                values.append(str(option))
        return values


class Submission(Base):
    """A lead created when a public form is filled out."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    form_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=SubmissionStatus.NEW.value, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    referrer: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Notes, tags and automation bookkeeping ("metadata" is reserved on declarative classes)
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)

    last_contacted_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    next_follow_up_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_submissions_form_status", "form_id", "status"),
        Index("ix_submissions_form_created", "form_id", "created_at"),
        Index("ix_submissions_org_status", "organization_id", "status"),
    )

    form = relationship("Form", back_populates="submissions")
    email_logs = relationship("EmailLog", back_populates="submission", passive_deletes=True)

    @property
    def notes(self) -> List[Dict[str, Any]]:
        return list((self.meta or {}).get("notes", []))

    @property
    def tags(self) -> List[str]:
        return list((self.meta or {}).get("tags", []))


# ==== EMAIL AND AUTOMATION ==== #


class EmailTemplate(Base):
    """Reusable email with ``{{variable}}`` placeholders."""

    __tablename__ = "email_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    text_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    variables: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    organization = relationship("Organization", back_populates="email_templates")


class Automation(Base):
    """Trigger plus ordered actions."""

    __tablename__ = "automations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Null form means the automation applies to every form of the organization
    form_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("forms.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=AutomationStatus.ACTIVE.value, nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(32), nullable=False)
    trigger_config: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    run_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_run_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_automations_org_status_trigger", "organization_id", "status", "trigger_type"),
    )

    organization = relationship("Organization", back_populates="automations")
    form = relationship("Form")
    actions = relationship(
        "AutomationAction", back_populates="automation", cascade="all, delete-orphan", passive_deletes=True,
        order_by="AutomationAction.order"
    )


class AutomationAction(Base):
    """One step of an automation."""

    __tablename__ = "automation_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    automation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    config: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    email_template_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True
    )

    automation = relationship("Automation", back_populates="actions")
    email_template = relationship("EmailTemplate")


class ScheduledJob(Base):
    """Deferred execution of one automation action."""

    __tablename__ = "scheduled_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    automation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("automations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    submission_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=True, index=True
    )
    action_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    scheduled_for: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=JobStatus.PENDING.value, nullable=False)
    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_pattern: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    executed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_scheduled_jobs_status_due", "status", "scheduled_for"),
    )

    automation = relationship("Automation")
    submission = relationship("Submission")


class EmailLog(Base):
    """Every outbound lead email attempt."""

    __tablename__ = "email_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    submission_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("submissions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    automation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("automations.id", ondelete="SET NULL"), nullable=True
    )
    email_template_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True
    )
    to_email: Mapped[str] = mapped_column(String(254), nullable=False)
    subject: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=EmailStatus.PENDING.value, nullable=False)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    submission = relationship("Submission", back_populates="email_logs")


class ActivityLog(Base):
    """Append-only audit trail of user and system actions."""

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_activity_logs_org_created", "organization_id", "created_at"),
    )


# ==== INVOICING ==== #


class Invoice(Base):
    """Invoice issued to an organization's customer; amounts in øre."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recurring_invoice_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("recurring_invoices.id", ondelete="SET NULL"), nullable=True
    )
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=InvoiceStatus.DRAFT.value, nullable=False)

    # Customer details
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(254), nullable=True)
    customer_address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    customer_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    customer_postal_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    customer_country: Mapped[str] = mapped_column(String(100), default="Norge", nullable=False)
    customer_org_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    issue_date: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    due_date: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)

    # Amounts
    subtotal_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    vat_rate: Mapped[float] = mapped_column(Float, default=25.0, nullable=False)
    vat_amount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    paid_amount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="NOK", nullable=False)

    bank_account: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_terms: Mapped[str] = mapped_column(
        String(200), default="Betalingsfrist: 14 dager", nullable=False
    )
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    sent_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    paid_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "invoice_number", name="uq_invoice_org_number"),
        Index("ix_invoices_org_status", "organization_id", "status"),
        Index("ix_invoices_due_date", "due_date"),
    )

    organization = relationship("Organization", back_populates="invoices")
    items = relationship(
        "InvoiceItem", back_populates="invoice", cascade="all, delete-orphan", passive_deletes=True,
        order_by="InvoiceItem.order"
    )
    payments = relationship(
        "InvoicePayment", back_populates="invoice", cascade="all, delete-orphan", passive_deletes=True,
        order_by="InvoicePayment.paid_at"
    )
    email_logs = relationship("InvoiceEmailLog", back_populates="invoice", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def outstanding_cents(self) -> int:
        return max(self.total_cents - self.paid_amount_cents, 0)

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID.value


class InvoiceItem(Base):
    """Invoice line."""

    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    unit: Mapped[str] = mapped_column(String(16), default="stk", nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    invoice = relationship("Invoice", back_populates="items")


class InvoicePayment(Base):
    """Registered payment against an invoice."""

    __tablename__ = "invoice_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="payments")


class InvoiceEmailLog(Base):
    """Invoice, reminder and receipt emails sent for an invoice."""

    __tablename__ = "invoice_email_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email_type: Mapped[str] = mapped_column(String(16), nullable=False)
    to_email: Mapped[str] = mapped_column(String(254), nullable=False)
    subject: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="email_logs")


class RecurringInvoice(Base):
    """Template that periodically materializes into a concrete invoice."""

    __tablename__ = "recurring_invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(254), nullable=False)
    customer_address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    customer_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    customer_postal_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    customer_country: Mapped[str] = mapped_column(String(100), default="Norge", nullable=False)
    customer_org_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    interval: Mapped[str] = mapped_column(String(16), nullable=False)
    interval_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    start_date: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    next_invoice_date: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    last_invoice_date: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)

    # Line templates: [{description, quantity, unit, unit_price}] with unit_price in kroner
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    vat_rate: Mapped[float] = mapped_column(Float, default=25.0, nullable=False)
    payment_due_days: Mapped[int] = mapped_column(Integer, default=14, nullable=False)
    bank_account: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    auto_send: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[str] = mapped_column(String(16), default=RecurringStatus.ACTIVE.value, nullable=False)
    invoices_generated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_recurring_invoices_status_next", "status", "next_invoice_date"),
    )

    organization = relationship("Organization", back_populates="recurring_invoices")
    logs = relationship(
        "RecurringInvoiceLog", back_populates="recurring_invoice", cascade="all, delete-orphan", passive_deletes=True
    )


class RecurringInvoiceLog(Base):
    """Record of an invoice generated from a recurring template."""

    __tablename__ = "recurring_invoice_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recurring_invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recurring_invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )
    invoice_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    amount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    recurring_invoice = relationship("RecurringInvoice", back_populates="logs")
