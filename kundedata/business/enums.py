# ==== BUSINESS ENUMERATIONS ==== #

"""
Enumerations for the Kundedata domain.

Values are stored as plain strings in the database so they can be compared
with the enum members directly (``str, Enum``).
"""

from enum import Enum


# ==== USERS AND FORMS ==== #


class UserRole(str, Enum):
    """Platform role of a user."""
    SUPER_ADMIN = "SUPER_ADMIN"
    CUSTOMER = "CUSTOMER"


class FormStatus(str, Enum):
    """Form lifecycle: only PUBLISHED forms accept submissions."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class FieldType(str, Enum):
    """Supported form field types."""
    TEXT = "TEXT"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    NUMBER = "NUMBER"
    TEXTAREA = "TEXTAREA"
    SELECT = "SELECT"
    MULTI_SELECT = "MULTI_SELECT"
    CHECKBOX = "CHECKBOX"
    RADIO = "RADIO"
    DATE = "DATE"
    TIME = "TIME"
    DATETIME = "DATETIME"
    FILE = "FILE"
    HIDDEN = "HIDDEN"
    HEADING = "HEADING"
    PARAGRAPH = "PARAGRAPH"
    DIVIDER = "DIVIDER"


# Layout-only field types never carry a submitted value
LAYOUT_FIELD_TYPES = {FieldType.HEADING, FieldType.PARAGRAPH, FieldType.DIVIDER}

# Field types whose value must be one of the configured options
OPTION_FIELD_TYPES = {FieldType.SELECT, FieldType.RADIO, FieldType.MULTI_SELECT}


class FieldWidth(str, Enum):
    """Column width of a field in the rendered form."""
    FULL = "full"
    HALF = "half"
    THIRD = "third"


class SubmissionStatus(str, Enum):
    """
    Lead status lifecycle.

    Progression: NEW → CONTACTED → QUALIFIED → CONVERTED, with LOST and SPAM
    as terminal outcomes.
    """
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    QUALIFIED = "QUALIFIED"
    CONVERTED = "CONVERTED"
    LOST = "LOST"
    SPAM = "SPAM"


# Leads that can still go cold and are watched by inactivity triggers
OPEN_SUBMISSION_STATUSES = (
    SubmissionStatus.NEW,
    SubmissionStatus.CONTACTED,
    SubmissionStatus.QUALIFIED,
)


# ==== AUTOMATION ==== #


class AutomationStatus(str, Enum):
    """Automation status."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DRAFT = "DRAFT"


class TriggerType(str, Enum):
    """Events that start an automation."""
    FORM_SUBMISSION = "FORM_SUBMISSION"
    FIELD_VALUE = "FIELD_VALUE"
    TIME_DELAY = "TIME_DELAY"
    SUBMISSION_STATUS = "SUBMISSION_STATUS"
    SCHEDULED = "SCHEDULED"
    RECURRING = "RECURRING"
    INACTIVITY = "INACTIVITY"
    DATE_FIELD = "DATE_FIELD"


class ActionType(str, Enum):
    """Steps an automation can perform."""
    SEND_EMAIL = "SEND_EMAIL"
    WAIT_DELAY = "WAIT_DELAY"
    UPDATE_SUBMISSION_STATUS = "UPDATE_SUBMISSION_STATUS"
    WEBHOOK = "WEBHOOK"
    SEND_NOTIFICATION = "SEND_NOTIFICATION"
    CONDITION = "CONDITION"
    SPLIT_TEST = "SPLIT_TEST"
    ADD_TAG = "ADD_TAG"
    REMOVE_TAG = "REMOVE_TAG"


class JobStatus(str, Enum):
    """Scheduled job lifecycle: PENDING → PROCESSING → COMPLETED | FAILED."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class EmailStatus(str, Enum):
    """Delivery status recorded in email logs."""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


# ==== INVOICING ==== #


class InvoiceStatus(str, Enum):
    """Invoice status lifecycle."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


UNPAID_INVOICE_STATUSES = (
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)


class InvoiceEmailType(str, Enum):
    """Kinds of invoice email."""
    INVOICE = "invoice"
    REMINDER = "reminder"
    RECEIPT = "receipt"


class RecurringInterval(str, Enum):
    """Billing interval of a recurring invoice."""
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    BIANNUALLY = "BIANNUALLY"
    YEARLY = "YEARLY"


class RecurringStatus(str, Enum):
    """Recurring invoice status."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
