# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures for Kundedata.

Every test gets a fresh in-memory SQLite database (aiosqlite) with the full
schema, an ASGI client for the application, and helpers that create
organizations, users and session tokens directly in the database.
"""

import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

# Set environment variables BEFORE importing any kundedata modules
os.environ.update({
    "APP_ENV": "test",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "SESSION_SECRET": "test-session-secret-for-testing-only-0123456789",
    "LOG_LEVEL": "WARNING",
    "LOG_TO_FILES": "false",
    "BCRYPT_ROUNDS": "4",
    "EMAIL_MAX_ATTEMPTS": "1",
})
for _key in ("RESEND_API_KEY", "CRON_SECRET", "SUPABASE_URL", "SUPABASE_ANON_KEY", "OTEL_EXPORTER_OTLP_ENDPOINT"):
    os.environ.pop(_key, None)

from kundedata.business.enums import FormStatus, UserRole
from kundedata.main import create_app
from kundedata.security.auth import create_session_token, hash_password
from kundedata.services.accounts import create_organization
from kundedata.services.email import set_email_client
from kundedata.storage import db as storage_db
from kundedata.storage.db import close_database, create_all, get_session, init_database
from kundedata.storage.models import Form, FormField, User
from kundedata.utils import utcnow


DEFAULT_PASSWORD = "Passord123"


# ==== DATABASE FIXTURES ==== #


@pytest_asyncio.fixture
async def database():
    """
    Fresh in-memory database with every table created.

    The engine is reset first so each test starts with an empty schema.
    """
    await close_database()
    init_database("sqlite+aiosqlite:///:memory:")
    await create_all()
    yield
    await close_database()


@pytest_asyncio.fixture
async def db_session(database):
    """
    Provide a database session for tests.

    Returns:
        AsyncSession: Session committed when the test body finishes
    """
    async with get_session() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_email_client():
    """Drop any email client a test installed."""
    yield
    set_email_client(None)


# ==== APPLICATION FIXTURES ==== #


@pytest_asyncio.fixture
async def app(database):
    """FastAPI application bound to the test database."""
    assert storage_db.engine is not None
    return create_app()


@pytest_asyncio.fixture
async def client(app):
    """
    Create test client.

    Returns:
        AsyncClient: HTTP client speaking ASGI to the application
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ==== DATA HELPERS ==== #


async def make_organization(name: str = "Testbedrift AS", **fields):
    async with get_session() as db:
        return await create_organization(db, name, **fields)


async def make_user(
    email: str = "kunde@example.no",
    role: UserRole = UserRole.CUSTOMER,
    organization_id=None,
    name: str = "Kari Kunde",
    password: str = DEFAULT_PASSWORD,
):
    async with get_session() as db:
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(password),
            role=role.value,
            organization_id=organization_id,
        )
        db.add(user)
        await db.flush()
        return user


async def make_form(organization_id: int, name: str = "Kontakt", slug: str = "kontakt", fields=None,
                    published: bool = True):
    """Form with the given field dicts (defaults: required name and email)."""
    fields = fields if fields is not None else [
        {"type": "TEXT", "name": "navn", "label": "Navn", "required": True},
        {"type": "EMAIL", "name": "epost", "label": "E-post", "required": True},
    ]
    async with get_session() as db:
        form = Form(
            organization_id=organization_id,
            name=name,
            slug=slug,
            status=FormStatus.PUBLISHED.value if published else FormStatus.DRAFT.value,
            published_at=utcnow() if published else None,
        )
        form.fields = [FormField(order=index, **definition) for index, definition in enumerate(fields)]
        db.add(form)
        await db.flush()
        return form


def auth_headers(user, organization_name=None) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user, organization_name)}"}


@pytest_asyncio.fixture
async def organization(database):
    return await make_organization()


@pytest_asyncio.fixture
async def customer(organization):
    return await make_user(organization_id=organization.id)


@pytest_asyncio.fixture
async def customer_headers(customer, organization):
    return auth_headers(customer, organization.name)


@pytest_asyncio.fixture
async def admin(database):
    return await make_user(email="admin@kundedata.no", role=UserRole.SUPER_ADMIN, name="Admin")


@pytest_asyncio.fixture
async def admin_headers(admin):
    return auth_headers(admin)
