"""Shared test fixtures."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from collections.abc import Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from peoplesync.audit.logger import AuditLogger
from peoplesync.auth.clerk import ClerkClaims
from peoplesync.auth.credentials import CredentialCodec
from peoplesync.config.settings import Settings
from peoplesync.exceptions import IdentityAssertionError
from peoplesync.models.database import Organization
from peoplesync.services.provisioning import ProvisioningEngine
from peoplesync.storage.database import create_engine, init_db
from peoplesync.storage.repositories.directory import DatabaseTenantDirectory
from peoplesync.storage.repositories.organizations import DatabaseOrganizationRepository
from peoplesync.storage.repositories.roles import DatabaseRoleRepository
from peoplesync.storage.repositories.users import DatabaseUserRepository
from peoplesync.web.app import create_app

JWT_SECRET = "test-jwt-secret-with-enough-entropy-0123456789"
WEBHOOK_KEY = b"test-webhook-signing-key-material"
WEBHOOK_SECRET = "whsec_" + base64.b64encode(WEBHOOK_KEY).decode()

ACTIVE_ORG_ID = "org_1"
OTHER_ORG_ID = "org_2"
INACTIVE_ORG_ID = "org_dormant"


class FakeIdentityVerifier:
    """Accepts ``valid:<subject>`` tokens, rejects everything else."""

    async def verify(self, token: str) -> ClerkClaims:
        if not token.startswith("valid:"):
            raise IdentityAssertionError("Invalid identity provider token")
        return ClerkClaims(sub=token.removeprefix("valid:"), email="", session_id="sess_1")


def clerk_user_data(
    subject_id: str = "user_jane",
    email: str | None = "jane@acme.test",
    organization_id: str | None = ACTIVE_ORG_ID,
    first_name: str | None = "Jane",
    last_name: str | None = "Doe",
    phone: str | None = None,
) -> dict[str, Any]:
    """A Clerk ``user.*`` event ``data`` object."""
    return {
        "id": subject_id,
        "email_addresses": (
            [{"id": "idn_primary", "email_address": email}] if email is not None else []
        ),
        "primary_email_address_id": "idn_primary" if email is not None else None,
        "phone_numbers": [{"id": "idn_phone", "phone_number": phone}] if phone else [],
        "first_name": first_name,
        "last_name": last_name,
        "public_metadata": (
            {"organizationId": organization_id} if organization_id is not None else {}
        ),
    }


def svix_headers(
    payload: bytes,
    *,
    msg_id: str = "msg_1",
    timestamp: int | None = None,
    key: bytes = WEBHOOK_KEY,
) -> dict[str, str]:
    """Headers Svix would send for ``payload``."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    digest = hmac.new(key, f"{msg_id}.{ts}.".encode() + payload, hashlib.sha256).digest()
    return {
        "svix-id": msg_id,
        "svix-timestamp": ts,
        "svix-signature": "v1," + base64.b64encode(digest).decode(),
    }


@pytest.fixture()
def make_user_data() -> Callable[..., dict[str, Any]]:
    return clerk_user_data


@pytest.fixture()
def sign_webhook() -> Callable[..., dict[str, str]]:
    return svix_headers


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def organizations(async_engine) -> dict[str, Organization]:
    """Two active organizations and one deactivated one."""
    repo = DatabaseOrganizationRepository(async_engine)
    return {
        ACTIVE_ORG_ID: await repo.create(
            name="Acme", email="hr@acme.test", organization_id=ACTIVE_ORG_ID
        ),
        OTHER_ORG_ID: await repo.create(
            name="Globex", email="hr@globex.test", organization_id=OTHER_ORG_ID
        ),
        INACTIVE_ORG_ID: await repo.create(
            name="Dormant",
            email="hr@dormant.test",
            organization_id=INACTIVE_ORG_ID,
            is_active=False,
        ),
    }


@pytest.fixture()
def codec() -> CredentialCodec:
    return CredentialCodec(JWT_SECRET)


@pytest.fixture()
def provisioning(async_engine) -> ProvisioningEngine:
    return ProvisioningEngine(
        users=DatabaseUserRepository(async_engine),
        roles=DatabaseRoleRepository(async_engine),
        directory=DatabaseTenantDirectory(async_engine),
        audit=AuditLogger(async_engine),
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret_key=JWT_SECRET,
        clerk_webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture()
def app(settings, async_engine):
    """A fresh app wired to the in-memory engine and a fake identity provider."""
    return create_app(settings, engine=async_engine, identity_verifier=FakeIdentityVerifier())


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
