"""Service container and FastAPI accessors.

Everything is built once in the app factory from explicit settings and an
engine, then stored on ``app.state.services``. Nothing reaches for a
module-level singleton.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import Request

from peoplesync.audit.logger import AuditLogger
from peoplesync.auth.clerk import ClerkTokenVerifier
from peoplesync.auth.credentials import CredentialCodec
from peoplesync.auth.gate import TenantGate
from peoplesync.auth.webhook_verifier import WebhookAuthenticator
from peoplesync.services.exchange import CredentialExchange
from peoplesync.services.provisioning import ProvisioningEngine
from peoplesync.storage.repositories.directory import DatabaseTenantDirectory
from peoplesync.storage.repositories.roles import DatabaseRoleRepository
from peoplesync.storage.repositories.users import DatabaseUserRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from peoplesync.config.settings import Settings
    from peoplesync.services.exchange import IdentityVerifier


@dataclass
class Services:
    engine: AsyncEngine
    users: DatabaseUserRepository
    directory: DatabaseTenantDirectory
    audit: AuditLogger
    codec: CredentialCodec
    webhook_authenticator: WebhookAuthenticator
    provisioning: ProvisioningEngine
    gate: TenantGate
    exchange: CredentialExchange


def build_services(
    settings: Settings,
    engine: AsyncEngine,
    identity_verifier: IdentityVerifier | None = None,
) -> Services:
    """Wire every component with its collaborators."""
    users = DatabaseUserRepository(engine)
    roles = DatabaseRoleRepository(engine)
    directory = DatabaseTenantDirectory(engine)
    audit = AuditLogger(engine)
    codec = CredentialCodec(
        settings.jwt_secret_key or "", ttl_seconds=settings.credential_ttl_seconds
    )
    verifier = identity_verifier or ClerkTokenVerifier(
        settings.clerk_jwks_url, issuer=settings.clerk_issuer
    )
    return Services(
        engine=engine,
        users=users,
        directory=directory,
        audit=audit,
        codec=codec,
        webhook_authenticator=WebhookAuthenticator(
            settings.clerk_webhook_secret,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        ),
        provisioning=ProvisioningEngine(
            users=users,
            roles=roles,
            directory=directory,
            audit=audit,
            max_code_attempts=settings.employee_code_max_attempts,
        ),
        gate=TenantGate(codec=codec, directory=directory, audit=audit),
        exchange=CredentialExchange(verifier=verifier, users=users, codec=codec, audit=audit),
    )


def get_services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services


def client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


def request_id(request: Request) -> str:
    """Request id assigned by RequestIDMiddleware, falling back to the raw header."""
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id", "")
