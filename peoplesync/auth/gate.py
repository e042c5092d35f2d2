"""Tenant authorization gate.

Per request: Unauthenticated -> CredentialVerified -> TenantConfirmed ->
Authorized, or rejected at any step with an AuthorizationError subclass.
The web layer decides which status code each rejection maps to.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

from peoplesync.auth.tenant_context import TenantContext
from peoplesync.exceptions import (
    CredentialError,
    CrossTenantAccessError,
    InactiveOrUnknownOrganizationError,
    InvalidCredentialError,
    MissingCredentialError,
    MissingTenantClaimError,
)

if TYPE_CHECKING:
    from peoplesync.audit.logger import AuditLogger
    from peoplesync.auth.credentials import CredentialCodec

logger = structlog.get_logger(__name__)

_BEARER_PREFIX = "bearer "


class TenantDirectory(Protocol):
    async def is_active(self, organization_id: str) -> bool: ...


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.lower().startswith(_BEARER_PREFIX):
        return None
    token = authorization[len(_BEARER_PREFIX) :].strip()
    return token or None


class TenantGate:
    """Authenticates callers and confirms the tenant they act on."""

    def __init__(
        self,
        codec: CredentialCodec,
        directory: TenantDirectory,
        audit: AuditLogger | None = None,
    ) -> None:
        self._codec = codec
        self._directory = directory
        self._audit = audit

    async def authenticate(self, authorization: str | None) -> TenantContext:
        token = extract_bearer_token(authorization)
        if token is None:
            raise MissingCredentialError

        try:
            claims = self._codec.verify(token)
        except CredentialError as exc:
            # The caller only learns "invalid or expired"; the cause stays in the log
            logger.info("credential_rejected", reason=type(exc).__name__)
            raise InvalidCredentialError from exc

        if not claims.organization_id:
            logger.warning("credential_missing_tenant", sub=claims.external_subject_id)
            raise MissingTenantClaimError

        if not await self._directory.is_active(claims.organization_id):
            logger.warning(
                "organization_inactive_or_unknown",
                org_id=claims.organization_id,
                user_id=claims.user_id,
            )
            raise InactiveOrUnknownOrganizationError

        return TenantContext.from_claims(claims)

    async def confirm_resource_tenant(
        self,
        tenant: TenantContext,
        resource_org_id: str | None,
        *,
        ip_address: str = "",
        request_id: str = "",
    ) -> None:
        """Reject an explicit organization id that differs from the caller's.

        An absent id is admitted; handlers scope their own queries with the
        caller's context.
        """
        if not resource_org_id or resource_org_id == tenant.organization_id:
            return

        logger.warning(
            "cross_tenant_access_denied",
            user_id=tenant.user_id,
            sub=tenant.external_subject_id,
            claimed_org_id=tenant.organization_id,
            attempted_org_id=resource_org_id,
        )
        if self._audit is not None:
            await self._audit.log(
                org_id=tenant.organization_id,
                user_id=tenant.user_id,
                action="tenant.cross_access_denied",
                resource_type="organization",
                resource_id=resource_org_id,
                details={
                    "sub": tenant.external_subject_id,
                    "claimed_org_id": tenant.organization_id,
                    "attempted_org_id": resource_org_id,
                },
                ip_address=ip_address,
                request_id=request_id,
            )
        raise CrossTenantAccessError
