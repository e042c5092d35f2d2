"""Exchange an identity-provider assertion for a PeopleSync session credential."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import structlog

from peoplesync.auth.credentials import SessionClaims
from peoplesync.exceptions import UserNotActiveError, UserNotProvisionedError
from peoplesync.types import UserStatus

if TYPE_CHECKING:
    from peoplesync.audit.logger import AuditLogger
    from peoplesync.auth.clerk import ClerkClaims
    from peoplesync.auth.credentials import CredentialCodec
    from peoplesync.storage.repositories.users import DatabaseUserRepository, UserProfileRecord

logger = structlog.get_logger(__name__)


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> ClerkClaims: ...


@dataclass(frozen=True, slots=True)
class ExchangeResult:
    token: str
    expires_at: datetime
    profile: UserProfileRecord


class CredentialExchange:
    """Looks up the provisioned user behind an assertion and issues a credential.

    Never provisions: a subject without a local user is refused.
    """

    def __init__(
        self,
        verifier: IdentityVerifier,
        users: DatabaseUserRepository,
        codec: CredentialCodec,
        audit: AuditLogger | None = None,
    ) -> None:
        self._verifier = verifier
        self._users = users
        self._codec = codec
        self._audit = audit

    async def exchange(
        self, assertion: str, *, ip_address: str = "", request_id: str = ""
    ) -> ExchangeResult:
        """Raises IdentityAssertionError, UserNotProvisionedError or UserNotActiveError."""
        identity = await self._verifier.verify(assertion)
        return await self.issue_for_subject(
            identity.sub, ip_address=ip_address, request_id=request_id
        )

    async def issue_for_subject(
        self, subject_id: str, *, ip_address: str = "", request_id: str = ""
    ) -> ExchangeResult:
        profile = await self._users.get_profile(subject_id)
        if profile is None:
            logger.info("exchange_user_not_provisioned", clerk_id=subject_id)
            raise UserNotProvisionedError

        user = profile.user
        if user.status != UserStatus.ACTIVE:
            logger.warning("exchange_user_not_active", user_id=user.id, status=user.status)
            raise UserNotActiveError(user.status)

        claims = SessionClaims(
            user_id=user.id,
            external_subject_id=user.clerk_id,
            organization_id=user.organization_id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=profile.role.name,
        )
        now = int(time.time())
        token = self._codec.issue(claims, now=now)
        expires_at = datetime.fromtimestamp(now + self._codec.ttl_seconds, tz=UTC)

        await self._users.touch_last_login(user.id)
        if self._audit is not None:
            await self._audit.log(
                org_id=user.organization_id,
                user_id=user.id,
                action="auth.exchange",
                resource_type="user",
                resource_id=user.id,
                ip_address=ip_address,
                request_id=request_id,
            )
        logger.info("credential_issued", user_id=user.id, org_id=user.organization_id)
        return ExchangeResult(token=token, expires_at=expires_at, profile=profile)
