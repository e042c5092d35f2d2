"""Tenant context for multi-tenant request scoping."""

from __future__ import annotations

from dataclasses import dataclass

from peoplesync.auth.credentials import SessionClaims


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Immutable, verified identity and tenant carried through each request."""

    user_id: str
    external_subject_id: str
    organization_id: str
    email: str
    first_name: str
    last_name: str
    role: str

    @classmethod
    def from_claims(cls, claims: SessionClaims) -> TenantContext:
        return cls(
            user_id=claims.user_id,
            external_subject_id=claims.external_subject_id,
            organization_id=claims.organization_id,
            email=claims.email,
            first_name=claims.first_name,
            last_name=claims.last_name,
            role=claims.role,
        )
