"""Tenant-scoped user routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from peoplesync.auth.tenant_context import TenantContext
from peoplesync.models.api import PublicUserProfile, UserSummary
from peoplesync.web.dependencies import Services, get_services
from peoplesync.web.tenancy import get_tenant, require_resource_tenant

router = APIRouter(prefix="/api", tags=["users"])


@router.get("/me", response_model=PublicUserProfile)
async def get_me(
    tenant: TenantContext = Depends(get_tenant),
    services: Services = Depends(get_services),
) -> PublicUserProfile:
    record = await services.users.get_profile(tenant.external_subject_id)
    if record is None or record.user.organization_id != tenant.organization_id:
        raise HTTPException(status_code=404, detail="User not found")
    return PublicUserProfile.from_record(record)


@router.get("/organizations/{organization_id}/users", response_model=list[UserSummary])
async def list_organization_users(
    organization_id: str,
    tenant: TenantContext = Depends(require_resource_tenant("organization_id")),
    services: Services = Depends(get_services),
) -> list[UserSummary]:
    # require_resource_tenant has already pinned organization_id to the caller's tenant
    users = await services.users.list_for_organization(tenant.organization_id)
    return [UserSummary.from_user(u) for u in users]
