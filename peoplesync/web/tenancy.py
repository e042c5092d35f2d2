"""FastAPI dependencies wrapping the tenant gate.

These are the only place gate rejections become HTTP status codes.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Depends, HTTPException, Request

from peoplesync.auth.tenant_context import TenantContext
from peoplesync.exceptions import (
    AuthorizationError,
    CrossTenantAccessError,
    InactiveOrUnknownOrganizationError,
    InvalidCredentialError,
    MissingCredentialError,
    MissingTenantClaimError,
)
from peoplesync.web.dependencies import Services, client_ip, get_services, request_id

logger = structlog.get_logger(__name__)

_STATUS_BY_ERROR: dict[type[AuthorizationError], int] = {
    MissingCredentialError: 401,
    InvalidCredentialError: 401,
    MissingTenantClaimError: 403,
    InactiveOrUnknownOrganizationError: 403,
    CrossTenantAccessError: 403,
}


def _to_http(exc: AuthorizationError) -> HTTPException:
    status_code = _STATUS_BY_ERROR.get(type(exc), 403)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return HTTPException(status_code=status_code, detail=exc.detail, headers=headers)


async def get_tenant(
    request: Request,
    services: Services = Depends(get_services),
) -> TenantContext:
    """Authenticate the caller and attach the verified tenant to ``request.state``."""
    try:
        tenant = await services.gate.authenticate(request.headers.get("authorization"))
    except AuthorizationError as exc:
        raise _to_http(exc) from exc

    request.state.tenant = tenant
    structlog.contextvars.bind_contextvars(
        org_id=tenant.organization_id,
        user_id=tenant.user_id,
    )
    return tenant


async def _explicit_organization_id(request: Request, field: str) -> str | None:
    """Organization id named in the path, query string or JSON body, if any."""
    value = request.path_params.get(field) or request.query_params.get(field)
    if value:
        return str(value)

    if "application/json" not in request.headers.get("content-type", ""):
        return None
    body = await request.body()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if isinstance(payload, dict) and payload.get(field):
        return str(payload[field])
    return None


def require_resource_tenant(
    field: str = "organization_id",
) -> Callable[..., Awaitable[TenantContext]]:
    """Dependency factory: reject requests naming another organization in ``field``."""

    async def dependency(
        request: Request,
        tenant: TenantContext = Depends(get_tenant),
        services: Services = Depends(get_services),
    ) -> TenantContext:
        resource_org_id = await _explicit_organization_id(request, field)
        try:
            await services.gate.confirm_resource_tenant(
                tenant,
                resource_org_id,
                ip_address=client_ip(request),
                request_id=request_id(request),
            )
        except AuthorizationError as exc:
            raise _to_http(exc) from exc
        return tenant

    return dependency
