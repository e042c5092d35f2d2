"""Authentication routes: identity-provider token exchange."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from peoplesync.auth.gate import extract_bearer_token
from peoplesync.exceptions import (
    ConfigError,
    IdentityAssertionError,
    UserNotActiveError,
    UserNotProvisionedError,
)
from peoplesync.models.api import ExchangeResponse, PublicUserProfile
from peoplesync.web.dependencies import Services, client_ip, get_services, request_id

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/exchange", response_model=ExchangeResponse)
async def exchange_token(
    request: Request,
    services: Services = Depends(get_services),
) -> ExchangeResponse:
    """Trade a Clerk session token for a PeopleSync session credential."""
    assertion = extract_bearer_token(request.headers.get("authorization"))
    if assertion is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        result = await services.exchange.exchange(
            assertion,
            ip_address=client_ip(request),
            request_id=request_id(request),
        )
    except IdentityAssertionError as exc:
        raise HTTPException(status_code=401, detail="Invalid or expired token") from exc
    except UserNotProvisionedError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UserNotActiveError as exc:
        raise HTTPException(status_code=403, detail="User account is not active") from exc
    except ConfigError as exc:
        logger.error("exchange_misconfigured", error=str(exc))
        raise HTTPException(status_code=500, detail="Authentication unavailable") from exc

    return ExchangeResponse(
        token=result.token,
        expires_at=result.expires_at,
        user=PublicUserProfile.from_record(result.profile),
    )
