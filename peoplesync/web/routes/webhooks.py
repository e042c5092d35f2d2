"""Clerk webhook receiver for user provisioning."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from peoplesync.auth.webhook_verifier import ID_HEADER, SIGNATURE_HEADER, TIMESTAMP_HEADER
from peoplesync.exceptions import (
    MalformedEventError,
    ProvisioningError,
    WebhookVerificationError,
)
from peoplesync.models.api import WebhookAck
from peoplesync.services.provisioning import ExternalUser, ProvisioningEngine
from peoplesync.types import WebhookEventType
from peoplesync.web.dependencies import Services, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


# --- Event handlers ---


async def _handle_user_created(engine: ProvisioningEngine, data: dict[str, Any]) -> None:
    user = await engine.on_user_created(ExternalUser.from_event(data))
    logger.info("webhook_user_created_handled", user_id=user.id)


async def _handle_user_updated(engine: ProvisioningEngine, data: dict[str, Any]) -> None:
    await engine.on_user_updated(ExternalUser.from_event(data))


async def _handle_user_deleted(engine: ProvisioningEngine, data: dict[str, Any]) -> None:
    subject_id = data.get("id")
    if not isinstance(subject_id, str) or not subject_id:
        msg = "Deletion event has no subject id"
        raise MalformedEventError(msg)
    await engine.on_user_deleted(subject_id)


_HANDLERS: dict[str, Callable[[ProvisioningEngine, dict[str, Any]], Awaitable[None]]] = {
    WebhookEventType.USER_CREATED: _handle_user_created,
    WebhookEventType.USER_UPDATED: _handle_user_updated,
    WebhookEventType.USER_DELETED: _handle_user_deleted,
}


@router.post("/clerk", response_model=WebhookAck)
async def clerk_webhook(
    request: Request,
    services: Services = Depends(get_services),
) -> WebhookAck | JSONResponse:
    """Verify and dispatch a Clerk webhook delivery."""
    payload = await request.body()
    headers = {
        ID_HEADER: request.headers.get(ID_HEADER, ""),
        TIMESTAMP_HEADER: request.headers.get(TIMESTAMP_HEADER, ""),
        SIGNATURE_HEADER: request.headers.get(SIGNATURE_HEADER, ""),
    }

    try:
        services.webhook_authenticator.verify(payload, headers)
    except WebhookVerificationError as exc:
        logger.warning("webhook_rejected", reason=str(exc))
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from exc

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Malformed webhook payload") from exc
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    event_type = event.get("type", "")
    data = event.get("data")
    if not isinstance(event_type, str):
        raise HTTPException(status_code=400, detail="Malformed webhook payload")
    logger.info("webhook_received", event_type=event_type, svix_id=headers[ID_HEADER])

    handler = _HANDLERS.get(event_type)
    if handler is None:
        logger.debug("webhook_unhandled_event", event_type=event_type)
        return WebhookAck()
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    try:
        await handler(services.provisioning, data)
    except ProvisioningError as exc:
        logger.warning(
            "webhook_provisioning_failed",
            event_type=event_type,
            code=exc.code,
            error=str(exc),
        )
        return JSONResponse(status_code=422, content={"detail": exc.code})
    except Exception:
        logger.exception("webhook_processing_error", event_type=event_type)
        return JSONResponse(status_code=500, content={"detail": "Error processing webhook"})

    return WebhookAck()
