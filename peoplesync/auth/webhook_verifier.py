"""Clerk/Svix webhook signature verification.

Clerk delivers webhooks through Svix. Each delivery carries ``svix-id``,
``svix-timestamp`` and ``svix-signature`` headers; the signature is an
HMAC-SHA256 over ``{svix-id}.{svix-timestamp}.{raw body}``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import time
from collections.abc import Callable, Mapping

import structlog

from peoplesync.config.settings import DEFAULT_WEBHOOK_TOLERANCE_SECONDS
from peoplesync.exceptions import (
    InvalidWebhookSignatureError,
    MissingSignatureHeadersError,
    WebhookMisconfiguredError,
)

logger = structlog.get_logger(__name__)

ID_HEADER = "svix-id"
TIMESTAMP_HEADER = "svix-timestamp"
SIGNATURE_HEADER = "svix-signature"

_SECRET_PREFIX = "whsec_"
_SIGNATURE_VERSION = "v1"
_SEPARATORS = re.compile(r"[\s,]+")


def _decode_secret(secret: str) -> bytes:
    """Svix secrets are ``whsec_`` + base64; anything else is used as raw bytes."""
    secret = secret.strip()
    if secret.startswith(_SECRET_PREFIX):
        secret = secret[len(_SECRET_PREFIX) :]
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        return secret.encode()


def _candidate_signatures(header: str) -> list[str]:
    """Split a signature header into bare signature values.

    Accepts Svix's ``v1,<sig> v1,<sig>`` form as well as bare signatures
    separated by spaces or commas. Version tokens other than ``v1`` are
    dropped together with the signature that follows them.
    """
    tokens = [t for t in _SEPARATORS.split(header.strip()) if t]
    candidates: list[str] = []
    skip_next = False
    for token in tokens:
        if skip_next:
            skip_next = False
            continue
        if re.fullmatch(r"v\d+", token):
            skip_next = token != _SIGNATURE_VERSION
            continue
        candidates.append(token)
    return candidates


class WebhookAuthenticator:
    """Decides ACCEPT/REJECT for an inbound provisioning event. Pure, no I/O."""

    def __init__(
        self,
        secret: str | None,
        tolerance_seconds: int = DEFAULT_WEBHOOK_TOLERANCE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret or not secret.strip():
            logger.error("webhook_secret_missing")
            raise WebhookMisconfiguredError
        self._key = _decode_secret(secret)
        if not self._key:
            raise WebhookMisconfiguredError
        self._tolerance = tolerance_seconds
        self._clock = clock

    def sign(self, msg_id: str, timestamp: str, payload: bytes) -> str:
        """Return the base64 v1 signature for a delivery."""
        to_sign = f"{msg_id}.{timestamp}.".encode() + payload
        digest = hmac.new(self._key, to_sign, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def verify(self, payload: bytes, headers: Mapping[str, str]) -> None:
        """Raise unless ``payload`` carries a valid, fresh signature.

        ``payload`` must be the exact bytes received; re-serialized JSON
        will not verify.
        """
        msg_id = headers.get(ID_HEADER, "")
        timestamp = headers.get(TIMESTAMP_HEADER, "")
        signatures = headers.get(SIGNATURE_HEADER, "")
        if not msg_id or not timestamp or not signatures:
            raise MissingSignatureHeadersError

        try:
            ts = int(timestamp)
        except ValueError as exc:
            logger.warning("webhook_timestamp_invalid", svix_id=msg_id)
            raise InvalidWebhookSignatureError from exc
        delta = abs(self._clock() - ts)
        if delta > self._tolerance:
            logger.warning("webhook_timestamp_expired", svix_id=msg_id, delta=delta)
            raise InvalidWebhookSignatureError

        expected = self.sign(msg_id, timestamp, payload)
        for candidate in _candidate_signatures(signatures):
            if hmac.compare_digest(candidate.encode(), expected.encode()):
                return

        logger.warning("webhook_signature_mismatch", svix_id=msg_id)
        raise InvalidWebhookSignatureError
