"""Session credential issuance and verification (HS256 JWT)."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

import jwt
import structlog

from peoplesync.config.settings import DEFAULT_CREDENTIAL_TTL_SECONDS
from peoplesync.exceptions import ExpiredCredentialError, InvalidSignatureError

logger = structlog.get_logger(__name__)

_ALGORITHM = "HS256"

# Claim name -> SessionClaims attribute
_CLAIM_FIELDS = {
    "uid": "user_id",
    "sub": "external_subject_id",
    "org_id": "organization_id",
    "email": "email",
    "first_name": "first_name",
    "last_name": "last_name",
    "role": "role",
}


@dataclass(frozen=True, slots=True)
class SessionClaims:
    """Identity and tenant context carried by a session credential."""

    user_id: str
    external_subject_id: str
    organization_id: str
    email: str
    first_name: str
    last_name: str
    role: str

    def to_payload(self) -> dict[str, Any]:
        values = asdict(self)
        return {claim: values[attr] for claim, attr in _CLAIM_FIELDS.items()}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SessionClaims:
        values = {attr: payload.get(claim) or "" for claim, attr in _CLAIM_FIELDS.items()}
        return cls(**{k: str(v) for k, v in values.items()})


class CredentialCodec:
    """Issues and verifies self-contained session credentials.

    Verification never touches the database; tenant liveness is checked
    separately by the gate.
    """

    def __init__(self, secret_key: str, ttl_seconds: int = DEFAULT_CREDENTIAL_TTL_SECONDS) -> None:
        if not secret_key:
            msg = "secret_key is required"
            raise ValueError(msg)
        if ttl_seconds <= 0:
            msg = "ttl_seconds must be positive"
            raise ValueError(msg)
        self._secret = secret_key
        self._ttl = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def issue(self, claims: SessionClaims, *, now: float | None = None) -> str:
        """Stamp iat/exp onto ``claims`` and sign them."""
        if not claims.organization_id:
            msg = "Cannot issue a credential without an organization_id"
            raise ValueError(msg)

        issued_at = int(time.time() if now is None else now)
        payload = claims.to_payload()
        payload["iat"] = issued_at
        payload["exp"] = issued_at + self._ttl
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str, *, now: float | None = None) -> SessionClaims:
        """Return the claims of a valid credential.

        Raises InvalidSignatureError for malformed or tampered tokens and
        ExpiredCredentialError once ``now`` reaches the embedded expiry.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["exp", "uid", "sub"],
                },
            )
            expires_at = int(payload["exp"])
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            raise InvalidSignatureError(str(exc)) from exc

        current = time.time() if now is None else now
        if current >= expires_at:
            logger.debug("credential_expired", sub=payload.get("sub"), exp=expires_at)
            raise ExpiredCredentialError("Credential has expired")

        return SessionClaims.from_payload(payload)
