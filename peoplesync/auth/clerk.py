"""Clerk session-token validation and JWKS key management."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import httpx
import jwt
import structlog

from peoplesync.exceptions import ConfigError, IdentityAssertionError

logger = structlog.get_logger(__name__)

# JWKS cache TTL in seconds (1 hour)
_JWKS_CACHE_TTL = 3600


@dataclass
class _JWKSCache:
    """In-memory cache for Clerk JWKS keys."""

    keys: list[dict[str, Any]] = field(default_factory=list)
    fetched_at: float = 0.0

    @property
    def is_stale(self) -> bool:
        return time.monotonic() - self.fetched_at > _JWKS_CACHE_TTL


@dataclass(frozen=True, slots=True)
class ClerkClaims:
    """Parsed and validated claims from a Clerk session token."""

    sub: str  # Clerk user ID
    email: str
    session_id: str | None = None


class ClerkTokenVerifier:
    """Verifies RS256 session tokens issued by Clerk against its JWKS.

    Keys are cached per instance for an hour; when a refresh fails the
    previous keys keep being used.
    """

    def __init__(
        self,
        jwks_url: str | None,
        issuer: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._jwks_url = jwks_url
        self._issuer = issuer
        self._transport = transport
        self._cache = _JWKSCache()

    async def _fetch_jwks(self, jwks_url: str) -> list[dict[str, Any]]:
        """Fetch JWKS from Clerk and update cache."""
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                resp = await client.get(jwks_url)
                resp.raise_for_status()
                keys: list[dict[str, Any]] = resp.json().get("keys", [])
                self._cache = _JWKSCache(keys=keys, fetched_at=time.monotonic())
                logger.debug("jwks_fetched", key_count=len(keys))
                return keys
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("jwks_fetch_failed", error=str(exc))
            if self._cache.keys:
                logger.info("jwks_using_stale_cache")
                return self._cache.keys
            raise

    async def _get_signing_keys(self) -> list[dict[str, Any]]:
        if not self._jwks_url:
            msg = "CLERK_JWKS_URL is not configured"
            raise ConfigError(msg)
        if not self._cache.is_stale and self._cache.keys:
            return self._cache.keys
        return await self._fetch_jwks(self._jwks_url)

    async def verify(self, token: str) -> ClerkClaims:
        """Verify a Clerk session token and return its claims.

        Raises IdentityAssertionError on invalid, expired or unverifiable tokens.
        """
        try:
            keys = await self._get_signing_keys()
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise IdentityAssertionError("Unable to load identity provider keys") from exc

        try:
            signing_keys = jwt.PyJWKSet.from_dict({"keys": keys}).keys
        except jwt.PyJWTError as exc:
            raise IdentityAssertionError("Identity provider returned no usable keys") from exc

        decode_options: dict[str, Any] = {
            "algorithms": ["RS256"],
            "options": {"verify_aud": False, "require": ["sub", "exp"]},
        }
        if self._issuer:
            decode_options["issuer"] = self._issuer

        last_error: Exception | None = None
        for jwk in signing_keys:
            try:
                payload: dict[str, Any] = jwt.decode(token, jwk.key, **decode_options)
            except jwt.PyJWTError as exc:
                last_error = exc
                continue
            return ClerkClaims(
                sub=payload["sub"],
                email=payload.get("email", ""),
                session_id=payload.get("sid"),
            )

        logger.warning("clerk_token_invalid", error=str(last_error) if last_error else "no_keys")
        raise IdentityAssertionError("Invalid identity provider token")
