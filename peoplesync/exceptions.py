"""Exception hierarchy for PeopleSync."""


class PeopleSyncError(Exception):
    """Base exception for all PeopleSync errors."""


class ConfigError(PeopleSyncError):
    """Raised when configuration is invalid."""


class StorageError(PeopleSyncError):
    """Raised when storage operations fail."""


class DuplicateRecordError(StorageError):
    """Raised when an insert violates a uniqueness constraint."""


# ---------------------------------------------------------------------------
# Webhook envelope
# ---------------------------------------------------------------------------


class WebhookVerificationError(PeopleSyncError):
    """Raised when an inbound webhook delivery cannot be authenticated."""


class MissingSignatureHeadersError(WebhookVerificationError):
    def __init__(self) -> None:
        super().__init__("missing signature headers")


class WebhookMisconfiguredError(WebhookVerificationError):
    def __init__(self) -> None:
        super().__init__("authenticator misconfigured")


class InvalidWebhookSignatureError(WebhookVerificationError):
    def __init__(self) -> None:
        super().__init__("invalid signature")


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


class ProvisioningError(PeopleSyncError):
    """Terminal failure while turning an identity event into a local user."""

    code = "ProvisioningFailed"


class MalformedEventError(ProvisioningError):
    code = "MalformedEvent"


class MissingEmailError(ProvisioningError):
    code = "MissingEmail"


class MissingTenantContextError(ProvisioningError):
    code = "MissingTenantContext"


class UnknownOrInactiveOrganizationError(ProvisioningError):
    code = "UnknownOrInactiveOrganization"


class CodeGenerationExhaustedError(ProvisioningError):
    code = "CodeGenerationExhausted"


# ---------------------------------------------------------------------------
# Session credentials
# ---------------------------------------------------------------------------


class CredentialError(PeopleSyncError):
    """Raised when a session credential fails verification."""


class InvalidSignatureError(CredentialError):
    """Malformed token or signature mismatch."""


class ExpiredCredentialError(CredentialError):
    """Signature is valid but the credential is past its expiry."""


# ---------------------------------------------------------------------------
# Request authorization
# ---------------------------------------------------------------------------


class AuthorizationError(PeopleSyncError):
    """Request rejected by the tenant gate.

    ``detail`` is the stable, caller-facing message for the category.
    """

    code = "Unauthorized"
    detail = "Unauthorized"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.detail)


class MissingCredentialError(AuthorizationError):
    code = "MissingCredential"
    detail = "Authentication token required"


class InvalidCredentialError(AuthorizationError):
    code = "InvalidCredential"
    detail = "Invalid or expired token"


class MissingTenantClaimError(AuthorizationError):
    code = "MissingTenantContext"
    detail = "Invalid token: missing organization context"


class InactiveOrUnknownOrganizationError(AuthorizationError):
    code = "InactiveOrUnknownOrganization"
    detail = "Organization is inactive or not found"


class CrossTenantAccessError(AuthorizationError):
    code = "CrossTenantAccessDenied"
    detail = "Access denied: resource belongs to different organization"


# ---------------------------------------------------------------------------
# Credential exchange
# ---------------------------------------------------------------------------


class ExchangeError(PeopleSyncError):
    """Raised when an identity assertion cannot be exchanged for a credential."""


class IdentityAssertionError(ExchangeError):
    """The identity provider's token did not verify."""


class UserNotProvisionedError(ExchangeError):
    def __init__(self) -> None:
        super().__init__("User not found. Please complete registration first.")


class UserNotActiveError(ExchangeError):
    def __init__(self, status: str) -> None:
        super().__init__(f"User account is {status}")
        self.status = status
