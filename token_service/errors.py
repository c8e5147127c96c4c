"""
Error taxonomy for the token service.

ClientError surfaces a stable OAuth error code to the caller. ConfigurationError is
a 500-class condition that never names the missing secret. SecurityViolation is
always rendered opaquely (401/403); the specific cause is only logged server-side.
"""


class OAuthError(Exception):
    """Client-facing grant error rendered as a flat {"error": ...} body."""

    def __init__(self, error: str, status_code: int = 400, description: str | None = None):
        super().__init__(description or error)
        self.error = error
        self.status_code = status_code
        self.description = description

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


# --- configuration ---


class ConfigurationError(Exception):
    pass


class SigningKeyNotConfigured(ConfigurationError):
    pass


class AdminNotConfigured(ConfigurationError):
    pass


# --- bearer token verification ---


class SecurityViolation(Exception):
    error = "invalid_token"
    status_code = 401


class MissingOrInvalidHeader(SecurityViolation):
    error = "invalid_request"


class NoKeysAvailable(SecurityViolation):
    pass


class KeyNotFound(SecurityViolation):
    pass


class SignatureOrIssuerInvalid(SecurityViolation):
    pass


class Expired(SecurityViolation):
    pass


class InsufficientScope(SecurityViolation):
    error = "insufficient_scope"
    status_code = 403

    def __init__(self, scope: str):
        super().__init__(f"Scope '{scope}' required")
        self.scope = scope


# --- admin credentials ---


class InvalidAdminCredentials(Exception):
    pass


# --- client registry ---


class StorageUnavailable(Exception):
    """Primary store unreachable. Never leaves the registry; carried as a tag on results."""


class ClientNotFound(Exception):
    pass


class ClientConflict(Exception):
    def __init__(self, existing):
        super().__init__(f"Client already exists: {existing.client_id}")
        self.existing = existing


class InvalidClient(Exception):
    """Unknown client and wrong secret collapse to this one outcome."""
