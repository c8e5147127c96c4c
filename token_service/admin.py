"""
Static admin / management credential check (not a token).
Gates the privileged actions that cannot themselves require an OAuth token,
e.g. registering the very first client.
"""
import hmac
import logging

from token_service.config import ADMIN_CREDENTIALS_ENV, admin_credentials
from token_service.errors import AdminNotConfigured, InvalidAdminCredentials

logger = logging.getLogger(__name__)

ADMIN = "admin"
MANAGEMENT = "management"


def _equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class AdminCredentialGuard:
    """Compares caller-supplied (client_id, client_secret) with the configured pair for a kind."""

    def __init__(self, lookup=admin_credentials):
        self._lookup = lookup

    def _configured(self, kind: str) -> tuple[str | None, str | None]:
        if kind not in ADMIN_CREDENTIALS_ENV:
            raise ValueError(f"Unknown credential kind: {kind}")
        return self._lookup(kind)

    @staticmethod
    def _compare(kind: str, expected: tuple[str, str], client_id: str | None, client_secret: str | None) -> None:
        if not client_id or not client_secret:
            raise InvalidAdminCredentials(f"Invalid {kind} client credentials")
        expected_id, expected_secret = expected
        # Evaluate both comparisons so timing does not reveal which one failed
        id_ok = _equal(client_id, expected_id)
        secret_ok = _equal(client_secret, expected_secret)
        if not (id_ok and secret_ok):
            raise InvalidAdminCredentials(f"Invalid {kind} client credentials")

    def verify(self, kind: str, client_id: str | None, client_secret: str | None) -> None:
        """
        Raises AdminNotConfigured if either configured value is absent,
        InvalidAdminCredentials if the supplied pair does not match.
        """
        expected_id, expected_secret = self._configured(kind)
        if not expected_id or not expected_secret:
            logger.error("%s client credentials not configured", kind.capitalize())
            raise AdminNotConfigured(f"{kind.capitalize()} client credentials not configured")
        self._compare(kind, (expected_id, expected_secret), client_id, client_secret)

    def matches(self, kind: str, client_id: str | None, client_secret: str | None) -> bool:
        """Non-raising variant: False when unconfigured or mismatched. Logs nothing."""
        expected_id, expected_secret = self._configured(kind)
        if not expected_id or not expected_secret:
            return False
        try:
            self._compare(kind, (expected_id, expected_secret), client_id, client_secret)
        except InvalidAdminCredentials:
            return False
        return True
