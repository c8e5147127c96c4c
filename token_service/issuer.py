"""
Client-credentials grant: validate the request, authorize scopes, sign an EdDSA access token.
"""
import logging
import time
import uuid

import jwt

from token_service.admin import ADMIN, AdminCredentialGuard
from token_service.config import ACCESS_TOKEN_EXPIRES, ADMIN_CLIENT_SCOPES, ISSUER
from token_service.errors import InvalidClient, OAuthError, SigningKeyNotConfigured
from token_service.keys import DEFAULT_ALGORITHM, KeyMaterialSource, to_crypto_key
from token_service.registry import ClientRegistry, VerifiedClient

logger = logging.getLogger(__name__)

GRANT_CLIENT_CREDENTIALS = "client_credentials"


def parse_scope(scope: str | None) -> list[str]:
    """Space-separated scope string -> ordered, de-duplicated list (empty if absent)."""
    seen: list[str] = []
    for s in (scope or "").split():
        if s not in seen:
            seen.append(s)
    return seen


class TokenIssuer:
    def __init__(
        self,
        key_source: KeyMaterialSource,
        registry: ClientRegistry,
        admin_guard: AdminCredentialGuard | None = None,
    ):
        self.key_source = key_source
        self.registry = registry
        self.admin_guard = admin_guard or AdminCredentialGuard()

    def _authenticate(self, client_id: str, client_secret: str) -> VerifiedClient:
        # Admin client from env mints admin-scoped tokens without a registry entry
        if self.admin_guard.matches(ADMIN, client_id, client_secret):
            logger.info("Admin client authenticated: %s", client_id)
            return VerifiedClient(client_id=client_id, scopes=list(ADMIN_CLIENT_SCOPES))
        try:
            return self.registry.verify_credentials(client_id, client_secret)
        except InvalidClient:
            logger.warning("Token request rejected: invalid client credentials for %s", client_id)
            raise OAuthError("invalid_client", 401) from None

    def issue(
        self,
        grant_type: str | None,
        client_id: str | None,
        client_secret: str | None,
        audience: str | None,
        scope: str | None,
    ) -> dict:
        """
        Run the grant in order; the first failing check decides the error.
        Returns the token response body.
        """
        if grant_type != GRANT_CLIENT_CREDENTIALS:
            raise OAuthError("unsupported_grant_type", 400)
        if not client_id or not client_secret:
            raise OAuthError("invalid_client", 401)
        if not audience:
            raise OAuthError("invalid_request", 400, "audience parameter is required")

        client = self._authenticate(client_id, client_secret)

        requested = parse_scope(scope)
        granted = set(client.scopes)
        authorized = [s for s in requested if s in granted]
        if requested and not authorized:
            logger.info("Token request by %s rejected: no requested scope granted", client_id)
            raise OAuthError("invalid_scope", 400)

        try:
            signing_jwk = self.key_source.resolve_signing_key()
        except SigningKeyNotConfigured:
            raise OAuthError("server_error", 500) from None

        access_token = self.sign(signing_jwk, client_id, audience, authorized)
        logger.info(
            "Token issued to client %s for audience %s, scopes: %s",
            client_id,
            audience,
            ",".join(authorized) or "none",
        )
        return {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": ACCESS_TOKEN_EXPIRES,
            "scope": " ".join(authorized),
        }

    @staticmethod
    def sign(signing_jwk: dict, client_id: str, audience: str, scopes: list[str], now: int | None = None) -> str:
        """Build and sign the access token JWT with the signing key's kid in the header."""
        kid = signing_jwk.get("kid")
        if not kid or "d" not in signing_jwk:
            logger.error("Token service private key missing kid or private member")
            raise OAuthError("server_error", 500)
        try:
            private_key = to_crypto_key(signing_jwk)
        except (jwt.PyJWKError, jwt.InvalidKeyError) as e:
            logger.error("Token service private key unusable: %s", e)
            raise OAuthError("server_error", 500) from None

        issued_at = int(time.time()) if now is None else now
        payload = {
            "iss": ISSUER,
            "sub": client_id,
            "aud": audience,
            "iat": issued_at,
            "exp": issued_at + ACCESS_TOKEN_EXPIRES,
            "jti": str(uuid.uuid4()),
            "scopes": list(scopes),
            "client_id": client_id,
        }
        token = jwt.encode(
            payload,
            private_key,
            algorithm=signing_jwk.get("alg") or DEFAULT_ALGORITHM,
            headers={"kid": kid, "typ": "JWT"},
        )
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token
