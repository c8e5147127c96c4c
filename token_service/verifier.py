"""
Bearer access-token verification. One algorithm, parameterized by the required scopes
(and, for resource servers, an expected audience).
"""
import logging
from dataclasses import dataclass

import jwt

from token_service.config import ISSUER
from token_service.errors import (
    Expired,
    InsufficientScope,
    KeyNotFound,
    MissingOrInvalidHeader,
    NoKeysAvailable,
    SignatureOrIssuerInvalid,
)
from token_service.keys import DEFAULT_ALGORITHM, resolve_by_kid, to_crypto_key

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class VerifiedToken:
    client_id: str
    scopes: list[str]
    kid: str
    claims: dict


class TokenVerifier:
    """
    key_source is anything with resolve_verification_keys() -> list[dict]
    (KeyMaterialSource locally, a JWKS-over-HTTP source in resource servers).
    """

    def __init__(self, key_source, issuer: str = ISSUER):
        self.key_source = key_source
        self.issuer = issuer

    def _decode(self, token: str, key, algorithm: str, audience: str | None, verify_exp: bool = True) -> dict:
        return jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            issuer=self.issuer,
            audience=audience,
            options={"require": ["exp", "iss"], "verify_aud": audience is not None, "verify_exp": verify_exp},
        )

    def verify(
        self,
        authorization_header: str | None,
        required_scopes: list[str] | tuple[str, ...] = (),
        audience: str | None = None,
    ) -> VerifiedToken:
        if not authorization_header or not authorization_header.startswith(BEARER_PREFIX):
            raise MissingOrInvalidHeader("Missing or invalid authorization header")
        token = authorization_header[len(BEARER_PREFIX):].strip()

        keys = self.key_source.resolve_verification_keys()
        if not keys:
            logger.error("No public keys available for token verification")
            raise NoKeysAvailable("No public keys available for token verification")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            logger.debug("Malformed token header: %s", e)
            raise SignatureOrIssuerInvalid("Malformed token") from None
        kid = header.get("kid")
        jwk = resolve_by_kid(keys, kid)

        try:
            public_key = to_crypto_key(jwk)
        except (jwt.PyJWKError, jwt.InvalidKeyError) as e:
            logger.warning("Verification key %s unusable: %s", kid, e)
            raise KeyNotFound(f"Key {kid!r} unusable") from None

        algorithm = jwk.get("alg") or DEFAULT_ALGORITHM
        try:
            claims = self._decode(token, public_key, algorithm, audience)
        except jwt.ExpiredSignatureError:
            # Signature, issuer and audience are judged before expiry
            try:
                self._decode(token, public_key, algorithm, audience, verify_exp=False)
            except jwt.InvalidTokenError as e:
                logger.debug("Expired token with kid %s also invalid: %s", kid, e)
                raise SignatureOrIssuerInvalid("Token verification failed") from None
            logger.debug("Token with kid %s expired", kid)
            raise Expired("Token has expired") from None
        except jwt.InvalidTokenError as e:
            logger.debug("Token verification failed for kid %s: %s", kid, e)
            raise SignatureOrIssuerInvalid("Token verification failed") from None

        scopes = claims.get("scopes", [])
        if not isinstance(scopes, list):
            raise SignatureOrIssuerInvalid("Invalid token: scopes must be an array")
        for required in required_scopes:
            if required and required not in scopes:
                logger.info("Insufficient scope for %s: %s required", claims.get("sub"), required)
                raise InsufficientScope(required)

        return VerifiedToken(
            client_id=claims.get("client_id") or claims.get("sub"),
            scopes=list(scopes),
            kid=kid,
            claims=claims,
        )
