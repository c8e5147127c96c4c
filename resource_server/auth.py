"""
Bearer token validation for the resource server via the token service's JWKS.
Same verification algorithm as the token service; only the key source and audience differ.
"""
import logging
import threading
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from jwt import PyJWKClient

from resource_server.config import API_AUDIENCE, JWKS_CACHE_SECONDS, JWKS_URI, SCOPE_WEATHER_READ
from token_service.errors import InsufficientScope, SecurityViolation
from token_service.verifier import TokenVerifier, VerifiedToken

logger = logging.getLogger(__name__)


class RemoteJwksSource:
    """Token service JWKS over HTTP; PyJWKClient keeps the fetched set for cache_seconds."""

    def __init__(self, uri: str = JWKS_URI, cache_seconds: int = JWKS_CACHE_SECONDS):
        self._uri = uri
        self._client = PyJWKClient(uri=uri, cache_jwk_set=True, lifespan=cache_seconds)

    def resolve_verification_keys(self) -> list[dict]:
        # The cache holds the raw JWKS document, or None once expired
        data = self._client.jwk_set_cache.get()
        if data is None:
            try:
                data = self._client.fetch_data()
            except jwt.PyJWKClientError as e:
                logger.warning("Failed to fetch JWKS from %s: %s", self._uri, e)
                return []
        keys = data.get("keys") if isinstance(data, dict) else None
        return [k for k in keys or [] if isinstance(k, dict)]


# Single shared source; reset to None to force a refetch
_jwks_source: RemoteJwksSource | None = None
_jwks_lock = threading.Lock()


def get_jwks_source() -> RemoteJwksSource:
    global _jwks_source
    with _jwks_lock:
        if _jwks_source is None:
            _jwks_source = RemoteJwksSource()
        return _jwks_source


def require_scope(required: str):
    """Dependency factory: valid Bearer token for this audience carrying the given scope."""

    def _check(
        request: Request,
        source: Annotated[RemoteJwksSource, Depends(get_jwks_source)],
    ) -> VerifiedToken:
        try:
            return TokenVerifier(source).verify(
                request.headers.get("Authorization"),
                [required],
                audience=API_AUDIENCE,
            )
        except InsufficientScope as e:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "insufficient_scope", "error_description": f"Scope '{e.scope}' required"},
            )
        except SecurityViolation as e:
            logger.debug("Token rejected: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"error": e.error, "error_description": "Token verification failed"},
                headers={"WWW-Authenticate": "Bearer"},
            )

    return Depends(_check)


RequireWeatherRead = require_scope(SCOPE_WEATHER_READ)
