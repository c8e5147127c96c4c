"""
Client-secret hashing and optional start-up seeding of one client from environment.
Set TOKEN_SERVICE_SEED_CLIENT_ID + TOKEN_SERVICE_SEED_CLIENT_SECRET (+ _NAME, _SCOPES).
"""
import base64
import hashlib
import logging
import os

import bcrypt

from token_service.config import BCRYPT_ROUNDS

logger = logging.getLogger(__name__)


def _prehash(secret: str) -> bytes:
    # bcrypt reads at most 72 bytes; the base64 SHA-256 digest is 44, so every byte of the secret counts
    return base64.b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


def hash_secret(secret: str, rounds: int = BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(_prehash(secret), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_secret(plain: str, hashed: str | None) -> bool:
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_prehash(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def seed_from_env(registry) -> None:
    """Register one client from env if set and not yet present (either tier)."""
    client_id = os.environ.get("TOKEN_SERVICE_SEED_CLIENT_ID")
    client_secret = os.environ.get("TOKEN_SERVICE_SEED_CLIENT_SECRET")
    if not client_id or not client_secret:
        return
    name = os.environ.get("TOKEN_SERVICE_SEED_CLIENT_NAME") or client_id
    scopes = [s for s in os.environ.get("TOKEN_SERVICE_SEED_CLIENT_SCOPES", "").split() if s]
    if registry.seed(client_id, name, scopes, client_secret):
        logger.info("Seeded client: %s (scopes=%s)", client_id, " ".join(scopes) or "none")
    else:
        logger.debug("Client already exists: %s", client_id)
