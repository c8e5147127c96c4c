"""
Key material for signing and verifying access tokens (Ed25519 JWKs).

Two-tier resolution: a JSON JWK from the environment first, then key files in
KEYS_DIR for local development. Read-only; keys are rotated by replacing the
environment/files and restarting.
"""
import json
import logging
import os
import threading
from pathlib import Path

import jwt

from token_service.config import (
    KEYS_DIR,
    PRIVATE_KEY_ENV,
    PUBLIC_KEY_ENV,
    TOKEN_SERVICE_SUBJECT,
)
from token_service.errors import KeyNotFound, SigningKeyNotConfigured

logger = logging.getLogger(__name__)

PRIVATE_SUFFIX = ".private.jwk.json"
PUBLIC_SUFFIX = ".public.jwk.json"
JWKS_SUFFIX = ".jwks.json"

# JWK members that carry private key material (OKP "d" plus the RSA CRT members)
_PRIVATE_MEMBERS = ("d", "p", "q", "dp", "dq", "qi", "oth")

DEFAULT_ALGORITHM = "EdDSA"


def public_jwk(jwk: dict) -> dict:
    """Copy of jwk without private members; safe to publish."""
    return {k: v for k, v in jwk.items() if k not in _PRIVATE_MEMBERS}


def resolve_by_kid(keys: list[dict], kid: str | None) -> dict:
    """First key in keys whose kid matches exactly. Raises KeyNotFound."""
    if kid:
        for key in keys:
            if key.get("kid") == kid:
                return key
    raise KeyNotFound(f"No key with kid={kid!r}")


def to_crypto_key(jwk: dict):
    """Import a JWK dict as a cryptography key object (private if it carries "d")."""
    return jwt.PyJWK(jwk, algorithm=jwk.get("alg") or DEFAULT_ALGORITHM).key


class KeyMaterialSource:
    """
    Resolves the active signing key and the trusted verification key set.

    env_private / env_public are the raw JSON strings (normally from
    TOKEN_SERVICE_PRIVATE_KEY / TOKEN_SERVICE_PUBLIC_KEY); keys_dir is the
    fallback directory. Results are loaded lazily and kept for the process lifetime.
    """

    def __init__(
        self,
        env_private: str | None = None,
        env_public: str | None = None,
        keys_dir: str | os.PathLike | None = None,
    ):
        self._env_private = env_private
        self._env_public = env_public
        self._keys_dir = Path(keys_dir if keys_dir is not None else KEYS_DIR)
        self._lock = threading.Lock()
        self._signing_key: dict | None = None
        self._verification_keys: list[dict] | None = None

    @classmethod
    def from_env(cls) -> "KeyMaterialSource":
        return cls(
            env_private=os.environ.get(PRIVATE_KEY_ENV),
            env_public=os.environ.get(PUBLIC_KEY_ENV),
            keys_dir=os.environ.get("KEYS_DIR", KEYS_DIR),
        )

    # --- signing key ---

    def resolve_signing_key(self) -> dict:
        """Return the private signing JWK. Raises SigningKeyNotConfigured."""
        with self._lock:
            if self._signing_key is None:
                self._signing_key = self._load_signing_key()
            if self._signing_key is None:
                logger.error(
                    "Token service private key not found; set %s or add a %s file to %s",
                    PRIVATE_KEY_ENV,
                    PRIVATE_SUFFIX,
                    self._keys_dir,
                )
                raise SigningKeyNotConfigured("Token service signing key not configured")
            return self._signing_key

    def _load_signing_key(self) -> dict | None:
        if self._env_private:
            try:
                key = json.loads(self._env_private)
                if isinstance(key, dict):
                    logger.info("Loaded token service private key from environment")
                    return key
                logger.error("%s is not a JSON object", PRIVATE_KEY_ENV)
            except json.JSONDecodeError as e:
                logger.error("Failed to parse %s: %s", PRIVATE_KEY_ENV, e.msg)

        for path in self._scan(PRIVATE_SUFFIX):
            data = self._read_json(path)
            if isinstance(data, dict) and data.get("agent_id") == TOKEN_SERVICE_SUBJECT:
                logger.info("Found token service key: %s (fallback)", path.name)
                return data
        return None

    # --- verification keys ---

    def resolve_verification_keys(self) -> list[dict]:
        """Return the trusted public JWKs (possibly empty)."""
        with self._lock:
            if not self._verification_keys:
                self._verification_keys = self._load_verification_keys()
            return list(self._verification_keys)

    def _load_verification_keys(self) -> list[dict]:
        if self._env_public:
            try:
                key = json.loads(self._env_public)
                if isinstance(key, dict):
                    logger.info("Loaded token service public key from environment")
                    return [key]
                logger.error("%s is not a JSON object", PUBLIC_KEY_ENV)
            except json.JSONDecodeError as e:
                logger.error("Failed to parse %s: %s", PUBLIC_KEY_ENV, e.msg)

        keys: list[dict] = []
        for path in self._scan(PUBLIC_SUFFIX, JWKS_SUFFIX):
            data = self._read_json(path)
            if isinstance(data, dict) and isinstance(data.get("keys"), list):
                keys.extend(k for k in data["keys"] if isinstance(k, dict))
            elif isinstance(data, dict):
                keys.append(data)
            else:
                continue
            logger.info("Loaded key from %s (fallback)", path.name)
        if not keys:
            logger.warning("No public keys found. Set %s.", PUBLIC_KEY_ENV)
        return keys

    def jwks(self) -> dict:
        """JWKS document: public members only."""
        return {"keys": [public_jwk(k) for k in self.resolve_verification_keys()]}

    # --- files ---

    def _scan(self, *suffixes: str) -> list[Path]:
        if not self._keys_dir.is_dir():
            return []
        try:
            names = sorted(os.listdir(self._keys_dir))
        except OSError as e:
            logger.error("Failed to read keys directory %s: %s", self._keys_dir, e)
            return []
        return [self._keys_dir / name for name in names if name.endswith(suffixes)]

    @staticmethod
    def _read_json(path: Path):
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load key from %s: %s", path.name, e)
            return None
