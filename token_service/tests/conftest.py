"""
Pytest configuration for token_service. Environment is fixed before the app is imported;
each test gets its own in-memory SQLite primary store and snapshot file.
"""
import json
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="token-service-tests-")

# Low bcrypt cost keeps registration fast
os.environ["TOKEN_SERVICE_BCRYPT_ROUNDS"] = "4"
os.environ["SERVERS_DB_FILE"] = os.path.join(_TMP, "servers.json")
os.environ["KEYS_DIR"] = os.path.join(_TMP, "keys")
for _var in (
    "DATABASE_URL",
    "TOKEN_SERVICE_PRIVATE_KEY",
    "TOKEN_SERVICE_PUBLIC_KEY",
    "ADMIN_CLIENT_ID",
    "ADMIN_CLIENT_SECRET",
    "MANAGEMENT_CLIENT_ID",
    "MANAGEMENT_CLIENT_SECRET",
    "APP_ENV",
    "TOKEN_SERVICE_SEED_CLIENT_ID",
    "TOKEN_SERVICE_SEED_CLIENT_SECRET",
):
    os.environ.pop(_var, None)

import pytest  # noqa: E402
from cryptography.hazmat.primitives import serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jwt.utils import base64url_encode  # noqa: E402

from token_service.database import PrimaryStore  # noqa: E402
from token_service.dependencies import get_key_source, get_registry  # noqa: E402
from token_service.keys import KeyMaterialSource  # noqa: E402
from token_service.main import app  # noqa: E402
from token_service.registry import ClientRegistry, MemoryTier  # noqa: E402


def _b64(raw: bytes) -> str:
    return base64url_encode(raw).decode("ascii")


def make_jwk_pair(kid: str = "test-kid", agent_id: str = "token-service") -> tuple[dict, dict]:
    """Fresh Ed25519 key as (private JWK, public JWK)."""
    key = Ed25519PrivateKey.generate()
    d = key.private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption(),
    )
    x = key.public_key().public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
    public = {
        "kty": "OKP",
        "crv": "Ed25519",
        "x": _b64(x),
        "kid": kid,
        "use": "sig",
        "alg": "EdDSA",
        "agent_id": agent_id,
    }
    return dict(public, d=_b64(d)), public


@pytest.fixture
def jwk_pair_factory():
    return make_jwk_pair


@pytest.fixture
def jwk_pair():
    return make_jwk_pair()


@pytest.fixture
def key_source(jwk_pair, tmp_path):
    private, public = jwk_pair
    return KeyMaterialSource(
        env_private=json.dumps(private),
        env_public=json.dumps(public),
        keys_dir=tmp_path / "no-keys",
    )


@pytest.fixture
def empty_key_source(tmp_path):
    return KeyMaterialSource(keys_dir=tmp_path / "no-keys")


@pytest.fixture
def registry(tmp_path):
    """Primary tier on in-memory SQLite, fallback snapshot under tmp_path."""
    return ClientRegistry(
        PrimaryStore("sqlite:///:memory:"),
        MemoryTier(tmp_path / "servers.json"),
        bcrypt_rounds=4,
    )


@pytest.fixture
def memory_registry(tmp_path):
    """No primary store configured; every operation lands in the fallback tier."""
    return ClientRegistry(PrimaryStore(None), MemoryTier(tmp_path / "servers.json"), bcrypt_rounds=4)


@pytest.fixture
def client(key_source, registry):
    app.dependency_overrides[get_key_source] = lambda: key_source
    app.dependency_overrides[get_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.clear()
