"""
Process-wide services, built once on first use and handed to routes through FastAPI Depends.
Tests swap them with app.dependency_overrides.
"""
import threading

from fastapi import Depends

from token_service.admin import AdminCredentialGuard
from token_service.config import DATABASE_URL, SERVERS_DB_FILE
from token_service.database import PrimaryStore
from token_service.issuer import TokenIssuer
from token_service.keys import KeyMaterialSource
from token_service.registry import ClientRegistry, MemoryTier
from token_service.verifier import TokenVerifier

_lock = threading.Lock()
_key_source: KeyMaterialSource | None = None
_registry: ClientRegistry | None = None
_admin_guard = AdminCredentialGuard()


def get_key_source() -> KeyMaterialSource:
    global _key_source
    with _lock:
        if _key_source is None:
            _key_source = KeyMaterialSource.from_env()
        return _key_source


def get_registry() -> ClientRegistry:
    global _registry
    with _lock:
        if _registry is None:
            _registry = ClientRegistry(PrimaryStore(DATABASE_URL), MemoryTier(SERVERS_DB_FILE))
        return _registry


def get_admin_guard() -> AdminCredentialGuard:
    return _admin_guard


def get_issuer(
    key_source: KeyMaterialSource = Depends(get_key_source),
    registry: ClientRegistry = Depends(get_registry),
    admin_guard: AdminCredentialGuard = Depends(get_admin_guard),
) -> TokenIssuer:
    return TokenIssuer(key_source, registry, admin_guard)


def get_verifier(key_source: KeyMaterialSource = Depends(get_key_source)) -> TokenVerifier:
    return TokenVerifier(key_source)
