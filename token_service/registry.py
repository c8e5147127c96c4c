"""
Client registry: registered OAuth clients in two tiers.

The primary tier is the relational store (PrimaryStore). The fallback tier is an
in-memory mapping mirrored to a JSON snapshot file (SERVERS_DB_FILE) and used when
the primary store is unreachable. Reads are reconciled by client id, primary first.
"""
import json
import logging
import os
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from token_service.config import BCRYPT_ROUNDS
from token_service.database import PrimaryStore
from token_service.errors import (
    ClientConflict,
    ClientNotFound,
    InvalidClient,
    StorageUnavailable,
)
from token_service.models import ClientRegistration
from token_service.seed import hash_secret, verify_secret

logger = logging.getLogger(__name__)

TIER_PRIMARY = "primary"
TIER_MEMORY = "memory"


def _iso(value: datetime | str | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass(frozen=True)
class RegisteredClient:
    client_id: str
    name: str
    client_secret_hash: str
    scopes: list[str] = field(default_factory=list)
    registered_by: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: ClientRegistration) -> "RegisteredClient":
        return cls(
            client_id=row.client_id,
            name=row.name,
            client_secret_hash=row.client_secret_hash,
            scopes=row.get_scopes_list(),
            registered_by=row.registered_by,
            created_at=_iso(row.created_at),
            updated_at=_iso(row.updated_at),
        )

    @classmethod
    def from_snapshot(cls, client_id: str, data: dict) -> "RegisteredClient":
        return cls(
            client_id=client_id,
            name=data.get("name") or client_id,
            client_secret_hash=data.get("clientSecretHash") or "",
            scopes=list(data.get("scopes") or []),
            registered_by=data.get("registeredBy") or TIER_MEMORY,
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_snapshot(self) -> dict:
        return {
            "name": self.name,
            "clientId": self.client_id,
            "clientSecretHash": self.client_secret_hash,
            "scopes": list(self.scopes),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "registeredBy": self.registered_by,
        }

    def to_listing(self) -> dict:
        """Public view for GET /servers. Never includes the secret hash."""
        return {
            "serverId": self.client_id,
            "name": self.name,
            "scopes": list(self.scopes),
            "createdAt": self.created_at,
            "registeredBy": self.registered_by,
        }


@dataclass(frozen=True)
class TierResult:
    """A client plus the tier that answered; unavailable is set when the primary tier could not."""

    client: RegisteredClient
    tier: str
    unavailable: StorageUnavailable | None = None


@dataclass(frozen=True)
class Registration:
    client: RegisteredClient
    client_secret: str
    tier: str
    unavailable: StorageUnavailable | None = None


@dataclass(frozen=True)
class VerifiedClient:
    client_id: str
    scopes: list[str]


@dataclass(frozen=True)
class StorageStatus:
    clients: int
    database_connected: bool
    storage_type: str


class MemoryTier:
    """In-memory client map guarded by a lock, persisted to a flat JSON snapshot after each write."""

    def __init__(self, snapshot_path: str | os.PathLike | None = None):
        self._path = Path(snapshot_path) if snapshot_path else None
        self._lock = threading.Lock()
        self._clients: dict[str, RegisteredClient] = {}
        self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not load servers database %s: %s", self._path, e)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring servers database %s: not a JSON object", self._path)
            return
        self._clients = {
            cid: RegisteredClient.from_snapshot(cid, entry)
            for cid, entry in data.items()
            if isinstance(entry, dict)
        }
        logger.info("Loaded %d registered servers from %s", len(self._clients), self._path)

    def _save(self) -> None:
        # Caller holds the lock
        if self._path is None:
            return
        payload = {cid: c.to_snapshot() for cid, c in self._clients.items()}
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            if self._path.parent and not self._path.parent.exists():
                self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            logger.error("Failed to save servers database %s: %s", self._path, e)

    def get(self, client_id: str) -> RegisteredClient | None:
        with self._lock:
            return self._clients.get(client_id)

    def add_if_absent(self, client: RegisteredClient) -> RegisteredClient | None:
        """Insert client unless the id exists; returns the existing entry on conflict."""
        with self._lock:
            existing = self._clients.get(client.client_id)
            if existing is not None:
                return existing
            self._clients[client.client_id] = client
            self._save()
            return None

    def put(self, client: RegisteredClient) -> None:
        with self._lock:
            self._clients[client.client_id] = client
            self._save()

    def all(self) -> list[RegisteredClient]:
        with self._lock:
            return list(self._clients.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)


class ClientRegistry:
    def __init__(
        self,
        primary: PrimaryStore,
        memory: MemoryTier,
        bcrypt_rounds: int = BCRYPT_ROUNDS,
    ):
        self.primary = primary
        self.memory = memory
        self._bcrypt_rounds = bcrypt_rounds

    # --- writes ---

    def register(
        self,
        client_id: str,
        name: str,
        scopes: list[str] | None = None,
        registered_by: str = "development",
    ) -> Registration:
        """
        Create a client with a freshly generated secret.
        Raises ClientConflict if the id already exists in the tier that accepts the write.
        """
        client_secret = secrets.token_urlsafe(32)
        registration = self._create(client_id, name, scopes or [], client_secret, registered_by)
        logger.info(
            "Registered server: %s (%s) via %s [%s]",
            name,
            client_id,
            registered_by,
            registration.tier,
        )
        return registration

    def seed(self, client_id: str, name: str, scopes: list[str], client_secret: str) -> bool:
        """Register with a known secret; False if the client already exists."""
        try:
            self._create(client_id, name, scopes, client_secret, "seed")
        except ClientConflict:
            return False
        return True

    def _create(
        self,
        client_id: str,
        name: str,
        scopes: list[str],
        client_secret: str,
        registered_by: str,
    ) -> Registration:
        created = datetime.now(timezone.utc)
        now = _iso(created)
        client = RegisteredClient(
            client_id=client_id,
            name=name,
            client_secret_hash=hash_secret(client_secret, self._bcrypt_rounds),
            scopes=list(scopes),
            registered_by=registered_by,
            created_at=now,
            updated_at=now,
        )
        try:
            self._insert_primary(client, created)
        except StorageUnavailable as e:
            logger.warning("Database save failed, using in-memory fallback: %s", e)
            existing = self.memory.add_if_absent(client)
            if existing is not None:
                raise ClientConflict(existing)
            return Registration(client, client_secret, TIER_MEMORY, e)
        # Best-effort mirror; the primary insert is the commit
        self.memory.put(client)
        return Registration(client, client_secret, TIER_PRIMARY)

    def _insert_primary(self, client: RegisteredClient, created: datetime) -> None:
        with self.primary.session() as db:
            try:
                existing = db.get(ClientRegistration, client.client_id)
                if existing is not None:
                    raise ClientConflict(RegisteredClient.from_row(existing))
                db.add(
                    ClientRegistration(
                        client_id=client.client_id,
                        client_secret_hash=client.client_secret_hash,
                        name=client.name,
                        scopes=json.dumps(client.scopes),
                        registered_by=client.registered_by,
                        created_at=created,
                        updated_at=created,
                    )
                )
                db.commit()
            except IntegrityError as e:
                # Lost a concurrent race for the same id
                db.rollback()
                existing = db.get(ClientRegistration, client.client_id)
                if existing is None:
                    raise StorageUnavailable(f"Insert failed: {e}") from e
                raise ClientConflict(RegisteredClient.from_row(existing)) from None
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageUnavailable(str(e)) from e

    # --- reads ---

    def lookup(self, client_id: str) -> TierResult:
        """Primary tier first; the memory tier answers only when the primary is unreachable."""
        try:
            with self.primary.session() as db:
                row = db.get(ClientRegistration, client_id)
                found = RegisteredClient.from_row(row) if row is not None else None
        except StorageUnavailable as e:
            unavailable = e
        except SQLAlchemyError as e:
            unavailable = StorageUnavailable(str(e))
        else:
            if found is None:
                raise ClientNotFound(client_id)
            return TierResult(found, TIER_PRIMARY)

        logger.debug("Lookup of %s served from memory: %s", client_id, unavailable)
        client = self.memory.get(client_id)
        if client is None:
            raise ClientNotFound(client_id)
        return TierResult(client, TIER_MEMORY, unavailable)

    def list(self) -> list[RegisteredClient]:
        """Union of both tiers keyed by client id; primary entries win."""
        merged = {c.client_id: c for c in self.memory.all()}
        try:
            with self.primary.session() as db:
                for row in db.scalars(select(ClientRegistration)):
                    merged[row.client_id] = RegisteredClient.from_row(row)
        except (StorageUnavailable, SQLAlchemyError) as e:
            logger.warning("Listing from memory only: %s", e)
        return list(merged.values())

    def verify_credentials(self, client_id: str, client_secret: str) -> VerifiedClient:
        """Exact secret match or InvalidClient; unknown id and wrong secret are indistinguishable."""
        try:
            result = self.lookup(client_id)
        except ClientNotFound:
            raise InvalidClient("Invalid client_id") from None
        if not verify_secret(client_secret, result.client.client_secret_hash):
            raise InvalidClient("Invalid client_id")
        return VerifiedClient(client_id=client_id, scopes=list(result.client.scopes))

    def status(self) -> StorageStatus:
        try:
            with self.primary.session() as db:
                count = db.scalar(select(func.count()).select_from(ClientRegistration)) or 0
            return StorageStatus(count, True, self.primary.backend_name or "database")
        except (StorageUnavailable, SQLAlchemyError) as e:
            logger.warning("Health check: database not available: %s", e)
            return StorageStatus(len(self.memory), False, TIER_MEMORY)
