"""
Primary store for client registrations. The engine is created lazily, once, on first use.
"""
import logging
import threading
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from token_service.errors import StorageUnavailable
from token_service.models import Base

logger = logging.getLogger(__name__)


def _make_engine(url: str) -> Engine:
    # SQLite: in-memory needs StaticPool so all connections share the same DB (for tests)
    # File-based SQLite needs check_same_thread=False for FastAPI's threadpool
    if url.startswith("sqlite:///:memory:") or url == "sqlite://":
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


class PrimaryStore:
    """
    Lazily-initialized SQLAlchemy engine + session factory.

    Concurrent first callers block on the lock and reuse the single initialization.
    A failed initialization is not remembered; the next call tries again.
    """

    def __init__(self, url: str | None):
        self.url = url
        self._lock = threading.Lock()
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker | None = None

    @property
    def configured(self) -> bool:
        return bool(self.url)

    @property
    def backend_name(self) -> str | None:
        return self._engine.dialect.name if self._engine is not None else None

    def _ensure_initialized(self) -> sessionmaker:
        if self._sessionmaker is not None:
            return self._sessionmaker
        with self._lock:
            if self._sessionmaker is not None:
                return self._sessionmaker
            if not self.url:
                raise StorageUnavailable("Primary store not configured")
            engine = _make_engine(self.url)
            try:
                Base.metadata.create_all(bind=engine)
            except SQLAlchemyError as e:
                engine.dispose()
                raise StorageUnavailable(f"Failed to initialize primary store: {e}") from e
            self._engine = engine
            self._sessionmaker = sessionmaker(autocommit=False, autoflush=False, bind=engine)
            logger.info("Primary store initialized for client registrations (%s)", engine.dialect.name)
            return self._sessionmaker

    @contextmanager
    def session(self):
        """Yield a session. Raises StorageUnavailable if the store cannot be reached."""
        factory = self._ensure_initialized()
        db: Session = factory()
        try:
            yield db
        finally:
            db.close()

    def ping(self) -> bool:
        try:
            with self.session() as db:
                db.execute(text("SELECT 1"))
            return True
        except (StorageUnavailable, SQLAlchemyError) as e:
            logger.warning("Primary store not reachable: %s", e)
            return False
