"""
SQLAlchemy models for the primary tier of the client registry.
"""
import json
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ClientRegistration(Base):
    __tablename__ = "client_registrations"

    # Caller-chosen id; the primary key is the uniqueness constraint that decides concurrent registrations
    client_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    # bcrypt hash of the opaque secret handed out once at registration
    client_secret_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    scopes: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # stored as JSON string
    registered_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def get_scopes_list(self) -> list[str]:
        return json.loads(self.scopes or "[]")
