"""
Key-value model holding whole JSON documents (saved-search list, VAPID keys)
"""
from datetime import datetime, timezone
from typing import Any
from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from yardwatch.database import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KVEntry(Base):
    """One JSON document stored under a fixed key"""
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)

    # Whole document, rewritten on every put
    # Example: [{"id": "...", "make": "TOYOTA", "lastSnapshot": [...]}, ...]
    value: Mapped[Any] = mapped_column(JSON, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)
