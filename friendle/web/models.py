"""Database models for the Friendle storage service."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy import Index
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from friendle.shared.database import Base


class KVEntry(Base):
    """A single expiring key-value pair.

    Puzzles, per-date metadata, latest pointers and stats counters all live in
    this one table, addressed by colon-separated keys such as
    ``guild:{id}:date:{date}:game:{game}``. Values are stored as text (JSON
    documents or decimal counters).
    """

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(
        String(512),
        primary_key=True,
        doc="Colon-separated storage key",
    )
    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Stored value, JSON text or a decimal counter",
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the entry stops being readable; NULL never expires",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        doc="Last write time",
    )

    __table_args__ = (Index("ix_kv_entries_expires_at", "expires_at"),)

    def __repr__(self) -> str:
        return f"<KVEntry(key={self.key!r}, expires_at={self.expires_at})>"
