from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from biosync.db.base import Base, UpdatedAtMixin


class KeyValueEntry(Base, UpdatedAtMixin):
    """One durable slot of the on-device store (profile, timeline, marker, theme)."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
