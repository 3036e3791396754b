"""
NoteWise Backend — Note & Profile SQLAlchemy Models
====================================================

What:  ORM mappings for the `notes` and `profiles` tables.
Who:   Read by NoteWindowFetcher (notes) and UserAggregator (profiles).

Both tables are owned by the mobile app's schema; this service only reads
them. They are tagged `info={"managed": False}` so Alembic autogenerate
ignores them.

Query Patterns:
    - Notes in the trailing window:
      SELECT ... FROM notes WHERE created_at >= :cutoff ORDER BY created_at DESC
    - Profiles for a set of owners:
      SELECT ... FROM profiles WHERE id IN (...) AND expo_push_token IS NOT NULL
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from notewise.database import Base


class Note(Base):
    """A user note as stored by the mobile app. Read-only here."""

    __tablename__ = "notes"
    __table_args__ = {"info": {"managed": False}}

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)

    # Nullable: guest notes migrated without an owner exist in production data.
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, user_id={self.user_id}, created_at='{self.created_at}')>"


class Profile(Base):
    """Per-user push settings. Read-only here."""

    __tablename__ = "profiles"
    __table_args__ = {"info": {"managed": False}}

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    expo_push_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Shape: {"daily_summary": bool, "reminders": bool, "mentions": bool}; keys may be absent.
    notification_preferences: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONB, nullable=True
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, has_token={self.expo_push_token is not None})>"
