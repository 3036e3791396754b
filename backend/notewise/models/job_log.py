"""
NoteWise Backend — Cron Job Log SQLAlchemy Model
=================================================

What:  ORM model for the `cron_job_logs` audit table.
Who:   Written by JobAuditor; created by Alembic revision 001.

Append-only: rows are inserted at job start and at the job's single terminal
point, and are never updated or deleted by this service.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from notewise.database import Base


class CronJobLog(Base):
    """One audit entry for a scheduled job run."""

    __tablename__ = "cron_job_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    job_name: Mapped[str] = mapped_column(Text, nullable=False)

    # Values: started, completed, error
    status: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("cron_job_logs_job_name_idx", "job_name"),
        Index("cron_job_logs_created_at_idx", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<CronJobLog(job_name='{self.job_name}', status='{self.status}')>"
