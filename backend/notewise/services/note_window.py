"""
NoteWise Backend — Recent Notes Fetcher
========================================

What:  Reads every note created inside the trailing notification window.
Who:   NotificationJob, in its Fetching state.

Query:
    SELECT id, user_id, title, summary, type, created_at
    FROM notes WHERE created_at >= :cutoff ORDER BY created_at DESC

Failures of any kind become StoreError("Failed to fetch notes"); the driver
message goes to the log and to `context`, never into the message itself.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from notewise.config import settings
from notewise.database import async_session_factory
from notewise.exceptions import StoreError
from notewise.models.note import Note
from notewise.schemas.notification import NoteRecord

logger = logging.getLogger(__name__)


class NoteWindowFetcher:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
        window_hours: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.window_hours = window_hours or settings.notification_window_hours

    def cutoff_for(self, now: Optional[datetime] = None) -> datetime:
        """Start of the window ending at `now` (UTC when omitted)."""
        now = now or datetime.now(timezone.utc)
        return now - timedelta(hours=self.window_hours)

    async def fetch_since(self, cutoff: datetime) -> List[NoteRecord]:
        """
        All notes with created_at >= cutoff, newest first.

        Raises:
            StoreError: the query failed or timed out.
        """
        query = (
            select(Note)
            .where(Note.created_at >= cutoff)
            .order_by(desc(Note.created_at))
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                notes = [NoteRecord.from_row(row) for row in result.scalars().all()]
        except Exception as e:
            logger.error("Failed to fetch notes since %s: %s", cutoff.isoformat(), str(e))
            raise StoreError(
                "Failed to fetch notes",
                context={"error": str(e), "cutoff": cutoff.isoformat()},
            ) from e

        logger.info("Fetched %d notes created since %s", len(notes), cutoff.isoformat())
        return notes
