"""
NoteWise Backend — User Aggregator
===================================

What:  Groups recent notes by owner and resolves which owners can be notified.
Who:   NotificationJob, in its Grouping and Filtering states.

Eligibility:
    owner has a profile row
    AND profile.expo_push_token IS NOT NULL
    AND notification_preferences.daily_summary is not explicitly false

    Token shape is NOT checked here; NotificationComposer rejects malformed
    tokens one user at a time.
"""

import logging
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notewise.config import settings
from notewise.database import async_session_factory
from notewise.exceptions import StoreError
from notewise.models.note import Profile
from notewise.schemas.notification import NoteRecord, ProfileRecord

logger = logging.getLogger(__name__)


class UserAggregator:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.batch_size = batch_size or settings.store_batch_size

    def group(self, notes: Iterable[NoteRecord]) -> Dict[str, List[NoteRecord]]:
        """
        Maps owner id → that owner's notes, newest first.

        Owners appear in the order their first note is seen. Notes without an
        owner are dropped.
        """
        groups: Dict[str, List[NoteRecord]] = OrderedDict()
        orphaned = 0
        for note in notes:
            if not note.owner_id:
                orphaned += 1
                continue
            groups.setdefault(note.owner_id, []).append(note)

        for owner_notes in groups.values():
            owner_notes.sort(key=lambda n: n.created_at, reverse=True)

        if orphaned:
            logger.info("Skipped %d notes without an owner", orphaned)
        return groups

    async def fetch_with_tokens(self, owner_ids: Sequence[str]) -> List[ProfileRecord]:
        """
        Profiles for `owner_ids` that have a push token.

        Raises:
            StoreError: any chunk of the lookup failed.
        """
        ids = list(dict.fromkeys(owner_ids))
        if not ids:
            return []

        profiles: List[ProfileRecord] = []
        try:
            async with self.session_factory() as session:
                for start in range(0, len(ids), self.batch_size):
                    chunk = ids[start:start + self.batch_size]
                    query = select(Profile).where(
                        Profile.id.in_(chunk),
                        Profile.expo_push_token.is_not(None),
                    )
                    result = await session.execute(query)
                    profiles.extend(ProfileRecord.from_row(row) for row in result.scalars().all())
        except Exception as e:
            logger.error("Failed to fetch profiles for %d users: %s", len(ids), str(e))
            raise StoreError(
                "Failed to fetch user profiles",
                context={"error": str(e), "user_count": len(ids)},
            ) from e

        logger.info("Found %d of %d users with push tokens", len(profiles), len(ids))
        return profiles

    @staticmethod
    def filter_opted_in(profiles: Iterable[ProfileRecord]) -> List[ProfileRecord]:
        """Drops profiles that explicitly turned the daily summary off."""
        return [profile for profile in profiles if profile.wants_daily_summary]

    async def resolve_eligible(self, owner_ids: Sequence[str]) -> List[ProfileRecord]:
        return self.filter_opted_in(await self.fetch_with_tokens(owner_ids))
