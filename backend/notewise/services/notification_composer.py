"""
NoteWise Backend — Notification Composer
=========================================

What:  Builds the daily-summary push message for one user.
Who:   NotificationJob, once per eligible user, in its Composing state.
How:   Pure function of (profile, notes, generation time); no I/O.

Message Rules (notes sorted newest first):
    1 note:   title "📝 New Note Created"
              body  "<title>" - <first 100 chars of summary | "Tap to view details">
    n notes:  title "📝 <n> New Notes Created"
              body  Latest: "<newest title>" and <n-1> more. Tap to view all your recent notes.

    title ≤ 100 chars, body ≤ 500 chars, badge = n.
"""

import re
from datetime import datetime, timezone
from typing import Optional, Sequence

from notewise.schemas.notification import (
    MAX_PUSH_BODY_LENGTH,
    MAX_PUSH_TITLE_LENGTH,
    NoteRecord,
    NotificationData,
    NotificationMetadata,
    NotificationPayload,
    ProfileRecord,
)

SUMMARY_EXCERPT_LENGTH = 100
NOTIFICATION_KIND = "daily_summary"
NOTIFICATION_SOURCE = "daily_notifications"

_PUSH_TOKEN = re.compile(r"Expo(nent)?PushToken\[.+\]")


def is_valid_push_token(token: Optional[str]) -> bool:
    """True for ExponentPushToken[...] / ExpoPushToken[...] tokens."""
    return bool(token) and _PUSH_TOKEN.fullmatch(token) is not None


def compose(
    profile: ProfileRecord,
    notes: Sequence[NoteRecord],
    generated_at: Optional[datetime] = None,
) -> NotificationPayload:
    """
    Build one payload for `profile` summarizing `notes`.

    Raises:
        ValueError: `notes` is empty or the profile has no push token.
    """
    if not notes:
        raise ValueError("compose() needs at least one note")
    if not profile.push_token:
        raise ValueError(f"Profile {profile.id} has no push token")

    generated_at = generated_at or datetime.now(timezone.utc)
    ordered = sorted(notes, key=lambda n: n.created_at, reverse=True)
    latest = ordered[0]
    count = len(ordered)

    if count == 1:
        title = "📝 New Note Created"
        excerpt = latest.summary[:SUMMARY_EXCERPT_LENGTH] if latest.summary else "Tap to view details"
        body = f'"{latest.title}" - {excerpt}'
    else:
        title = f"📝 {count} New Notes Created"
        body = (
            f'Latest: "{latest.title}" and {count - 1} more. '
            "Tap to view all your recent notes."
        )

    epoch_ms = int(generated_at.timestamp() * 1000)
    return NotificationPayload(
        destination_token=profile.push_token,
        title=title[:MAX_PUSH_TITLE_LENGTH],
        body=body[:MAX_PUSH_BODY_LENGTH],
        badge_count=count,
        category_id=NOTIFICATION_KIND,
        data=NotificationData(
            id=f"daily-summary-{epoch_ms}-{profile.id}",
            kind=NOTIFICATION_KIND,
            priority="medium",
            metadata=NotificationMetadata(
                note_id=latest.id,
                generated_at=generated_at.isoformat(),
                source=NOTIFICATION_SOURCE,
            ),
        ),
    )
