"""
NoteWise Backend — Notification Pipeline Schemas
=================================================

What:  Typed records flowing through the daily notification job.
How:   ORM rows are converted into NoteRecord / ProfileRecord right after the
       query; NotificationPayload serializes to the Expo push wire format via
       `to_wire()` (camelCase aliases).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

MAX_PUSH_TITLE_LENGTH = 100
MAX_PUSH_BODY_LENGTH = 500


# ══════════════════════════════════════════════════════════════════════════
# Store Records (read-only views of notes / profiles rows)
# ══════════════════════════════════════════════════════════════════════════


class NoteRecord(BaseModel):
    id: str
    owner_id: Optional[str] = None
    title: str = ""
    summary: Optional[str] = None
    type: str = "text"
    created_at: datetime

    model_config = {"frozen": True}

    @classmethod
    def from_row(cls, note: Any) -> "NoteRecord":
        return cls(
            id=str(note.id),
            owner_id=str(note.user_id) if note.user_id else None,
            title=note.title or "",
            summary=note.summary,
            type=note.type or "text",
            created_at=note.created_at,
        )


class NotificationPreferences(BaseModel):
    """
    Per-user notification switches. A missing key means "not set", which
    counts as opted in (opt-out semantics).
    """
    daily_summary: Optional[bool] = None
    reminders: Optional[bool] = None
    mentions: Optional[bool] = None

    model_config = {"extra": "allow", "frozen": True}


class ProfileRecord(BaseModel):
    id: str
    push_token: Optional[str] = None
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences
    )

    model_config = {"frozen": True}

    @property
    def wants_daily_summary(self) -> bool:
        return self.notification_preferences.daily_summary is not False

    @classmethod
    def from_row(cls, profile: Any) -> "ProfileRecord":
        return cls(
            id=str(profile.id),
            push_token=profile.expo_push_token,
            notification_preferences=NotificationPreferences.model_validate(
                profile.notification_preferences or {}
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Push Payloads
# ══════════════════════════════════════════════════════════════════════════


class NotificationMetadata(BaseModel):
    note_id: str = Field(alias="noteId")
    generated_at: str = Field(alias="createdAt")
    source: str = "daily_notifications"

    model_config = {"populate_by_name": True, "frozen": True}


class NotificationData(BaseModel):
    id: str
    kind: str = Field(default="daily_summary", alias="type")
    priority: str = "medium"
    metadata: NotificationMetadata

    model_config = {"populate_by_name": True, "frozen": True}


class NotificationPayload(BaseModel):
    """One push message for one user, in Expo's message format."""
    destination_token: str = Field(alias="to")
    sound: str = "default"
    title: str = Field(max_length=MAX_PUSH_TITLE_LENGTH)
    body: str = Field(max_length=MAX_PUSH_BODY_LENGTH)
    badge_count: int = Field(alias="badge", ge=0)
    category_id: Optional[str] = Field(default="daily_summary", alias="categoryId")
    data: NotificationData

    model_config = {"populate_by_name": True, "frozen": True}

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DispatchFailure(BaseModel):
    payload: NotificationPayload
    reason: str


class DispatchResult(BaseModel):
    sent_count: int = 0
    failures: List[DispatchFailure] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Job Summary
# ══════════════════════════════════════════════════════════════════════════


class JobSummary(BaseModel):
    """
    Result of one notification job run, returned by the trigger endpoint.

    Serialized with camelCase aliases:
        {success, message, notesFound, usersWithTokens, eligibleUsers,
         notificationsPrepared, notificationsSent, timestamp}
    """
    success: bool = True
    message: str
    notes_found: int = Field(default=0, alias="notesFound")
    users_with_tokens: int = Field(default=0, alias="usersWithTokens")
    eligible_users: int = Field(default=0, alias="eligibleUsers")
    notifications_prepared: int = Field(default=0, alias="notificationsPrepared")
    notifications_sent: int = Field(default=0, alias="notificationsSent")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"populate_by_name": True}
