"""
NoteWise Backend — Daily Notification Job
==========================================

What:  One run of the daily "new notes" push notification pipeline.
Who:   POST /api/jobs/daily-notifications (called by the external scheduler).
When:  Once a day; every run is independent and is never retried.

Pipeline:
    ┌─────────┐   ┌──────────┐   ┌──────────┐   ┌───────────┐   ┌──────────┐   ┌─────────────┐
    │ Started │──▶│ Fetching │──▶│ Grouping │──▶│ Filtering │──▶│Composing │──▶│ Dispatching │
    └─────────┘   └────┬─────┘   └──────────┘   └─────┬─────┘   └────┬─────┘   └──────┬──────┘
                       │ 0 notes                      │              │ 0 payloads     │
                       ▼                              ▼              ▼                ▼
                  Completed                       (store error → Failed)          Completed
                                                                                 | Failed

Audit:
    "started" on entry, then exactly one terminal row: "completed" or "error".
    Errors are re-raised after the audit row is written, so the trigger
    endpoint answers 500 with the standard error envelope.

Delivery is at-most-once: a failed dispatch is reported, not retried.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from notewise.exceptions import NoteWiseError
from notewise.schemas.notification import JobSummary, NotificationPayload
from notewise.services import job_auditor
from notewise.services.job_auditor import JobAuditor
from notewise.services.note_window import NoteWindowFetcher
from notewise.services.notification_composer import compose, is_valid_push_token
from notewise.services.push_dispatcher import PushDispatcher
from notewise.services.user_aggregator import UserAggregator

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    STARTED = "started"
    FETCHING = "fetching"
    GROUPING = "grouping"
    FILTERING = "filtering"
    COMPOSING = "composing"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    FAILED = "failed"


class JobRun:
    """Progress of a single run. Overlapping runs each get their own."""

    def __init__(self) -> None:
        self.run_id = uuid.uuid4().hex[:8]
        self.state = JobState.STARTED

    def enter(self, state: JobState) -> None:
        logger.info("[%s] Notification job: %s → %s", self.run_id, self.state.value, state.value)
        self.state = state


class NotificationJob:
    """
    Orchestrates fetch → group → filter → compose → dispatch.

    Collaborators are injected so tests can swap the store, the push provider
    and the audit log independently. The instance is shared by every trigger
    request, so per-run progress lives in a JobRun, never on `self`.
    """

    def __init__(
        self,
        fetcher: Optional[NoteWindowFetcher] = None,
        aggregator: Optional[UserAggregator] = None,
        dispatcher: Optional[PushDispatcher] = None,
        auditor: Optional[JobAuditor] = None,
    ):
        self.fetcher = fetcher or NoteWindowFetcher()
        self.aggregator = aggregator or UserAggregator()
        self.dispatcher = dispatcher or PushDispatcher()
        self.auditor = auditor or JobAuditor()

    async def run(self, now: Optional[datetime] = None) -> JobSummary:
        now = now or datetime.now(timezone.utc)
        progress = JobRun()
        logger.info("[%s] Notification job started at %s", progress.run_id, now.isoformat())
        await self.auditor.record(job_auditor.STARTED, "Daily notifications cron job started")

        try:
            return await self._run(progress, now)
        except NoteWiseError as e:
            progress.enter(JobState.FAILED)
            logger.error(
                "[%s] Notification job failed: %s | Context: %s",
                progress.run_id,
                e.message,
                e.context,
            )
            await self.auditor.record(job_auditor.ERROR, e.message, str(e.context.get("error", e)))
            raise
        except Exception as e:
            progress.enter(JobState.FAILED)
            logger.error("[%s] Notification job crashed: %s", progress.run_id, str(e), exc_info=True)
            await self.auditor.record(job_auditor.ERROR, "Job execution failed", str(e))
            raise

    async def _run(self, progress: JobRun, now: datetime) -> JobSummary:
        progress.enter(JobState.FETCHING)
        notes = await self.fetcher.fetch_since(self.fetcher.cutoff_for(now))
        if not notes:
            return await self._complete(progress, "No recent notes found, no notifications sent")

        progress.enter(JobState.GROUPING)
        groups = self.aggregator.group(notes)

        progress.enter(JobState.FILTERING)
        with_tokens = await self.aggregator.fetch_with_tokens(list(groups))
        eligible = self.aggregator.filter_opted_in(with_tokens)

        progress.enter(JobState.COMPOSING)
        payloads: List[NotificationPayload] = []
        for profile in eligible:
            user_notes = groups.get(profile.id)
            if not user_notes:
                continue
            if not is_valid_push_token(profile.push_token):
                logger.warning("Skipping user %s: malformed push token", profile.id)
                continue
            payloads.append(compose(profile, user_notes, generated_at=now))

        counts = dict(
            notes_found=len(notes),
            users_with_tokens=len(with_tokens),
            eligible_users=len(eligible),
            notifications_prepared=len(payloads),
        )
        if not payloads:
            return await self._complete(progress, "No eligible users for notifications", **counts)

        progress.enter(JobState.DISPATCHING)
        result = await self.dispatcher.dispatch(payloads)

        message = (
            f"Successfully sent {result.sent_count} notifications to {len(payloads)} users"
        )
        return await self._complete(
            progress, message, notifications_sent=result.sent_count, **counts
        )

    async def _complete(self, progress: JobRun, message: str, **counts: int) -> JobSummary:
        progress.enter(JobState.COMPLETED)
        logger.info("[%s] Notification job completed: %s", progress.run_id, message)
        await self.auditor.record(job_auditor.COMPLETED, message)
        return JobSummary(success=True, message=message, **counts)
