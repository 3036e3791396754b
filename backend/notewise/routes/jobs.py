"""
NoteWise Backend — Scheduled Job Trigger
=========================================

What:  POST /api/jobs/daily-notifications — runs the daily notification job once.
Who:   The external scheduler (cron), once a day. No request body.

Protection:
    When JOB_TRIGGER_TOKEN is set, the request must carry
    `Authorization: Bearer <JOB_TRIGGER_TOKEN>`; otherwise 401.
    When unset, the endpoint is open and must be shielded at the network edge.

Responses:
    200 JobSummary {success, message, notesFound, usersWithTokens,
                    eligibleUsers, notificationsPrepared, notificationsSent, timestamp}
    500 standard error envelope (store or push failure; already audited)
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from notewise.config import settings
from notewise.exceptions import AuthenticationError
from notewise.routes.analyze import bearer_token
from notewise.schemas.analysis import ErrorResponse
from notewise.schemas.notification import JobSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["Jobs"])


async def require_job_token(authorization: Optional[str] = Header(default=None)) -> None:
    expected = settings.job_trigger_token
    if not expected:
        return
    token = bearer_token(authorization)
    if not secrets.compare_digest(token, expected):
        raise AuthenticationError("Invalid job trigger token")


@router.post(
    "/daily-notifications",
    response_model=JobSummary,
    dependencies=[Depends(require_job_token)],
    responses={
        401: {"description": "Missing or invalid trigger token", "model": ErrorResponse},
        500: {"description": "Store or push provider failure", "model": ErrorResponse},
    },
    summary="Run the daily notification job",
)
async def run_daily_notifications(request: Request) -> JobSummary:
    summary = await request.app.state.notification_job.run()
    logger.info(
        "Daily notifications: %d notes, %d prepared, %d sent",
        summary.notes_found,
        summary.notifications_prepared,
        summary.notifications_sent,
    )
    return summary
