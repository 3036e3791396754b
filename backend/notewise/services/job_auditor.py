"""
NoteWise Backend — Job Auditor
===============================

What:  Appends one row to `cron_job_logs` per job milestone.
Who:   NotificationJob (started, and exactly one terminal completed/error row).

Each record is written in its own session and committed immediately, so an
audit row survives even when the job itself fails afterwards. Audit failures
are logged and swallowed: a broken audit table must never fail the job.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from notewise.config import settings
from notewise.database import async_session_factory
from notewise.models.job_log import CronJobLog

logger = logging.getLogger(__name__)

STARTED = "started"
COMPLETED = "completed"
ERROR = "error"


class JobAuditor:
    def __init__(
        self,
        job_name: Optional[str] = None,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
    ):
        self.job_name = job_name or settings.notification_job_name
        self.session_factory = session_factory

    async def record(
        self,
        status: str,
        message: str,
        error_detail: Optional[str] = None,
    ) -> None:
        entry = CronJobLog(
            job_name=self.job_name,
            status=status,
            message=message,
            error_details=error_detail,
        )
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception as e:
            logger.warning(
                "Failed to write %s audit entry for %s: %s",
                status,
                self.job_name,
                str(e),
            )
