"""Unified cron dispatcher: authentication and task sequencing"""

import hmac
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.orm import Session

from muaythai_gateway.config import SecurityConfig, settings
from muaythai_gateway.domain.models import TaskResult
from muaythai_gateway.infrastructure.clients.email import EmailClient
from muaythai_gateway.infrastructure.observability.logging import log_task_result
from muaythai_gateway.infrastructure.observability.metrics import record_task
from muaythai_gateway.services.articles import publish_scheduled_articles
from muaythai_gateway.services.booking_reminders import BookingReminderService
from muaythai_gateway.services.email_queue import EmailQueueProcessor
from muaythai_gateway.services.scheduled_reports import ScheduledReportService
from muaythai_gateway.utils.date_utils import to_local

logger = logging.getLogger(__name__)

EMAIL_QUEUE = "emailQueue"
BOOKING_REMINDERS = "bookingReminders"
SCHEDULED_ARTICLES = "scheduledArticles"
SCHEDULED_REPORTS = "scheduledReports"

COUNT_FIELDS = {
    EMAIL_QUEUE: "processed",
    BOOKING_REMINDERS: "sent",
    SCHEDULED_ARTICLES: "published",
    SCHEDULED_REPORTS: "generated",
}


def authenticate_cron(
    security: SecurityConfig,
    header_secret: Optional[str] = None,
    authorization: Optional[str] = None,
    query_secret: Optional[str] = None,
) -> bool:
    """
    Check a cron invocation against the configured secret.

    The secret may arrive as ``x-cron-secret``, ``Authorization: Bearer`` or a
    ``secret`` query parameter. Without a configured secret only development
    is let through.
    """
    if security.cron_secret is None:
        if security.is_production:
            logger.error("CRON_SECRET not configured in production")
            return False
        logger.warning("Development mode: cron authentication DISABLED")
        return True

    bearer = None
    if authorization and authorization.startswith("Bearer "):
        bearer = authorization[len("Bearer "):]

    expected = security.cron_secret.encode("utf-8")
    return any(
        hmac.compare_digest(candidate.encode("utf-8"), expected)
        for candidate in (header_secret, bearer, query_secret)
        if candidate
    )


class TaskDispatcher:
    """Runs the maintenance tasks, each inside its own failure boundary"""

    def __init__(
        self,
        db: Session,
        email_client: EmailClient,
        timezone: Optional[str] = None,
        reminder_hour: Optional[int] = None,
        reminder_minute: Optional[int] = None,
    ):
        self.db = db
        self.email_client = email_client
        self.timezone = timezone or settings.schedule_timezone
        self.reminder_hour = settings.reminder_hour if reminder_hour is None else reminder_hour
        self.reminder_minute = settings.reminder_minute if reminder_minute is None else reminder_minute

        self._tasks: Dict[str, Callable[[datetime], Awaitable[TaskResult]]] = {
            EMAIL_QUEUE: self._email_queue,
            BOOKING_REMINDERS: self._booking_reminders,
            SCHEDULED_ARTICLES: self._scheduled_articles,
            SCHEDULED_REPORTS: self._scheduled_reports,
        }

    async def _email_queue(self, now: datetime) -> TaskResult:
        return await EmailQueueProcessor(self.db, self.email_client).process_batch(now)

    async def _booking_reminders(self, now: datetime) -> TaskResult:
        return await BookingReminderService(self.db, self.email_client, self.timezone).send_reminders(now)

    async def _scheduled_articles(self, now: datetime) -> TaskResult:
        return publish_scheduled_articles(self.db, now)

    async def _scheduled_reports(self, now: datetime) -> TaskResult:
        return await ScheduledReportService(self.db, self.email_client, self.timezone).generate_due(now)

    def reminders_due(self, now: datetime) -> bool:
        """True only on the configured reminder minute of the local clock"""
        local = to_local(now, self.timezone)
        return local.hour == self.reminder_hour and local.minute == self.reminder_minute

    async def run_task(self, name: str, now: datetime) -> TaskResult:
        """Run one task; an exception becomes a failed result instead of propagating"""
        start_time = time.time()
        try:
            result = await self._tasks[name](now)
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Cron task {name} raised", extra={"task": name})
            result = TaskResult.failed(COUNT_FIELDS[name], str(e))

        duration = time.time() - start_time
        record_task(name, result.success, duration)
        log_task_result(name, result.success, result.count, result.error, duration * 1000)
        return result

    async def run(self, now: datetime) -> Dict[str, TaskResult]:
        """Mail queue first, reminders on the reminder minute, then articles and reports"""
        sequence = [EMAIL_QUEUE]
        if self.reminders_due(now):
            sequence.append(BOOKING_REMINDERS)
        sequence += [SCHEDULED_ARTICLES, SCHEDULED_REPORTS]

        results: Dict[str, TaskResult] = {}
        for name in sequence:
            results[name] = await self.run_task(name, now)
        return results
