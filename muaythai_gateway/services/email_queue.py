"""Outbound email queue: preference-aware enqueue and batched delivery with retry"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from muaythai_gateway.config import settings
from muaythai_gateway.domain.models import EmailMessage, TaskResult
from muaythai_gateway.infrastructure.clients.email import EmailClient
from muaythai_gateway.infrastructure.database.models import EmailQueueItem
from muaythai_gateway.infrastructure.database.repositories import EmailQueueRepository, NotificationRepository
from muaythai_gateway.infrastructure.observability.metrics import email_counter
from muaythai_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

# email_type -> preference column that can opt the user out of it
PREFERENCE_TOGGLES = {
    "booking_confirmation": "booking_confirmation",
    "booking_reminder": "booking_reminder",
    "event_reminder": "booking_reminder",
    "promotional": "promotions_news",
    "newsletter": "promotions_news",
}


@dataclass
class EnqueueResult:
    """Outcome of an enqueue attempt; skipped emails carry the reason"""

    queued: bool
    item_id: Optional[uuid.UUID] = None
    reason: Optional[str] = None


def calculate_next_retry_time(
    retry_count: int,
    now: datetime,
    base_minutes: Optional[int] = None,
    cap_minutes: Optional[int] = None,
) -> datetime:
    """Exponential backoff: base * 2^retry_count minutes, capped"""
    base = base_minutes if base_minutes is not None else settings.email_backoff_base_minutes
    cap = cap_minutes if cap_minutes is not None else settings.email_backoff_cap_minutes
    return now + timedelta(minutes=min(base * (2 ** retry_count), cap))


def _opted_out(db: Session, user_id: Optional[uuid.UUID], email_type: str) -> Optional[str]:
    if user_id is None:
        return None
    preferences = NotificationRepository(db).get_preferences(user_id)
    if preferences is None:
        # No row means defaults, except promotional mail which is opt-in
        return "promotions disabled" if PREFERENCE_TOGGLES.get(email_type) == "promotions_news" else None
    if not preferences.email_enabled:
        return "email disabled"
    toggle = PREFERENCE_TOGGLES.get(email_type)
    if toggle and not getattr(preferences, toggle):
        return f"{email_type} disabled"
    return None


def enqueue_email(
    db: Session,
    to_email: str,
    subject: str,
    html_content: str,
    email_type: str = "other",
    user_id: Optional[uuid.UUID] = None,
    priority: str = "normal",
    text_content: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
    related_resource_type: Optional[str] = None,
    related_resource_id: Optional[str] = None,
) -> EnqueueResult:
    """
    Add an email to the queue unless the recipient opted out of its type.

    Opt-outs are reported in the result rather than raised. The row is flushed
    but not committed; it lands with the caller's unit of work.
    """
    reason = _opted_out(db, user_id, email_type)
    if reason:
        logger.info(
            f"Email skipped: {reason}",
            extra={"email_type": email_type, "user_id": str(user_id)},
        )
        return EnqueueResult(queued=False, reason=reason)

    item = EmailQueueRepository(db).add(
        EmailQueueItem(
            user_id=user_id,
            to_email=to_email,
            from_email=settings.email_from,
            subject=subject,
            html_content=html_content,
            text_content=text_content,
            email_type=email_type,
            priority=priority,
            status="pending",
            retry_count=0,
            max_retries=settings.email_max_retries,
            scheduled_at=scheduled_at or utcnow(),
            provider="resend",
            metadata_=metadata or {},
            related_resource_type=related_resource_type,
            related_resource_id=related_resource_id,
        )
    )
    return EnqueueResult(queued=True, item_id=item.id)


def queue_stats(db: Session) -> Dict[str, int]:
    """Number of queued emails per status"""
    return EmailQueueRepository(db).count_by_status()


class EmailQueueProcessor:
    """Drains due queue items through the email client"""

    def __init__(self, db: Session, email_client: EmailClient, batch_size: Optional[int] = None):
        self.db = db
        self.email_client = email_client
        self.batch_size = batch_size or settings.email_batch_size
        self.repo = EmailQueueRepository(db)

    async def process_batch(self, now: datetime) -> TaskResult:
        items = self.repo.fetch_due(self.batch_size, now)
        sent = requeued = failed = 0

        for item in items:
            self.repo.mark_processing(item, now)
            self.db.commit()

            try:
                message_id = await self.email_client.send(
                    EmailMessage(
                        to=[item.to_email],
                        subject=item.subject,
                        html=item.html_content,
                        text=item.text_content,
                    ),
                    from_email=item.from_email,
                )
            except Exception as e:
                if self._record_failure(item, str(e), now):
                    requeued += 1
                else:
                    failed += 1
            else:
                self.repo.mark_sent(item, message_id, now)
                email_counter.labels(outcome="sent").inc()
                sent += 1

            self.db.commit()

        return TaskResult(
            count_field="processed",
            count=len(items),
            details={"sent": sent, "failed": failed, "requeued": requeued},
        )

    def _record_failure(self, item: EmailQueueItem, error: str, now: datetime) -> bool:
        """Apply the retry rule; returns True when the item was requeued"""
        retry_count = (item.retry_count or 0) + 1
        if retry_count < item.max_retries:
            next_retry_at = calculate_next_retry_time(retry_count, now)
            self.repo.mark_attempt_failed(item, error, retry_count, next_retry_at)
            email_counter.labels(outcome="requeued").inc()
            logger.warning(
                f"Email send failed, retry {retry_count}/{item.max_retries} at {next_retry_at.isoformat()}",
                extra={"email_id": str(item.id), "email_type": item.email_type, "error": error},
            )
            return True

        self.repo.mark_attempt_failed(item, error, retry_count, None)
        email_counter.labels(outcome="failed").inc()
        logger.error(
            f"Email permanently failed after {retry_count} attempts",
            extra={"email_id": str(item.id), "email_type": item.email_type, "error": error},
        )
        return False
