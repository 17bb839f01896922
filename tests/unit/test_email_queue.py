"""Unit tests for the email queue"""

import uuid
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.orm import Session
from muaythai_gateway.domain.exceptions import EmailNotConfiguredError
from muaythai_gateway.infrastructure.database.models import EmailQueueItem, NotificationPreference
from muaythai_gateway.services.email_queue import (
    EmailQueueProcessor,
    calculate_next_retry_time,
    enqueue_email,
    queue_stats,
)

NOW = datetime(2026, 3, 10, 2, 0)


@pytest.mark.parametrize(
    "retry_count,minutes",
    [(0, 5), (1, 10), (2, 20), (3, 40), (8, 1280), (9, 1440), (20, 1440)],
)
def test_backoff_doubles_and_caps(retry_count: int, minutes: int):
    """Test 5 * 2^n minutes, capped at 24 hours"""
    assert calculate_next_retry_time(retry_count, NOW, 5, 1440) == NOW + timedelta(minutes=minutes)


def test_enqueue_without_user_always_queues(db: Session):
    """Test anonymous recipients have no preferences to honour"""
    result = enqueue_email(db, "ops@example.com", "Alert", "<p>x</p>", email_type="admin_alert")

    assert result.queued is True
    item = db.get(EmailQueueItem, result.item_id)
    assert item.status == "pending"
    assert item.retry_count == 0


def test_enqueue_respects_disabled_email(db: Session):
    """Test a user who turned off email gets nothing queued"""
    user_id = uuid.uuid4()
    db.add(NotificationPreference(user_id=user_id, email_enabled=False))
    db.commit()

    result = enqueue_email(db, "a@example.com", "S", "<p>x</p>", email_type="payment_receipt", user_id=user_id)

    assert result.queued is False
    assert result.reason == "email disabled"
    assert db.query(EmailQueueItem).count() == 0


def test_enqueue_respects_per_type_toggle(db: Session):
    """Test booking confirmations can be switched off on their own"""
    user_id = uuid.uuid4()
    db.add(NotificationPreference(user_id=user_id, email_enabled=True, booking_confirmation=False))
    db.commit()

    skipped = enqueue_email(db, "a@example.com", "S", "<p>x</p>", email_type="booking_confirmation", user_id=user_id)
    queued = enqueue_email(db, "a@example.com", "S", "<p>x</p>", email_type="payment_receipt", user_id=user_id)

    assert skipped.queued is False
    assert queued.queued is True


def test_promotional_mail_is_opt_in(db: Session):
    """Test promotional mail needs an explicit opt-in"""
    result = enqueue_email(db, "a@example.com", "S", "<p>x</p>", email_type="promotional", user_id=uuid.uuid4())
    assert result.queued is False


def _item(db: Session, **overrides) -> EmailQueueItem:
    fields = dict(
        to_email="c@example.com",
        subject="S",
        html_content="<p>x</p>",
        status="pending",
        retry_count=0,
        max_retries=3,
        scheduled_at=NOW - timedelta(minutes=1),
    )
    fields.update(overrides)
    item = EmailQueueItem(**fields)
    db.add(item)
    db.commit()
    return item


async def test_retry_count_monotonic_until_failed(db: Session):
    """Test each failed attempt bumps the count and the item fails exactly at the max"""
    client = MagicMock()
    client.send = AsyncMock(side_effect=EmailNotConfiguredError("Resend API key not configured"))
    item = _item(db)
    processor = EmailQueueProcessor(db, client)

    now = NOW
    seen = []
    for _ in range(3):
        await processor.process_batch(now)
        db.refresh(item)
        seen.append((item.retry_count, item.status))
        now = (item.next_retry_at or now) + timedelta(seconds=1)

    assert seen == [(1, "pending"), (2, "pending"), (3, "failed")]

    # Exhausted items are never fetched again
    result = await processor.process_batch(now + timedelta(days=2))
    assert result.count == 0


async def test_batch_respects_priority_and_schedule(db: Session):
    """Test urgent mail goes first and future or backing-off mail waits"""
    client = MagicMock()
    client.send = AsyncMock(return_value="re_1")
    _item(db, subject="normal", priority="normal", scheduled_at=NOW - timedelta(hours=1))
    _item(db, subject="urgent", priority="urgent", scheduled_at=NOW - timedelta(minutes=1))
    _item(db, subject="later", scheduled_at=NOW + timedelta(hours=1))
    _item(db, subject="backoff", next_retry_at=NOW + timedelta(minutes=5), retry_count=1)

    result = await EmailQueueProcessor(db, client).process_batch(NOW)

    assert result.count == 2
    subjects = [call.args[0].subject for call in client.send.call_args_list]
    assert subjects == ["urgent", "normal"]


async def test_batch_size_limit(db: Session):
    """Test at most batch_size items are processed per run"""
    client = MagicMock()
    client.send = AsyncMock(return_value="re_1")
    for i in range(5):
        _item(db, subject=f"m{i}")

    result = await EmailQueueProcessor(db, client, batch_size=2).process_batch(NOW)

    assert result.count == 2
    assert queue_stats(db)["pending"] == 3
    assert queue_stats(db)["sent"] == 2
