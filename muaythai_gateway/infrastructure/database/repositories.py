"""Data access layer

Status transitions are conditional bulk updates (``UPDATE ... WHERE status = X``)
returning the number of rows changed, so callers can tell a first delivery from
a redelivery and only fire side effects once.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import and_, case, func, inspect, or_
from sqlalchemy.orm import Session

from muaythai_gateway.infrastructure.database.models import (
    REPORTABLE_TABLES,
    AffiliateConversion,
    Article,
    Booking,
    CustomReport,
    EmailQueueItem,
    Gym,
    Notification,
    NotificationPreference,
    Order,
    Payment,
    PaymentDispute,
    PointsHistory,
    ScheduledReport,
    ScheduledReportExecution,
    UserPoints,
)

UUIDLike = Union[str, uuid.UUID]


def as_uuid(value: Optional[UUIDLike]) -> Optional[uuid.UUID]:
    """Parse an id coming from provider metadata; malformed ids resolve to None"""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


# Source statuses each target status may be reached from
PAYMENT_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "succeeded": ("pending", "processing", "failed"),
    "failed": ("pending",),
    "canceled": ("pending",),
    "refunded": ("succeeded", "disputed"),
}

# A cancelled order comes back only when its payment is retried and succeeds
ORDER_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "confirmed": ("pending", "cancelled"),
    "cancelled": ("pending",),
    "refunded": ("confirmed",),
}


class PaymentRepository:
    """Repository for payment records"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_intent_id(self, intent_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.stripe_payment_intent_id == intent_id).first()

    def update_status_by_intent(self, intent_id: str, status: str) -> int:
        """Move a payment to ``status`` if its current status allows it; a missing row updates nothing"""
        return (
            self.db.query(Payment)
            .filter(
                Payment.stripe_payment_intent_id == intent_id,
                Payment.status.in_(PAYMENT_TRANSITIONS[status]),
            )
            .update({Payment.status: status})
        )

    def mark_disputed(self, intent_id: str) -> int:
        return (
            self.db.query(Payment)
            .filter(Payment.stripe_payment_intent_id == intent_id, Payment.status == "succeeded")
            .update({Payment.status: "disputed"})
        )


class OrderRepository:
    """Repository for orders"""

    def __init__(self, db: Session):
        self.db = db

    def update_status_for_payment(self, payment_id: uuid.UUID, status: str) -> int:
        return (
            self.db.query(Order)
            .filter(Order.payment_id == payment_id, Order.status.in_(ORDER_TRANSITIONS[status]))
            .update({Order.status: status})
        )


class BookingRepository:
    """Repository for gym bookings"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, booking_id: Optional[UUIDLike]) -> Optional[Booking]:
        parsed = as_uuid(booking_id)
        if parsed is None:
            return None
        return self.db.get(Booking, parsed)

    def find_by_payment_intent(self, intent_id: str) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.stripe_payment_intent_id == intent_id).first()

    def mark_paid(self, booking_id: uuid.UUID, intent_id: str, now: datetime) -> int:
        """pending/failed -> paid + confirmed; never resurrects a cancelled or refunded booking"""
        return (
            self.db.query(Booking)
            .filter(
                Booking.id == booking_id,
                Booking.status == "pending",
                Booking.payment_status.in_(("pending", "failed")),
            )
            .update(
                {
                    Booking.payment_status: "paid",
                    Booking.status: "confirmed",
                    Booking.confirmed_at: now,
                    Booking.stripe_payment_intent_id: func.coalesce(Booking.stripe_payment_intent_id, intent_id),
                },
                synchronize_session="fetch",
            )
        )

    def mark_payment_failed(self, booking_id: uuid.UUID) -> int:
        return (
            self.db.query(Booking)
            .filter(Booking.id == booking_id, Booking.payment_status == "pending")
            .update({Booking.payment_status: "failed"})
        )

    def mark_cancelled(self, booking_id: uuid.UUID) -> int:
        return (
            self.db.query(Booking)
            .filter(Booking.id == booking_id, Booking.status == "pending")
            .update({Booking.status: "cancelled", Booking.payment_status: "failed"})
        )

    def mark_refunded(self, booking_id: uuid.UUID) -> int:
        return (
            self.db.query(Booking)
            .filter(Booking.id == booking_id, Booking.payment_status != "refunded")
            .update({Booking.status: "refunded", Booking.payment_status: "refunded"})
        )

    def confirmed_paid_starting_on(self, start: date) -> List[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.status == "confirmed",
                Booking.payment_status == "paid",
                Booking.start_date == start,
            )
            .all()
        )


class GymRepository:
    """Repository for gyms"""

    def __init__(self, db: Session):
        self.db = db

    def get_many(self, gym_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, Gym]:
        if not gym_ids:
            return {}
        gyms = self.db.query(Gym).filter(Gym.id.in_(list(gym_ids))).all()
        return {gym.id: gym for gym in gyms}


class AffiliateRepository:
    """Repository for affiliate conversions"""

    def __init__(self, db: Session):
        self.db = db

    def _for_booking(self, booking_id: uuid.UUID):
        return self.db.query(AffiliateConversion).filter(
            AffiliateConversion.reference_type == "booking",
            AffiliateConversion.reference_id == str(booking_id),
        )

    def get_for_booking(self, booking_id: uuid.UUID) -> Optional[AffiliateConversion]:
        return self._for_booking(booking_id).first()

    def confirm_for_booking(self, booking_id: uuid.UUID, now: datetime) -> int:
        """pending -> confirmed, stamping confirmed_at in the same write"""
        return (
            self._for_booking(booking_id)
            .filter(AffiliateConversion.status == "pending")
            .update(
                {AffiliateConversion.status: "confirmed", AffiliateConversion.confirmed_at: now},
                synchronize_session="fetch",
            )
        )

    def mark_refunded_for_booking(self, booking_id: uuid.UUID) -> int:
        return (
            self._for_booking(booking_id)
            .filter(AffiliateConversion.status != "refunded")
            .update({AffiliateConversion.status: "refunded"}, synchronize_session="fetch")
        )

    def stamp_metadata(self, conversion: AffiliateConversion, key: str, value: str) -> None:
        conversion.metadata_ = {**(conversion.metadata_ or {}), key: value}

    def list_for_affiliate(self, affiliate_user_id: uuid.UUID) -> List[AffiliateConversion]:
        return (
            self.db.query(AffiliateConversion)
            .filter(AffiliateConversion.affiliate_user_id == affiliate_user_id)
            .order_by(AffiliateConversion.created_at.desc())
            .all()
        )


class PointsRepository:
    """Repository for the points ledger"""

    def __init__(self, db: Session):
        self.db = db

    def has_entry(self, user_id: uuid.UUID, reference_id: str, reference_type: str) -> bool:
        return (
            self.db.query(PointsHistory.id)
            .filter(
                PointsHistory.user_id == user_id,
                PointsHistory.reference_id == reference_id,
                PointsHistory.reference_type == reference_type,
            )
            .first()
            is not None
        )

    def entries_for(self, reference_id: str, reference_type: str) -> List[PointsHistory]:
        return (
            self.db.query(PointsHistory)
            .filter(PointsHistory.reference_id == reference_id, PointsHistory.reference_type == reference_type)
            .all()
        )

    def award(
        self,
        user_id: uuid.UUID,
        points: int,
        action_type: str,
        description: str,
        reference_id: str,
        reference_type: str,
    ) -> PointsHistory:
        entry = PointsHistory(
            user_id=user_id,
            points=points,
            action_type=action_type,
            action_description=description,
            reference_id=reference_id,
            reference_type=reference_type,
        )
        self.db.add(entry)

        totals = self.db.get(UserPoints, user_id)
        if totals is None:
            self.db.add(UserPoints(user_id=user_id, total_points=points))
        else:
            totals.total_points = (totals.total_points or 0) + points
        self.db.flush()
        return entry


class NotificationRepository:
    """Repository for in-app notifications and email preferences"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        message: str,
        link_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link_url=link_url,
            metadata_=metadata or {},
        )
        self.db.add(notification)
        self.db.flush()
        return notification

    def get_preferences(self, user_id: uuid.UUID) -> Optional[NotificationPreference]:
        return self.db.get(NotificationPreference, user_id)


class DisputeRepository:
    """Repository for payment disputes"""

    def __init__(self, db: Session):
        self.db = db

    def upsert(self, dispute: Dict[str, Any], now: datetime, closed: bool = False) -> Tuple[PaymentDispute, bool]:
        """Insert or refresh a dispute by provider id; returns (row, created)"""
        row = (
            self.db.query(PaymentDispute)
            .filter(PaymentDispute.stripe_dispute_id == dispute["id"])
            .first()
        )
        created = row is None
        if created:
            row = PaymentDispute(stripe_dispute_id=dispute["id"])
            self.db.add(row)

        row.stripe_charge_id = dispute.get("charge") or row.stripe_charge_id
        row.payment_intent_id = dispute.get("payment_intent") or row.payment_intent_id
        row.amount = dispute.get("amount") or row.amount or 0
        row.currency = dispute.get("currency") or row.currency
        row.reason = dispute.get("reason") or row.reason
        row.status = dispute.get("status") or row.status or "needs_response"
        if closed and row.closed_at is None:
            row.closed_at = now
        self.db.flush()
        return row, created


PRIORITY_ORDER = {"urgent": 0, "high": 1, "normal": 2, "low": 3}


class EmailQueueRepository:
    """Repository for the outbound email queue"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, item: EmailQueueItem) -> EmailQueueItem:
        self.db.add(item)
        self.db.flush()
        return item

    def fetch_due(self, limit: int, now: datetime) -> List[EmailQueueItem]:
        """Pending or retryable items that are due, highest priority first"""
        priority_rank = case(PRIORITY_ORDER, value=EmailQueueItem.priority, else_=2)
        return (
            self.db.query(EmailQueueItem)
            .filter(
                EmailQueueItem.status.in_(("pending", "failed")),
                EmailQueueItem.retry_count < EmailQueueItem.max_retries,
                EmailQueueItem.scheduled_at <= now,
                or_(EmailQueueItem.next_retry_at.is_(None), EmailQueueItem.next_retry_at <= now),
            )
            .order_by(priority_rank, EmailQueueItem.scheduled_at.asc())
            .limit(limit)
            .all()
        )

    def mark_processing(self, item: EmailQueueItem, now: datetime) -> None:
        item.status = "processing"
        item.last_attempt_at = now
        self.db.flush()

    def mark_sent(self, item: EmailQueueItem, provider_message_id: Optional[str], now: datetime) -> None:
        item.status = "sent"
        item.sent_at = now
        item.provider_message_id = provider_message_id
        item.error_message = None
        self.db.flush()

    def mark_attempt_failed(
        self, item: EmailQueueItem, error: str, retry_count: int, next_retry_at: Optional[datetime]
    ) -> None:
        """Requeue when ``next_retry_at`` is given, otherwise fail permanently"""
        item.retry_count = retry_count
        item.error_message = error
        if next_retry_at is None:
            item.status = "failed"
            item.next_retry_at = None
        else:
            item.status = "pending"
            item.next_retry_at = next_retry_at
        self.db.flush()

    def count_by_status(self) -> Dict[str, int]:
        rows = self.db.query(EmailQueueItem.status, func.count(EmailQueueItem.id)).group_by(EmailQueueItem.status).all()
        counts = {"pending": 0, "processing": 0, "failed": 0, "sent": 0}
        counts.update({status: count for status, count in rows})
        return counts


class ScheduledReportRepository:
    """Repository for scheduled reports and their executions"""

    def __init__(self, db: Session):
        self.db = db

    def due(self, now: datetime) -> List[ScheduledReport]:
        return (
            self.db.query(ScheduledReport)
            .filter(
                ScheduledReport.status == "active",
                ScheduledReport.is_active.is_(True),
                ScheduledReport.next_run_at <= now,
            )
            .order_by(ScheduledReport.next_run_at.asc())
            .all()
        )

    def get_custom_report(self, report_id: uuid.UUID) -> Optional[CustomReport]:
        return self.db.get(CustomReport, report_id)

    def start_execution(self, report: ScheduledReport, now: datetime) -> ScheduledReportExecution:
        execution = ScheduledReportExecution(scheduled_report_id=report.id, started_at=now, status="running")
        self.db.add(execution)
        self.db.flush()
        return execution

    def fetch_rows(self, table_name: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Read report rows from a whitelisted table.

        Supported filters: ``dateFrom``/``dateTo`` on created_at (both required),
        ``status``.

        Raises:
            ValueError: If the table is not reportable
        """
        model = REPORTABLE_TABLES.get(table_name)
        if model is None:
            raise ValueError(f"Table not available for reports: {table_name}")

        query = self.db.query(model)
        mapper = inspect(model)
        column_names = {attr.columns[0].name for attr in mapper.column_attrs}

        date_from, date_to = filters.get("dateFrom"), filters.get("dateTo")
        if date_from and date_to and "created_at" in column_names:
            query = query.filter(
                and_(
                    model.created_at >= datetime.fromisoformat(str(date_from)),
                    model.created_at <= datetime.fromisoformat(str(date_to)),
                )
            )
        if filters.get("status") and "status" in column_names:
            query = query.filter(model.status == filters["status"])

        return [
            {attr.columns[0].name: getattr(row, attr.key) for attr in mapper.column_attrs}
            for row in query.all()
        ]


class ArticleRepository:
    """Repository for scheduled article publishing"""

    def __init__(self, db: Session):
        self.db = db

    def due_for_publish(self, now: datetime) -> List[Article]:
        return (
            self.db.query(Article)
            .filter(
                Article.is_published.is_(False),
                Article.scheduled_publish_at.is_not(None),
                Article.scheduled_publish_at <= now,
            )
            .all()
        )

    def publish(self, article_id: uuid.UUID, now: datetime) -> int:
        return (
            self.db.query(Article)
            .filter(Article.id == article_id, Article.is_published.is_(False))
            .update(
                {Article.is_published: True, Article.published_at: now, Article.scheduled_publish_at: None},
                synchronize_session="fetch",
            )
        )
