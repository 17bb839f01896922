"""Payment-provider event handling

One verified event is one unit of work: required status transitions run as
conditional updates and abort the unit on failure; emails, notifications and
referral points run as best-effort effects and fire only when the primary
transition changed a row, so a redelivered event changes nothing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from muaythai_gateway.config import settings
from muaythai_gateway.domain.effects import EffectLog
from muaythai_gateway.domain.models import WebhookEvent, WebhookEventKind
from muaythai_gateway.domain.payment_failures import classify_intent_failure
from muaythai_gateway.infrastructure.database.models import Booking, Payment
from muaythai_gateway.infrastructure.database.repositories import (
    AffiliateRepository,
    BookingRepository,
    DisputeRepository,
    GymRepository,
    NotificationRepository,
    OrderRepository,
    PaymentRepository,
)
from muaythai_gateway.infrastructure.observability.metrics import best_effort_failures_counter
from muaythai_gateway.services import email_templates
from muaythai_gateway.services.email_queue import enqueue_email
from muaythai_gateway.services.referrals import ReferralPointsService

logger = logging.getLogger(__name__)

BOOKING_METADATA_KEYS = ("bookingId", "booking_id")


@dataclass
class WebhookOutcome:
    """Result of handling one event"""

    event_id: str
    event_type: str
    kind: WebhookEventKind
    outcome: str  # processed | noop | ignored
    effects: EffectLog


def _metadata_booking_id(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    for key in BOOKING_METADATA_KEYS:
        value = (metadata or {}).get(key)
        if value:
            return str(value)
    return None


def _intent_id_of(charge: Dict[str, Any]) -> Optional[str]:
    intent = charge.get("payment_intent")
    if isinstance(intent, dict):
        return intent.get("id")
    return intent


class PaymentEventHandler:
    """Applies one verified provider event to the store"""

    def __init__(
        self,
        db: Session,
        now: datetime,
        admin_alert_email: Optional[str] = None,
        app_base_url: Optional[str] = None,
    ):
        self.db = db
        self.now = now
        self.admin_alert_email = admin_alert_email
        self.app_base_url = (app_base_url or settings.app_base_url).rstrip("/")

        self.payments = PaymentRepository(db)
        self.orders = OrderRepository(db)
        self.bookings = BookingRepository(db)
        self.affiliates = AffiliateRepository(db)
        self.disputes = DisputeRepository(db)
        self.notifications = NotificationRepository(db)
        self.referrals = ReferralPointsService(db)

        self._handlers: Dict[WebhookEventKind, Callable[[Dict[str, Any], EffectLog], bool]] = {
            WebhookEventKind.PAYMENT_SUCCEEDED: self._payment_succeeded,
            WebhookEventKind.PAYMENT_FAILED: self._payment_failed,
            WebhookEventKind.PAYMENT_CANCELED: self._payment_canceled,
            WebhookEventKind.CHARGE_REFUNDED: self._charge_refunded,
            WebhookEventKind.DISPUTE_CREATED: self._dispute_created,
            WebhookEventKind.DISPUTE_UPDATED: self._dispute_updated,
            WebhookEventKind.DISPUTE_CLOSED: self._dispute_closed,
        }

    def handle(self, event: WebhookEvent) -> WebhookOutcome:
        """
        Process the event and commit.

        Exceptions from required steps propagate; the caller rolls back and
        answers 500 so the provider redelivers.
        """
        effects = EffectLog(context={"event_id": event.id, "event_type": event.type})
        kind = event.kind

        handler = self._handlers.get(kind)
        if handler is None:
            logger.info(f"Unhandled event type: {event.type}", extra=effects.context)
            return WebhookOutcome(event.id, event.type, kind, "ignored", effects)

        changed = handler(event.data_object, effects)
        self.db.commit()

        for failure in effects.failures:
            best_effort_failures_counter.labels(effect=failure.name).inc()

        return WebhookOutcome(event.id, event.type, kind, "processed" if changed else "noop", effects)

    # Booking resolution

    def _booking_for_intent(self, intent: Dict[str, Any], payment: Optional[Payment]) -> Optional[Booking]:
        booking_id = _metadata_booking_id(intent.get("metadata"))
        if booking_id is None and payment is not None:
            booking_id = _metadata_booking_id(payment.metadata_)
        booking = self.bookings.get(booking_id)
        if booking is None and intent.get("id"):
            booking = self.bookings.find_by_payment_intent(intent["id"])
        return booking

    def _booking_for_charge(self, charge: Dict[str, Any], payment: Optional[Payment]) -> Optional[Booking]:
        """charge metadata, then payment metadata, then the booking's stored intent id"""
        booking = self.bookings.get(_metadata_booking_id(charge.get("metadata")))
        if booking is None and payment is not None:
            booking = self.bookings.get(_metadata_booking_id(payment.metadata_))
        intent_id = _intent_id_of(charge)
        if booking is None and intent_id:
            booking = self.bookings.find_by_payment_intent(intent_id)
        return booking

    def _update_payment(self, intent_id: str, status: str, order_status: str) -> Optional[Payment]:
        self.payments.update_status_by_intent(intent_id, status)
        payment = self.payments.get_by_intent_id(intent_id)
        if payment is None:
            logger.warning(f"Payment record not found for {intent_id}", extra={"payment_intent_id": intent_id})
            return None
        if payment.status != status:
            # Late or replayed event for a payment that has already moved on
            logger.info(
                f"Payment {intent_id} is {payment.status}, not moving to {status}",
                extra={"payment_intent_id": intent_id},
            )
            return payment
        self.orders.update_status_for_payment(payment.id, order_status)
        return payment

    def _booking_link(self, booking: Booking) -> str:
        return f"{self.app_base_url}/dashboard/bookings/{booking.id}"

    # Event handlers

    def _payment_succeeded(self, intent: Dict[str, Any], effects: EffectLog) -> bool:
        intent_id = intent["id"]
        payment = self._update_payment(intent_id, "succeeded", "confirmed")

        booking = self._booking_for_intent(intent, payment)
        if booking is None:
            logger.info(f"No booking linked to {intent_id}", extra=effects.context)
            return False

        if not self.bookings.mark_paid(booking.id, intent_id, self.now):
            return False

        self.db.refresh(booking)
        logger.info(f"Booking {booking.booking_number} confirmed", extra={**effects.context, "booking_id": str(booking.id)})

        # Required: the conversion is confirmed together with the booking
        self.affiliates.confirm_for_booking(booking.id, self.now)

        with effects.best_effort("referral_points"), self.db.begin_nested():
            self.referrals.award_for_booking(booking, self.now)

        if booking.customer_email:
            amount = (intent.get("amount_received") or intent.get("amount") or 0) / 100
            currency = intent.get("currency") or "thb"

            with effects.best_effort("payment_receipt_email"), self.db.begin_nested():
                subject, html = email_templates.payment_receipt(
                    booking.customer_name or "",
                    booking.booking_number or intent_id,
                    amount,
                    currency,
                    self.now,
                )
                enqueue_email(
                    self.db,
                    booking.customer_email,
                    subject,
                    html,
                    email_type="payment_receipt",
                    user_id=booking.user_id,
                    priority="high",
                    related_resource_type="booking",
                    related_resource_id=str(booking.id),
                )

            with effects.best_effort("booking_confirmation_email"), self.db.begin_nested():
                gym = GymRepository(self.db).get_many([booking.gym_id] if booking.gym_id else []).get(booking.gym_id)
                subject, html = email_templates.booking_confirmation(
                    booking.customer_name or "",
                    booking.booking_number or "",
                    (gym.gym_name or gym.gym_name_english or "") if gym else "",
                    booking.package_name or "",
                    booking.start_date,
                    booking.price_paid,
                    self._booking_link(booking),
                )
                enqueue_email(
                    self.db,
                    booking.customer_email,
                    subject,
                    html,
                    email_type="booking_confirmation",
                    user_id=booking.user_id,
                    priority="high",
                    related_resource_type="booking",
                    related_resource_id=str(booking.id),
                )

        if booking.user_id:
            with effects.best_effort("notification"), self.db.begin_nested():
                self.notifications.create(
                    booking.user_id,
                    "booking_confirmed",
                    "การจองได้รับการยืนยันแล้ว",
                    f"การชำระเงินสำหรับการจอง {booking.booking_number} สำเร็จ",
                    link_url=f"/dashboard/bookings/{booking.id}",
                    metadata={"booking_id": str(booking.id)},
                )
        return True

    def _payment_failed(self, intent: Dict[str, Any], effects: EffectLog) -> bool:
        intent_id = intent["id"]
        payment = self._update_payment(intent_id, "failed", "cancelled")

        booking = self._booking_for_intent(intent, payment)
        if booking is None or not self.bookings.mark_payment_failed(booking.id):
            return False

        failure = classify_intent_failure(intent)
        logger.info(
            f"Booking {booking.booking_number} payment failed: {failure.category.value}",
            extra={**effects.context, "booking_id": str(booking.id), "failure_category": failure.category.value},
        )

        if booking.customer_email:
            with effects.best_effort("payment_failed_email"), self.db.begin_nested():
                subject, html = email_templates.payment_failed(
                    booking.customer_name or "",
                    booking.booking_number or intent_id,
                    (intent.get("amount") or 0) / 100,
                    intent.get("currency") or "thb",
                    failure,
                    retry_url=self._booking_link(booking),
                )
                enqueue_email(
                    self.db,
                    booking.customer_email,
                    subject,
                    html,
                    email_type="payment_failed",
                    user_id=booking.user_id,
                    priority="high",
                    metadata={"failure_category": failure.category.value},
                    related_resource_type="booking",
                    related_resource_id=str(booking.id),
                )

        if booking.user_id:
            with effects.best_effort("notification"), self.db.begin_nested():
                self.notifications.create(
                    booking.user_id,
                    "payment_failed",
                    failure.title,
                    failure.message,
                    link_url=f"/dashboard/bookings/{booking.id}",
                    metadata={"booking_id": str(booking.id), "failure_category": failure.category.value},
                )
        return True

    def _payment_canceled(self, intent: Dict[str, Any], effects: EffectLog) -> bool:
        intent_id = intent["id"]
        payment = self._update_payment(intent_id, "canceled", "cancelled")

        booking = self._booking_for_intent(intent, payment)
        if booking is None:
            return False
        return self.bookings.mark_cancelled(booking.id) > 0

    def _charge_refunded(self, charge: Dict[str, Any], effects: EffectLog) -> bool:
        intent_id = _intent_id_of(charge)
        payment = self._update_payment(intent_id, "refunded", "refunded") if intent_id else None

        booking = self._booking_for_charge(charge, payment)
        if booking is None:
            logger.warning(f"No booking found for refunded charge {charge.get('id')}", extra=effects.context)
            return False

        if not self.bookings.mark_refunded(booking.id):
            return False

        logger.info(f"Booking {booking.booking_number} refunded", extra={**effects.context, "booking_id": str(booking.id)})
        self.affiliates.mark_refunded_for_booking(booking.id)

        with effects.best_effort("referral_points_reversal"), self.db.begin_nested():
            self.referrals.revoke_for_booking(booking, self.now)

        if booking.user_id:
            with effects.best_effort("notification"), self.db.begin_nested():
                self.notifications.create(
                    booking.user_id,
                    "booking_refunded",
                    "คืนเงินการจองแล้ว",
                    f"การจอง {booking.booking_number} ได้รับการคืนเงินเรียบร้อยแล้ว",
                    link_url=f"/dashboard/bookings/{booking.id}",
                    metadata={"booking_id": str(booking.id)},
                )
        return True

    def _dispute_created(self, dispute: Dict[str, Any], effects: EffectLog) -> bool:
        row, created = self.disputes.upsert(dispute, self.now)
        if not created:
            return False

        if row.payment_intent_id:
            self.payments.mark_disputed(row.payment_intent_id)

        logger.warning(
            f"Payment dispute opened: {row.stripe_dispute_id}",
            extra={**effects.context, "dispute_id": row.stripe_dispute_id, "reason": row.reason},
        )

        if self.admin_alert_email:
            with effects.best_effort("admin_alert_email"), self.db.begin_nested():
                subject, html = email_templates.admin_alert(
                    "Payment dispute opened",
                    f"A customer disputed charge {row.stripe_charge_id}.",
                    priority="urgent",
                    details={
                        "Dispute": row.stripe_dispute_id,
                        "Payment intent": row.payment_intent_id,
                        "Amount": f"{(row.amount or 0) / 100:,.2f} {(row.currency or '').upper()}",
                        "Reason": row.reason,
                    },
                )
                enqueue_email(
                    self.db,
                    self.admin_alert_email,
                    subject,
                    html,
                    email_type="admin_alert",
                    priority="urgent",
                    related_resource_type="payment_dispute",
                    related_resource_id=row.stripe_dispute_id,
                )
        return True

    def _dispute_updated(self, dispute: Dict[str, Any], effects: EffectLog) -> bool:
        self.disputes.upsert(dispute, self.now)
        return True

    def _dispute_closed(self, dispute: Dict[str, Any], effects: EffectLog) -> bool:
        row, _ = self.disputes.upsert(dispute, self.now, closed=True)
        logger.info(
            f"Payment dispute closed: {row.stripe_dispute_id} ({row.status})",
            extra={**effects.context, "dispute_id": row.stripe_dispute_id},
        )
        return True
