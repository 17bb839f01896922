"""Integration tests for the Stripe webhook endpoint"""

import json
import uuid
from typing import Callable
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from muaythai_gateway.config import Environment, SecurityConfig, settings
from muaythai_gateway.infrastructure.database.models import (
    AffiliateConversion,
    Booking,
    EmailQueueItem,
    Notification,
    Order,
    Payment,
    PaymentDispute,
    PointsHistory,
    UserPoints,
)


def succeeded_intent(intent_id: str, booking: Booking) -> dict:
    return {
        "id": intent_id,
        "object": "payment_intent",
        "amount": 450000,
        "amount_received": 450000,
        "currency": "thb",
        "metadata": {"bookingId": str(booking.id)},
    }


def test_missing_signature_rejected(client: TestClient):
    """Test a request without stripe-signature is a 400"""
    response = client.post("/api/webhooks/stripe", content=b"{}")

    assert response.status_code == 400
    assert "stripe-signature" in response.json()["error"]


def test_bad_signature_rejected_without_mutation(client: TestClient, db: Session, make_booking, make_payment):
    """Test a forged event changes nothing"""
    booking = make_booking()
    make_payment("pi_forged", metadata_={"bookingId": str(booking.id)})
    payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": succeeded_intent("pi_forged", booking)}})

    response = client.post(
        "/api/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": "t=1700000000,v1=deadbeef"},
    )

    assert response.status_code == 400
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "pending"
    assert db.query(Payment).filter_by(stripe_payment_intent_id="pi_forged").one().status == "pending"
    assert db.query(EmailQueueItem).count() == 0


def test_payment_succeeded_confirms_booking_b1(
    post_event: Callable, db: Session, make_booking, make_payment, make_conversion
):
    """Test booking B1: payment, order, booking and affiliate conversion all confirmed"""
    b1 = make_booking(booking_number="B1")
    make_payment("pi_b1", metadata_={"bookingId": str(b1.id)})
    conversion = make_conversion(b1)

    response = post_event("payment_intent.succeeded", succeeded_intent("pi_b1", b1))

    assert response.status_code == 200
    assert response.json() == {"received": True}

    db.expire_all()
    booking = db.get(Booking, b1.id)
    assert booking.payment_status == "paid"
    assert booking.status == "confirmed"
    assert booking.confirmed_at is not None
    assert booking.stripe_payment_intent_id == "pi_b1"

    payment = db.query(Payment).filter_by(stripe_payment_intent_id="pi_b1").one()
    assert payment.status == "succeeded"
    assert db.query(Order).filter_by(payment_id=payment.id).one().status == "confirmed"

    conversion = db.get(AffiliateConversion, conversion.id)
    assert conversion.status == "confirmed"
    assert conversion.confirmed_at is not None
    assert "referral_points_awarded_at" in conversion.metadata_

    assert db.get(UserPoints, conversion.affiliate_user_id).total_points == 250
    assert db.get(UserPoints, b1.user_id).total_points == 125

    email_types = sorted(item.email_type for item in db.query(EmailQueueItem).all())
    assert email_types == ["booking_confirmation", "payment_receipt"]
    assert db.query(Notification).filter_by(user_id=b1.user_id, type="booking_confirmed").count() == 1


def test_payment_succeeded_redelivery_is_noop(post_event: Callable, db: Session, make_booking, make_payment, make_conversion):
    """Test the same event delivered twice produces one set of side effects"""
    booking = make_booking()
    make_payment("pi_dup", metadata_={"bookingId": str(booking.id)})
    make_conversion(booking)
    intent = succeeded_intent("pi_dup", booking)

    first = post_event("payment_intent.succeeded", intent, event_id="evt_dup")
    db.expire_all()
    confirmed_at = db.get(Booking, booking.id).confirmed_at

    second = post_event("payment_intent.succeeded", intent, event_id="evt_dup")

    assert first.status_code == 200
    assert second.status_code == 200
    db.expire_all()
    assert db.get(Booking, booking.id).confirmed_at == confirmed_at
    assert db.query(EmailQueueItem).count() == 2
    assert db.query(Notification).count() == 1
    assert db.query(PointsHistory).count() == 2


def test_payment_succeeded_finds_booking_from_payment_metadata(post_event: Callable, db: Session, make_booking, make_payment):
    """Test the booking is resolved from the payment row when the intent carries no metadata"""
    booking = make_booking()
    make_payment("pi_meta", metadata_={"booking_id": str(booking.id)})

    response = post_event("payment_intent.succeeded", {"id": "pi_meta", "amount": 450000, "currency": "thb", "metadata": {}})

    assert response.status_code == 200
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "paid"


def test_payment_succeeded_without_payment_row(post_event: Callable, db: Session, make_booking):
    """Test a missing payment row is logged and the booking still confirmed via intent metadata"""
    booking = make_booking()

    response = post_event("payment_intent.succeeded", succeeded_intent("pi_orphan", booking))

    assert response.status_code == 200
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "paid"


def test_payment_failed_classifies_and_notifies(post_event: Callable, db: Session, make_booking, make_payment):
    """Test failed payment marks the booking failed and queues the categorised email"""
    booking = make_booking()
    payment = make_payment("pi_fail", metadata_={"bookingId": str(booking.id)})
    intent = {
        "id": "pi_fail",
        "amount": 450000,
        "currency": "thb",
        "metadata": {"bookingId": str(booking.id)},
        "last_payment_error": {"code": "card_declined", "decline_code": "insufficient_funds"},
    }

    response = post_event("payment_intent.payment_failed", intent)
    assert response.status_code == 200

    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "failed"
    assert db.get(Payment, payment.id).status == "failed"
    assert db.query(Order).filter_by(payment_id=payment.id).one().status == "cancelled"

    email = db.query(EmailQueueItem).one()
    assert email.email_type == "payment_failed"
    assert email.metadata_["failure_category"] == "insufficient_funds"

    # Redelivery: booking no longer pending, nothing new queued
    post_event("payment_intent.payment_failed", intent)
    db.expire_all()
    assert db.query(EmailQueueItem).count() == 1


def test_payment_canceled_cancels_pending_booking(post_event: Callable, db: Session, make_booking, make_payment):
    """Test canceled intent cancels the booking and its order"""
    booking = make_booking()
    payment = make_payment("pi_cancel", metadata_={"bookingId": str(booking.id)})

    response = post_event("payment_intent.canceled", {"id": "pi_cancel", "metadata": {"bookingId": str(booking.id)}})

    assert response.status_code == 200
    db.expire_all()
    refreshed = db.get(Booking, booking.id)
    assert refreshed.status == "cancelled"
    assert refreshed.payment_status == "failed"
    assert db.get(Payment, payment.id).status == "canceled"


def _paid_booking(make_booking, intent_id=None):
    return make_booking(status="confirmed", payment_status="paid", stripe_payment_intent_id=intent_id)


def test_refund_resolves_booking_from_charge_metadata(post_event: Callable, db: Session, make_booking, make_payment):
    """Test refund fallback step 1: charge.metadata.bookingId"""
    booking = _paid_booking(make_booking)
    make_payment("pi_r1", status="succeeded")

    response = post_event(
        "charge.refunded",
        {"id": "ch_r1", "payment_intent": "pi_r1", "metadata": {"bookingId": str(booking.id)}},
    )

    assert response.status_code == 200
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "refunded"


def test_refund_resolves_booking_from_payment_metadata(post_event: Callable, db: Session, make_booking, make_payment):
    """Test refund fallback step 2: payment row metadata"""
    booking = _paid_booking(make_booking)
    payment = make_payment(
        "pi_r2", status="succeeded", order_status="confirmed", metadata_={"booking_id": str(booking.id)}
    )

    response = post_event("charge.refunded", {"id": "ch_r2", "payment_intent": "pi_r2", "metadata": {}})

    assert response.status_code == 200
    db.expire_all()
    refreshed = db.get(Booking, booking.id)
    assert refreshed.status == "refunded"
    assert refreshed.payment_status == "refunded"
    assert db.get(Payment, payment.id).status == "refunded"
    assert db.query(Order).filter_by(payment_id=payment.id).one().status == "refunded"


def test_refund_resolves_booking_from_stored_intent_id(
    post_event: Callable, db: Session, make_booking, make_conversion
):
    """Test refund fallback step 3: bookings.stripe_payment_intent_id"""
    booking = _paid_booking(make_booking, intent_id="pi_r3")
    conversion = make_conversion(booking, status="confirmed")

    response = post_event("charge.refunded", {"id": "ch_r3", "payment_intent": {"id": "pi_r3"}, "metadata": {}})

    assert response.status_code == 200
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "refunded"
    assert db.get(AffiliateConversion, conversion.id).status == "refunded"
    assert db.query(Notification).filter_by(type="booking_refunded").count() == 1


def test_refund_revokes_referral_points(post_event: Callable, db: Session, make_booking, make_payment, make_conversion):
    """Test points awarded on payment are reversed on refund, once"""
    booking = make_booking()
    make_payment("pi_pts", metadata_={"bookingId": str(booking.id)})
    conversion = make_conversion(booking)
    post_event("payment_intent.succeeded", succeeded_intent("pi_pts", booking))

    refund = {"id": "ch_pts", "payment_intent": "pi_pts", "metadata": {"bookingId": str(booking.id)}}
    post_event("charge.refunded", refund)
    post_event("charge.refunded", refund)

    db.expire_all()
    assert db.get(UserPoints, conversion.affiliate_user_id).total_points == 0
    assert db.get(UserPoints, booking.user_id).total_points == 0
    reversals = db.query(PointsHistory).filter(PointsHistory.reference_type.like("%_reversal")).all()
    assert len(reversals) == 2


def test_dispute_created_marks_payment_and_records_dispute(post_event: Callable, db: Session, make_payment):
    """Test a new dispute is stored and the payment marked disputed"""
    payment = make_payment("pi_disp", status="succeeded")
    dispute = {
        "id": "dp_1",
        "charge": "ch_disp",
        "payment_intent": "pi_disp",
        "amount": 450000,
        "currency": "thb",
        "reason": "fraudulent",
        "status": "needs_response",
    }

    response = post_event("charge.dispute.created", dispute)

    assert response.status_code == 200
    db.expire_all()
    assert db.get(Payment, payment.id).status == "disputed"
    row = db.query(PaymentDispute).filter_by(stripe_dispute_id="dp_1").one()
    assert row.reason == "fraudulent"
    assert row.closed_at is None


def test_dispute_closed_sets_closed_at(post_event: Callable, db: Session):
    """Test closing an existing dispute stamps closed_at"""
    dispute = {"id": "dp_2", "charge": "ch_2", "payment_intent": "pi_2", "amount": 100, "status": "needs_response"}
    post_event("charge.dispute.created", dispute)
    post_event("charge.dispute.closed", {**dispute, "status": "won"})

    db.expire_all()
    row = db.query(PaymentDispute).filter_by(stripe_dispute_id="dp_2").one()
    assert row.status == "won"
    assert row.closed_at is not None


def failed_intent(intent_id: str, booking: Booking) -> dict:
    return {
        "id": intent_id,
        "amount": 450000,
        "currency": "thb",
        "metadata": {"bookingId": str(booking.id)},
        "last_payment_error": {"code": "card_declined", "decline_code": "generic_decline"},
    }


def _statuses(db: Session, booking: Booking, payment: Payment) -> tuple:
    db.expire_all()
    return (
        db.get(Booking, booking.id).payment_status,
        db.get(Payment, payment.id).status,
        db.query(Order).filter_by(payment_id=payment.id).one().status,
    )


def test_payment_failed_redelivery_is_noop(post_event: Callable, db: Session, make_booking, make_payment):
    """Test a failed payment delivered twice sends one email and one notification"""
    booking = make_booking()
    payment = make_payment("pi_fail2", metadata_={"bookingId": str(booking.id)})
    intent = failed_intent("pi_fail2", booking)

    first = post_event("payment_intent.payment_failed", intent, event_id="evt_fail2")
    second = post_event("payment_intent.payment_failed", intent, event_id="evt_fail2")

    assert first.status_code == 200
    assert second.status_code == 200
    assert _statuses(db, booking, payment) == ("failed", "failed", "cancelled")
    assert db.query(EmailQueueItem).filter_by(email_type="payment_failed").count() == 1
    assert db.query(Notification).filter_by(type="payment_failed").count() == 1


def test_payment_canceled_redelivery_is_noop(post_event: Callable, db: Session, make_booking, make_payment):
    """Test a canceled intent delivered twice leaves one cancelled booking and order"""
    booking = make_booking()
    payment = make_payment("pi_cancel2", metadata_={"bookingId": str(booking.id)})
    intent = {"id": "pi_cancel2", "metadata": {"bookingId": str(booking.id)}}

    post_event("payment_intent.canceled", intent, event_id="evt_cancel2")
    second = post_event("payment_intent.canceled", intent, event_id="evt_cancel2")

    assert second.status_code == 200
    assert _statuses(db, booking, payment) == ("failed", "canceled", "cancelled")
    assert db.get(Booking, booking.id).status == "cancelled"
    assert db.query(EmailQueueItem).count() == 0


def test_refund_redelivery_refunds_once(
    post_event: Callable, db: Session, make_booking, make_payment, make_conversion
):
    """Test a refund delivered twice refunds the conversion and notifies once"""
    booking = make_booking()
    payment = make_payment("pi_ref2", metadata_={"bookingId": str(booking.id)})
    conversion = make_conversion(booking)
    post_event("payment_intent.succeeded", succeeded_intent("pi_ref2", booking))

    refund = {"id": "ch_ref2", "payment_intent": "pi_ref2", "metadata": {"bookingId": str(booking.id)}}
    post_event("charge.refunded", refund, event_id="evt_ref2")
    second = post_event("charge.refunded", refund, event_id="evt_ref2")

    assert second.status_code == 200
    assert _statuses(db, booking, payment) == ("refunded", "refunded", "refunded")
    assert db.get(AffiliateConversion, conversion.id).status == "refunded"
    assert db.query(Notification).filter_by(type="booking_refunded").count() == 1
    assert db.get(UserPoints, conversion.affiliate_user_id).total_points == 0


def test_dispute_created_redelivery_alerts_once(post_event: Callable, db: Session, make_payment, monkeypatch):
    """Test a dispute delivered twice is stored once and alerts the admin once"""
    monkeypatch.setattr(settings, "admin_alert_email", "ops@example.com")
    payment = make_payment("pi_disp2", status="succeeded", order_status="confirmed")
    dispute = {
        "id": "dp_dup",
        "charge": "ch_disp2",
        "payment_intent": "pi_disp2",
        "amount": 450000,
        "currency": "thb",
        "reason": "fraudulent",
        "status": "needs_response",
    }

    post_event("charge.dispute.created", dispute, event_id="evt_dp_dup")
    second = post_event("charge.dispute.created", dispute, event_id="evt_dp_dup")

    assert second.status_code == 200
    db.expire_all()
    assert db.get(Payment, payment.id).status == "disputed"
    assert db.query(PaymentDispute).filter_by(stripe_dispute_id="dp_dup").count() == 1
    alerts = db.query(EmailQueueItem).filter_by(email_type="admin_alert").all()
    assert len(alerts) == 1
    assert alerts[0].to_email == "ops@example.com"
    assert alerts[0].priority == "urgent"


def test_late_failure_after_success_changes_nothing(post_event: Callable, db: Session, make_booking, make_payment):
    """Test a failure for an earlier attempt arriving after success is ignored"""
    booking = make_booking()
    payment = make_payment("pi_late", metadata_={"bookingId": str(booking.id)})

    post_event("payment_intent.succeeded", succeeded_intent("pi_late", booking))
    response = post_event("payment_intent.payment_failed", failed_intent("pi_late", booking))

    assert response.status_code == 200
    assert _statuses(db, booking, payment) == ("paid", "succeeded", "confirmed")
    assert db.query(EmailQueueItem).filter_by(email_type="payment_failed").count() == 0


def test_success_replayed_after_refund_changes_nothing(
    post_event: Callable, db: Session, make_booking, make_payment, make_conversion
):
    """Test a success replayed after a refund does not reopen payment, order or booking"""
    booking = make_booking()
    payment = make_payment("pi_replay", metadata_={"bookingId": str(booking.id)})
    conversion = make_conversion(booking)
    intent = succeeded_intent("pi_replay", booking)

    post_event("payment_intent.succeeded", intent, event_id="evt_replay")
    post_event("charge.refunded", {"id": "ch_replay", "payment_intent": "pi_replay", "metadata": {}})
    response = post_event("payment_intent.succeeded", intent, event_id="evt_replay")

    assert response.status_code == 200
    assert _statuses(db, booking, payment) == ("refunded", "refunded", "refunded")
    assert db.get(Booking, booking.id).status == "refunded"
    assert db.get(AffiliateConversion, conversion.id).status == "refunded"
    assert db.get(UserPoints, conversion.affiliate_user_id).total_points == 0
    assert db.query(PointsHistory).count() == 4
    assert db.query(EmailQueueItem).count() == 2


def test_retry_after_failure_confirms_order(post_event: Callable, db: Session, make_booking, make_payment):
    """Test a payment that fails and then succeeds on retry confirms everything"""
    booking = make_booking()
    payment = make_payment("pi_retry", metadata_={"bookingId": str(booking.id)})

    post_event("payment_intent.payment_failed", failed_intent("pi_retry", booking))
    assert _statuses(db, booking, payment) == ("failed", "failed", "cancelled")

    post_event("payment_intent.succeeded", succeeded_intent("pi_retry", booking))
    assert _statuses(db, booking, payment) == ("paid", "succeeded", "confirmed")


def test_success_after_cancel_does_not_revive(post_event: Callable, db: Session, make_booking, make_payment):
    """Test a late success for a canceled intent leaves the cancellation in place"""
    booking = make_booking()
    payment = make_payment("pi_gone", metadata_={"bookingId": str(booking.id)})

    post_event("payment_intent.canceled", {"id": "pi_gone", "metadata": {"bookingId": str(booking.id)}})
    post_event("payment_intent.succeeded", succeeded_intent("pi_gone", booking))

    assert _statuses(db, booking, payment) == ("failed", "canceled", "cancelled")
    assert db.get(Booking, booking.id).status == "cancelled"
    assert db.query(EmailQueueItem).count() == 0


def test_unhandled_event_acknowledged(post_event: Callable, db: Session):
    """Test unknown event types are logged and answered 200"""
    response = post_event("customer.created", {"id": "cus_1"})

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_production_without_secret_is_500(make_client: Callable):
    """Test a production deployment missing its webhook secret refuses events"""
    client = make_client(SecurityConfig(environment=Environment.PRODUCTION, webhook_secret=None))

    response = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook secret not configured"}


def test_development_without_secret_skips_verification(make_client: Callable, db: Session, make_booking):
    """Test the development bypass parses the body unverified"""
    booking = make_booking()
    client = make_client(SecurityConfig(environment=Environment.DEVELOPMENT, webhook_secret=None))
    payload = json.dumps(
        {"id": "evt_dev", "type": "payment_intent.succeeded", "data": {"object": succeeded_intent("pi_dev", booking)}}
    )

    response = client.post("/api/webhooks/stripe", content=payload, headers={"stripe-signature": "unsigned"})

    assert response.status_code == 200
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "paid"


def test_development_with_secret_still_verifies(make_client: Callable):
    """Test the bypass is unreachable once a secret is configured"""
    client = make_client(SecurityConfig(environment=Environment.DEVELOPMENT, webhook_secret="whsec_dev"))

    response = client.post(
        "/api/webhooks/stripe",
        content=json.dumps({"id": "evt", "type": "payment_intent.succeeded", "data": {"object": {}}}),
        headers={"stripe-signature": "t=1,v1=bad"},
    )

    assert response.status_code == 400


def test_processing_error_returns_500(post_event: Callable, db: Session, make_booking, monkeypatch):
    """Test a failure in a required step rolls back and answers 500"""
    booking = make_booking()

    def explode(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(
        "muaythai_gateway.infrastructure.database.repositories.BookingRepository.mark_paid", explode
    )

    response = post_event("payment_intent.succeeded", succeeded_intent("pi_boom", booking))

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook processing failed"}
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "pending"


def test_best_effort_failure_does_not_fail_webhook(post_event: Callable, db: Session, make_booking, monkeypatch):
    """Test a failing email enqueue is logged and the booking stays confirmed"""
    booking = make_booking()

    def fail_enqueue(*args, **kwargs):
        raise RuntimeError("queue down")

    monkeypatch.setattr("muaythai_gateway.services.webhook_handler.enqueue_email", fail_enqueue)

    response = post_event("payment_intent.succeeded", succeeded_intent(f"pi_{uuid.uuid4().hex[:6]}", booking))

    assert response.status_code == 200
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == "paid"
    assert db.query(EmailQueueItem).count() == 0
