"""SQLAlchemy ORM models for the marketplace tables this service reads and writes"""

import uuid
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _id_column():
    return Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


def _created_at():
    return Column(DateTime, nullable=False, server_default=func.now())


def _updated_at():
    return Column(DateTime, nullable=True, onupdate=func.now())


class Payment(Base):
    """Local mirror of a provider payment intent"""

    __tablename__ = "payments"

    id = _id_column()
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    stripe_payment_intent_id = Column(Text, nullable=True, unique=True, index=True)
    amount = Column(BigInteger, nullable=False, default=0)  # smallest currency unit
    currency = Column(Text, nullable=False, default="thb")
    status = Column(Text, nullable=False, default="pending")
    payment_type = Column(Text, nullable=True)  # gym_booking | product | ticket
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = _created_at()
    updated_at = _updated_at()


class Order(Base):
    """Order paid for by a payment"""

    __tablename__ = "orders"

    id = _id_column()
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    payment_id = Column(Uuid(as_uuid=True), ForeignKey("payments.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(Text, nullable=False, default="pending")
    created_at = _created_at()
    updated_at = _updated_at()


class Gym(Base):
    """Gym details used in reminder copy"""

    __tablename__ = "gyms"

    id = _id_column()
    gym_name = Column(Text, nullable=True)
    gym_name_english = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)


class Booking(Base):
    """Gym training booking"""

    __tablename__ = "bookings"

    id = _id_column()
    booking_number = Column(Text, nullable=True, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    gym_id = Column(Uuid(as_uuid=True), ForeignKey("gyms.id", ondelete="SET NULL"), nullable=True)
    customer_name = Column(Text, nullable=True)
    customer_email = Column(Text, nullable=True)
    customer_phone = Column(Text, nullable=True)
    package_name = Column(Text, nullable=True)
    package_type = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True, index=True)
    end_date = Column(Date, nullable=True)
    price_paid = Column(Float, nullable=False, default=0)
    status = Column(Text, nullable=False, default="pending")
    payment_status = Column(Text, nullable=False, default="pending")
    stripe_payment_intent_id = Column(Text, nullable=True, index=True)
    confirmed_at = Column(DateTime, nullable=True)
    created_at = _created_at()
    updated_at = _updated_at()


class AffiliateConversion(Base):
    """Referral attributed to an affiliate"""

    __tablename__ = "affiliate_conversions"

    id = _id_column()
    affiliate_user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    referred_user_id = Column(Uuid(as_uuid=True), nullable=True)
    conversion_type = Column(Text, nullable=False, default="booking")  # signup | booking
    reference_type = Column(Text, nullable=True)
    reference_id = Column(Text, nullable=True, index=True)
    status = Column(Text, nullable=False, default="pending")
    commission_amount = Column(Float, nullable=True, default=0)
    confirmed_at = Column(DateTime, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = _created_at()
    updated_at = _updated_at()


class PointsHistory(Base):
    """Ledger of point awards and reversals"""

    __tablename__ = "points_history"

    id = _id_column()
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    action_type = Column(Text, nullable=False)
    action_description = Column(Text, nullable=True)
    reference_id = Column(Text, nullable=True, index=True)
    reference_type = Column(Text, nullable=True)
    created_at = _created_at()


class UserPoints(Base):
    """Running points total per user"""

    __tablename__ = "user_points"

    user_id = Column(Uuid(as_uuid=True), primary_key=True)
    total_points = Column(Integer, nullable=False, default=0)
    updated_at = _updated_at()


class Notification(Base):
    """In-app notification"""

    __tablename__ = "notifications"

    id = _id_column()
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    link_url = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = _created_at()


class NotificationPreference(Base):
    """Per-user email opt-outs"""

    __tablename__ = "user_notification_preferences"

    user_id = Column(Uuid(as_uuid=True), primary_key=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    booking_confirmation = Column(Boolean, nullable=False, default=True)
    booking_reminder = Column(Boolean, nullable=False, default=True)
    promotions_news = Column(Boolean, nullable=False, default=False)


class PaymentDispute(Base):
    """Chargeback raised against a charge"""

    __tablename__ = "payment_disputes"

    id = _id_column()
    stripe_dispute_id = Column(Text, nullable=False, unique=True, index=True)
    stripe_charge_id = Column(Text, nullable=True)
    payment_intent_id = Column(Text, nullable=True, index=True)
    amount = Column(BigInteger, nullable=False, default=0)
    currency = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    status = Column(Text, nullable=False)
    closed_at = Column(DateTime, nullable=True)
    created_at = _created_at()
    updated_at = _updated_at()


class EmailQueueItem(Base):
    """Outbound email with retry tracking"""

    __tablename__ = "email_queue"

    id = _id_column()
    user_id = Column(Uuid(as_uuid=True), nullable=True)
    to_email = Column(Text, nullable=False)
    from_email = Column(Text, nullable=True)
    subject = Column(Text, nullable=False)
    html_content = Column(Text, nullable=False)
    text_content = Column(Text, nullable=True)
    email_type = Column(Text, nullable=False, default="other")
    priority = Column(Text, nullable=False, default="normal")
    status = Column(Text, nullable=False, default="pending", index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    last_attempt_at = Column(DateTime, nullable=True)
    next_retry_at = Column(DateTime, nullable=True)
    scheduled_at = Column(DateTime, nullable=False, server_default=func.now())
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    provider = Column(Text, nullable=False, default="resend")
    provider_message_id = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    related_resource_type = Column(Text, nullable=True)
    related_resource_id = Column(Text, nullable=True)
    created_at = _created_at()
    updated_at = _updated_at()


class CustomReport(Base):
    """Saved report definition a schedule can point at"""

    __tablename__ = "custom_reports"

    id = _id_column()
    name = Column(Text, nullable=True)
    table_name = Column(Text, nullable=False)
    columns = Column(JSON, nullable=False)
    column_headers = Column(JSON, nullable=True)
    filters = Column(JSON, nullable=True)


class ScheduledReport(Base):
    """Recurring report delivered by email"""

    __tablename__ = "scheduled_reports"

    id = _id_column()
    name = Column(Text, nullable=False)
    frequency = Column(Text, nullable=False)
    schedule_config = Column(JSON, nullable=True)
    format = Column(Text, nullable=False, default="csv")
    table_name = Column(Text, nullable=True)
    columns = Column(JSON, nullable=True)
    column_headers = Column(JSON, nullable=True)
    filters = Column(JSON, nullable=True)
    custom_report_id = Column(Uuid(as_uuid=True), ForeignKey("custom_reports.id", ondelete="SET NULL"), nullable=True)
    recipients = Column(JSON, nullable=True)
    cc_recipients = Column(JSON, nullable=True)
    bcc_recipients = Column(JSON, nullable=True)
    status = Column(Text, nullable=False, default="active")
    is_active = Column(Boolean, nullable=False, default=True)
    next_run_at = Column(DateTime, nullable=True, index=True)
    last_run_at = Column(DateTime, nullable=True)
    run_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    last_error_message = Column(Text, nullable=True)
    created_at = _created_at()


class ScheduledReportExecution(Base):
    """One firing of a scheduled report"""

    __tablename__ = "scheduled_report_executions"

    id = _id_column()
    scheduled_report_id = Column(
        Uuid(as_uuid=True), ForeignKey("scheduled_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(Text, nullable=False, default="running")
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    rows_processed = Column(Integer, nullable=True)
    file_size_bytes = Column(Integer, nullable=True)
    email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(DateTime, nullable=True)
    email_recipients = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)


class Article(Base):
    """Editorial article with optional scheduled publish time"""

    __tablename__ = "articles"

    id = _id_column()
    title = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime, nullable=True)
    scheduled_publish_at = Column(DateTime, nullable=True, index=True)
    created_at = _created_at()
    updated_at = _updated_at()


# Tables a scheduled report may read from
REPORTABLE_TABLES = {
    model.__tablename__: model
    for model in (Booking, Payment, Order, AffiliateConversion, Article, EmailQueueItem, Gym)
}
