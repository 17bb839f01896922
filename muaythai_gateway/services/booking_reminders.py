"""Day-before reminders for confirmed, paid bookings"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from muaythai_gateway.config import settings
from muaythai_gateway.domain.effects import EffectLog
from muaythai_gateway.domain.models import EmailMessage, TaskResult
from muaythai_gateway.infrastructure.clients.email import EmailClient
from muaythai_gateway.infrastructure.database.repositories import (
    BookingRepository,
    GymRepository,
    NotificationRepository,
)
from muaythai_gateway.services import email_templates
from muaythai_gateway.utils.date_utils import tomorrow_in

logger = logging.getLogger(__name__)

REMINDER_TITLE = "เตือนความจำ: การจองของคุณจะเริ่มในอีก 1 วัน 📅"


class BookingReminderService:
    """Sends reminder emails for bookings starting tomorrow in the schedule timezone"""

    def __init__(
        self,
        db: Session,
        email_client: EmailClient,
        timezone: Optional[str] = None,
        app_base_url: Optional[str] = None,
    ):
        self.db = db
        self.email_client = email_client
        self.timezone = timezone or settings.schedule_timezone
        self.app_base_url = (app_base_url or settings.app_base_url).rstrip("/")

    async def send_reminders(self, now: datetime) -> TaskResult:
        start = tomorrow_in(self.timezone, now)
        bookings = BookingRepository(self.db).confirmed_paid_starting_on(start)
        if not bookings:
            logger.info(f"No bookings found for {start.isoformat()}")
            return TaskResult(count_field="sent", details={"failed": 0, "skipped": 0})

        gyms = GymRepository(self.db).get_many({b.gym_id for b in bookings if b.gym_id})
        notifications = NotificationRepository(self.db)
        sent = failed = skipped = 0

        for booking in bookings:
            if not booking.customer_email:
                skipped += 1
                continue

            gym = gyms.get(booking.gym_id)
            gym_name = (gym.gym_name or gym.gym_name_english or "") if gym else ""

            try:
                subject, html = email_templates.booking_reminder(
                    booking.customer_name or "",
                    booking.booking_number or "",
                    gym_name,
                    booking.package_name or "",
                    booking.start_date,
                    gym_address=gym.address if gym else None,
                    gym_phone=gym.phone if gym else None,
                    booking_url=f"{self.app_base_url}/dashboard/bookings/{booking.id}",
                )
                await self.email_client.send(EmailMessage(to=[booking.customer_email], subject=subject, html=html))
            except Exception as e:
                failed += 1
                logger.error(
                    f"Reminder for booking {booking.booking_number} failed: {e}",
                    extra={"booking_id": str(booking.id)},
                )
                continue

            sent += 1
            if booking.user_id:
                effects = EffectLog(context={"booking_id": str(booking.id)})
                with effects.best_effort("reminder_notification"), self.db.begin_nested():
                    notifications.create(
                        booking.user_id,
                        "booking_reminder",
                        REMINDER_TITLE,
                        f"การจอง {booking.booking_number} ของคุณจะเริ่มในวันที่ "
                        f"{booking.start_date.strftime('%d/%m/%Y')} ที่ {gym_name}",
                        link_url="/dashboard/bookings",
                        metadata={"booking_id": str(booking.id)},
                    )

        self.db.commit()
        return TaskResult(count_field="sent", count=sent, details={"failed": failed, "skipped": skipped})
