"""Referral points awarded for a referred booking and reversed on refund"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from muaythai_gateway.infrastructure.database.models import Booking
from muaythai_gateway.infrastructure.database.repositories import AffiliateRepository, PointsRepository

logger = logging.getLogger(__name__)

REFERRER_POINTS = 250
REFERRED_POINTS = 125

REFERRER = "booking_referral_referrer"
REFERRER_REVERSAL = "booking_referral_referrer_reversal"
REFERRED = "booking_referral_referred"
REFERRED_REVERSAL = "booking_referral_referred_reversal"


def _booking_label(booking: Booking) -> str:
    return booking.booking_number or str(booking.id)[:8].upper()


class ReferralPointsService:
    """
    Award and revoke referral points for a booking.

    Each ledger entry is keyed by (user, booking id, reference type); an
    existing entry means the award or reversal already happened, so both
    operations are safe to repeat.
    """

    def __init__(self, db: Session):
        self.db = db
        self.points = PointsRepository(db)
        self.affiliates = AffiliateRepository(db)

    def _award_once(self, user_id, booking_id: str, reference_type: str, points: int, description: str) -> bool:
        if self.points.has_entry(user_id, booking_id, reference_type):
            return False
        self.points.award(user_id, points, "referral", description, booking_id, reference_type)
        return True

    def award_for_booking(self, booking: Booking, now: datetime) -> int:
        """Returns the number of ledger entries written"""
        conversion = self.affiliates.get_for_booking(booking.id)
        if conversion is None or conversion.affiliate_user_id is None:
            return 0

        booking_id = str(booking.id)
        label = _booking_label(booking)
        awarded = 0

        if self._award_once(
            conversion.affiliate_user_id,
            booking_id,
            REFERRER,
            REFERRER_POINTS,
            f"ได้รับแต้มจากการจองของเพื่อน #{label}",
        ):
            awarded += 1

        if conversion.referred_user_id and self._award_once(
            conversion.referred_user_id,
            booking_id,
            REFERRED,
            REFERRED_POINTS,
            f"ได้รับโบนัสจากการใช้รหัสแนะนำเพื่อน #{label}",
        ):
            awarded += 1

        if awarded:
            self.affiliates.stamp_metadata(conversion, "referral_points_awarded_at", now.isoformat())
            logger.info(
                f"Awarded referral points for booking {label}",
                extra={"booking_id": booking_id, "entries": awarded},
            )
        return awarded

    def revoke_for_booking(self, booking: Booking, now: datetime) -> int:
        """Write a negative reversal for every award not yet reversed"""
        booking_id = str(booking.id)
        label = _booking_label(booking)
        targets = (
            (REFERRER, REFERRER_REVERSAL, f"ปรับแต้มหลังยกเลิกการจองของเพื่อน #{label}"),
            (REFERRED, REFERRED_REVERSAL, f"ปรับแต้มโบนัสหลังยกเลิกการจอง #{label}"),
        )

        reversed_count = 0
        for reference_type, reversal_type, description in targets:
            for entry in self.points.entries_for(booking_id, reference_type):
                if not entry.points or self.points.has_entry(entry.user_id, booking_id, reversal_type):
                    continue
                self.points.award(entry.user_id, -abs(entry.points), entry.action_type, description, booking_id, reversal_type)
                reversed_count += 1

        if reversed_count:
            conversion = self.affiliates.get_for_booking(booking.id)
            if conversion is not None:
                self.affiliates.stamp_metadata(conversion, "referral_points_revoked_at", now.isoformat())
            logger.info(
                f"Revoked referral points for booking {label}",
                extra={"booking_id": booking_id, "entries": reversed_count},
            )
        return reversed_count
