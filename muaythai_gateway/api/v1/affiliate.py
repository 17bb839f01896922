"""GET /api/affiliate/{user_id}/stats - affiliate dashboard statistics"""

import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from muaythai_gateway.api.dependencies import get_clock
from muaythai_gateway.api.v1.schemas import AffiliateStatsResponse
from muaythai_gateway.domain.affiliate import calculate_affiliate_stats
from muaythai_gateway.infrastructure.database.repositories import AffiliateRepository
from muaythai_gateway.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/affiliate/{user_id}/stats", response_model=AffiliateStatsResponse)
def get_affiliate_stats(
    user_id: uuid.UUID,
    confirmed_only: bool = Query(False, description="Count earnings from confirmed/paid conversions only"),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Aggregate an affiliate's conversions.

    Returns:
        Referral counts, earnings, conversion rate and per-conversion history
    """
    conversions = AffiliateRepository(db).list_for_affiliate(user_id)
    stats = calculate_affiliate_stats(conversions, clock(), confirmed_only=confirmed_only)
    return AffiliateStatsResponse(**asdict(stats))
