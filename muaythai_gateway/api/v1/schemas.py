"""Pydantic schemas for API responses"""

from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class WebhookReceived(BaseModel):
    """Response for POST /api/webhooks/stripe"""

    received: bool = True


class CronResponse(BaseModel):
    """Response for the unified cron dispatcher"""

    success: bool = True
    message: str
    timestamp: str
    tasks: Dict[str, Dict[str, Any]]


class CronTaskResponse(BaseModel):
    """Response for a single-task cron endpoint"""

    success: bool
    timestamp: str
    result: Dict[str, Any]


class ReferralHistoryItem(BaseModel):
    """One conversion in the affiliate dashboard"""

    id: str
    status: str
    points_earned: float
    created_at: Optional[str] = None
    conversion_type: Optional[str] = None
    commission_amount: float


class AffiliateStatsResponse(BaseModel):
    """Response for GET /api/affiliate/{user_id}/stats"""

    total_referrals: int
    total_earnings: float
    current_month_referrals: int
    conversion_rate: int
    referral_history: List[ReferralHistoryItem]


class UploadValidationResponse(BaseModel):
    """Response for POST /api/uploads/validate"""

    valid: bool
    sanitized_filename: str
