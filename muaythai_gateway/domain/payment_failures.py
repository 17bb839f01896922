"""Classification of provider failure codes into user-facing categories"""

from typing import Any, Dict, Mapping, Optional

from muaythai_gateway.domain.models import FailureCategory, PaymentFailure

_CODE_TO_CATEGORY: Dict[str, FailureCategory] = {
    "card_declined": FailureCategory.CARD_DECLINED,
    "generic_decline": FailureCategory.CARD_DECLINED,
    "do_not_honor": FailureCategory.CARD_DECLINED,
    "insufficient_funds": FailureCategory.INSUFFICIENT_FUNDS,
    "expired_card": FailureCategory.EXPIRED_CARD,
    "incorrect_cvc": FailureCategory.INCORRECT_CVC,
    "invalid_cvc": FailureCategory.INCORRECT_CVC,
    "processing_error": FailureCategory.PROCESSING_ERROR,
}

_COPY: Dict[FailureCategory, PaymentFailure] = {
    FailureCategory.CARD_DECLINED: PaymentFailure(
        category=FailureCategory.CARD_DECLINED,
        title="บัตรถูกปฏิเสธ",
        message="ธนาคารของคุณปฏิเสธการทำรายการ",
        retryable=True,
        suggestion="กรุณาลองใช้บัตรอื่น หรือติดต่อธนาคารของคุณ",
    ),
    FailureCategory.INSUFFICIENT_FUNDS: PaymentFailure(
        category=FailureCategory.INSUFFICIENT_FUNDS,
        title="ยอดเงินไม่เพียงพอ",
        message="บัตรของคุณมีวงเงินไม่เพียงพอสำหรับการทำรายการนี้",
        retryable=True,
        suggestion="กรุณาใช้บัตรอื่น หรือเติมเงินในบัญชีของคุณ",
    ),
    FailureCategory.EXPIRED_CARD: PaymentFailure(
        category=FailureCategory.EXPIRED_CARD,
        title="บัตรหมดอายุ",
        message="บัตรของคุณหมดอายุแล้ว",
        retryable=False,
        suggestion="กรุณาใช้บัตรที่ยังไม่หมดอายุ",
    ),
    FailureCategory.INCORRECT_CVC: PaymentFailure(
        category=FailureCategory.INCORRECT_CVC,
        title="รหัส CVV ไม่ถูกต้อง",
        message="รหัส CVV ที่คุณกรอกไม่ถูกต้อง",
        retryable=True,
        suggestion="กรุณาตรวจสอบรหัส CVV 3 หลักด้านหลังบัตร",
    ),
    FailureCategory.PROCESSING_ERROR: PaymentFailure(
        category=FailureCategory.PROCESSING_ERROR,
        title="เกิดข้อผิดพลาดในการประมวลผล",
        message="ธนาคารไม่สามารถดำเนินการได้ในขณะนี้",
        retryable=True,
        suggestion="กรุณาลองใหม่อีกครั้งในภายหลัง",
    ),
    FailureCategory.GENERIC: PaymentFailure(
        category=FailureCategory.GENERIC,
        title="เกิดข้อผิดพลาด",
        message="ไม่สามารถดำเนินการชำระเงินได้",
        retryable=True,
        suggestion="กรุณาลองใหม่อีกครั้ง หรือติดต่อฝ่ายสนับสนุน",
    ),
}


def classify_failure_code(code: Optional[str]) -> PaymentFailure:
    """Map a provider code to notification copy; unknown codes get the generic copy"""
    category = _CODE_TO_CATEGORY.get((code or "").strip().lower(), FailureCategory.GENERIC)
    return _COPY[category]


def failure_code_from_intent(intent: Mapping[str, Any]) -> Optional[str]:
    """Pull the most specific failure code off a payment intent (decline_code wins)"""
    error = intent.get("last_payment_error") or {}
    return error.get("decline_code") or error.get("code")


def classify_intent_failure(intent: Mapping[str, Any]) -> PaymentFailure:
    return classify_failure_code(failure_code_from_intent(intent))
