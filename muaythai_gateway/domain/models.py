"""Domain models - pure Python dataclasses and enums shared across services"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class WebhookEventKind(str, Enum):
    """Closed set of payment-provider events this service acts on"""

    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    PAYMENT_CANCELED = "payment_intent.canceled"
    CHARGE_REFUNDED = "charge.refunded"
    DISPUTE_CREATED = "charge.dispute.created"
    DISPUTE_UPDATED = "charge.dispute.updated"
    DISPUTE_CLOSED = "charge.dispute.closed"
    UNHANDLED = "unhandled"

    @classmethod
    def parse(cls, event_type: str) -> "WebhookEventKind":
        try:
            kind = cls(event_type)
        except ValueError:
            return cls.UNHANDLED
        return kind


@dataclass
class WebhookEvent:
    """Verified provider event"""

    id: str
    type: str
    data_object: Dict[str, Any]

    @property
    def kind(self) -> WebhookEventKind:
        return WebhookEventKind.parse(self.type)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WebhookEvent":
        return cls(
            id=str(payload.get("id", "")),
            type=str(payload.get("type", "")),
            data_object=(payload.get("data") or {}).get("object") or {},
        )


class Frequency(str, Enum):
    """Recurrence frequencies for scheduled reports"""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class FailureCategory(str, Enum):
    """User-facing payment failure categories"""

    CARD_DECLINED = "card_declined"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    EXPIRED_CARD = "expired_card"
    INCORRECT_CVC = "incorrect_cvc"
    PROCESSING_ERROR = "processing_error"
    GENERIC = "generic"


@dataclass
class PaymentFailure:
    """Notification copy selected for a failed payment"""

    category: FailureCategory
    title: str
    message: str
    retryable: bool
    suggestion: Optional[str] = None


@dataclass
class TaskResult:
    """Outcome of one dispatcher task

    ``count_field`` names the counter in the response payload
    (processed, sent, published or generated).
    """

    count_field: str
    count: int = 0
    success: bool = True
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(cls, count_field: str, error: str) -> "TaskResult":
        return cls(count_field=count_field, count=0, success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, self.count_field: self.count}
        payload.update(self.details)
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class EmailMessage:
    """Rendered email ready for the provider"""

    to: list
    subject: str
    html: str
    text: Optional[str] = None
    cc: Optional[list] = None
    bcc: Optional[list] = None
    attachments: list = field(default_factory=list)


@dataclass
class ReportFile:
    """Rendered scheduled report"""

    file_name: str
    content: bytes
    mime_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)
