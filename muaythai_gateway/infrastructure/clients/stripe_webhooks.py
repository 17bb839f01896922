"""Stripe webhook signature verification and event parsing"""

import json
import logging
from typing import Optional

import stripe

from muaythai_gateway.config import SecurityConfig
from muaythai_gateway.domain.exceptions import (
    InvalidPayloadError,
    SignatureVerificationError,
    WebhookConfigurationError,
)
from muaythai_gateway.domain.models import WebhookEvent

logger = logging.getLogger(__name__)


def _decode(body: bytes) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidPayloadError("Webhook body is not valid UTF-8") from e


def _load(payload: str) -> WebhookEvent:
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise InvalidPayloadError("Invalid webhook payload") from e
    if not isinstance(data, dict) or not data.get("type"):
        raise InvalidPayloadError("Webhook payload is not an event")
    return WebhookEvent.from_payload(data)


def parse_webhook_event(body: bytes, signature: Optional[str], security: SecurityConfig) -> WebhookEvent:
    """
    Verify and parse a raw Stripe webhook body.

    The signature is computed over the exact raw bytes, so the body must not be
    re-serialized before this call.

    Development without a configured secret skips verification; that branch is
    unreachable once a secret is set.

    Raises:
        SignatureVerificationError: Missing header or signature mismatch (400)
        InvalidPayloadError: Body is not a JSON event (400)
        WebhookConfigurationError: Production without a webhook secret (500)
    """
    if not signature:
        raise SignatureVerificationError("Missing stripe-signature header")

    payload = _decode(body)

    if security.webhook_secret is None:
        if security.is_production:
            raise WebhookConfigurationError("Webhook secret not configured")
        logger.warning("Development mode: webhook signature verification DISABLED")
        return _load(payload)

    try:
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            security.webhook_secret,
            security.webhook_tolerance_seconds,
        )
    except stripe.SignatureVerificationError as e:
        raise SignatureVerificationError(f"Webhook signature verification failed: {e}") from e

    return _load(payload)
