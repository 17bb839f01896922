"""POST /api/webhooks/stripe - payment provider webhook endpoint"""

import time
import logging
from typing import Callable
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from muaythai_gateway.api.dependencies import get_clock, get_request_id, get_security_config, get_settings
from muaythai_gateway.api.v1.schemas import WebhookReceived
from muaythai_gateway.config import SecurityConfig, Settings
from muaythai_gateway.domain.exceptions import (
    InvalidPayloadError,
    SignatureVerificationError,
    WebhookConfigurationError,
)
from muaythai_gateway.infrastructure.clients.stripe_webhooks import parse_webhook_event
from muaythai_gateway.infrastructure.database.session import get_db
from muaythai_gateway.infrastructure.observability.logging import log_webhook_outcome
from muaythai_gateway.infrastructure.observability.metrics import record_webhook, webhook_signature_failures_counter
from muaythai_gateway.services.webhook_handler import PaymentEventHandler

router = APIRouter()


@router.post("/webhooks/stripe", response_model=WebhookReceived)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    security: SecurityConfig = Depends(get_security_config),
    clock: Callable[[], datetime] = Depends(get_clock),
    app_settings: Settings = Depends(get_settings),
):
    """
    Verify and apply one Stripe event.

    Flow:
    1. Read the raw body (the signature covers the exact bytes)
    2. Verify the signature, or reject with 400 before touching the store
    3. Apply the event as one unit of work
    4. Acknowledge with {"received": true}; failures answer 500 so Stripe retries
    """
    start_time = time.time()
    request_id = get_request_id(request)

    body = await request.body()
    try:
        event = parse_webhook_event(body, request.headers.get("stripe-signature"), security)

    except SignatureVerificationError as e:
        webhook_signature_failures_counter.inc()
        logging.warning(f"Webhook rejected: {e}", extra={"request_id": request_id})
        return JSONResponse(status_code=400, content={"error": str(e)})

    except InvalidPayloadError as e:
        logging.warning(f"Webhook rejected: {e}", extra={"request_id": request_id})
        return JSONResponse(status_code=400, content={"error": str(e)})

    except WebhookConfigurationError as e:
        logging.error(f"Webhook misconfigured: {e}", extra={"request_id": request_id})
        return JSONResponse(status_code=500, content={"error": str(e)})

    try:
        handler = PaymentEventHandler(
            db,
            now=clock(),
            admin_alert_email=app_settings.admin_alert_email,
            app_base_url=app_settings.app_base_url,
        )
        outcome = handler.handle(event)

    except Exception as e:
        db.rollback()
        record_webhook(event.kind.value, "failed")
        logging.error(
            f"Error processing webhook: {e}",
            extra={"request_id": request_id, "event_id": event.id, "event_type": event.type},
        )
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    duration_ms = (time.time() - start_time) * 1000
    record_webhook(outcome.kind.value, outcome.outcome)
    log_webhook_outcome(
        request_id,
        outcome.event_id,
        outcome.event_type,
        outcome.outcome,
        duration_ms,
        warnings=len(outcome.effects.failures),
    )

    return WebhookReceived()
