"""Cron endpoints - unified dispatcher plus one endpoint per task"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from muaythai_gateway.api.dependencies import get_clock, get_email_client, get_request_id, get_security_config
from muaythai_gateway.api.v1.schemas import CronResponse, CronTaskResponse
from muaythai_gateway.config import SecurityConfig
from muaythai_gateway.domain.exceptions import CronAuthenticationError
from muaythai_gateway.infrastructure.clients.email import EmailClient
from muaythai_gateway.infrastructure.database.session import get_db
from muaythai_gateway.infrastructure.observability.metrics import cron_auth_failures_counter
from muaythai_gateway.services.dispatcher import (
    BOOKING_REMINDERS,
    EMAIL_QUEUE,
    SCHEDULED_ARTICLES,
    SCHEDULED_REPORTS,
    TaskDispatcher,
    authenticate_cron,
)

router = APIRouter()


class CronCaller:
    """Authenticated cron invocation: secret check plus the dispatcher wiring"""

    def __init__(
        self,
        db: Session = Depends(get_db),
        security: SecurityConfig = Depends(get_security_config),
        email_client: EmailClient = Depends(get_email_client),
        clock: Callable[[], datetime] = Depends(get_clock),
        x_cron_secret: Optional[str] = Header(None),
        authorization: Optional[str] = Header(None),
        secret: Optional[str] = Query(None),
    ):
        if not authenticate_cron(security, x_cron_secret, authorization, secret):
            raise CronAuthenticationError("Invalid or missing cron secret")
        self.dispatcher = TaskDispatcher(db, email_client)
        self.now = clock()

    @property
    def timestamp(self) -> str:
        return self.now.replace(tzinfo=timezone.utc).isoformat()


async def cron_auth_error_handler(request: Request, exc: CronAuthenticationError) -> JSONResponse:
    """Render a rejected cron call as 401 {success: false}"""
    cron_auth_failures_counter.inc()
    logging.warning(f"Unauthorized cron invocation: {exc}", extra={"request_id": get_request_id(request)})
    return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})


@router.api_route("/cron/unified", methods=["GET", "POST"], response_model=CronResponse)
async def run_unified(caller: CronCaller = Depends()):
    """
    Run every maintenance task that is due.

    The mail queue always runs first; booking reminders only on the reminder
    minute; scheduled articles and reports always. A failing task is reported
    in its own entry and never fails the request.
    """
    results = await caller.dispatcher.run(caller.now)
    return CronResponse(
        success=True,
        message=f"Processed {len(results)} task(s)",
        timestamp=caller.timestamp,
        tasks={name: result.to_dict() for name, result in results.items()},
    )


async def _run_single(caller: CronCaller, task: str):
    result = await caller.dispatcher.run_task(task, caller.now)
    return CronTaskResponse(success=result.success, timestamp=caller.timestamp, result=result.to_dict())


@router.api_route("/cron/process-email-queue", methods=["GET", "POST"], response_model=CronTaskResponse)
async def process_email_queue(caller: CronCaller = Depends()):
    return await _run_single(caller, EMAIL_QUEUE)


@router.api_route("/cron/send-booking-reminders", methods=["GET", "POST"], response_model=CronTaskResponse)
async def send_booking_reminders(caller: CronCaller = Depends()):
    return await _run_single(caller, BOOKING_REMINDERS)


@router.api_route("/cron/generate-scheduled-reports", methods=["GET", "POST"], response_model=CronTaskResponse)
async def generate_scheduled_reports(caller: CronCaller = Depends()):
    return await _run_single(caller, SCHEDULED_REPORTS)


@router.api_route("/cron/publish-scheduled-articles", methods=["GET", "POST"], response_model=CronTaskResponse)
async def publish_scheduled_articles(caller: CronCaller = Depends()):
    return await _run_single(caller, SCHEDULED_ARTICLES)
