"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from muaythai_gateway.config import settings

QUIET_LOGGERS = ("httpx", "httpcore", "stripe")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    logger.addHandler(handler)

    # Provider SDKs log every request at INFO
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logger.level, logging.WARNING))


def log_webhook_outcome(
    request_id: str,
    event_id: str,
    event_type: str,
    outcome: str,
    duration_ms: float,
    warnings: int = 0,
) -> None:
    """Log structured webhook processing outcome"""
    logging.info(
        "Webhook processed",
        extra={
            "request_id": request_id,
            "event_id": event_id,
            "event_type": event_type,
            "step": "webhook_complete",
            "outcome": outcome,
            "best_effort_failures": warnings,
            "duration_ms": duration_ms,
        },
    )


def log_task_result(task: str, success: bool, count: int, error: Optional[str], duration_ms: float) -> None:
    """Log one dispatcher task outcome"""
    level = logging.INFO if success else logging.ERROR
    logging.log(
        level,
        f"Cron task {task} {'completed' if success else 'failed'}",
        extra={
            "task": task,
            "step": "cron_task_complete",
            "success": success,
            "count": count,
            "error": error,
            "duration_ms": duration_ms,
        },
    )
