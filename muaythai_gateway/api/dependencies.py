"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from typing import Callable

from fastapi import Request

from muaythai_gateway.config import SecurityConfig, Settings, settings
from muaythai_gateway.infrastructure.clients.email import EmailClient
from muaythai_gateway.utils.date_utils import utcnow


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_settings() -> Settings:
    return settings


def get_security_config() -> SecurityConfig:
    """Environment and secrets for webhook verification and cron auth"""
    return SecurityConfig.from_settings(settings)


def get_email_client() -> EmailClient:
    """Provide Resend email client instance"""
    return EmailClient()


def get_clock() -> Callable[[], datetime]:
    """Source of the current naive-UTC time"""
    return utcnow
