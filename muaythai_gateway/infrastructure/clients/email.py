"""Resend HTTP client for transactional email"""

import base64
from typing import Any, Dict, Optional

import httpx

from muaythai_gateway.config import settings
from muaythai_gateway.domain.exceptions import EmailDeliveryError, EmailNotConfiguredError
from muaythai_gateway.domain.models import EmailMessage


class EmailClient:
    """Client for the Resend email API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.base_url = (base_url or settings.resend_api_base).rstrip("/")
        self.from_email = from_email or settings.email_from
        self.timeout = timeout or settings.http_timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _payload(self, message: EmailMessage, from_email: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "from": from_email or self.from_email,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            payload["text"] = message.text
        if message.cc:
            payload["cc"] = message.cc
        if message.bcc:
            payload["bcc"] = message.bcc
        if message.attachments:
            payload["attachments"] = [
                {"filename": name, "content": base64.b64encode(content).decode("ascii")}
                for name, content in message.attachments
            ]
        return payload

    async def send(self, message: EmailMessage, from_email: Optional[str] = None) -> str:
        """
        Send one email and return the provider message id.

        Raises:
            EmailNotConfiguredError: When no API key is set
            EmailDeliveryError: On timeout, HTTP errors, or an unexpected response
        """
        if not self.is_configured:
            raise EmailNotConfiguredError("Resend API key not configured")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/emails",
                    json=self._payload(message, from_email),
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
                return response.json()["id"]

            except httpx.TimeoutException as e:
                raise EmailDeliveryError(f"Email provider timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise EmailDeliveryError(
                    f"Email provider error: {e.response.status_code} {e.response.text[:200]}"
                ) from e
            except httpx.RequestError as e:
                raise EmailDeliveryError(f"Email provider unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise EmailDeliveryError(f"Invalid response from email provider: {e}") from e
