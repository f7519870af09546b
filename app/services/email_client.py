"""
Transactional email client (Brevo v3 SMTP API).

send() never raises: delivery problems come back as EmailResult(success=False)
so callers can record them without unwinding their own writes.
"""

import logging
import time
from typing import List, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class EmailResult:
    """Result of one send attempt."""

    def __init__(
        self,
        success: bool,
        recipients: Optional[List[str]] = None,
        message_id: Optional[str] = None,
        error: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        self.success = success
        self.recipients = recipients or []
        self.message_id = message_id
        self.error = error
        self.status_code = status_code

    def as_payload(self) -> dict:
        data = {"sent": self.success, "recipients": self.recipients}
        if self.message_id:
            data["message_id"] = self.message_id
        if self.error:
            data["error"] = self.error
        return data


class EmailClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        sender_email: Optional[str] = None,
        sender_name: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        self.api_key = api_key if api_key is not None else settings.brevo_api_key
        self.sender_email = sender_email if sender_email is not None else settings.email_from
        self.sender_name = sender_name or settings.email_from_name
        self.api_url = api_url or settings.brevo_api_url
        self.timeout = timeout or settings.email_timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.sender_email)

    def send(
        self,
        to: List[str],
        subject: str,
        html: str,
        text: Optional[str] = None
    ) -> EmailResult:
        recipients = [r for r in to if r]
        if not recipients:
            return EmailResult(success=False, error="no recipients")

        if not self.is_configured:
            logger.warning("Email not configured (BREVO_API_KEY / EMAIL_FROM missing), skipping send")
            return EmailResult(success=False, recipients=recipients, error="email not configured")

        payload = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": r} for r in recipients],
            "subject": subject,
            "htmlContent": html,
        }
        if text:
            payload["textContent"] = text

        headers = {
            "api-key": self.api_key,
            "accept": "application/json",
            "content-type": "application/json",
        }

        start_time = time.time()
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.api_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Email request failed: {e}")
            return EmailResult(success=False, recipients=recipients, error=str(e))

        duration_ms = int((time.time() - start_time) * 1000)

        if 200 <= response.status_code < 300:
            try:
                message_id = response.json().get("messageId")
            except ValueError:
                message_id = None
            logger.info(f"Email sent: subject={subject!r} to={len(recipients)} ({duration_ms}ms)")
            return EmailResult(
                success=True,
                recipients=recipients,
                message_id=message_id,
                status_code=response.status_code
            )

        logger.error(f"Email API error {response.status_code}: {response.text[:500]}")
        return EmailResult(
            success=False,
            recipients=recipients,
            error=f"HTTP {response.status_code}",
            status_code=response.status_code
        )
