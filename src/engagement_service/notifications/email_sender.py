"""Email provider clients.

Every provider implements `send(message) -> SendResult`. A provider that
answers with an error returns an unsuccessful result carrying the
provider's details; a provider that cannot be reached raises
ProviderSendFailure.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx
import structlog

from engagement_service.config import get_settings
from engagement_service.exceptions import ProviderSendFailure

logger = structlog.get_logger()


@dataclass(frozen=True)
class EmailMessage:
    """A rendered email ready for the provider."""

    to: str
    from_email: str
    subject: str
    text: str
    html: str
    from_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SendResult:
    """Provider answer for one message."""

    success: bool
    message_id: str | None = None
    provider_details: Any = None


class EmailSender(ABC):
    """Abstract email delivery client. Implementations must be safe to share."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> SendResult:
        """Hand one message to the provider."""

    async def close(self) -> None:
        """Release provider resources."""


class MockEmailSender(EmailSender):
    """
    Mock email service for testing and development.

    Stores sent emails to filesystem for inspection instead of
    actually sending them.
    """

    def __init__(self, storage_path: str | None = None, persist: bool = True):
        """
        Initialize the mock email sender.

        Args:
            storage_path: Directory to store mock emails.
            persist: Write each message to storage_path as JSON.
        """
        self.persist = persist
        self.storage_path = Path(storage_path or get_settings().mock_email_storage_path)
        if persist:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        self.sent_emails: list[dict[str, Any]] = []

    async def send(self, message: EmailMessage) -> SendResult:
        message_id = str(uuid4())
        timestamp = datetime.now(timezone.utc)

        email_record = {
            "message_id": message_id,
            **asdict(message),
            "sent_at": timestamp.isoformat(),
            "status": "sent",
        }
        self.sent_emails.append(email_record)

        stored_at = None
        if self.persist:
            filepath = self.storage_path / f"{timestamp.strftime('%Y%m%d_%H%M%S')}_{message_id}.json"
            with open(filepath, "w") as f:
                json.dump(email_record, f, indent=2)
            stored_at = str(filepath)

        logger.info(
            "Mock email sent",
            message_id=message_id,
            to_email=message.to,
            subject=message.subject,
            stored_at=stored_at,
        )

        return SendResult(success=True, message_id=message_id)

    def get_sent_emails(self, limit: int = 50, to_email: str | None = None) -> list[dict[str, Any]]:
        """Recently sent mock emails, optionally filtered by recipient."""
        emails = self.sent_emails
        if to_email:
            emails = [e for e in emails if e["to"] == to_email]
        return emails[-limit:]

    def clear_stored_emails(self) -> int:
        """Delete stored mock emails, returning how many were removed."""
        count = 0
        if self.persist:
            for filepath in self.storage_path.glob("*.json"):
                filepath.unlink()
                count += 1

        self.sent_emails.clear()
        logger.info("Cleared mock emails", count=count)
        return count


class SendGridEmailSender(EmailSender):
    """SendGrid v3 Mail Send client over a shared httpx.AsyncClient."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.sendgrid.com",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    @staticmethod
    def build_payload(message: EmailMessage) -> dict[str, Any]:
        sender: dict[str, str] = {"email": message.from_email}
        if message.from_name:
            sender["name"] = message.from_name
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": sender,
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }

    async def send(self, message: EmailMessage) -> SendResult:
        try:
            response = await self.client.post("/v3/mail/send", json=self.build_payload(message))
        except httpx.HTTPError as e:
            raise ProviderSendFailure(f"SendGrid request failed: {e}", details=str(e)) from e

        if response.is_success:
            return SendResult(success=True, message_id=response.headers.get("X-Message-Id"))

        return SendResult(
            success=False,
            provider_details={"status_code": response.status_code, "body": response.text},
        )

    async def close(self) -> None:
        await self.client.aclose()


def get_email_sender() -> EmailSender:
    """Factory: returns the configured email provider."""
    settings = get_settings()
    if settings.email_service == "sendgrid":
        return SendGridEmailSender(
            api_key=settings.sendgrid_api_key,
            base_url=settings.sendgrid_base_url,
            timeout=settings.campaign_send_timeout_seconds,
        )
    return MockEmailSender(settings.mock_email_storage_path)
