"""Unit tests for email provider clients."""

import json
from pathlib import Path

import httpx
import pytest

from engagement_service.exceptions import ProviderSendFailure
from engagement_service.notifications.email_sender import (
    EmailMessage,
    MockEmailSender,
    SendGridEmailSender,
)


@pytest.fixture
def message() -> EmailMessage:
    return EmailMessage(
        to="alice@example.com",
        from_email="noreply@example-store.com",
        from_name="ECOMMERCE",
        subject="Hello",
        text="plain body",
        html="<p>html body</p>",
        metadata={"campaign": "abandoned_cart"},
    )


def sendgrid(handler) -> SendGridEmailSender:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="https://api.sendgrid.test",
    )
    return SendGridEmailSender(api_key="key", client=client)


class TestSendGridEmailSender:
    def test_payload(self, message: EmailMessage) -> None:
        payload = SendGridEmailSender.build_payload(message)

        assert payload["personalizations"] == [{"to": [{"email": "alice@example.com"}]}]
        assert payload["from"] == {"email": "noreply@example-store.com", "name": "ECOMMERCE"}
        assert payload["content"][0] == {"type": "text/plain", "value": "plain body"}
        assert payload["content"][1]["type"] == "text/html"

    @pytest.mark.asyncio
    async def test_accepted(self, message: EmailMessage) -> None:
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(202, headers={"X-Message-Id": "sg-1"})

        sender = sendgrid(handler)
        result = await sender.send(message)
        await sender.close()

        assert result.success is True
        assert result.message_id == "sg-1"
        assert captured["path"] == "/v3/mail/send"
        assert captured["body"]["subject"] == "Hello"

    @pytest.mark.asyncio
    async def test_rejected(self, message: EmailMessage) -> None:
        sender = sendgrid(lambda request: httpx.Response(400, text="bad sender"))

        result = await sender.send(message)
        await sender.close()

        assert result.success is False
        assert result.provider_details == {"status_code": 400, "body": "bad sender"}

    @pytest.mark.asyncio
    async def test_unreachable(self, message: EmailMessage) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        sender = sendgrid(handler)

        with pytest.raises(ProviderSendFailure):
            await sender.send(message)
        await sender.close()


class TestMockEmailSender:
    @pytest.mark.asyncio
    async def test_stores_message(self, message: EmailMessage, tmp_path: Path) -> None:
        sender = MockEmailSender(storage_path=str(tmp_path))

        result = await sender.send(message)

        assert result.success is True
        files = list(tmp_path.glob("*.json"))
        assert len(files) == 1
        stored = json.loads(files[0].read_text())
        assert stored["to"] == "alice@example.com"
        assert stored["message_id"] == result.message_id

    @pytest.mark.asyncio
    async def test_filter_and_clear(self, message: EmailMessage, tmp_path: Path) -> None:
        sender = MockEmailSender(storage_path=str(tmp_path))
        await sender.send(message)

        assert len(sender.get_sent_emails(to_email="alice@example.com")) == 1
        assert sender.get_sent_emails(to_email="bob@example.com") == []
        assert sender.clear_stored_emails() == 1
        assert sender.get_sent_emails() == []

    @pytest.mark.asyncio
    async def test_without_persistence(self, message: EmailMessage, tmp_path: Path) -> None:
        sender = MockEmailSender(storage_path=str(tmp_path / "unused"), persist=False)

        await sender.send(message)

        assert not (tmp_path / "unused").exists()
        assert len(sender.sent_emails) == 1
