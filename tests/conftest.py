"""Pytest configuration and fixtures."""

import asyncio
from datetime import time
from typing import Any

import pytest
from fastapi.testclient import TestClient

from engagement_service.api.deps import (
    get_activity_store,
    get_campaign_config,
    get_campaign_state_store,
    get_sender,
)
from engagement_service.config import CampaignConfig, Settings
from engagement_service.exceptions import ProviderSendFailure
from engagement_service.infrastructure.redis import CacheService, get_cache
from engagement_service.main import create_app
from engagement_service.notifications.email_sender import EmailMessage, EmailSender, SendResult
from engagement_service.services.campaign_state import InMemoryCampaignStateStore
from engagement_service.services.memory_store import InMemoryActivityStore


class FakeEmailSender(EmailSender):
    """Records every attempt; can reject, raise or stall for chosen recipients."""

    def __init__(
        self,
        reject: set[str] | None = None,
        raise_for: set[str] | None = None,
        delay_seconds: float = 0.0,
    ):
        self.reject = reject or set()
        self.raise_for = raise_for or set()
        self.delay_seconds = delay_seconds
        self.attempts: list[EmailMessage] = []
        self.delivered: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> SendResult:
        self.attempts.append(message)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if message.to in self.raise_for:
            raise ProviderSendFailure("connection reset", details={"to": message.to})
        if message.to in self.reject:
            return SendResult(success=False, provider_details={"status_code": 400})
        self.delivered.append(message)
        return SendResult(success=True, message_id=f"msg-{len(self.delivered)}")


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
        redis_host="localhost",
        redis_port=6379,
    )


@pytest.fixture
def campaign_config() -> CampaignConfig:
    return CampaignConfig(
        abandoned_cart_time=time(9, 53),
        frequent_viewer_time=time(9, 0),
        purchase_confirm_time=time(10, 0),
        view_threshold=3,
        store_url="https://shop.test",
        send_timeout_seconds=1.0,
        run_deadline_seconds=10.0,
        max_concurrent_sends=2,
    )


@pytest.fixture
def store() -> InMemoryActivityStore:
    """Activity store with two known users and one catalogued product."""
    store = InMemoryActivityStore()
    store.add_user("u1", username="alice", email="alice@example.com")
    store.add_user("u2", username="bob", email="bob@example.com")
    store.add_product(
        "p1",
        name="Espresso Machine",
        image="https://shop.test/p1.jpg",
        price=100.0,
        description="Brews a fine cup.",
        category="Kitchen",
    )
    return store


@pytest.fixture
def state_store() -> InMemoryCampaignStateStore:
    return InMemoryCampaignStateStore()


@pytest.fixture
def make_sender() -> type[FakeEmailSender]:
    """The fake sender class, for tests that need a misbehaving provider."""
    return FakeEmailSender


@pytest.fixture
def sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def app(
    store: InMemoryActivityStore,
    state_store: InMemoryCampaignStateStore,
    sender: FakeEmailSender,
    campaign_config: CampaignConfig,
) -> Any:
    """Create test application backed by in-memory collaborators."""

    async def get_test_sender():
        yield sender

    async def get_test_cache() -> CacheService:
        return CacheService(None)

    app = create_app()
    app.dependency_overrides[get_activity_store] = lambda: store
    app.dependency_overrides[get_campaign_state_store] = lambda: state_store
    app.dependency_overrides[get_campaign_config] = lambda: campaign_config
    app.dependency_overrides[get_sender] = get_test_sender
    app.dependency_overrides[get_cache] = get_test_cache
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


@pytest.fixture
def sample_user_id() -> str:
    """Sample user ID for tests."""
    return "u1"


@pytest.fixture
def sample_product_id() -> str:
    """Sample product ID for tests."""
    return "p1"
