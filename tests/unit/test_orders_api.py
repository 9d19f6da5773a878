"""Unit tests for the order-created hook."""

import asyncio

from fastapi.testclient import TestClient

from engagement_service.config import CampaignConfig
from engagement_service.infrastructure.database.models import ActivityAction, CampaignType
from engagement_service.notifications.dispatcher import NotificationDispatcher
from engagement_service.services.campaign_state import InMemoryCampaignStateStore
from engagement_service.services.memory_store import InMemoryActivityStore
from engagement_service.services.segment_resolver import SegmentResolver


def place_order(client: TestClient, order_id: str, user_id: str, product_ids: list[str]):
    return client.post(
        "/api/v1/orders/hook",
        json={"order_id": order_id, "user_id": user_id, "product_ids": product_ids},
    )


def test_order_records_purchases_and_confirms(
    client: TestClient, store: InMemoryActivityStore, sender
) -> None:
    response = place_order(client, "o1", "u1", ["p1", "p2", "p1"])

    assert response.status_code == 200
    data = response.json()
    assert data["recorded"] == 2
    assert [line["confirmation"] for line in data["lines"]] == ["sent", "sent"]
    assert [m.to for m in sender.delivered] == ["alice@example.com", "alice@example.com"]
    assert sender.delivered[0].metadata["campaign"] == "purchase_confirmation"

    record = store._records[("u1", "p1", ActivityAction.BUY)]
    assert record.purchases == 1


def test_repeat_order_counts_and_confirms_again(
    client: TestClient, store: InMemoryActivityStore, sender
) -> None:
    place_order(client, "o1", "u1", ["p1"])
    response = place_order(client, "o2", "u1", ["p1"])

    line = response.json()["lines"][0]
    assert line["purchases"] == 2
    assert line["confirmation"] == "sent"
    assert len(sender.delivered) == 2


def test_buyer_without_contact_details_is_skipped(client: TestClient, sender) -> None:
    response = place_order(client, "o1", "unknown-user", ["p1"])

    assert response.status_code == 200
    assert response.json()["lines"][0]["confirmation"] == "skipped"
    assert sender.attempts == []


def test_provider_failure_does_not_fail_the_hook(client: TestClient, sender) -> None:
    sender.reject.add("alice@example.com")

    response = place_order(client, "o1", "u1", ["p1"])

    assert response.status_code == 200
    assert response.json()["lines"][0]["confirmation"] == "failed"


def test_confirmed_purchase_is_not_repeated_by_the_daily_sweep(
    client: TestClient,
    store: InMemoryActivityStore,
    sender,
    state_store: InMemoryCampaignStateStore,
    campaign_config: CampaignConfig,
) -> None:
    place_order(client, "o1", "u1", ["p1"])

    async def sweep():
        audience = await SegmentResolver(store, campaign_config).recent_purchasers()
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)
        return await dispatcher.dispatch_all(CampaignType.PURCHASE_CONFIRMATION, audience)

    summary = asyncio.run(sweep())

    assert summary.skipped == 1
    assert len(sender.delivered) == 1


def test_empty_order_rejected(client: TestClient) -> None:
    response = place_order(client, "o1", "u1", [])

    assert response.status_code == 400
