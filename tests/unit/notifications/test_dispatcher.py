"""Unit tests for campaign notification dispatch."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from engagement_service.config import CampaignConfig
from engagement_service.infrastructure.database.models import CampaignType
from engagement_service.notifications.dispatcher import DispatchOutcome, NotificationDispatcher
from engagement_service.services.activity_recorder import ActivityRecorder
from engagement_service.services.campaign_state import InMemoryCampaignStateStore
from engagement_service.services.memory_store import InMemoryActivityStore
from engagement_service.services.segment_resolver import AudienceEntry, SegmentResolver

T0 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def entry(
    n: int,
    campaign: CampaignType = CampaignType.ABANDONED_CART,
    activity_at: datetime = T0,
) -> AudienceEntry:
    return AudienceEntry(
        campaign=campaign,
        user_id=f"u{n}",
        username=f"user{n}",
        email=f"user{n}@example.com",
        product_id="p1",
        product_name="Espresso Machine",
        product_image="https://shop.test/p1.jpg",
        product_price=100.0,
        product_description="Brews a fine cup.",
        activity_at=activity_at,
    )


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_rejected_recipient_does_not_stop_the_batch(
        self, make_sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        sender = make_sender(reject={"user2@example.com"})
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)

        summary = await dispatcher.dispatch_all(
            CampaignType.ABANDONED_CART, [entry(n) for n in range(1, 6)], now=T0
        )

        assert sorted(m.to for m in sender.attempts) == [f"user{n}@example.com" for n in range(1, 6)]
        assert summary.recipients == 5
        assert summary.sent == 4
        assert summary.failed == 1

    @pytest.mark.asyncio
    async def test_provider_exception_is_contained(
        self, make_sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        sender = make_sender(raise_for={"user2@example.com"})
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)

        summary = await dispatcher.dispatch_all(
            CampaignType.ABANDONED_CART, [entry(n) for n in range(1, 6)], now=T0
        )

        assert len(sender.attempts) == 5
        assert (summary.sent, summary.failed) == (4, 1)

    @pytest.mark.asyncio
    async def test_failed_send_leaves_no_watermark(
        self, make_sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        sender = make_sender(reject={"user1@example.com"})
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)

        outcome = await dispatcher.dispatch(entry(1), now=T0)

        assert outcome == DispatchOutcome.FAILED
        assert state_store.watermarks == {}

    @pytest.mark.asyncio
    async def test_send_timeout(
        self, make_sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        sender = make_sender(delay_seconds=0.5)
        config = replace(campaign_config, send_timeout_seconds=0.05)
        dispatcher = NotificationDispatcher(sender, state_store, config)

        outcome = await dispatcher.dispatch(entry(1), now=T0)

        assert outcome == DispatchOutcome.FAILED
        assert sender.delivered == []

    @pytest.mark.asyncio
    async def test_run_deadline_cancels_pending_sends(
        self, make_sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        sender = make_sender(delay_seconds=0.5)
        config = replace(
            campaign_config,
            send_timeout_seconds=5.0,
            run_deadline_seconds=0.1,
            max_concurrent_sends=1,
        )
        dispatcher = NotificationDispatcher(sender, state_store, config)

        summary = await dispatcher.dispatch_all(
            CampaignType.ABANDONED_CART, [entry(n) for n in range(1, 4)], now=T0
        )

        assert summary.timed_out == 3
        assert summary.failed == 3
        assert summary.sent == 0

    @pytest.mark.asyncio
    async def test_empty_audience(
        self, sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)

        summary = await dispatcher.dispatch_all(CampaignType.FREQUENT_VIEWER, [])

        assert summary.to_dict() == {
            "recipients": 0,
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "timed_out": 0,
        }


class TestWatermark:
    @pytest.mark.asyncio
    async def test_rerun_does_not_notify_again(
        self, sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)
        audience = [entry(1), entry(2)]

        first = await dispatcher.dispatch_all(CampaignType.ABANDONED_CART, audience, now=T0)
        second = await dispatcher.dispatch_all(
            CampaignType.ABANDONED_CART, audience, now=T0 + timedelta(days=1)
        )

        assert first.sent == 2
        assert second.sent == 0
        assert second.skipped == 2
        assert len(sender.delivered) == 2

    @pytest.mark.asyncio
    async def test_new_activity_within_cooldown_is_held_back(
        self, sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)
        await dispatcher.dispatch(entry(1), now=T0 + timedelta(minutes=1))

        newer = entry(1, activity_at=T0 + timedelta(hours=1))
        assert await dispatcher.dispatch(newer, now=T0 + timedelta(hours=2)) == DispatchOutcome.SKIPPED
        assert await dispatcher.dispatch(newer, now=T0 + timedelta(hours=25)) == DispatchOutcome.SENT
        assert state_store.notification_counts[(CampaignType.ABANDONED_CART, "u1", "p1")] == 2

    @pytest.mark.asyncio
    async def test_repeat_purchase_confirmed_without_cooldown(
        self, sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)
        campaign = CampaignType.PURCHASE_CONFIRMATION

        await dispatcher.dispatch(entry(1, campaign), now=T0 + timedelta(minutes=1))
        repeat = entry(1, campaign, activity_at=T0 + timedelta(minutes=5))

        assert await dispatcher.dispatch(repeat, now=T0 + timedelta(minutes=6)) == DispatchOutcome.SENT
        assert len(sender.delivered) == 2

    @pytest.mark.asyncio
    async def test_watermarks_are_per_campaign(
        self, sender, state_store: InMemoryCampaignStateStore, campaign_config: CampaignConfig
    ) -> None:
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)

        await dispatcher.dispatch(entry(1, CampaignType.ABANDONED_CART), now=T0)
        outcome = await dispatcher.dispatch(entry(1, CampaignType.FREQUENT_VIEWER), now=T0)

        assert outcome == DispatchOutcome.SENT


def skewed_store(offset: timedelta) -> InMemoryActivityStore:
    """Activity store whose clock runs `offset` away from the application's."""
    store = InMemoryActivityStore(clock=lambda: datetime.now(timezone.utc) + offset)
    store.add_user("u1", username="alice", email="alice@example.com")
    store.add_product("p1", name="Espresso Machine", price=100.0)
    return store


@pytest.mark.parametrize(
    "offset",
    [timedelta(hours=5, minutes=30), -timedelta(hours=5, minutes=30)],
    ids=["store-ahead", "store-behind"],
)
class TestClockSkew:
    @pytest.mark.asyncio
    async def test_repeat_purchase_is_confirmed_again(
        self,
        offset: timedelta,
        sender,
        state_store: InMemoryCampaignStateStore,
        campaign_config: CampaignConfig,
    ) -> None:
        store = skewed_store(offset)
        recorder = ActivityRecorder(store)
        resolver = SegmentResolver(store, campaign_config)
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)

        await recorder.record("u1", "p1", "buy", is_logged_in_user=True)
        first = await dispatcher.dispatch(await resolver.purchase_for("u1", "p1"))
        await recorder.record("u1", "p1", "buy", is_logged_in_user=True)
        second = await dispatcher.dispatch(await resolver.purchase_for("u1", "p1"))

        assert (first, second) == (DispatchOutcome.SENT, DispatchOutcome.SENT)
        assert len(sender.delivered) == 2

    @pytest.mark.asyncio
    async def test_sweep_after_order_hook_does_not_resend(
        self,
        offset: timedelta,
        sender,
        state_store: InMemoryCampaignStateStore,
        campaign_config: CampaignConfig,
    ) -> None:
        store = skewed_store(offset)
        resolver = SegmentResolver(store, campaign_config)
        dispatcher = NotificationDispatcher(sender, state_store, campaign_config)

        await ActivityRecorder(store).record("u1", "p1", "buy", is_logged_in_user=True)
        await dispatcher.dispatch(await resolver.purchase_for("u1", "p1"))

        summary = await dispatcher.dispatch_all(
            CampaignType.PURCHASE_CONFIRMATION, await resolver.recent_purchasers()
        )

        assert summary.skipped == 1
        assert len(sender.delivered) == 1
