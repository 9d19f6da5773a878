"""Unit tests for campaign email rendering."""

from dataclasses import replace

import pytest

from engagement_service.config import CampaignConfig
from engagement_service.infrastructure.database.models import CampaignType
from engagement_service.notifications.renderer import CampaignRenderer, format_price
from engagement_service.services.segment_resolver import AudienceEntry


@pytest.fixture
def renderer(campaign_config: CampaignConfig) -> CampaignRenderer:
    return CampaignRenderer(campaign_config)


@pytest.fixture
def cart_entry() -> AudienceEntry:
    return AudienceEntry(
        campaign=CampaignType.ABANDONED_CART,
        user_id="u1",
        username="alice",
        email="alice@example.com",
        product_id="p1",
        product_name="Espresso Machine",
        product_image="https://shop.test/p1.jpg",
        product_price=1250.0,
        product_description="Brews a fine cup.",
    )


def test_format_price() -> None:
    assert format_price(0) == "$0.00"
    assert format_price(1234.5) == "$1,234.50"


def test_abandoned_cart_message(renderer: CampaignRenderer, cart_entry: AudienceEntry) -> None:
    message = renderer.render(cart_entry)

    assert message.to == "alice@example.com"
    assert message.from_email == "noreply@example-store.com"
    assert "10% OFF" in message.subject
    assert "Hi alice" in message.text
    assert "Espresso Machine" in message.text
    assert "$1,125.00" in message.text
    assert "$1,250.00" in message.text
    assert "https://shop.test/cart" in message.html
    assert message.metadata == {
        "campaign": "abandoned_cart",
        "user_id": "u1",
        "product_id": "p1",
    }


def test_frequent_viewer_links_to_product(
    renderer: CampaignRenderer, cart_entry: AudienceEntry
) -> None:
    entry = replace(cart_entry, campaign=CampaignType.FREQUENT_VIEWER, view_count=5)

    message = renderer.render(entry)

    assert message.subject == "🌟 Special Offer Just for You!"
    assert "https://shop.test/product/p1" in message.html


def test_purchase_confirmation(renderer: CampaignRenderer, cart_entry: AudienceEntry) -> None:
    entry = replace(cart_entry, campaign=CampaignType.PURCHASE_CONFIRMATION)

    message = renderer.render(entry)

    assert "Thank you" in message.subject
    assert "Espresso Machine" in message.text
    assert "https://shop.test/user-orders" in message.html


def test_missing_username_uses_generic_greeting(
    renderer: CampaignRenderer, cart_entry: AudienceEntry
) -> None:
    message = renderer.render(replace(cart_entry, username=None))

    assert message.text.startswith("Hi there")


def test_html_is_escaped(renderer: CampaignRenderer, cart_entry: AudienceEntry) -> None:
    message = renderer.render(replace(cart_entry, product_name="Mugs <b>& Co</b>"))

    assert "Mugs &lt;b&gt;&amp; Co&lt;/b&gt;" in message.html
    assert "Mugs <b>& Co</b>" in message.text


def test_discount_is_configurable(campaign_config: CampaignConfig, cart_entry: AudienceEntry) -> None:
    renderer = CampaignRenderer(replace(campaign_config, discount_percent=25))

    message = renderer.render(cart_entry)

    assert "25% OFF" in message.subject
    assert "$937.50" in message.text
