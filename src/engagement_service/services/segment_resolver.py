"""Campaign audience derivation.

Turns activity rows into per-(user, product) audience entries for each
lifecycle campaign, enriched with the product attributes the email
templates need.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from engagement_service.config import CampaignConfig
from engagement_service.exceptions import NotFound
from engagement_service.infrastructure.database.models import ActivityAction, CampaignType
from engagement_service.services.activity_store import ActivityStore, EnrichedActivity
from shared.constants import (
    DEFAULT_PRODUCT_DESCRIPTION,
    DEFAULT_PRODUCT_NAME,
    DEFAULT_PRODUCT_PRICE,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class AudienceEntry:
    """One campaign recipient for one product."""

    campaign: CampaignType
    user_id: str
    username: str | None
    email: str
    product_id: str | None
    product_name: str
    product_image: str
    product_price: float
    product_description: str
    view_count: int = 0
    activity_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign": self.campaign.value,
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_image": self.product_image,
            "product_price": self.product_price,
            "product_description": self.product_description,
            "view_count": self.view_count,
            "activity_at": self.activity_at.isoformat() if self.activity_at else None,
        }


class SegmentResolver:
    """Read-only audience queries over the activity store."""

    def __init__(self, store: ActivityStore, config: CampaignConfig):
        self.store = store
        self.config = config

    async def resolve(self, campaign: CampaignType) -> list[AudienceEntry]:
        """Resolve the audience for a campaign type."""
        resolvers = {
            CampaignType.ABANDONED_CART: self.abandoned_cart,
            CampaignType.FREQUENT_VIEWER: self.frequent_viewers,
            CampaignType.PURCHASE_CONFIRMATION: self.recent_purchasers,
        }
        return await resolvers[campaign]()

    async def abandoned_cart(self, now: datetime | None = None) -> list[AudienceEntry]:
        """
        Cart additions that never turned into a purchase.

        A (user, product) pair is excluded as soon as a buy with a positive
        purchase counter exists for it. With `abandoned_cart_delay_hours`
        set, the cart activity must also be at least that old.
        """
        purchased = {
            (activity.record.user_id, activity.record.product_id)
            for activity in await self.store.list_activities(ActivityAction.BUY)
            if activity.record.purchases > 0
        }

        cutoff = None
        if self.config.abandoned_cart_delay_hours:
            now = now or datetime.now(timezone.utc)
            cutoff = now - timedelta(hours=self.config.abandoned_cart_delay_hours)

        entries = []
        for activity in await self.store.list_activities(ActivityAction.ADDED_TO_CART):
            record = activity.record
            if record.cart_adds <= 0:
                continue
            if (record.user_id, record.product_id) in purchased:
                continue
            if cutoff and record.updated_at and record.updated_at > cutoff:
                continue
            entry = self._build_entry(CampaignType.ABANDONED_CART, activity)
            if entry:
                entries.append(entry)

        logger.info("Resolved abandoned cart segment", size=len(entries))
        return entries

    async def frequent_viewers(self, threshold: int | None = None) -> list[AudienceEntry]:
        """
        (user, product) pairs viewed strictly more than `threshold` times.

        Args:
            threshold: Minimum exclusive view count, defaults to the configured one
        """
        limit = self.config.view_threshold if threshold is None else threshold

        view_counts: dict[tuple[str, str | None], int] = defaultdict(int)
        latest: dict[tuple[str, str | None], EnrichedActivity] = {}
        for activity in await self.store.list_activities(ActivityAction.VIEWED):
            pair = (activity.record.user_id, activity.record.product_id)
            view_counts[pair] += activity.record.views
            current = latest.get(pair)
            if current is None or _is_newer(activity, current):
                latest[pair] = activity

        entries = []
        for pair, count in view_counts.items():
            if count <= limit:
                continue
            entry = self._build_entry(CampaignType.FREQUENT_VIEWER, latest[pair], view_count=count)
            if entry:
                entries.append(entry)

        logger.info("Resolved frequent viewer segment", size=len(entries), threshold=limit)
        return entries

    async def recent_purchasers(self) -> list[AudienceEntry]:
        """One entry per recorded (user, product) purchase."""
        entries = []
        for activity in await self.store.list_activities(ActivityAction.BUY):
            if activity.record.purchases <= 0:
                continue
            entry = self._build_entry(CampaignType.PURCHASE_CONFIRMATION, activity)
            if entry:
                entries.append(entry)

        logger.info("Resolved purchase confirmation segment", size=len(entries))
        return entries

    async def purchase_for(self, user_id: str, product_id: str) -> AudienceEntry:
        """
        Purchase confirmation entry for a single order line.

        Raises:
            NotFound: when the purchase or the buyer's contact details are missing
        """
        activity = await self.store.get_enriched(user_id, product_id, ActivityAction.BUY)
        if activity is not None and activity.record.purchases > 0:
            entry = self._build_entry(CampaignType.PURCHASE_CONFIRMATION, activity)
            if entry is None:
                raise NotFound(f"No contact details for user {user_id}")
            return entry
        raise NotFound(f"No purchase recorded for user {user_id} and product {product_id}")

    def _build_entry(
        self,
        campaign: CampaignType,
        activity: EnrichedActivity,
        view_count: int | None = None,
    ) -> AudienceEntry | None:
        """Join an activity with its user and product, substituting defaults.

        Returns None when the user cannot be resolved or has no email.
        """
        record = activity.record
        user = activity.user
        if user is None or not user.email:
            logger.warning(
                "Skipping audience entry without contact details",
                campaign=campaign.value,
                user_id=record.user_id,
                product_id=record.product_id,
            )
            return None

        product = activity.product
        if product is None:
            logger.debug(
                "Product details missing, using defaults",
                campaign=campaign.value,
                product_id=record.product_id,
            )

        return AudienceEntry(
            campaign=campaign,
            user_id=record.user_id,
            username=user.username,
            email=user.email,
            product_id=record.product_id,
            product_name=(product and product.name) or DEFAULT_PRODUCT_NAME,
            product_image=(product and product.image) or self.config.default_product_image,
            product_price=(
                product.price if product and product.price is not None else DEFAULT_PRODUCT_PRICE
            ),
            product_description=(product and product.description) or DEFAULT_PRODUCT_DESCRIPTION,
            view_count=record.views if view_count is None else view_count,
            activity_at=record.updated_at,
        )


def _is_newer(a: EnrichedActivity, b: EnrichedActivity) -> bool:
    if a.record.updated_at is None:
        return False
    if b.record.updated_at is None:
        return True
    return a.record.updated_at > b.record.updated_at
