"""Order-creation hook called by the order management service."""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from engagement_service.api.deps import (
    get_activity_store,
    get_campaign_config,
    get_campaign_state_store,
    get_sender,
)
from engagement_service.config import CampaignConfig
from engagement_service.exceptions import NotFound
from engagement_service.infrastructure.database.models import ActivityAction
from engagement_service.infrastructure.redis import CacheService, get_cache
from engagement_service.notifications.dispatcher import DispatchOutcome, NotificationDispatcher
from engagement_service.notifications.email_sender import EmailSender
from engagement_service.services.activity_recorder import ActivityRecorder
from engagement_service.services.activity_store import ActivityStore
from engagement_service.services.campaign_state import CampaignStateStore
from engagement_service.services.segment_resolver import SegmentResolver
from shared.constants import LEADERBOARD_CACHE_KEY

logger = structlog.get_logger()

router = APIRouter()


class OrderCreatedRequest(BaseModel):
    """Payload sent when a new order is placed."""

    order_id: str = Field(..., description="Order identifier")
    user_id: str = Field(..., description="Buyer's user identifier")
    product_ids: list[str] = Field(..., max_length=100, description="Products in the order")


class OrderLineNotification(BaseModel):
    product_id: str
    purchases: int
    confirmation: DispatchOutcome


class OrderCreatedResponse(BaseModel):
    order_id: str
    recorded: int
    lines: list[OrderLineNotification]


@router.post("/hook", response_model=OrderCreatedResponse)
async def order_created(
    order: OrderCreatedRequest,
    store: ActivityStore = Depends(get_activity_store),
    state: CampaignStateStore = Depends(get_campaign_state_store),
    sender: EmailSender = Depends(get_sender),
    config: CampaignConfig = Depends(get_campaign_config),
    cache: CacheService = Depends(get_cache),
) -> OrderCreatedResponse:
    """
    Record a purchase for every product in a new order and send the
    purchase confirmation right away.

    A confirmation that cannot be delivered does not fail the hook; its
    outcome is reported per order line.
    """
    if not order.product_ids:
        raise HTTPException(status_code=400, detail="product_ids must not be empty")

    recorder = ActivityRecorder(store)
    resolver = SegmentResolver(store, config)
    dispatcher = NotificationDispatcher(sender, state, config)

    lines = []
    for product_id in dict.fromkeys(order.product_ids):
        result = await recorder.record(
            user_id=order.user_id,
            product_id=product_id,
            action=ActivityAction.BUY,
            is_logged_in_user=True,
        )

        try:
            entry = await resolver.purchase_for(order.user_id, product_id)
        except NotFound as e:
            logger.warning(
                "Purchase confirmation skipped",
                order_id=order.order_id,
                product_id=product_id,
                reason=str(e),
            )
            outcome = DispatchOutcome.SKIPPED
        else:
            outcome = await dispatcher.dispatch(entry)

        lines.append(
            OrderLineNotification(
                product_id=product_id,
                purchases=result.record.purchases,
                confirmation=outcome,
            )
        )

    await cache.delete(LEADERBOARD_CACHE_KEY)
    logger.info("Order processed", order_id=order.order_id, user_id=order.user_id, lines=len(lines))

    return OrderCreatedResponse(order_id=order.order_id, recorded=len(lines), lines=lines)
