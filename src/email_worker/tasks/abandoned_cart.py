"""Abandoned cart campaign task."""

import structlog
from celery import shared_task

from email_worker.runtime import run_campaign_sync
from engagement_service.infrastructure.database.models import CampaignType

logger = structlog.get_logger()


@shared_task
def run_abandoned_cart_campaign() -> dict:
    """
    Email every user with a cart entry and no purchase of that product.

    Failures are recorded on the campaign run rather than retried; the
    next daily trigger picks up anything that was missed.

    Returns:
        dict: Outcome and send counts for the run
    """
    logger.info("Starting abandoned cart campaign")
    return run_campaign_sync(CampaignType.ABANDONED_CART)
