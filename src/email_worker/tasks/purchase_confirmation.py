"""Daily purchase confirmation sweep."""

import structlog
from celery import shared_task

from email_worker.runtime import run_campaign_sync
from engagement_service.infrastructure.database.models import CampaignType

logger = structlog.get_logger()


@shared_task
def run_purchase_confirmation_campaign() -> dict:
    # Purchases already confirmed by the order hook share its watermark
    logger.info("Starting purchase confirmation sweep")
    return run_campaign_sync(CampaignType.PURCHASE_CONFIRMATION)
