"""Frequent viewer campaign task."""

import structlog
from celery import shared_task

from email_worker.runtime import run_campaign_sync
from engagement_service.infrastructure.database.models import CampaignType

logger = structlog.get_logger()


@shared_task
def run_frequent_viewer_campaign() -> dict:
    """Email users who viewed a product more times than the view threshold."""
    logger.info("Starting frequent viewer campaign")
    return run_campaign_sync(CampaignType.FREQUENT_VIEWER)
