"""Builds the campaign pipeline for one worker task invocation.

Celery tasks are synchronous, so each run gets its own event loop through
asyncio.run. The database engine and the provider client are bound to that
loop and are released before it closes.
"""

import asyncio
from typing import Any

import structlog

from engagement_service.config import get_settings
from engagement_service.exceptions import CampaignAlreadyRunning
from engagement_service.infrastructure.database.activity_store import SqlActivityStore
from engagement_service.infrastructure.database.campaign_state import SqlCampaignStateStore
from engagement_service.infrastructure.database.connection import close_db, get_db_session
from engagement_service.infrastructure.database.models import CampaignType
from engagement_service.notifications.dispatcher import NotificationDispatcher
from engagement_service.notifications.email_sender import get_email_sender
from engagement_service.services.campaign_runner import CampaignRunner
from engagement_service.services.segment_resolver import SegmentResolver

logger = structlog.get_logger()


async def run_campaign(campaign: CampaignType) -> dict[str, Any]:
    config = get_settings().campaign_config()
    sender = get_email_sender()
    state = SqlCampaignStateStore()

    try:
        async with get_db_session() as session:
            runner = CampaignRunner(
                resolver=SegmentResolver(SqlActivityStore(session), config),
                dispatcher=NotificationDispatcher(sender, state, config),
                state=state,
            )
            result = await runner.run(campaign)
        return result.to_dict()
    except CampaignAlreadyRunning:
        logger.warning("Campaign already running, trigger ignored", campaign=campaign.value)
        return {"campaign": campaign.value, "outcome": "skipped", "error": "already running"}
    finally:
        await sender.close()
        await close_db()


def run_campaign_sync(campaign: CampaignType) -> dict[str, Any]:
    """Entry point for Celery tasks."""
    return asyncio.run(run_campaign(campaign))
