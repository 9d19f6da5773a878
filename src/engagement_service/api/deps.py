"""FastAPI dependencies wiring the core services to the request scope."""

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from engagement_service.config import CampaignConfig, get_settings
from engagement_service.infrastructure.database.activity_store import SqlActivityStore
from engagement_service.infrastructure.database.campaign_state import SqlCampaignStateStore
from engagement_service.infrastructure.database.connection import get_session
from engagement_service.notifications.email_sender import EmailSender, get_email_sender
from engagement_service.services.activity_recorder import ActivityRecorder
from engagement_service.services.activity_store import ActivityStore
from engagement_service.services.campaign_state import CampaignStateStore


def get_activity_store(session: AsyncSession = Depends(get_session)) -> ActivityStore:
    return SqlActivityStore(session)


def get_campaign_state_store() -> CampaignStateStore:
    return SqlCampaignStateStore()


def get_campaign_config() -> CampaignConfig:
    return get_settings().campaign_config()


@lru_cache
def _shared_email_sender() -> EmailSender:
    return get_email_sender()


async def get_sender() -> AsyncGenerator[EmailSender, None]:
    """The process-wide email client; provider clients are safe to share."""
    yield _shared_email_sender()


def get_recorder(store: ActivityStore = Depends(get_activity_store)) -> ActivityRecorder:
    return ActivityRecorder(store)


async def close_email_sender() -> None:
    if _shared_email_sender.cache_info().currsize:
        await _shared_email_sender().close()
        _shared_email_sender.cache_clear()
