"""PostgreSQL-backed campaign watermarks and run records.

Each call opens its own short session so concurrent sends within one
campaign run never share an AsyncSession.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import text

from engagement_service.infrastructure.database.connection import get_db_session
from engagement_service.infrastructure.database.models import CampaignState, CampaignType
from engagement_service.services.campaign_state import (
    CampaignRunRecord,
    CampaignStateStore,
    Watermark,
)

WATERMARK_QUERY = text("""
    SELECT last_notified_at, last_activity_at
    FROM engagement.campaign_watermarks
    WHERE campaign_type = :campaign
    AND external_user_id = :user_id
    AND COALESCE(external_product_id, '') = COALESCE(:product_id, '')
""")

MARK_NOTIFIED_QUERY = text("""
    INSERT INTO engagement.campaign_watermarks
    (
        campaign_type, external_user_id, external_product_id,
        last_notified_at, last_activity_at, notification_count
    )
    VALUES
    (:campaign, :user_id, :product_id, :notified_at, :activity_at, 1)
    ON CONFLICT (campaign_type, external_user_id, COALESCE(external_product_id, ''))
    DO UPDATE SET
        last_notified_at = GREATEST(campaign_watermarks.last_notified_at, EXCLUDED.last_notified_at),
        last_activity_at = GREATEST(campaign_watermarks.last_activity_at, EXCLUDED.last_activity_at),
        notification_count = campaign_watermarks.notification_count + 1
""")

# Takes the campaign only when it is not running, or its run went stale.
# No row back means another worker holds it.
CLAIM_RUN_QUERY = text("""
    INSERT INTO engagement.campaign_runs
    (campaign_type, state, last_started_at, recipients, sent, failed, skipped, updated_at)
    VALUES
    (:campaign, 'RUNNING', :started_at, 0, 0, 0, 0, NOW())
    ON CONFLICT (campaign_type) DO UPDATE SET
        state = 'RUNNING',
        last_started_at = EXCLUDED.last_started_at,
        recipients = 0,
        sent = 0,
        failed = 0,
        skipped = 0,
        error_message = NULL,
        updated_at = NOW()
    WHERE campaign_runs.state <> 'RUNNING'
    OR campaign_runs.last_started_at IS NULL
    OR campaign_runs.last_started_at < :stale_before
    RETURNING last_outcome, last_finished_at
""")

GET_RUN_QUERY = text("""
    SELECT
        state, last_outcome, last_started_at, last_finished_at,
        recipients, sent, failed, skipped, error_message
    FROM engagement.campaign_runs
    WHERE campaign_type = :campaign
""")

SAVE_RUN_QUERY = text("""
    INSERT INTO engagement.campaign_runs
    (
        campaign_type, state, last_outcome, last_started_at, last_finished_at,
        recipients, sent, failed, skipped, error_message, updated_at
    )
    VALUES
    (
        :campaign, :state, :last_outcome, :last_started_at, :last_finished_at,
        :recipients, :sent, :failed, :skipped, :error_message, NOW()
    )
    ON CONFLICT (campaign_type) DO UPDATE SET
        state = :state,
        last_outcome = :last_outcome,
        last_started_at = :last_started_at,
        last_finished_at = :last_finished_at,
        recipients = :recipients,
        sent = :sent,
        failed = :failed,
        skipped = :skipped,
        error_message = :error_message,
        updated_at = NOW()
""")


def _state_from_db(value: Any) -> CampaignState | None:
    if value is None or isinstance(value, CampaignState):
        return value
    return CampaignState[str(value)]


class SqlCampaignStateStore(CampaignStateStore):
    """CampaignStateStore over engagement.campaign_watermarks and campaign_runs."""

    def __init__(self, session_scope=get_db_session):
        self.session_scope = session_scope

    async def get_watermark(
        self, campaign: CampaignType, user_id: str, product_id: str | None
    ) -> Watermark | None:
        async with self.session_scope() as session:
            result = await session.execute(
                WATERMARK_QUERY,
                {"campaign": campaign.name, "user_id": user_id, "product_id": product_id},
            )
            row = result.first()

        if row is None:
            return None
        return Watermark(notified_at=row.last_notified_at, activity_at=row.last_activity_at)

    async def mark_notified(
        self,
        campaign: CampaignType,
        user_id: str,
        product_id: str | None,
        notified_at: datetime,
        activity_at: datetime | None,
    ) -> None:
        async with self.session_scope() as session:
            await session.execute(
                MARK_NOTIFIED_QUERY,
                {
                    "campaign": campaign.name,
                    "user_id": user_id,
                    "product_id": product_id,
                    "notified_at": notified_at,
                    "activity_at": activity_at,
                },
            )

    async def claim_run(
        self, campaign: CampaignType, started_at: datetime, stale_before: datetime
    ) -> CampaignRunRecord | None:
        async with self.session_scope() as session:
            result = await session.execute(
                CLAIM_RUN_QUERY,
                {
                    "campaign": campaign.name,
                    "started_at": started_at,
                    "stale_before": stale_before,
                },
            )
            row = result.first()

        if row is None:
            return None
        return CampaignRunRecord(
            campaign=campaign,
            state=CampaignState.RUNNING,
            last_outcome=_state_from_db(row.last_outcome),
            last_started_at=started_at,
            last_finished_at=row.last_finished_at,
        )

    async def get_run(self, campaign: CampaignType) -> CampaignRunRecord:
        async with self.session_scope() as session:
            result = await session.execute(GET_RUN_QUERY, {"campaign": campaign.name})
            row = result.first()

        if row is None:
            return CampaignRunRecord(campaign=campaign)

        return CampaignRunRecord(
            campaign=campaign,
            state=_state_from_db(row.state),
            last_outcome=_state_from_db(row.last_outcome),
            last_started_at=row.last_started_at,
            last_finished_at=row.last_finished_at,
            recipients=row.recipients,
            sent=row.sent,
            failed=row.failed,
            skipped=row.skipped,
            error_message=row.error_message,
        )

    async def save_run(self, run: CampaignRunRecord) -> None:
        async with self.session_scope() as session:
            await session.execute(
                SAVE_RUN_QUERY,
                {
                    "campaign": run.campaign.name,
                    "state": run.state.name,
                    "last_outcome": run.last_outcome.name if run.last_outcome else None,
                    "last_started_at": run.last_started_at,
                    "last_finished_at": run.last_finished_at,
                    "recipients": run.recipients,
                    "sent": run.sent,
                    "failed": run.failed,
                    "skipped": run.skipped,
                    "error_message": run.error_message,
                },
            )
