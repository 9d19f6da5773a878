"""Scheduled campaign execution.

Each campaign type is its own state machine:
Idle -> Running -> {Completed, Failed} -> Idle.
A failure is terminal for the run only; the next scheduled trigger starts
from Idle again.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from engagement_service.exceptions import CampaignAlreadyRunning
from engagement_service.infrastructure.database.models import CampaignState, CampaignType
from engagement_service.notifications.dispatcher import DispatchSummary, NotificationDispatcher
from engagement_service.services.campaign_state import CampaignRunRecord, CampaignStateStore
from engagement_service.services.segment_resolver import SegmentResolver

logger = structlog.get_logger()

# Multiple of run_deadline_seconds after which a RUNNING record counts as crashed
STALE_RUN_FACTOR = 2


@dataclass(frozen=True)
class CampaignRunResult:
    """What a scheduled run reports back to its trigger."""

    campaign: CampaignType
    outcome: CampaignState
    summary: DispatchSummary
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign": self.campaign.value,
            "outcome": self.outcome.value,
            "error": self.error,
            **self.summary.to_dict(),
        }


class CampaignRunner:
    """Runs one campaign: resolve the segment, dispatch, record the outcome."""

    def __init__(
        self,
        resolver: SegmentResolver,
        dispatcher: NotificationDispatcher,
        state: CampaignStateStore,
    ):
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.state = state

    async def run(self, campaign: CampaignType) -> CampaignRunResult:
        """
        Execute a scheduled run.

        The run completes once every recipient has been attempted, whatever
        the individual send results. Errors before dispatch (store
        unreachable, segment query failure) mark the run Failed and are not
        re-raised, so the scheduler simply waits for the next trigger.

        The campaign is claimed through the state store, so overlapping
        triggers are refused across worker processes. A RUNNING record older
        than twice the run deadline is treated as a crashed run and taken over.

        Raises:
            CampaignAlreadyRunning: a run of the same campaign is in progress
        """
        log = logger.bind(campaign=campaign.value)
        started_at = datetime.now(timezone.utc)
        stale_before = started_at - timedelta(
            seconds=STALE_RUN_FACTOR * self.dispatcher.config.run_deadline_seconds
        )
        summary = DispatchSummary()

        try:
            claimed = await self.state.claim_run(campaign, started_at, stale_before)
        except Exception as e:
            log.error("Could not claim campaign run", error=str(e), exc_info=True)
            return CampaignRunResult(
                campaign=campaign,
                outcome=CampaignState.FAILED,
                summary=summary,
                error=str(e),
            )
        if claimed is None:
            raise CampaignAlreadyRunning(campaign.value)

        try:
            log.info("Campaign run started")
            audience = await self.resolver.resolve(campaign)
            summary = await self.dispatcher.dispatch_all(campaign, audience)
        except Exception as e:
            log.error("Campaign run failed", error=str(e), exc_info=True)
            await self._finish(claimed, CampaignState.FAILED, summary, str(e))
            return CampaignRunResult(
                campaign=campaign,
                outcome=CampaignState.FAILED,
                summary=summary,
                error=str(e),
            )

        await self._finish(claimed, CampaignState.COMPLETED, summary)
        log.info("Campaign run completed", **summary.to_dict())
        return CampaignRunResult(campaign=campaign, outcome=CampaignState.COMPLETED, summary=summary)

    async def _finish(
        self,
        running: CampaignRunRecord,
        outcome: CampaignState,
        summary: DispatchSummary,
        error: str | None = None,
    ) -> None:
        """Record the outcome and return the job to Idle."""
        finished = running.transition(
            outcome,
            last_outcome=outcome,
            last_finished_at=datetime.now(timezone.utc),
            recipients=summary.recipients,
            sent=summary.sent,
            failed=summary.failed,
            skipped=summary.skipped,
            error_message=error,
        )
        try:
            await self.state.save_run(finished.transition(CampaignState.IDLE))
        except Exception as e:
            logger.error(
                "Could not record campaign outcome", campaign=running.campaign.value, error=str(e)
            )
