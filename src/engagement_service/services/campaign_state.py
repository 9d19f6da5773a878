"""Campaign state contract: notification watermarks and run records."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime

from engagement_service.exceptions import InvalidTransition
from engagement_service.infrastructure.database.models import CampaignState, CampaignType

# Allowed state changes for a scheduled campaign job
TRANSITIONS: dict[CampaignState, set[CampaignState]] = {
    CampaignState.IDLE: {CampaignState.RUNNING},
    CampaignState.RUNNING: {CampaignState.COMPLETED, CampaignState.FAILED},
    CampaignState.COMPLETED: {CampaignState.IDLE},
    CampaignState.FAILED: {CampaignState.IDLE},
}


@dataclass(frozen=True)
class Watermark:
    """
    Last successful notification for one (campaign, user, product) target.

    `notified_at` is the application's send time and only ever meets other
    application timestamps (the cooldown). `activity_at` is the activity
    timestamp the send covered, as written by the activity store, so later
    activity is compared against a value from the same clock.
    """

    notified_at: datetime
    activity_at: datetime | None = None


@dataclass(frozen=True)
class CampaignRunRecord:
    """Snapshot of a campaign job's state machine and last run counts."""

    campaign: CampaignType
    state: CampaignState = CampaignState.IDLE
    last_outcome: CampaignState | None = None
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    recipients: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    error_message: str | None = None

    def transition(self, new_state: CampaignState, **changes) -> "CampaignRunRecord":
        """Return a copy in `new_state`, refusing transitions the machine forbids."""
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"{self.campaign.value}: {self.state.value} -> {new_state.value}"
            )
        return replace(self, state=new_state, **changes)

    def is_claimable(self, stale_before: datetime) -> bool:
        """Whether a new run may take over: not running, or running since before `stale_before`."""
        if self.state != CampaignState.RUNNING:
            return True
        return self.last_started_at is None or self.last_started_at < stale_before


class CampaignStateStore(ABC):
    """Persistence for per-campaign watermarks and run records."""

    @abstractmethod
    async def get_watermark(
        self, campaign: CampaignType, user_id: str, product_id: str | None
    ) -> Watermark | None:
        """The target's last successful notification, if ever."""

    @abstractmethod
    async def mark_notified(
        self,
        campaign: CampaignType,
        user_id: str,
        product_id: str | None,
        notified_at: datetime,
        activity_at: datetime | None,
    ) -> None:
        """Advance the watermark after a successful send."""

    @abstractmethod
    async def claim_run(
        self, campaign: CampaignType, started_at: datetime, stale_before: datetime
    ) -> CampaignRunRecord | None:
        """
        Atomically move the campaign to RUNNING.

        Returns the RUNNING record, or None when another run holds the
        campaign and started at or after `stale_before`.
        """

    @abstractmethod
    async def get_run(self, campaign: CampaignType) -> CampaignRunRecord:
        """Current run record, IDLE when the campaign never ran."""

    @abstractmethod
    async def save_run(self, run: CampaignRunRecord) -> None:
        """Persist a run record."""


@dataclass
class InMemoryCampaignStateStore(CampaignStateStore):
    """Process-local campaign state for development and tests."""

    watermarks: dict[tuple[CampaignType, str, str | None], Watermark] = field(default_factory=dict)
    notification_counts: dict[tuple[CampaignType, str, str | None], int] = field(
        default_factory=dict
    )
    runs: dict[CampaignType, CampaignRunRecord] = field(default_factory=dict)
    history: list[CampaignRunRecord] = field(default_factory=list)

    async def get_watermark(
        self, campaign: CampaignType, user_id: str, product_id: str | None
    ) -> Watermark | None:
        return self.watermarks.get((campaign, user_id, product_id))

    async def mark_notified(
        self,
        campaign: CampaignType,
        user_id: str,
        product_id: str | None,
        notified_at: datetime,
        activity_at: datetime | None,
    ) -> None:
        key = (campaign, user_id, product_id)
        current = self.watermarks.get(key)
        if current is not None:
            notified_at = max(notified_at, current.notified_at)
            if activity_at is None or (current.activity_at and current.activity_at > activity_at):
                activity_at = current.activity_at
        self.watermarks[key] = Watermark(notified_at=notified_at, activity_at=activity_at)
        self.notification_counts[key] = self.notification_counts.get(key, 0) + 1

    async def claim_run(
        self, campaign: CampaignType, started_at: datetime, stale_before: datetime
    ) -> CampaignRunRecord | None:
        # No await between the check and the write, so the claim is atomic
        # within the event loop.
        previous = self.runs.get(campaign) or CampaignRunRecord(campaign=campaign)
        if not previous.is_claimable(stale_before):
            return None

        run = CampaignRunRecord(
            campaign=campaign,
            state=CampaignState.RUNNING,
            last_outcome=previous.last_outcome,
            last_started_at=started_at,
            last_finished_at=previous.last_finished_at,
        )
        self.runs[campaign] = run
        self.history.append(run)
        return run

    async def get_run(self, campaign: CampaignType) -> CampaignRunRecord:
        return self.runs.get(campaign) or CampaignRunRecord(campaign=campaign)

    async def save_run(self, run: CampaignRunRecord) -> None:
        self.runs[run.campaign] = run
        self.history.append(run)
