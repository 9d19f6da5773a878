"""Campaign notification dispatch.

Sends one rendered email per audience entry. Each recipient is isolated:
any failure for one entry is logged and counted, and the run moves on to
the next entry. A per-campaign
watermark keeps recipients whose activity has not changed from being
notified again on the next scheduled run.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable

import structlog

from engagement_service.config import CampaignConfig
from engagement_service.exceptions import ProviderSendFailure
from engagement_service.infrastructure.database.models import CampaignType
from engagement_service.notifications.email_sender import EmailSender
from engagement_service.notifications.renderer import CampaignRenderer
from engagement_service.services.campaign_state import CampaignStateStore
from engagement_service.services.segment_resolver import AudienceEntry

logger = structlog.get_logger()

# Marketing campaigns wait out the cooldown; confirmations go out for every new purchase
COOLDOWN_CAMPAIGNS = {CampaignType.ABANDONED_CART, CampaignType.FREQUENT_VIEWER}


class DispatchOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class DispatchSummary:
    """Counts for one batch of dispatches."""

    recipients: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    timed_out: int = 0
    outcomes: list[DispatchOutcome] = field(default_factory=list)

    def add(self, outcome: DispatchOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome == DispatchOutcome.SENT:
            self.sent += 1
        elif outcome == DispatchOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict[str, int]:
        return {
            "recipients": self.recipients,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "timed_out": self.timed_out,
        }


class NotificationDispatcher:
    """Renders and sends campaign emails with failure isolation."""

    def __init__(
        self,
        sender: EmailSender,
        state: CampaignStateStore,
        config: CampaignConfig,
        renderer: CampaignRenderer | None = None,
    ):
        self.sender = sender
        self.state = state
        self.config = config
        self.renderer = renderer or CampaignRenderer(config)

    async def should_notify(self, entry: AudienceEntry, now: datetime) -> bool:
        """
        Watermark check for one entry.

        A recipient is notified again only when the activity behind the entry
        is newer than the activity the last notification covered and the
        cooldown has elapsed. Activity is compared with activity and send
        time with send time, so the store and the app never need to agree on a clock.
        """
        watermark = await self.state.get_watermark(
            entry.campaign, entry.user_id, entry.product_id
        )
        if watermark is None:
            return True
        if entry.activity_at is None:
            return False
        if watermark.activity_at is not None and entry.activity_at <= watermark.activity_at:
            return False
        if entry.campaign not in COOLDOWN_CAMPAIGNS:
            return True
        return now - watermark.notified_at >= timedelta(hours=self.config.renotify_cooldown_hours)

    async def dispatch(self, entry: AudienceEntry, now: datetime | None = None) -> DispatchOutcome:
        """Send one campaign email. Never raises for provider problems."""
        now = now or datetime.now(timezone.utc)
        log = logger.bind(
            campaign=entry.campaign.value,
            user_id=entry.user_id,
            product_id=entry.product_id,
        )

        try:
            if not await self.should_notify(entry, now):
                log.debug("Recipient already notified, skipping")
                return DispatchOutcome.SKIPPED
        except Exception as e:
            log.error("Watermark lookup failed", error=str(e))
            return DispatchOutcome.FAILED

        try:
            message = self.renderer.render(entry)
            result = await asyncio.wait_for(
                self.sender.send(message), timeout=self.config.send_timeout_seconds
            )
            if not result.success:
                raise ProviderSendFailure("Provider rejected message", details=result.provider_details)
        except ProviderSendFailure as e:
            log.error("Email send failed", to_email=entry.email, error=str(e), details=e.details)
            return DispatchOutcome.FAILED
        except asyncio.TimeoutError:
            log.error(
                "Email send timed out",
                to_email=entry.email,
                timeout_seconds=self.config.send_timeout_seconds,
            )
            return DispatchOutcome.FAILED
        except Exception as e:
            log.error("Email dispatch error", to_email=entry.email, error=str(e), exc_info=True)
            return DispatchOutcome.FAILED

        log.info("Email sent", to_email=entry.email, message_id=result.message_id)
        try:
            await self.state.mark_notified(
                entry.campaign,
                entry.user_id,
                entry.product_id,
                notified_at=now,
                activity_at=entry.activity_at,
            )
        except Exception as e:
            log.error("Failed to advance campaign watermark", error=str(e))
        return DispatchOutcome.SENT

    async def dispatch_all(
        self,
        campaign: CampaignType,
        entries: Iterable[AudienceEntry],
        now: datetime | None = None,
    ) -> DispatchSummary:
        """
        Dispatch a whole audience.

        At most `max_concurrent_sends` sends run at once. Entries still
        pending when `run_deadline_seconds` expires are cancelled and
        counted as failed.
        """
        entries = list(entries)
        summary = DispatchSummary(recipients=len(entries))
        if not entries:
            return summary

        now = now or datetime.now(timezone.utc)
        sem = asyncio.Semaphore(self.config.max_concurrent_sends)

        async def bounded_dispatch(entry: AudienceEntry) -> DispatchOutcome:
            async with sem:
                return await self.dispatch(entry, now=now)

        tasks = [asyncio.create_task(bounded_dispatch(entry)) for entry in entries]
        done, pending = await asyncio.wait(tasks, timeout=self.config.run_deadline_seconds)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Campaign run deadline reached",
                campaign=campaign.value,
                unfinished=len(pending),
                deadline_seconds=self.config.run_deadline_seconds,
            )

        for task in tasks:
            if task in pending:
                summary.timed_out += 1
                summary.add(DispatchOutcome.FAILED)
            else:
                summary.add(task.result())

        logger.info("Campaign dispatch finished", campaign=campaign.value, **summary.to_dict())
        return summary
