"""Engagement scoring and lead ranking.

Pure functions: the only input is the list of activity rows, so the
leaderboard can be recomputed on every request.
"""

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from engagement_service.infrastructure.database.models import ActivityAction
from engagement_service.services.activity_store import EnrichedActivity
from shared.constants import SCORE_WEIGHTS


@dataclass
class LeadAggregate:
    """Per-user activity totals and weighted engagement score."""

    user_id: str
    username: str | None
    email: str | None
    buys: int = 0
    views: int = 0
    cart_adds: int = 0
    total_actions: int = 0
    weighted_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LeaderboardSummary:
    """Totals across every ranked user."""

    users: int
    total_buys: int
    total_views: int
    total_cart_adds: int


def weighted_score(buys: int, cart_adds: int, views: int) -> int:
    """Purchases count 3, cart additions 2, views 1."""
    return (
        buys * SCORE_WEIGHTS["buys"]
        + cart_adds * SCORE_WEIGHTS["cart_adds"]
        + views * SCORE_WEIGHTS["views"]
    )


def aggregate_leads(activities: Iterable[EnrichedActivity]) -> list[LeadAggregate]:
    """
    Group activity rows by user and total their counters.

    Each row contributes only the counter that belongs to its action. Rows
    whose user cannot be resolved are left out. Users appear in the order
    they are first seen.
    """
    leads: dict[str, LeadAggregate] = {}

    for activity in activities:
        if activity.user is None:
            continue

        record = activity.record
        lead = leads.get(record.user_id)
        if lead is None:
            lead = LeadAggregate(
                user_id=record.user_id,
                username=activity.user.username,
                email=activity.user.email,
            )
            leads[record.user_id] = lead

        match record.action:
            case ActivityAction.BUY:
                lead.buys += record.purchases
            case ActivityAction.VIEWED:
                lead.views += record.views
            case ActivityAction.ADDED_TO_CART:
                lead.cart_adds += record.cart_adds
            case ActivityAction.ACCOUNT_CREATED:
                pass

    for lead in leads.values():
        lead.total_actions = lead.buys + lead.views + lead.cart_adds
        lead.weighted_score = weighted_score(lead.buys, lead.cart_adds, lead.views)

    return list(leads.values())


def compute_leaderboard(activities: Iterable[EnrichedActivity]) -> list[LeadAggregate]:
    """Rank users by weighted score, highest first.

    Ties keep first-seen order, so the ranking is deterministic for a
    given input.
    """
    return sorted(aggregate_leads(activities), key=lambda lead: lead.weighted_score, reverse=True)


def most_engaged(leaderboard: list[LeadAggregate]) -> LeadAggregate | None:
    """The top-ranked user, if any."""
    return leaderboard[0] if leaderboard else None


def summarize(leaderboard: list[LeadAggregate]) -> LeaderboardSummary:
    """Dashboard totals across the leaderboard."""
    return LeaderboardSummary(
        users=len(leaderboard),
        total_buys=sum(lead.buys for lead in leaderboard),
        total_views=sum(lead.views for lead in leaderboard),
        total_cart_adds=sum(lead.cart_adds for lead in leaderboard),
    )
