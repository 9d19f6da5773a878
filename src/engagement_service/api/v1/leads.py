"""Lead reporting endpoints for the admin dashboard."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from engagement_service.api.deps import get_activity_store
from engagement_service.infrastructure.redis import CacheService, get_cache
from engagement_service.services.activity_store import ActivityStore
from engagement_service.services.scoring import compute_leaderboard, most_engaged, summarize
from shared.constants import LEADERBOARD_CACHE_KEY, LEADERBOARD_CACHE_TTL_SECONDS

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================


class LeadUser(BaseModel):
    id: str
    username: str | None
    email: str | None


class LeadProduct(BaseModel):
    id: str
    name: str | None
    price: float | None
    category: str | None


class LeadActivity(BaseModel):
    """An activity record with its user and product populated."""

    id: int | None
    user: LeadUser
    product: LeadProduct | None
    action: str
    is_logged_in_user: bool
    views: int
    purchases: int
    cart_adds: int
    created_at: str | None
    updated_at: str | None


class Lead(BaseModel):
    """Per-user totals and weighted engagement score."""

    rank: int
    user_id: str
    username: str | None
    email: str | None
    buys: int
    views: int
    cart_adds: int
    total_actions: int
    weighted_score: int


class LeaderboardSummaryResponse(BaseModel):
    users: int
    total_buys: int
    total_views: int
    total_cart_adds: int


class LeaderboardResponse(BaseModel):
    leads: list[Lead]
    most_engaged: Lead | None
    summary: LeaderboardSummaryResponse


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=list[LeadActivity])
async def get_leads(store: ActivityStore = Depends(get_activity_store)) -> list[LeadActivity]:
    """
    All activity records enriched with user and product details.

    Records whose user cannot be resolved (deleted accounts, stray ids) are
    left out.
    """
    leads = []
    for activity in await store.list_activities():
        if activity.user is None:
            continue
        record = activity.record
        product = None
        if activity.product is not None:
            product = LeadProduct(
                id=activity.product.product_id,
                name=activity.product.name,
                price=activity.product.price,
                category=activity.product.category,
            )
        leads.append(
            LeadActivity(
                id=record.id,
                user=LeadUser(
                    id=activity.user.user_id,
                    username=activity.user.username,
                    email=activity.user.email,
                ),
                product=product,
                action=record.action.value,
                is_logged_in_user=record.is_logged_in_user,
                views=record.views,
                purchases=record.purchases,
                cart_adds=record.cart_adds,
                created_at=record.created_at.isoformat() if record.created_at else None,
                updated_at=record.updated_at.isoformat() if record.updated_at else None,
            )
        )
    return leads


async def _leaderboard(store: ActivityStore, cache: CacheService) -> LeaderboardResponse:
    cached = await cache.get(LEADERBOARD_CACHE_KEY)
    if cached is not None:
        return LeaderboardResponse.model_validate(cached)

    ranked = compute_leaderboard(await store.list_activities())
    leads = [Lead(rank=i, **lead.to_dict()) for i, lead in enumerate(ranked, start=1)]
    top = most_engaged(ranked)
    summary = summarize(ranked)

    leaderboard = LeaderboardResponse(
        leads=leads,
        most_engaged=leads[0] if top else None,
        summary=LeaderboardSummaryResponse(
            users=summary.users,
            total_buys=summary.total_buys,
            total_views=summary.total_views,
            total_cart_adds=summary.total_cart_adds,
        ),
    )
    await cache.set(
        LEADERBOARD_CACHE_KEY,
        leaderboard.model_dump(),
        ttl_seconds=LEADERBOARD_CACHE_TTL_SECONDS,
    )
    return leaderboard


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    store: ActivityStore = Depends(get_activity_store),
    cache: CacheService = Depends(get_cache),
) -> LeaderboardResponse:
    """
    Users ranked by weighted engagement score.

    **Score** = (Purchases × 3) + (Cart Additions × 2) + (Views × 1)

    Ties keep the order in which users first appear in the activity log.
    """
    return await _leaderboard(store, cache)


@router.get("/top", response_model=Lead)
async def get_most_engaged_user(
    store: ActivityStore = Depends(get_activity_store),
    cache: CacheService = Depends(get_cache),
) -> Lead:
    """The user with the highest weighted engagement score."""
    leaderboard = await _leaderboard(store, cache)
    if leaderboard.most_engaged is None:
        raise HTTPException(status_code=404, detail="No leads data has been collected yet")
    return leaderboard.most_engaged
