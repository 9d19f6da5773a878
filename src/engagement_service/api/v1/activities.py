"""Activity event submission endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from engagement_service.api.deps import get_recorder
from engagement_service.infrastructure.redis import CacheService, get_cache
from engagement_service.services.activity_recorder import ActivityRecorder
from shared.constants import LEADERBOARD_CACHE_KEY

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class ActivityRequest(BaseModel):
    """Request model for tracking a user activity."""

    user_id: str | None = Field(None, description="User identifier (required when logged in)")
    product_id: str | None = Field(
        None, description="Product identifier (required except for account_created)"
    )
    is_logged_in_user: bool = Field(False, description="Whether the actor is authenticated")
    action: str = Field(
        ..., description="One of viewed, added_to_cart, buy, account_created"
    )


class AnonymousActivityResponse(BaseModel):
    """Response for anonymous actors: a generated identifier, nothing stored."""

    user_id: str


class ActivityResponse(BaseModel):
    """The created or updated activity record."""

    id: int | None
    user_id: str
    product_id: str | None
    action: str
    is_logged_in_user: bool
    views: int
    purchases: int
    cart_adds: int
    created_at: str | None
    updated_at: str | None


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "",
    response_model=ActivityResponse | AnonymousActivityResponse,
    responses={201: {"model": ActivityResponse}},
)
async def track_activity(
    activity: ActivityRequest,
    response: Response,
    recorder: ActivityRecorder = Depends(get_recorder),
    cache: CacheService = Depends(get_cache),
) -> Any:
    """
    Track a single user activity.

    **Actions:**
    - `viewed`: User viewed a product page
    - `added_to_cart`: User added a product to the cart
    - `buy`: User purchased a product
    - `account_created`: User signed up

    Repeated events for the same user, product and action update one record.
    Anonymous actors (`is_logged_in_user: false`) receive a generated
    `user_id` and nothing is stored.
    """
    result = await recorder.record(
        user_id=activity.user_id,
        product_id=activity.product_id,
        action=activity.action,
        is_logged_in_user=activity.is_logged_in_user,
    )

    if result.is_anonymous:
        return AnonymousActivityResponse(user_id=result.anonymous_user_id)

    await cache.delete(LEADERBOARD_CACHE_KEY)

    if result.created:
        response.status_code = status.HTTP_201_CREATED
    return ActivityResponse(**result.record.to_dict())
