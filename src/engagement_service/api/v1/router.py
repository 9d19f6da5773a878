"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from engagement_service.api.v1 import (
    activities,
    health,
    leads,
    orders,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    activities.router,
    prefix="/activities",
    tags=["Activities"],
)

api_router.include_router(
    leads.router,
    prefix="/leads",
    tags=["Leads"],
)

api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"],
)
