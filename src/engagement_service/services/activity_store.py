"""Activity store contract.

The store owns the per-(user, product, action) counter rows and the read
paths the segment resolver and the scoring engine use. Implementations must
make `increment` atomic per tuple: two concurrent events for the same tuple
always produce a counter that moved by two.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from engagement_service.infrastructure.database.models import ActivityAction

# Counter touched by each action. account_created carries no counter.
COUNTER_FIELDS: dict[ActivityAction, str | None] = {
    ActivityAction.VIEWED: "views",
    ActivityAction.ADDED_TO_CART: "cart_adds",
    ActivityAction.BUY: "purchases",
    ActivityAction.ACCOUNT_CREATED: None,
}


def counter_field(action: ActivityAction) -> str | None:
    """Name of the counter an action increments."""
    return COUNTER_FIELDS[action]


@dataclass(frozen=True)
class ActivityRecord:
    """A single (user, product, action) counter row."""

    user_id: str
    product_id: str | None
    action: ActivityAction
    is_logged_in_user: bool = True
    views: int = 0
    purchases: int = 0
    cart_adds: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None

    @property
    def key(self) -> tuple[str, str | None, ActivityAction]:
        return (self.user_id, self.product_id, self.action)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "action": self.action.value,
            "is_logged_in_user": self.is_logged_in_user,
            "views": self.views,
            "purchases": self.purchases,
            "cart_adds": self.cart_adds,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class UserIdentity:
    """User attributes read from the account collaborator."""

    user_id: str
    username: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class ProductDetails:
    """Product attributes read from the catalog collaborator."""

    product_id: str
    name: str | None = None
    image: str | None = None
    price: float | None = None
    description: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class EnrichedActivity:
    """An activity row joined with its user and product, either may be missing."""

    record: ActivityRecord
    user: UserIdentity | None = None
    product: ProductDetails | None = None


@dataclass(frozen=True)
class IncrementResult:
    """Outcome of an upsert-increment."""

    record: ActivityRecord
    created: bool


class ActivityStore(ABC):
    """Durable per-tuple activity counters."""

    @abstractmethod
    async def increment(
        self,
        user_id: str,
        product_id: str | None,
        action: ActivityAction,
        is_logged_in_user: bool,
    ) -> IncrementResult:
        """Create the tuple's row or bump the counter matching `action`."""

    @abstractmethod
    async def get(
        self, user_id: str, product_id: str | None, action: ActivityAction
    ) -> ActivityRecord | None:
        """Fetch a single tuple's row."""

    @abstractmethod
    async def list_activities(
        self, action: ActivityAction | None = None
    ) -> list[EnrichedActivity]:
        """All rows (optionally for one action) joined with user and product."""

    @abstractmethod
    async def get_enriched(
        self, user_id: str, product_id: str | None, action: ActivityAction
    ) -> EnrichedActivity | None:
        """One tuple's row joined with user and product, None when absent."""
