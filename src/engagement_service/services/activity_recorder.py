"""Activity event ingestion.

Validates incoming events, separates anonymous from authenticated actors
and turns each authenticated event into exactly one atomic counter update.
"""

from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import structlog

from engagement_service.exceptions import InvalidAction, InvalidEvent
from engagement_service.infrastructure.database.models import ActivityAction
from engagement_service.services.activity_store import ActivityRecord, ActivityStore

logger = structlog.get_logger()

# Actions that must reference a product
PRODUCT_ACTIONS = {
    ActivityAction.VIEWED,
    ActivityAction.ADDED_TO_CART,
    ActivityAction.BUY,
}


def parse_action(action: Any) -> ActivityAction:
    """Coerce a raw action into the closed ActivityAction set.

    Raises:
        InvalidAction: if the value is not a trackable action
    """
    if isinstance(action, ActivityAction):
        return action
    try:
        return ActivityAction(action)
    except ValueError:
        raise InvalidAction(action) from None


@dataclass(frozen=True)
class RecordResult:
    """Result of submitting one activity event.

    Anonymous submissions only carry a freshly minted `anonymous_user_id`;
    authenticated submissions carry the created or updated record.
    """

    record: ActivityRecord | None = None
    created: bool = False
    anonymous_user_id: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.anonymous_user_id is not None


class ActivityRecorder:
    """Records user activity events against the activity store."""

    def __init__(self, store: ActivityStore):
        self.store = store

    async def record(
        self,
        user_id: str | None,
        product_id: str | None,
        action: Any,
        is_logged_in_user: bool,
    ) -> RecordResult:
        """
        Record a single activity event.

        Anonymous activity is not persisted: the caller receives a generated
        identifier and is expected to re-submit once the actor signs in.

        Args:
            user_id: Durable user identifier (required when logged in)
            product_id: Product identifier (required except for account_created)
            action: One of viewed, added_to_cart, buy, account_created
            is_logged_in_user: Whether the actor is authenticated

        Returns:
            RecordResult: the anonymous id, or the record and whether it was created

        Raises:
            InvalidAction: unknown action, nothing is written
            InvalidEvent: missing identifiers, nothing is written
        """
        parsed = parse_action(action)

        if not is_logged_in_user:
            anonymous_id = str(uuid4())
            logger.debug(
                "Anonymous activity discarded",
                action=parsed.value,
                product_id=product_id,
                anonymous_user_id=anonymous_id,
            )
            return RecordResult(anonymous_user_id=anonymous_id)

        if not user_id:
            raise InvalidEvent("user_id is required for logged-in activity")

        if parsed in PRODUCT_ACTIONS and not product_id:
            raise InvalidEvent(f"product_id is required for {parsed.value} activity")

        if parsed == ActivityAction.ACCOUNT_CREATED:
            product_id = None

        result = await self.store.increment(
            user_id=user_id,
            product_id=product_id,
            action=parsed,
            is_logged_in_user=True,
        )

        logger.info(
            "activity_recorded",
            user_id=user_id,
            product_id=product_id,
            action=parsed.value,
            created=result.created,
            views=result.record.views,
            purchases=result.record.purchases,
            cart_adds=result.record.cart_adds,
        )

        return RecordResult(record=result.record, created=result.created)

    async def record_account_created(self, user_id: str) -> RecordResult:
        """Track a newly created account."""
        return await self.record(
            user_id=user_id,
            product_id=None,
            action=ActivityAction.ACCOUNT_CREATED,
            is_logged_in_user=True,
        )
