"""PostgreSQL-backed activity store.

Counters live in engagement.user_activities. The upsert is a single
INSERT ... ON CONFLICT statement against the tuple's unique index, so
concurrent events for the same tuple never lose an increment.
"""

from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from engagement_service.exceptions import StoreUnavailable
from engagement_service.infrastructure.database.connection import is_connection_error
from engagement_service.infrastructure.database.models import ActivityAction
from engagement_service.services.activity_store import (
    ActivityRecord,
    ActivityStore,
    EnrichedActivity,
    IncrementResult,
    ProductDetails,
    UserIdentity,
    counter_field,
)

logger = structlog.get_logger()

# One statement per counter; the column name cannot be a bind parameter.
_UPSERT_SQL = """
    INSERT INTO engagement.user_activities
    (
        external_user_id,
        external_product_id,
        action,
        is_logged_in_user,
        views,
        purchases,
        cart_adds,
        created_at,
        updated_at
    )
    VALUES
    (
        :user_id,
        :product_id,
        :action,
        :is_logged_in_user,
        :views,
        :purchases,
        :cart_adds,
        NOW(),
        NOW()
    )
    ON CONFLICT (external_user_id, COALESCE(external_product_id, ''), action)
    DO UPDATE SET
        {assignment}
        updated_at = NOW()
    RETURNING
        id, external_user_id, external_product_id, action, is_logged_in_user,
        views, purchases, cart_adds, created_at, updated_at,
        (xmax = 0) AS inserted
"""


def _counter_assignment(action: ActivityAction) -> str:
    field_name = counter_field(action)
    if field_name is None:
        return ""
    return f"{field_name} = user_activities.{field_name} + 1,"


UPSERT_QUERIES = {
    action: text(_UPSERT_SQL.format(assignment=_counter_assignment(action)))
    for action in ActivityAction
}

SELECT_ONE_QUERY = text("""
    SELECT
        id, external_user_id, external_product_id, action, is_logged_in_user,
        views, purchases, cart_adds, created_at, updated_at
    FROM engagement.user_activities
    WHERE external_user_id = :user_id
    AND COALESCE(external_product_id, '') = COALESCE(:product_id, '')
    AND action = :action
""")

LIST_ENRICHED_QUERY = """
    SELECT
        ua.id,
        ua.external_user_id,
        ua.external_product_id,
        ua.action,
        ua.is_logged_in_user,
        ua.views,
        ua.purchases,
        ua.cart_adds,
        ua.created_at,
        ua.updated_at,
        u.id::text AS user_ref,
        u.username,
        u.email,
        p.id::text AS product_ref,
        p.name AS product_name,
        p.image AS product_image,
        p.price AS product_price,
        p.description AS product_description,
        c.name AS category_name
    FROM engagement.user_activities ua
    LEFT JOIN public.users u ON u.id::text = ua.external_user_id
    LEFT JOIN public.products p ON p.id::text = ua.external_product_id
    LEFT JOIN public.categories c ON c.id = p."categoryId"
    {where}
    ORDER BY ua.id
"""

GET_ENRICHED_QUERY = text(
    LIST_ENRICHED_QUERY.format(
        where="""
    WHERE ua.external_user_id = :user_id
    AND COALESCE(ua.external_product_id, '') = COALESCE(:product_id, '')
    AND ua.action = :action
"""
    )
)


def _action_from_db(value: Any) -> ActivityAction:
    """Enum columns come back as names when read through text()."""
    if isinstance(value, ActivityAction):
        return value
    try:
        return ActivityAction[str(value)]
    except KeyError:
        return ActivityAction(str(value))


def _enriched_from_row(row: Any) -> EnrichedActivity:
    user = None
    if row.user_ref is not None:
        user = UserIdentity(
            user_id=row.external_user_id,
            username=row.username,
            email=row.email,
        )
    product = None
    if row.product_ref is not None:
        product = ProductDetails(
            product_id=row.external_product_id,
            name=row.product_name,
            image=row.product_image,
            price=float(row.product_price) if row.product_price is not None else None,
            description=row.product_description,
            category=row.category_name,
        )
    return EnrichedActivity(record=_record_from_row(row), user=user, product=product)


def _raise_if_unreachable(error: Exception) -> None:
    if is_connection_error(error):
        logger.error("Activity store unavailable", error=str(error))
        raise StoreUnavailable(str(error)) from error


def _record_from_row(row: Any) -> ActivityRecord:
    return ActivityRecord(
        id=row.id,
        user_id=row.external_user_id,
        product_id=row.external_product_id,
        action=_action_from_db(row.action),
        is_logged_in_user=row.is_logged_in_user,
        views=row.views,
        purchases=row.purchases,
        cart_adds=row.cart_adds,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlActivityStore(ActivityStore):
    """ActivityStore over the engagement schema, joined with the store's tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, query, params: dict[str, Any] | None = None):
        try:
            return await self.session.execute(query, params or {})
        except Exception as e:
            _raise_if_unreachable(e)
            raise

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except Exception as e:
            _raise_if_unreachable(e)
            raise

    async def increment(
        self,
        user_id: str,
        product_id: str | None,
        action: ActivityAction,
        is_logged_in_user: bool,
    ) -> IncrementResult:
        field_name = counter_field(action)
        initial = {"views": 0, "purchases": 0, "cart_adds": 0}
        if field_name:
            initial[field_name] = 1

        result = await self._execute(
            UPSERT_QUERIES[action],
            {
                "user_id": user_id,
                "product_id": product_id,
                "action": action.name,
                "is_logged_in_user": is_logged_in_user,
                **initial,
            },
        )
        row = result.one()
        await self._commit()

        return IncrementResult(record=_record_from_row(row), created=bool(row.inserted))

    async def get(
        self, user_id: str, product_id: str | None, action: ActivityAction
    ) -> ActivityRecord | None:
        result = await self._execute(
            SELECT_ONE_QUERY,
            {"user_id": user_id, "product_id": product_id, "action": action.name},
        )
        row = result.first()
        return _record_from_row(row) if row else None

    async def list_activities(
        self, action: ActivityAction | None = None
    ) -> list[EnrichedActivity]:
        if action is None:
            query = text(LIST_ENRICHED_QUERY.format(where=""))
            params: dict[str, Any] = {}
        else:
            query = text(LIST_ENRICHED_QUERY.format(where="WHERE ua.action = :action"))
            params = {"action": action.name}

        result = await self._execute(query, params)
        return [_enriched_from_row(row) for row in result.fetchall()]

    async def get_enriched(
        self, user_id: str, product_id: str | None, action: ActivityAction
    ) -> EnrichedActivity | None:
        result = await self._execute(
            GET_ENRICHED_QUERY,
            {"user_id": user_id, "product_id": product_id, "action": action.name},
        )
        row = result.first()
        return _enriched_from_row(row) if row else None
