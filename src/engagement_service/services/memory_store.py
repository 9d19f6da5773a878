"""In-memory activity store for development and tests.

Holds counter rows in a dict keyed by (user, product, action) and a small
directory of users and products standing in for the account and catalog
collaborators. Each tuple's read-modify-write runs under its own lock.
Timestamps come from `clock`, timezone-aware UTC by default.
"""

import asyncio
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

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

ActivityKey = tuple[str, str | None, ActivityAction]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryActivityStore(ActivityStore):
    """Dict-backed ActivityStore with per-tuple locking."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.clock = clock or _utcnow
        self._records: dict[ActivityKey, ActivityRecord] = {}
        self._locks: defaultdict[ActivityKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._next_id = 1
        self.users: dict[str, UserIdentity] = {}
        self.products: dict[str, ProductDetails] = {}

    # -------------------------------------------------------------------------
    # Collaborator directory
    # -------------------------------------------------------------------------

    def add_user(self, user_id: str, username: str | None = None, email: str | None = None) -> UserIdentity:
        user = UserIdentity(user_id=user_id, username=username, email=email)
        self.users[user_id] = user
        return user

    def add_product(self, product_id: str, **attrs) -> ProductDetails:
        product = ProductDetails(product_id=product_id, **attrs)
        self.products[product_id] = product
        return product

    # -------------------------------------------------------------------------
    # ActivityStore
    # -------------------------------------------------------------------------

    async def increment(
        self,
        user_id: str,
        product_id: str | None,
        action: ActivityAction,
        is_logged_in_user: bool,
    ) -> IncrementResult:
        key = (user_id, product_id, action)
        field_name = counter_field(action)

        async with self._locks[key]:
            now = self.clock()
            existing = self._records.get(key)

            if existing is None:
                record = ActivityRecord(
                    id=self._next_id,
                    user_id=user_id,
                    product_id=product_id,
                    action=action,
                    is_logged_in_user=is_logged_in_user,
                    created_at=now,
                    updated_at=now,
                    **({field_name: 1} if field_name else {}),
                )
                self._next_id += 1
                created = True
            else:
                changes = {"updated_at": now}
                if field_name:
                    changes[field_name] = getattr(existing, field_name) + 1
                # Yield while holding the lock so concurrent writers for the
                # same tuple really do queue up behind each other.
                await asyncio.sleep(0)
                record = replace(existing, **changes)
                created = False

            self._records[key] = record

        return IncrementResult(record=record, created=created)

    async def get(
        self, user_id: str, product_id: str | None, action: ActivityAction
    ) -> ActivityRecord | None:
        return self._records.get((user_id, product_id, action))

    async def list_activities(
        self, action: ActivityAction | None = None
    ) -> list[EnrichedActivity]:
        return [
            self._enrich(record)
            for record in self._records.values()
            if action is None or record.action == action
        ]

    async def get_enriched(
        self, user_id: str, product_id: str | None, action: ActivityAction
    ) -> EnrichedActivity | None:
        record = self._records.get((user_id, product_id, action))
        return self._enrich(record) if record else None

    def _enrich(self, record: ActivityRecord) -> EnrichedActivity:
        return EnrichedActivity(
            record=record,
            user=self.users.get(record.user_id),
            product=self.products.get(record.product_id) if record.product_id else None,
        )

    def touch(self, user_id: str, product_id: str | None, action: ActivityAction, at: datetime) -> None:
        """Move a row's updated_at, used to simulate aged activity."""
        key = (user_id, product_id, action)
        self._records[key] = replace(self._records[key], updated_at=at)
