"""SQLAlchemy models for the engagement core.

These models are stored in the 'engagement' schema, separate from the
e-commerce tables but in the same database for efficient joins with
public.users and public.products.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Schema for all engagement tables
SCHEMA = "engagement"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


# =============================================================================
# Enums
# =============================================================================


class ActivityAction(str, PyEnum):
    """Trackable user actions."""

    VIEWED = "viewed"
    ADDED_TO_CART = "added_to_cart"
    BUY = "buy"
    ACCOUNT_CREATED = "account_created"


class CampaignType(str, PyEnum):
    """Lifecycle email campaigns."""

    ABANDONED_CART = "abandoned_cart"
    FREQUENT_VIEWER = "frequent_viewer"
    PURCHASE_CONFIRMATION = "purchase_confirmation"


class CampaignState(str, PyEnum):
    """States of a scheduled campaign job."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# User Activities
# =============================================================================


class UserActivity(Base):
    """One counter row per (user, product, action) tuple."""

    __tablename__ = "user_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    external_product_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    action: Mapped[ActivityAction] = mapped_column(
        Enum(ActivityAction, schema=SCHEMA), nullable=False, index=True
    )
    is_logged_in_user: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Counters, only the one matching `action` ever moves
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    purchases: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cart_adds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index(
            "uq_user_activities_tuple",
            "external_user_id",
            text("COALESCE(external_product_id, '')"),
            "action",
            unique=True,
        ),
        Index("ix_user_activities_action_product", "action", "external_product_id"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Campaign Watermarks
# =============================================================================


class CampaignWatermark(Base):
    """Last successful notification per campaign, user and product."""

    __tablename__ = "campaign_watermarks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_type: Mapped[CampaignType] = mapped_column(
        Enum(CampaignType, schema=SCHEMA), nullable=False
    )
    external_user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    external_product_id: Mapped[Optional[str]] = mapped_column(String(255))

    last_notified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notification_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index(
            "uq_campaign_watermarks_target",
            "campaign_type",
            "external_user_id",
            text("COALESCE(external_product_id, '')"),
            unique=True,
        ),
        {"schema": SCHEMA},
    )


# =============================================================================
# Campaign Runs
# =============================================================================


class CampaignRun(Base):
    """Current state and last outcome of each scheduled campaign."""

    __tablename__ = "campaign_runs"

    campaign_type: Mapped[CampaignType] = mapped_column(
        Enum(CampaignType, schema=SCHEMA), primary_key=True
    )
    state: Mapped[CampaignState] = mapped_column(
        Enum(CampaignState, schema=SCHEMA), default=CampaignState.IDLE, nullable=False
    )
    last_outcome: Mapped[Optional[CampaignState]] = mapped_column(
        Enum(CampaignState, schema=SCHEMA)
    )
    last_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    recipients: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = ({"schema": SCHEMA},)
