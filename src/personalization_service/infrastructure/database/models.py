"""SQLAlchemy models for the personalization engine.

These models are stored in the 'personalization' schema. Products and orders
belong to the shop and are read from the public schema by raw queries.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Schema for all engine tables
SCHEMA = "personalization"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


# =============================================================================
# Preference Profiles
# =============================================================================


class UserPreferenceProfile(Base):
    """Survey answers plus interaction-derived affinities for one user.

    JSON (not JSONB) keeps the key order of ``category_frequency``, which
    breaks ties between equally weighted dashboard categories.
    """

    __tablename__ = "user_preference_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    survey_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    survey: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    category_frequency: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    category_weights: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    search_history: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    product_interactions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    dashboard_categories: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    engagement_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Incremented on every write
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


# =============================================================================
# Sustainability Goals
# =============================================================================


class SustainabilityGoalRow(Base):
    """A user's sustainability goal with its aggregate progress counters."""

    __tablename__ = "sustainability_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(300), default="", nullable=False)
    goal_type: Mapped[str] = mapped_column(String(32), nullable=False)
    goal_config: Mapped[dict] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Progress counters, updated with in-place increments
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goal_met_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    goal_met_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_purchases: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goal_met_purchases: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_percentage: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_sustainability_goals_user_active", "user_id", "is_active"),
        {"schema": SCHEMA},
    )


class GoalPurchaseLedger(Base):
    """Orders already counted towards a goal, so a purchase is never added twice."""

    __tablename__ = "goal_purchase_ledger"

    goal_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(f"{SCHEMA}.sustainability_goals.id", ondelete="CASCADE"),
        primary_key=True,
    )
    order_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    counted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = ({"schema": SCHEMA},)


# =============================================================================
# Notifications
# =============================================================================


class GoalNotification(Base):
    """Milestone notification, at most one per (user, goal, milestone)."""

    __tablename__ = "goal_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    goal_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(f"{SCHEMA}.sustainability_goals.id", ondelete="CASCADE"),
        nullable=False,
    )
    milestone_type: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    percentage: Mapped[float] = mapped_column(Float, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "goal_id", "milestone_type", name="uq_goal_notifications_milestone"
        ),
        {"schema": SCHEMA},
    )
