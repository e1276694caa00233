"""User billing record."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base
from src.services.plans import PlanLimits, PlanTier, Resource


class User(Base):
    """Represents an application user together with plan, limits and usage."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    plan: Mapped[str] = mapped_column(
        String, nullable=False, default=PlanTier.FREE.value
    )
    plan_expiry: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    subscribed_since: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String, nullable=True
    )
    subscription_status: Mapped[Optional[str]] = mapped_column(
        String, nullable=True
    )

    # NULL ceilings are unlimited
    limit_monthly_transactions: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )
    limit_active_debts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    limit_recurring_transactions: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )
    limit_categories: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    usage_monthly_transactions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    usage_active_debts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_recurring_transactions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    usage_categories: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reset_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = tuple(
        CheckConstraint(f"usage_{r.value} >= 0", name=f"ck_users_usage_{r.value}_nonneg")
        for r in Resource
    )

    @property
    def plan_tier(self) -> PlanTier:
        return PlanTier(self.plan)

    @property
    def is_premium(self) -> bool:
        return self.plan_tier is PlanTier.PREMIUM

    @property
    def limits(self) -> PlanLimits:
        return PlanLimits(
            monthly_transactions=self.limit_monthly_transactions,
            active_debts=self.limit_active_debts,
            recurring_transactions=self.limit_recurring_transactions,
            categories=self.limit_categories,
        )

    def apply_limits(self, limits: PlanLimits) -> None:
        for resource in Resource:
            setattr(self, f"limit_{resource.value}", limits.for_resource(resource))

    def usage_for(self, resource: Resource) -> int:
        return getattr(self, f"usage_{resource.value}")

    def set_usage(self, resource: Resource, value: int) -> None:
        setattr(self, f"usage_{resource.value}", max(0, value))

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<User {self.id} plan={self.plan}>"
