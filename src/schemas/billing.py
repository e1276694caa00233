"""Pydantic schemas for billing, limits and usage."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.db.models.user import User
from src.services.plans import (
    ActionKind, DecrementKind, PlanLimits, PlanTier, Resource
)


class LimitsRead(BaseModel):
    """Per-resource ceilings; ``null`` means unlimited."""

    monthly_transactions: Optional[int] = None
    active_debts: Optional[int] = None
    recurring_transactions: Optional[int] = None
    categories: Optional[int] = None

    @classmethod
    def from_limits(cls, limits: PlanLimits) -> "LimitsRead":
        return cls(**{r.value: limits.for_resource(r) for r in Resource})


class UsageRead(BaseModel):
    monthly_transactions: int = 0
    active_debts: int = 0
    recurring_transactions: int = 0
    categories: int = 0
    last_reset_date: datetime

    @classmethod
    def from_user(cls, user: User) -> "UsageRead":
        return cls(
            last_reset_date=user.last_reset_date,
            **{r.value: user.usage_for(r) for r in Resource},
        )

    def for_resource(self, resource: Resource) -> int:
        return getattr(self, resource.value)


class PlanInfo(BaseModel):
    """Snapshot of a user's billing record."""

    plan: PlanTier
    plan_expiry: Optional[datetime] = None
    subscribed_since: Optional[datetime] = None
    usage: UsageRead
    limits: LimitsRead

    @classmethod
    def from_user(cls, user: User) -> "PlanInfo":
        return cls(
            plan=user.plan_tier,
            plan_expiry=user.plan_expiry,
            subscribed_since=user.subscribed_since,
            usage=UsageRead.from_user(user),
            limits=LimitsRead.from_limits(user.limits),
        )


class UserRead(PlanInfo):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    subscription_status: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserRead":
        info = PlanInfo.from_user(user)
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            subscription_status=user.subscription_status,
            **info.model_dump(),
        )


class UserBootstrap(BaseModel):
    email: Optional[str] = Field(default=None, description="Contact email")
    name: Optional[str] = Field(default=None, description="Display name")


class LimitCheckRequest(BaseModel):
    action: ActionKind = Field(..., description="Creation action to check")


class LimitCheck(BaseModel):
    """Outcome of a limit check. Reaching a ceiling is not an error."""

    can_perform: bool
    current_usage: int
    limit: Optional[int] = None
    usage: UsageRead
    limits: LimitsRead
    plan: PlanTier
    needs_reset: bool = False


class UsageIncrementRequest(BaseModel):
    action: ActionKind


class UsageDecrementRequest(BaseModel):
    action: DecrementKind


class UsageChange(BaseModel):
    success: bool = True
    usage: UsageRead


class Reservation(BaseModel):
    """Result of an atomic check-and-increment."""

    granted: bool
    current_usage: int
    limit: Optional[int] = None
    plan: PlanTier


class UsageAlert(BaseModel):
    resource: Resource
    usage: int
    limit: Optional[int] = None
    percentage: float
    near_limit: bool
    at_limit: bool


class UsageSummary(BaseModel):
    plan: PlanTier
    resources: List[UsageAlert]


class PlanChange(BaseModel):
    success: bool = True
    plan: PlanTier
    plan_expiry: Optional[datetime] = None
    limits: LimitsRead


class CheckoutRequest(BaseModel):
    plan: str = Field(..., description="Plan to purchase; only 'premium' is sold")


class CheckoutResponse(BaseModel):
    url: Optional[str] = None
    session_id: str
