"""Usage accounting and plan transitions for user billing records.

Free users are gated by per-resource ceilings. The transaction counter rolls
over on a fixed 30-day window; the other counters are running totals kept in
step by explicit increment/decrement calls from the create/delete paths.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.db.models.user import User
from src.repositories.user_repo import UserRepo
from src.schemas.billing import (
    LimitCheck, LimitsRead, PlanChange, PlanInfo, Reservation, UsageRead
)
from src.services.plans import (
    UNLIMITED, ActionKind, DecrementKind, PlanTier, Resource, free_plan_limits
)


logger = logging.getLogger(__name__)

SUBSCRIPTION_STATUSES = {"active", "canceled", "past_due", "unpaid"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def usage_window() -> timedelta:
    return timedelta(days=settings.billing.usage_window_days)


def needs_monthly_reset(user: User, now: datetime) -> bool:
    if user.is_premium:
        return False
    return as_utc(now) - as_utc(user.last_reset_date) > usage_window()


async def _apply_monthly_reset(repo: UserRepo, user: User, now: datetime) -> bool:
    if not needs_monthly_reset(user, now):
        return False
    user.set_usage(Resource.MONTHLY_TRANSACTIONS, 0)
    user.last_reset_date = now
    await repo.save(user)
    logger.info(f"Monthly transaction usage reset for user {user.id}")
    return True


async def ensure_user(
    session: AsyncSession,
    user_id: str,
    *,
    email: Optional[str] = None,
    name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> User:
    """Return the billing record for ``user_id``, creating a free one if absent."""

    repo = UserRepo(session)
    user = await repo.get(user_id)
    if user is not None:
        return user
    user = await repo.create(
        user_id, free_plan_limits(), now or utcnow(), email=email, name=name
    )
    logger.info(f"Created billing record for user {user_id}")
    return user


async def check_limit(
    session: AsyncSession,
    user_id: str,
    action: ActionKind,
    *,
    now: Optional[datetime] = None,
) -> LimitCheck:
    """Report whether ``user_id`` may perform ``action``.

    For free users a due monthly reset is persisted before comparing. The
    comparison is strict, so a counter equal to its ceiling blocks.
    """

    now = now or utcnow()
    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    resource = action.resource
    limit = user.limits.for_resource(resource)

    if user.is_premium:
        return _limit_check(user, resource, limit, can_perform=True, needs_reset=False)

    reset = await _apply_monthly_reset(repo, user, now)
    current = user.usage_for(resource)
    can_perform = limit is None or current < limit
    return _limit_check(user, resource, limit, can_perform=can_perform, needs_reset=reset)


def _limit_check(
    user: User,
    resource: Resource,
    limit: Optional[int],
    *,
    can_perform: bool,
    needs_reset: bool,
) -> LimitCheck:
    return LimitCheck(
        can_perform=can_perform,
        current_usage=user.usage_for(resource),
        limit=limit,
        usage=UsageRead.from_user(user),
        limits=LimitsRead.from_limits(user.limits),
        plan=user.plan_tier,
        needs_reset=needs_reset,
    )


async def increment_usage(
    session: AsyncSession, user_id: str, action: ActionKind
) -> UsageRead:
    """Add one to the counter behind ``action``. Ceilings are not enforced here."""

    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    resource = action.resource
    user.set_usage(resource, user.usage_for(resource) + 1)
    await repo.save(user)
    return UsageRead.from_user(user)


async def decrement_usage(
    session: AsyncSession, user_id: str, kind: DecrementKind
) -> UsageRead:
    """Release one slot of the counter behind ``kind``, floored at zero."""

    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    resource = kind.resource
    user.set_usage(resource, user.usage_for(resource) - 1)
    await repo.save(user)
    return UsageRead.from_user(user)


async def reserve_usage(
    session: AsyncSession,
    user_id: str,
    action: ActionKind,
    *,
    now: Optional[datetime] = None,
) -> Reservation:
    """Check and increment in one conditional update.

    Two concurrent reservations against the last free slot cannot both
    succeed, unlike a separate :func:`check_limit` followed by
    :func:`increment_usage`.
    """

    now = now or utcnow()
    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    await _apply_monthly_reset(repo, user, now)

    resource = action.resource
    granted = await repo.increment_if_below_limit(user_id, resource)
    await session.refresh(user)
    if not granted:
        logger.info(f"Reservation of {resource.value} denied for user {user_id}")
    return Reservation(
        granted=granted,
        current_usage=user.usage_for(resource),
        limit=user.limits.for_resource(resource),
        plan=user.plan_tier,
    )


async def reset_monthly_usage(
    session: AsyncSession, user_id: str, *, now: Optional[datetime] = None
) -> UsageRead:
    """Zero the transaction counter and restart its window unconditionally."""

    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    user.set_usage(Resource.MONTHLY_TRANSACTIONS, 0)
    user.last_reset_date = now or utcnow()
    await repo.save(user)
    return UsageRead.from_user(user)


async def get_user_plan_info(session: AsyncSession, user_id: str) -> PlanInfo:
    user = await UserRepo(session).get_or_raise(user_id)
    return PlanInfo.from_user(user)


async def upgrade_to_premium(
    session: AsyncSession,
    user_id: str,
    *,
    customer_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PlanChange:
    """Move a user onto the premium plan.

    Every field is written absolutely, so replaying the same event leaves the
    record as the last call set it.
    """

    now = now or utcnow()
    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)

    user.plan = PlanTier.PREMIUM.value
    user.plan_expiry = now + timedelta(days=settings.billing.premium_period_days)
    if user.subscribed_since is None:
        user.subscribed_since = now
    user.apply_limits(UNLIMITED)
    if customer_id and customer_id != user.stripe_customer_id:
        owner = await repo.get_by_stripe_customer_id(customer_id)
        if owner is None:
            user.stripe_customer_id = customer_id
        else:
            logger.warning(
                f"Customer {customer_id} already belongs to user {owner.id}; "
                f"not remapping it to user {user_id}"
            )
    if subscription_id:
        user.stripe_subscription_id = subscription_id
    await repo.save(user)

    logger.info(f"User {user_id} upgraded to premium until {user.plan_expiry}")
    return _plan_change(user)


async def downgrade_to_free(session: AsyncSession, user_id: str) -> PlanChange:
    """Return a user to the free plan. Usage counters are left as they are."""

    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    _set_free(user)
    await repo.save(user)

    logger.info(f"User {user_id} downgraded to free")
    return _plan_change(user)


async def cancel_subscription(session: AsyncSession, user_id: str) -> PlanChange:
    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    _set_free(user)
    user.subscription_status = "canceled"
    await repo.save(user)

    logger.info(f"Subscription canceled for user {user_id}")
    return _plan_change(user)


async def update_subscription(
    session: AsyncSession,
    user_id: str,
    subscription_id: str,
    status: str,
    *,
    current_period_end: Optional[datetime] = None,
) -> PlanChange:
    """Mirror a subscription status reported by the payment platform."""

    if status not in SUBSCRIPTION_STATUSES:
        raise ValueError(f"Unknown subscription status: {status}")

    repo = UserRepo(session)
    user = await repo.get_or_raise(user_id)
    user.stripe_subscription_id = subscription_id
    user.subscription_status = status

    if status == "active":
        user.plan = PlanTier.PREMIUM.value
        user.apply_limits(UNLIMITED)
        if user.subscribed_since is None:
            user.subscribed_since = utcnow()
    elif status in {"canceled", "unpaid"}:
        _set_free(user)
    # A free plan never carries an expiry.
    if current_period_end is not None and user.is_premium:
        user.plan_expiry = current_period_end
    await repo.save(user)

    logger.info(f"Subscription {subscription_id} for user {user_id} is {status}")
    return _plan_change(user)


async def find_user_by_customer(session: AsyncSession, customer_id: str) -> User | None:
    return await UserRepo(session).get_by_stripe_customer_id(customer_id)


def _set_free(user: User) -> None:
    user.plan = PlanTier.FREE.value
    user.plan_expiry = None
    user.apply_limits(free_plan_limits())


def _plan_change(user: User) -> PlanChange:
    return PlanChange(
        plan=user.plan_tier,
        plan_expiry=user.plan_expiry,
        limits=LimitsRead.from_limits(user.limits),
    )


async def get_user(session: AsyncSession, user_id: str) -> User:
    return await UserRepo(session).get_or_raise(user_id)
