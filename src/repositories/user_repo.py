"""Repository for user billing records."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import UserNotFoundError
from src.db.models.user import User
from src.services.plans import PlanLimits, PlanTier, Resource


class UserRepo:
    """Data-access helpers for :class:`User`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_or_raise(self, user_id: str) -> User:
        user = await self.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_by_stripe_customer_id(self, customer_id: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.stripe_customer_id == customer_id)
        )
        return result.scalars().first()

    async def create(
        self,
        user_id: str,
        limits: PlanLimits,
        now: datetime,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> User:
        user = User(
            id=user_id,
            email=email,
            name=name,
            plan=PlanTier.FREE.value,
            usage_monthly_transactions=0,
            usage_active_debts=0,
            usage_recurring_transactions=0,
            usage_categories=0,
            last_reset_date=now,
        )
        user.apply_limits(limits)
        self.session.add(user)
        await self.session.flush()
        return user

    async def save(self, user: User) -> User:
        self.session.add(user)
        await self.session.flush()
        return user

    async def increment_if_below_limit(self, user_id: str, resource: Resource) -> bool:
        """Atomically add one to a counter unless its ceiling is already reached.

        Premium users and NULL ceilings always pass. Returns whether a row was
        updated.
        """

        usage_col = getattr(User, f"usage_{resource.value}")
        limit_col = getattr(User, f"limit_{resource.value}")
        result = await self.session.execute(
            update(User)
            .where(
                User.id == user_id,
                or_(
                    User.plan == PlanTier.PREMIUM.value,
                    limit_col.is_(None),
                    usage_col < limit_col,
                ),
            )
            .values({usage_col: usage_col + 1})
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return result.rowcount == 1
