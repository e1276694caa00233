"""Plan tiers, tracked resources and their ceilings."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.core.config import settings


class PlanTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class Resource(str, Enum):
    """Counters kept on every billing record."""

    MONTHLY_TRANSACTIONS = "monthly_transactions"
    ACTIVE_DEBTS = "active_debts"
    RECURRING_TRANSACTIONS = "recurring_transactions"
    CATEGORIES = "categories"


class ActionKind(str, Enum):
    """Creation actions gated by a usage ceiling."""

    CREATE_TRANSACTION = "create_transaction"
    CREATE_DEBT = "create_debt"
    CREATE_RECURRING_TRANSACTION = "create_recurring_transaction"
    CREATE_CATEGORY = "create_category"

    @property
    def resource(self) -> Resource:
        return _ACTION_RESOURCES[self]


class DecrementKind(str, Enum):
    """Deletion actions that release a slot. Transactions never do."""

    DELETE_DEBT = "delete_debt"
    DELETE_RECURRING_TRANSACTION = "delete_recurring_transaction"
    DELETE_CATEGORY = "delete_category"

    @property
    def resource(self) -> Resource:
        return _DECREMENT_RESOURCES[self]


_ACTION_RESOURCES: dict[ActionKind, Resource] = {
    ActionKind.CREATE_TRANSACTION: Resource.MONTHLY_TRANSACTIONS,
    ActionKind.CREATE_DEBT: Resource.ACTIVE_DEBTS,
    ActionKind.CREATE_RECURRING_TRANSACTION: Resource.RECURRING_TRANSACTIONS,
    ActionKind.CREATE_CATEGORY: Resource.CATEGORIES,
}

_DECREMENT_RESOURCES: dict[DecrementKind, Resource] = {
    DecrementKind.DELETE_DEBT: Resource.ACTIVE_DEBTS,
    DecrementKind.DELETE_RECURRING_TRANSACTION: Resource.RECURRING_TRANSACTIONS,
    DecrementKind.DELETE_CATEGORY: Resource.CATEGORIES,
}


@dataclass(frozen=True)
class PlanLimits:
    """Per-resource ceilings. ``None`` means unlimited."""

    monthly_transactions: Optional[int]
    active_debts: Optional[int]
    recurring_transactions: Optional[int]
    categories: Optional[int]

    def for_resource(self, resource: Resource) -> Optional[int]:
        return getattr(self, resource.value)


UNLIMITED = PlanLimits(
    monthly_transactions=None,
    active_debts=None,
    recurring_transactions=None,
    categories=None,
)


def free_plan_limits() -> PlanLimits:
    """Free-tier ceilings as currently configured."""

    billing = settings.billing
    return PlanLimits(
        monthly_transactions=billing.free_monthly_transactions,
        active_debts=billing.free_active_debts,
        recurring_transactions=billing.free_recurring_transactions,
        categories=billing.free_categories,
    )
