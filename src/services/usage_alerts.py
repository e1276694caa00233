"""Derived usage figures computed on read, never persisted."""
from __future__ import annotations

from typing import List, Optional

from src.core.config import settings
from src.schemas.billing import PlanInfo, UsageAlert, UsageSummary
from src.services.plans import PlanTier, Resource


def usage_percentage(usage: int, limit: Optional[int]) -> float:
    """Percentage of ``limit`` consumed. Unlimited ceilings report 0."""

    if limit is None:
        return 0.0
    if limit <= 0:
        return 100.0
    return usage / limit * 100


def is_near_limit(usage: int, limit: Optional[int]) -> bool:
    return usage_percentage(usage, limit) >= settings.billing.near_limit_percent


def has_reached_limit(usage: int, limit: Optional[int]) -> bool:
    return usage_percentage(usage, limit) >= 100


def _alert_for(info: PlanInfo, resource: Resource) -> UsageAlert:
    usage = info.usage.for_resource(resource)
    limit = None if info.plan is PlanTier.PREMIUM else getattr(info.limits, resource.value)
    return UsageAlert(
        resource=resource,
        usage=usage,
        limit=limit,
        percentage=round(usage_percentage(usage, limit), 2),
        near_limit=is_near_limit(usage, limit),
        at_limit=has_reached_limit(usage, limit),
    )


def summarize_usage(info: PlanInfo) -> UsageSummary:
    return UsageSummary(
        plan=info.plan,
        resources=[_alert_for(info, resource) for resource in Resource],
    )


def usage_alerts(info: PlanInfo) -> List[UsageAlert]:
    """Resources at or above the near-limit threshold."""

    return [alert for alert in summarize_usage(info).resources if alert.near_limit]
