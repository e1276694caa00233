from __future__ import annotations

import datetime as dt

import pytest

from src.core.exceptions import UserNotFoundError
from src.services import billing
from src.services.plans import ActionKind, DecrementKind, PlanTier, Resource


NOW = dt.datetime(2026, 3, 15, 12, 0, tzinfo=dt.timezone.utc)


def test_every_action_maps_to_a_resource():
    assert {action.resource for action in ActionKind} == set(Resource)
    assert {kind.resource for kind in DecrementKind} == set(Resource) - {
        Resource.MONTHLY_TRANSACTIONS
    }


@pytest.mark.asyncio
async def test_ensure_user_creates_free_record(test_db):
    user = await billing.ensure_user(test_db, "new-user", email="a@b.c", now=NOW)

    assert user.plan == PlanTier.FREE.value
    assert user.limits.monthly_transactions == 50
    assert user.limits.active_debts == 3
    assert user.limits.recurring_transactions == 2
    assert user.limits.categories == 3
    assert all(user.usage_for(r) == 0 for r in Resource)
    assert user.last_reset_date == NOW

    again = await billing.ensure_user(test_db, "new-user", now=NOW + dt.timedelta(days=1))
    assert again.last_reset_date == NOW


@pytest.mark.asyncio
async def test_last_free_transaction_is_allowed_then_blocked(test_db, make_user):
    await make_user("u1", last_reset_date=NOW, monthly_transactions=49)

    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_TRANSACTION, now=NOW)
    assert result.can_perform is True
    assert result.current_usage == 49
    assert result.limit == 50

    await billing.increment_usage(test_db, "u1", ActionKind.CREATE_TRANSACTION)

    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_TRANSACTION, now=NOW)
    assert result.can_perform is False
    assert result.current_usage == 50


@pytest.mark.asyncio
async def test_premium_can_always_perform(test_db, make_user):
    await make_user(
        "p1",
        plan=PlanTier.PREMIUM,
        last_reset_date=NOW - dt.timedelta(days=90),
        monthly_transactions=10_000,
        active_debts=500,
        recurring_transactions=200,
        categories=300,
    )

    for action in ActionKind:
        result = await billing.check_limit(test_db, "p1", action, now=NOW)
        assert result.can_perform is True
        assert result.limit is None
        assert result.plan is PlanTier.PREMIUM
        assert result.needs_reset is False

    info = await billing.get_user_plan_info(test_db, "p1")
    assert info.usage.monthly_transactions == 10_000


@pytest.mark.asyncio
async def test_transaction_counter_resets_after_thirty_days(test_db, make_user):
    user = await make_user(
        "u1", last_reset_date=NOW - dt.timedelta(days=31), monthly_transactions=50, categories=2
    )

    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_TRANSACTION, now=NOW)

    assert result.needs_reset is True
    assert result.current_usage == 0
    assert result.can_perform is True
    assert user.usage_monthly_transactions == 0
    assert billing.as_utc(user.last_reset_date) == NOW
    assert user.usage_categories == 2


@pytest.mark.asyncio
async def test_no_reset_within_window(test_db, make_user):
    await make_user("u1", last_reset_date=NOW - dt.timedelta(days=29), monthly_transactions=50)

    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_TRANSACTION, now=NOW)

    assert result.needs_reset is False
    assert result.current_usage == 50
    assert result.can_perform is False


@pytest.mark.asyncio
async def test_exactly_thirty_days_does_not_reset(test_db, make_user):
    await make_user("u1", last_reset_date=NOW - dt.timedelta(days=30), monthly_transactions=50)

    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_TRANSACTION, now=NOW)

    assert result.needs_reset is False
    assert result.current_usage == 50
    assert result.can_perform is False


@pytest.mark.asyncio
async def test_reset_applies_on_any_action_but_only_to_transactions(test_db, make_user):
    user = await make_user(
        "u1",
        last_reset_date=NOW - dt.timedelta(days=45),
        monthly_transactions=12,
        active_debts=3,
    )

    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_DEBT, now=NOW)

    assert result.needs_reset is True
    assert result.can_perform is False
    assert result.current_usage == 3
    assert user.usage_monthly_transactions == 0


@pytest.mark.asyncio
async def test_recurring_limit_scenario(test_db, make_user):
    await make_user("u1", last_reset_date=NOW, recurring_transactions=2)

    result = await billing.check_limit(
        test_db, "u1", ActionKind.CREATE_RECURRING_TRANSACTION, now=NOW
    )

    assert result.can_perform is False
    assert result.current_usage == 2
    assert result.limit == 2


@pytest.mark.asyncio
async def test_decrement_is_floored_at_zero(test_db, make_user):
    await make_user("u1", active_debts=0, categories=1)

    usage = await billing.decrement_usage(test_db, "u1", DecrementKind.DELETE_DEBT)
    assert usage.active_debts == 0

    usage = await billing.decrement_usage(test_db, "u1", DecrementKind.DELETE_CATEGORY)
    assert usage.categories == 0
    usage = await billing.decrement_usage(test_db, "u1", DecrementKind.DELETE_CATEGORY)
    assert usage.categories == 0


@pytest.mark.asyncio
async def test_increment_ignores_ceiling(test_db, make_user):
    await make_user("u1", categories=3)

    usage = await billing.increment_usage(test_db, "u1", ActionKind.CREATE_CATEGORY)

    assert usage.categories == 4


@pytest.mark.asyncio
async def test_upgrade_is_last_write_wins(test_db, make_user):
    await make_user("u1")
    first = NOW
    second = NOW + dt.timedelta(minutes=5)

    await billing.upgrade_to_premium(test_db, "u1", now=first)
    change = await billing.upgrade_to_premium(test_db, "u1", now=second)

    assert change.plan is PlanTier.PREMIUM
    assert change.plan_expiry == second + dt.timedelta(days=30)
    assert change.limits.monthly_transactions is None

    info = await billing.get_user_plan_info(test_db, "u1")
    assert billing.as_utc(info.subscribed_since) == first


@pytest.mark.asyncio
async def test_upgrade_records_payment_ids(test_db, make_user):
    user = await make_user("u1")

    await billing.upgrade_to_premium(
        test_db, "u1", customer_id="cus_1", subscription_id="sub_1", now=NOW
    )

    assert user.stripe_customer_id == "cus_1"
    assert user.stripe_subscription_id == "sub_1"
    found = await billing.find_user_by_customer(test_db, "cus_1")
    assert found is not None and found.id == "u1"


@pytest.mark.asyncio
async def test_downgrade_keeps_usage_and_locks_out(test_db, make_user):
    await make_user("u1", plan=PlanTier.PREMIUM, categories=10)
    await billing.upgrade_to_premium(test_db, "u1", now=NOW)

    change = await billing.downgrade_to_free(test_db, "u1")

    assert change.plan is PlanTier.FREE
    assert change.plan_expiry is None
    assert change.limits.categories == 3

    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_CATEGORY, now=NOW)
    assert result.can_perform is False
    assert result.current_usage == 10

    for _ in range(8):
        await billing.decrement_usage(test_db, "u1", DecrementKind.DELETE_CATEGORY)
    result = await billing.check_limit(test_db, "u1", ActionKind.CREATE_CATEGORY, now=NOW)
    assert result.can_perform is True


@pytest.mark.asyncio
async def test_cancel_subscription_marks_status(test_db, make_user):
    user = await make_user("u1", plan=PlanTier.PREMIUM)

    change = await billing.cancel_subscription(test_db, "u1")

    assert change.plan is PlanTier.FREE
    assert user.subscription_status == "canceled"


@pytest.mark.asyncio
async def test_update_subscription_follows_status(test_db, make_user):
    user = await make_user("u1")
    period_end = NOW + dt.timedelta(days=31)

    change = await billing.update_subscription(
        test_db, "u1", "sub_1", "active", current_period_end=period_end
    )
    assert change.plan is PlanTier.PREMIUM
    assert change.plan_expiry == period_end

    change = await billing.update_subscription(test_db, "u1", "sub_1", "past_due")
    assert change.plan is PlanTier.PREMIUM
    assert user.subscription_status == "past_due"

    change = await billing.update_subscription(test_db, "u1", "sub_1", "unpaid")
    assert change.plan is PlanTier.FREE
    assert change.limits.active_debts == 3

    with pytest.raises(ValueError):
        await billing.update_subscription(test_db, "u1", "sub_1", "trialing")


@pytest.mark.asyncio
async def test_update_subscription_period_end_on_premium_states_only(test_db, make_user):
    user = await make_user("u1", plan=PlanTier.PREMIUM)
    period_end = NOW + dt.timedelta(days=12)

    change = await billing.update_subscription(
        test_db, "u1", "sub_1", "past_due", current_period_end=period_end
    )
    assert change.plan is PlanTier.PREMIUM
    assert change.plan_expiry == period_end

    change = await billing.update_subscription(
        test_db, "u1", "sub_1", "canceled", current_period_end=period_end
    )
    assert change.plan is PlanTier.FREE
    assert change.plan_expiry is None
    assert user.subscription_status == "canceled"


@pytest.mark.asyncio
async def test_upgrade_keeps_customer_mapped_to_another_user(test_db, make_user):
    owner = await make_user("u1", stripe_customer_id="cus_1")
    payer = await make_user("u2")

    change = await billing.upgrade_to_premium(test_db, "u2", customer_id="cus_1", now=NOW)

    assert change.plan is PlanTier.PREMIUM
    assert payer.stripe_customer_id is None
    assert owner.stripe_customer_id == "cus_1"


@pytest.mark.asyncio
async def test_reserve_usage_is_conditional(test_db, make_user):
    await make_user("u1", last_reset_date=NOW, active_debts=2)

    granted = await billing.reserve_usage(test_db, "u1", ActionKind.CREATE_DEBT, now=NOW)
    assert granted.granted is True
    assert granted.current_usage == 3

    denied = await billing.reserve_usage(test_db, "u1", ActionKind.CREATE_DEBT, now=NOW)
    assert denied.granted is False
    assert denied.current_usage == 3
    assert denied.limit == 3


@pytest.mark.asyncio
async def test_reserve_usage_for_premium_has_no_ceiling(test_db, make_user):
    await make_user("p1", plan=PlanTier.PREMIUM, categories=999)

    result = await billing.reserve_usage(test_db, "p1", ActionKind.CREATE_CATEGORY, now=NOW)

    assert result.granted is True
    assert result.current_usage == 1000
    assert result.limit is None


@pytest.mark.asyncio
async def test_reset_monthly_usage(test_db, make_user):
    await make_user("u1", last_reset_date=NOW - dt.timedelta(days=3), monthly_transactions=7)

    usage = await billing.reset_monthly_usage(test_db, "u1", now=NOW)

    assert usage.monthly_transactions == 0
    assert billing.as_utc(usage.last_reset_date) == NOW


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: billing.check_limit(s, "ghost", ActionKind.CREATE_TRANSACTION),
        lambda s: billing.increment_usage(s, "ghost", ActionKind.CREATE_DEBT),
        lambda s: billing.decrement_usage(s, "ghost", DecrementKind.DELETE_DEBT),
        lambda s: billing.upgrade_to_premium(s, "ghost"),
        lambda s: billing.downgrade_to_free(s, "ghost"),
        lambda s: billing.get_user_plan_info(s, "ghost"),
    ],
)
async def test_unknown_user_raises_not_found(test_db, call):
    with pytest.raises(UserNotFoundError):
        await call(test_db)
