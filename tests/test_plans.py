"""Tests for the plan catalogue."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

import ledger
import plans
from errors import ConflictError, NotFoundError, ValidationError


def test_create_plan_keeps_decimal_price():
    plan = plans.create_plan("Quarterly", "250.50", 90, description="3 months")
    assert plan.price == Decimal("250.50")
    assert plan.duration_days == 90
    assert plan.is_active is True


@pytest.mark.parametrize(
    "price, duration",
    [("0", 30), ("-5", 30), ("abc", 30), (Decimal("Infinity"), 30), (Decimal("NaN"), 30), ("10", 0), ("10", "x")],
)
def test_invalid_plan_rejected(price, duration):
    with pytest.raises(ValidationError):
        plans.create_plan("Bad", price, duration)


def test_list_active_only(monthly):
    other = plans.create_plan("Old", "50", 15, is_active=False)
    assert [p.id for p in plans.list_plans(active_only=True)] == [monthly.id]
    assert {p.id for p in plans.list_plans()} == {monthly.id, other.id}


def test_inactive_plan_cannot_be_billed(make_client):
    plan = plans.create_plan("Old", "50", 15, is_active=False)
    c = make_client()
    with pytest.raises(ValidationError):
        ledger.create_period(c.id, plan.id, today=date(2024, 1, 1))


def test_price_change_does_not_touch_issued_periods(make_client, monthly):
    c = make_client()
    period = ledger.create_period(c.id, monthly.id, today=date(2024, 1, 1))
    plans.update_plan(monthly.id, price="150", duration_days=60)
    again = ledger.get_period(period.id)
    assert again.plan_price == Decimal("100")
    assert again.end_date == date(2024, 1, 30)
    nxt = ledger.create_period(c.id, monthly.id, today=date(2024, 1, 1))
    assert nxt.plan_price == Decimal("150")
    assert nxt.end_date == date(2024, 3, 30)


def test_delete_is_soft(monthly):
    plan = plans.delete_plan(monthly.id, today=date(2024, 1, 1))
    assert plan.is_active is False
    assert plans.get_plan(monthly.id).id == monthly.id


def test_delete_refused_while_memberships_run(make_client, monthly):
    c = make_client()
    ledger.create_period(c.id, monthly.id, today=date(2024, 1, 1))
    with pytest.raises(ConflictError, match="wait until they end"):
        plans.delete_plan(monthly.id, today=date(2024, 1, 15))
    # once the period is over the plan can go
    assert plans.delete_plan(monthly.id, today=date(2024, 2, 1)).is_active is False


def test_unknown_plan():
    with pytest.raises(NotFoundError):
        plans.get_plan(42)
