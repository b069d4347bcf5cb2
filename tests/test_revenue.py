"""Tests for revenue aggregation."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

import orders
import payments
import revenue
from errors import ValidationError
from models import Channel

START, END = date(2024, 1, 1), date(2024, 1, 31)


@pytest.fixture
def sales(make_client, monthly):
    a, b, c = make_client("A"), make_client("B"), make_client("C")
    payments.renew(a.id, monthly.id, "cash", amount="100", today=date(2024, 1, 1))
    payments.renew(b.id, monthly.id, "transfer", amount="80", today=date(2024, 1, 31))
    payments.renew(c.id, monthly.id, "mixed", amount="50.50", today=date(2024, 1, 15))
    # outside the window
    payments.renew(a.id, monthly.id, "cash", amount="999", today=date(2024, 2, 1))

    orders.record_online_order("40", created_at=datetime(2024, 1, 31, 23, 59))
    orders.record_online_order("60", created_at=date(2024, 1, 10))
    orders.record_online_order("500", created_at=date(2024, 1, 10), status="pending")
    orders.record_online_order("70", created_at=date(2024, 2, 1))


def test_gym_channel(sales):
    [row] = revenue.aggregate(START, END, "gym")
    assert row.channel is Channel.GYM
    assert row.total == Decimal("230.50")
    assert (row.cash, row.transfer, row.mixed) == (Decimal("100"), Decimal("80"), Decimal("50.50"))
    assert row.count == 3


def test_online_channel_is_all_transfer(sales):
    [row] = revenue.aggregate(START, END, Channel.ONLINE)
    assert row.total == row.transfer == Decimal("100")
    assert row.cash == row.mixed == Decimal("0")
    assert row.count == 2


def test_both_adds_combined_row(sales):
    gym, online, both = revenue.aggregate(START, END)
    assert both.channel is Channel.BOTH
    assert both.total == Decimal("330.50")
    assert both.cash == gym.cash
    assert both.mixed == gym.mixed
    assert both.transfer == Decimal("180")
    assert both.count == 5


def test_gym_orders_not_counted_as_online(make_client, monthly):
    c = make_client()
    payments.renew(c.id, monthly.id, "transfer", today=date(2024, 1, 5))
    [row] = revenue.aggregate(START, END, "online")
    assert row.total == Decimal("0") and row.count == 0


def test_empty_window():
    rows = revenue.aggregate(START, END)
    assert [r.total for r in rows] == [Decimal("0")] * 3


def test_bad_window():
    with pytest.raises(ValidationError):
        revenue.aggregate(END, START)
    with pytest.raises(ValidationError):
        revenue.aggregate("yesterday", END)


def test_monthly_summary(sales):
    df = revenue.monthly_summary()
    assert list(df["month"]) == ["2024-02", "2024-01"]
    assert list(df["revenue"]) == [Decimal("999"), Decimal("230.50")]


@pytest.mark.parametrize("amount", ["0", Decimal("Infinity"), Decimal("NaN")])
def test_online_order_validation(amount):
    with pytest.raises(ValidationError):
        orders.record_online_order(amount)
    assert orders.list_orders() == []
