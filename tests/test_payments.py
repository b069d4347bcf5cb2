"""Tests for recording payments."""
from __future__ import annotations

import sqlite3
from datetime import date
from decimal import Decimal

import pytest

import db
import ledger
import orders
import payments
import plans
from errors import NotFoundError, ValidationError
from models import Channel, MembershipStatus, PaymentMethod


@pytest.fixture
def period(make_client, monthly):
    c = make_client("Ana", email="ana@example.com")
    return ledger.create_period(c.id, monthly.id, date(2024, 1, 1), date(2024, 1, 30))


def _pay(period, **overrides):
    kwargs = dict(
        membership_id=period.id,
        client_id=period.client_id,
        plan_id=period.plan_id,
        amount="100",
        method="cash",
        payment_date=date(2024, 1, 1),
        period_start=period.start_date,
        period_end=period.end_date,
    )
    kwargs.update(overrides)
    return payments.record_payment(**kwargs)


def test_record_payment(period):
    payment = _pay(period, invoice_required=True, notes=" first ")
    assert payment.amount == Decimal("100")
    assert payment.method is PaymentMethod.CASH
    assert payment.invoice_required is True
    assert payment.invoice_number == "0001"
    assert payment.notes == "first"


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"amount": "0"}, "amount"),
        ({"amount": "-10"}, "amount"),
        ({"amount": "ten"}, "amount"),
        ({"amount": Decimal("Infinity")}, "amount"),
        ({"amount": Decimal("NaN")}, "amount"),
        ({"method": "card"}, "method"),
        ({"period_end": date(2023, 12, 1)}, "period_end"),
    ],
)
def test_invalid_payment_rejected_before_write(period, overrides, field):
    with pytest.raises(ValidationError) as exc:
        _pay(period, **overrides)
    assert field in exc.value.errors
    assert db.fetch_one("SELECT COUNT(*) AS n FROM payments")["n"] == 0


def test_client_must_match_membership(period, make_client):
    other = make_client("Other")
    with pytest.raises(ValidationError):
        _pay(period, client_id=other.id)


def test_unknown_membership(period):
    with pytest.raises(NotFoundError):
        _pay(period, membership_id=999)


def test_inactive_plan_rejected(period, monthly):
    plans.update_plan(monthly.id, is_active=False)
    with pytest.raises(ValidationError):
        _pay(period)


@pytest.mark.parametrize("stored", ["expired", "courtesy"])
def test_payment_reactivates_membership(period, stored):
    db.execute("UPDATE memberships SET status=? WHERE id=?", (stored, period.id))
    _pay(period)
    assert ledger.get_period(period.id).status is MembershipStatus.ACTIVE


def test_cancelled_membership_needs_reactivation(period):
    ledger.cancel(period.id)
    with pytest.raises(ValidationError):
        _pay(period)
    ledger.reactivate(period.id)
    assert _pay(period).membership_id == period.id


def test_advance_payment_covers_future_period(period):
    payment = _pay(period, period_start=date(2024, 1, 31), period_end=date(2024, 2, 29))
    assert payment.period_start == date(2024, 1, 31)
    assert payment.period_end == date(2024, 2, 29)


def test_payment_emits_gym_order(period):
    payment = _pay(period, method="mixed")
    [order] = orders.list_orders(channel=Channel.GYM)
    assert order.payment_id == payment.id
    assert order.status == "approved"
    assert order.amount == Decimal("100")
    assert order.method == "mixed"
    assert order.customer_name == "Ana"
    assert order.customer_email == "ana@example.com"


def test_order_failure_does_not_block_payment(period, monkeypatch):
    def broken(conn, **values):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(orders, "_insert", broken)
    payment = _pay(period)
    assert payments.get_payment(payment.id).id == payment.id
    assert db.fetch_one("SELECT COUNT(*) AS n FROM orders")["n"] == 0


def test_list_payments_filters(make_client, monthly):
    a, b = make_client("A"), make_client("B")
    payments.renew(a.id, monthly.id, "cash", today=date(2024, 1, 1))
    payments.renew(a.id, monthly.id, "transfer", today=date(2024, 1, 20))
    payments.renew(b.id, monthly.id, "cash", today=date(2024, 2, 1))

    assert [p.payment_date for p in payments.list_payments(client_id=a.id)] == [date(2024, 1, 20), date(2024, 1, 1)]
    assert len(payments.list_payments(start=date(2024, 1, 15), end=date(2024, 1, 31))) == 1


def test_renew_amount_defaults_to_plan_price(make_client, monthly):
    c = make_client()
    _, payment, _ = payments.renew(c.id, monthly.id, "transfer", today=date(2024, 1, 1))
    assert payment.amount == monthly.price
    _, custom, _ = payments.renew(c.id, monthly.id, "transfer", amount="80.5", today=date(2024, 1, 1))
    assert custom.amount == Decimal("80.5")


def test_renew_rolls_back_period_on_bad_payment(make_client, monthly):
    c = make_client()
    with pytest.raises(ValidationError):
        payments.renew(c.id, monthly.id, "bitcoin", today=date(2024, 1, 1))
    assert ledger.list_periods(c.id) == []
