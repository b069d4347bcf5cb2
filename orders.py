"""
orders.py
Revenue-tracking orders. Gym payments emit one order each; the online
course checkout feeds approved orders on the "online" channel.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime

import db
import utils
from errors import ValidationError
from models import Channel, Order, Payment

APPROVED = "approved"


def _insert(conn: sqlite3.Connection | None, **values) -> int:
    columns = ", ".join(values)
    marks = ",".join("?" for _ in values)
    return db.execute(f"INSERT INTO orders({columns}) VALUES({marks})", tuple(values.values()), conn=conn)


def emit_gym_order(payment: Payment, customer_name: str, customer_email: str | None,
                   conn: sqlite3.Connection | None = None) -> int | None:
    """
    Mirror a gym payment into the order stream.
    Best effort: a failure is logged and the payment stands.
    """
    try:
        return _insert(
            conn,
            channel=Channel.GYM.value,
            status=APPROVED,
            amount=str(payment.amount),
            method=payment.method.value,
            plan_id=payment.plan_id,
            payment_id=payment.id,
            account_ref=payment.account_ref,
            customer_name=customer_name,
            customer_email=customer_email,
            created_at=utils.now_iso(),
        )
    except sqlite3.Error as e:
        logging.warning(f"Could not emit revenue order for payment {payment.id}: {e}")
        return None


def record_online_order(
    amount,
    created_at: datetime | date | str | None = None,
    status: str = APPROVED,
    customer_name: str | None = None,
    customer_email: str | None = None,
    account_ref: str | None = None,
) -> Order:
    try:
        value = utils.to_money(amount)
    except ValueError as e:
        raise ValidationError("Amount must be numeric.", field="amount") from e
    if value <= 0:
        raise ValidationError("Amount must be > 0.", field="amount")

    if created_at is None:
        stamp = utils.now_iso()
    elif isinstance(created_at, (date, datetime)):
        stamp = created_at.isoformat()
    else:
        stamp = str(created_at)

    order_id = _insert(
        None,
        channel=Channel.ONLINE.value,
        status=status,
        amount=str(value),
        method=None,
        plan_id=None,
        payment_id=None,
        account_ref=account_ref,
        customer_name=customer_name,
        customer_email=customer_email,
        created_at=stamp,
    )
    return get_order(order_id)


def get_order(order_id: int) -> Order:
    return Order.from_row(db.fetch_one("SELECT * FROM orders WHERE id = ?", (order_id,)))


def list_orders(channel: Channel | str | None = None, status: str | None = None,
                start: date | None = None, end: date | None = None) -> list[Order]:
    """Orders filtered by channel/status and by the calendar day of created_at (inclusive)."""
    sql = "SELECT * FROM orders WHERE 1=1"
    params: list = []
    if channel is not None:
        sql += " AND channel = ?"
        params.append(Channel(channel).value)
    if status is not None:
        sql += " AND status = ?"
        params.append(status)
    if start is not None:
        sql += " AND substr(created_at, 1, 10) >= ?"
        params.append(utils.parse_iso(start).isoformat())
    if end is not None:
        sql += " AND substr(created_at, 1, 10) <= ?"
        params.append(utils.parse_iso(end).isoformat())
    sql += " ORDER BY created_at DESC, id DESC"
    return [Order.from_row(r) for r in db.fetch_all(sql, tuple(params))]
