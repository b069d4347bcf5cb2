"""
revenue.py
Revenue aggregation across the gym ledger and the online order stream.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pandas as pd

import db
import orders
import utils
from errors import ValidationError
from models import Channel, PaymentMethod, RevenueRow

ZERO = Decimal("0")


def _frame(rows, columns: list[str]) -> pd.DataFrame:
    df = pd.DataFrame([dict(r) for r in rows], columns=columns)
    if not df.empty:
        df["amount"] = df["amount"].map(Decimal)
    return df


def _sum(series) -> Decimal:
    return sum(series, ZERO)


def gym_row(start: date, end: date) -> RevenueRow:
    rows = db.fetch_all(
        """
        SELECT amount, method, payment_date FROM payments
        WHERE payment_date >= ? AND payment_date <= ?
        """,
        (start.isoformat(), end.isoformat()),
    )
    df = _frame(rows, ["amount", "method", "payment_date"])
    row = RevenueRow(channel=Channel.GYM, count=len(df))
    if df.empty:
        return row
    row.total = _sum(df["amount"])
    row.cash = _sum(df.loc[df["method"] == PaymentMethod.CASH.value, "amount"])
    row.transfer = _sum(df.loc[df["method"] == PaymentMethod.TRANSFER.value, "amount"])
    row.mixed = _sum(df.loc[df["method"] == PaymentMethod.MIXED.value, "amount"])
    return row


def online_row(start: date, end: date) -> RevenueRow:
    """Online sales have no cash/mixed split: everything counts as transfer."""
    approved = orders.list_orders(channel=Channel.ONLINE, status=orders.APPROVED, start=start, end=end)
    total = sum((o.amount for o in approved), ZERO)
    return RevenueRow(channel=Channel.ONLINE, total=total, transfer=total, count=len(approved))


def combine(gym: RevenueRow, online: RevenueRow) -> RevenueRow:
    return RevenueRow(
        channel=Channel.BOTH,
        total=gym.total + online.total,
        cash=gym.cash,
        transfer=gym.transfer + online.transfer,
        mixed=gym.mixed,
        count=gym.count + online.count,
    )


def aggregate(start, end, channel: Channel | str | None = None) -> list[RevenueRow]:
    """
    Revenue for [start, end] (inclusive calendar days).
    channel: gym, online, or both (default) which adds a combined row.
    """
    try:
        start_d = utils.parse_iso(start)
        end_d = utils.parse_iso(end)
    except (TypeError, ValueError) as e:
        raise ValidationError("start and end must be valid ISO dates.", field="start") from e
    errors = utils.validate_date_range(start_d, end_d, "start", "end")
    if errors:
        raise ValidationError(errors)
    channel = Channel(channel or Channel.BOTH)

    results: list[RevenueRow] = []
    if channel in (Channel.GYM, Channel.BOTH):
        results.append(gym_row(start_d, end_d))
    if channel in (Channel.ONLINE, Channel.BOTH):
        results.append(online_row(start_d, end_d))
    if channel is Channel.BOTH:
        results.append(combine(results[0], results[1]))
    return results


def monthly_summary() -> pd.DataFrame:
    """Gym revenue per month (YYYY-MM), newest first."""
    rows = db.fetch_all("SELECT payment_date, amount FROM payments")
    df = _frame(rows, ["payment_date", "amount"])
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue"])
    df["month"] = df["payment_date"].str.slice(0, 7)
    summary = (
        df.groupby("month")["amount"]
        .apply(_sum)
        .reset_index()
        .rename(columns={"amount": "revenue"})
        .sort_values("month", ascending=False, ignore_index=True)
    )
    return summary


def to_frame(rows: list[RevenueRow]) -> pd.DataFrame:
    return pd.DataFrame([r.as_dict() for r in rows])
