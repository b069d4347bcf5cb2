"""
overdue.py
Collections list: clients with membership history who are not up to date.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date

import db
import utils
from config import Config
from models import (
    Client,
    CollectionEntry,
    MembershipPeriod,
    MembershipStatus,
    Payment,
    Plan,
)


def is_up_to_date(periods: list[MembershipPeriod], as_of: date) -> bool:
    """
    Up to date = some non-cancelled period still grants access on `as_of`.
    A running period counts even with no payment covering it, and a paid
    period end never stands in for a missing membership row, so payments
    play no part.
    """
    return any(p.grants_access(as_of) for p in periods)


def build_entry(
    client: Client,
    periods: list[MembershipPeriod],
    payments: list[Payment],
    plans_by_id: dict[int, Plan],
    as_of: date,
) -> CollectionEntry:
    """
    Collections row for a client. The reference date is the latest end of a
    non-cancelled period, else the latest paid period end, else the sentinel.
    """
    live = [p for p in periods if not p.is_cancelled]
    latest = max(live, key=lambda p: (p.end_date, p.id)) if live else None
    # payments come newest first
    last_payment = payments[0] if payments else None

    plan_name = "No plan"
    plan_price = None
    start = None
    if latest is not None:
        reference = latest.end_date
        days = utils.days_between(reference, as_of)
        plan = plans_by_id.get(latest.plan_id)
        plan_name = plan.name if plan else "Unknown plan"
        plan_price = latest.plan_price
        start = latest.start_date
        status = latest.effective_status(as_of)
    elif last_payment is not None:
        reference = max(p.period_end for p in payments)
        days = utils.days_between(reference, as_of)
        status = MembershipStatus.EXPIRED
    else:
        reference = as_of
        days = Config.OVERDUE_SENTINEL_DAYS
        status = MembershipStatus.EXPIRED

    return CollectionEntry(
        client_id=client.id,
        client_name=client.name or "No name",
        document_id=client.document_id,
        phone=client.phone,
        email=client.email,
        membership_id=latest.id if latest else None,
        account_ref=(latest.account_ref if latest else None) or client.account_ref,
        plan_name=plan_name,
        plan_price=plan_price if plan_price is not None else utils.to_money(0),
        membership_start_date=start,
        membership_end_date=reference,
        days_overdue=days,
        status=status,
        last_payment_date=last_payment.payment_date if last_payment else None,
        last_payment_amount=last_payment.amount if last_payment else None,
    )


def classify(
    clients: list[Client],
    periods: list[MembershipPeriod],
    payments: list[Payment],
    plans_by_id: dict[int, Plan],
    as_of: date,
    max_days_overdue: int | None = None,
) -> list[CollectionEntry]:
    """Pure classification over an in-memory snapshot."""
    periods_by_client: dict[int, list[MembershipPeriod]] = defaultdict(list)
    for p in periods:
        periods_by_client[p.client_id].append(p)
    payments_by_client: dict[int, list[Payment]] = defaultdict(list)
    for pay in sorted(payments, key=lambda x: (x.payment_date, x.id or 0), reverse=True):
        payments_by_client[pay.client_id].append(pay)

    entries: list[CollectionEntry] = []
    for client in clients:
        client_periods = periods_by_client.get(client.id, [])
        client_payments = payments_by_client.get(client.id, [])

        # cancelled-only history does not make a client collectable
        if not any(not p.is_cancelled for p in client_periods):
            continue
        if is_up_to_date(client_periods, as_of):
            continue
        entries.append(build_entry(client, client_periods, client_payments, plans_by_id, as_of))

    if max_days_overdue is not None:
        entries = [e for e in entries if e.days_overdue <= max_days_overdue]

    entries.sort(key=lambda e: e.days_overdue, reverse=True)
    return entries


def list_overdue(as_of: date | None = None, max_days_overdue: int | None = None) -> list[CollectionEntry]:
    """Snapshot the whole roster and classify it as of `as_of` (default today)."""
    as_of = as_of or utils.today()
    with db.get_conn() as conn:
        clients = [Client.from_row(r) for r in db.fetch_all("SELECT * FROM clients", conn=conn)]
        periods = [MembershipPeriod.from_row(r) for r in db.fetch_all("SELECT * FROM memberships", conn=conn)]
        payments = [Payment.from_row(r) for r in db.fetch_all("SELECT * FROM payments", conn=conn)]
        plans_by_id = {r["id"]: Plan.from_row(r) for r in db.fetch_all("SELECT * FROM plans", conn=conn)}
    return classify(clients, periods, payments, plans_by_id, as_of, max_days_overdue)
