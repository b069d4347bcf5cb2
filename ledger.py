"""
ledger.py
Membership ledger: per-client chain of membership periods.

Periods of one client never overlap. A new period chains onto the latest
period that has not yet ended (start = that end + 1 day), so renewing early
keeps every paid day. Whether a period is "active" is recomputed from its
end date on every read; only cancelled/courtesy are trusted from storage.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, timedelta

import clients
import db
import plans
import utils
from errors import ConflictError, NotFoundError, ValidationError
from models import MembershipPeriod, MembershipStatus, NextPeriod

_locks_guard = threading.Lock()
_client_locks: dict[int, threading.Lock] = {}


def _client_lock(client_id: int) -> threading.Lock:
    with _locks_guard:
        return _client_locks.setdefault(client_id, threading.Lock())


@contextmanager
def client_transaction(client_id: int, conn: sqlite3.Connection | None = None):
    """
    Serialize period writes for one client.
    A caller that already holds a transaction passes its connection through.
    """
    if conn is not None:
        yield conn
        return
    with _client_lock(client_id):
        with db.atomic() as c:
            yield c


def get_period(period_id: int, conn: sqlite3.Connection | None = None) -> MembershipPeriod:
    row = db.fetch_one("SELECT * FROM memberships WHERE id = ?", (period_id,), conn=conn)
    if not row:
        raise NotFoundError(f"Membership {period_id} not found.")
    return MembershipPeriod.from_row(row)


def list_periods(
    client_id: int | None = None,
    include_cancelled: bool = True,
    conn: sqlite3.Connection | None = None,
) -> list[MembershipPeriod]:
    sql = "SELECT * FROM memberships WHERE 1=1"
    params: list = []
    if client_id is not None:
        sql += " AND client_id = ?"
        params.append(client_id)
    if not include_cancelled:
        sql += " AND status != 'cancelled'"
    sql += " ORDER BY start_date ASC, id ASC"
    return [MembershipPeriod.from_row(r) for r in db.fetch_all(sql, tuple(params), conn=conn)]


def derive_current_status(period: MembershipPeriod, today: date) -> MembershipStatus:
    return period.effective_status(today)


def current_period(client_id: int, today: date | None = None) -> MembershipPeriod | None:
    """The period granting access today with the latest end date, if any."""
    today = today or utils.today()
    granting = [p for p in list_periods(client_id, include_cancelled=False) if p.grants_access(today)]
    if not granting:
        return None
    return max(granting, key=lambda p: (p.end_date, p.id))


def compute_next_period(
    client_id: int,
    plan_id: int,
    explicit_start=None,
    explicit_end=None,
    today: date | None = None,
    conn: sqlite3.Connection | None = None,
) -> NextPeriod:
    """
    Dates for the client's next period on this plan.
    Explicit dates are only honoured when nothing is running for the client.
    """
    today = today or utils.today()
    clients.get_client(client_id, conn=conn)
    plan = plans.get_active_plan(plan_id, conn=conn)

    running = [
        p for p in list_periods(client_id, include_cancelled=False, conn=conn)
        if p.end_date >= today
    ]
    if running:
        latest = max(running, key=lambda p: p.end_date)
        start = latest.end_date + timedelta(days=1)
        end = utils.period_end_for(start, plan.duration_days)
    else:
        start = utils.parse_iso(explicit_start) if explicit_start else today
        end = utils.parse_iso(explicit_end) if explicit_end else utils.period_end_for(start, plan.duration_days)

    errors = utils.validate_date_range(start, end)
    if errors:
        raise ValidationError(errors)
    return NextPeriod(start=start, end=end, is_advance_payment=start > today)


def _check_overlap(client_id: int, start: date, end: date, exclude_id: int | None, conn: sqlite3.Connection) -> None:
    row = db.fetch_one(
        """
        SELECT id, start_date, end_date FROM memberships
        WHERE client_id=? AND status != 'cancelled' AND id != ?
          AND start_date <= ? AND end_date >= ?
        ORDER BY start_date LIMIT 1
        """,
        (client_id, exclude_id or -1, end.isoformat(), start.isoformat()),
        conn=conn,
    )
    if row:
        raise ConflictError(
            f"Dates {start} - {end} overlap membership {row['id']} "
            f"({row['start_date']} - {row['end_date']})."
        )


def _insert_period(
    conn: sqlite3.Connection,
    client_id: int,
    plan_id: int,
    start: date,
    end: date,
    status: MembershipStatus,
) -> MembershipPeriod:
    client = clients.get_client(client_id, conn=conn)
    plan = plans.get_active_plan(plan_id, conn=conn)
    _check_overlap(client_id, start, end, None, conn)
    now = utils.now_iso()
    period_id = db.execute(
        """
        INSERT INTO memberships(client_id, plan_id, account_ref, start_date, end_date, status,
            plan_price, created_at, updated_at)
        VALUES(?,?,?,?,?,?,?,?,?)
        """,
        (client_id, plan_id, client.account_ref, start.isoformat(), end.isoformat(),
         status.value, str(plan.price), now, now),
        conn=conn,
    )
    logging.info(f"Membership created: id={period_id} client={client_id} plan={plan_id} {start}..{end} ({status.value})")
    return get_period(period_id, conn=conn)


def open_next_period(
    client_id: int,
    plan_id: int,
    explicit_start=None,
    explicit_end=None,
    status: MembershipStatus = MembershipStatus.ACTIVE,
    today: date | None = None,
    conn: sqlite3.Connection | None = None,
) -> tuple[MembershipPeriod, NextPeriod]:
    """Compute the chained dates and persist the period in one transaction."""
    with client_transaction(client_id, conn) as c:
        nxt = compute_next_period(client_id, plan_id, explicit_start, explicit_end, today=today, conn=c)
        period = _insert_period(c, client_id, plan_id, nxt.start, nxt.end, status)
    return period, nxt


def create_period(
    client_id: int,
    plan_id: int,
    start_date=None,
    end_date=None,
    status: MembershipStatus | str = MembershipStatus.ACTIVE,
    today: date | None = None,
) -> MembershipPeriod:
    """
    Create a period. Without a start date the dates are chained;
    with one, the given range is stored as-is (end defaults to the plan length).
    """
    status = MembershipStatus(status)
    if status is MembershipStatus.CANCELLED:
        raise ValidationError("A new membership cannot start cancelled.", field="status")

    if start_date is None:
        period, _ = open_next_period(client_id, plan_id, None, end_date, status=status, today=today)
        return period

    with client_transaction(client_id) as conn:
        plan = plans.get_active_plan(plan_id, conn=conn)
        start = utils.parse_iso(start_date)
        end = utils.parse_iso(end_date) if end_date else utils.period_end_for(start, plan.duration_days)
        errors = utils.validate_date_range(start, end)
        if errors:
            raise ValidationError(errors)
        return _insert_period(conn, client_id, plan_id, start, end, status)


def grant_courtesy(client_id: int, plan_id: int, start_date=None, end_date=None, today: date | None = None) -> MembershipPeriod:
    return create_period(client_id, plan_id, start_date, end_date, status=MembershipStatus.COURTESY, today=today)


def update_period(period_id: int, plan_id=None, start_date=None, end_date=None, status=None) -> MembershipPeriod:
    current = get_period(period_id)
    if current.is_cancelled:
        raise ValidationError("Cancelled memberships must be reactivated before editing.", field="status")
    if status is not None and MembershipStatus(status) is MembershipStatus.CANCELLED:
        raise ValidationError("Use cancel() to cancel a membership.", field="status")

    with client_transaction(current.client_id) as conn:
        clients.get_client(current.client_id, conn=conn)
        plan = plans.get_active_plan(plan_id or current.plan_id, conn=conn)
        start = utils.parse_iso(start_date) if start_date else current.start_date
        end = utils.parse_iso(end_date) if end_date else current.end_date
        errors = utils.validate_date_range(start, end)
        if errors:
            raise ValidationError(errors)
        _check_overlap(current.client_id, start, end, period_id, conn)

        new_status = MembershipStatus(status) if status is not None else current.status
        price = plan.price if plan.id != current.plan_id else current.plan_price
        conn.execute(
            """
            UPDATE memberships SET plan_id=?, start_date=?, end_date=?, status=?, plan_price=?, updated_at=?
            WHERE id=?
            """,
            (plan.id, start.isoformat(), end.isoformat(), new_status.value, str(price), utils.now_iso(), period_id),
        )
        return get_period(period_id, conn=conn)


def cancel(period_id: int) -> MembershipPeriod:
    period = get_period(period_id)
    if period.is_cancelled:
        return period
    db.execute(
        "UPDATE memberships SET status_before_cancel=status, status='cancelled', updated_at=? WHERE id=?",
        (utils.now_iso(), period_id),
    )
    logging.info(f"Membership cancelled: id={period_id} client={period.client_id}")
    return get_period(period_id)


def reactivate(period_id: int) -> MembershipPeriod:
    """
    Bring a cancelled period back with the status it had before cancelling
    (courtesy stays courtesy). Its dates must still fit the client's chain.
    """
    period = get_period(period_id)
    if not period.is_cancelled:
        return period
    with client_transaction(period.client_id) as conn:
        _check_overlap(period.client_id, period.start_date, period.end_date, period_id, conn)
        conn.execute(
            """
            UPDATE memberships
            SET status=COALESCE(status_before_cancel, 'active'), status_before_cancel=NULL, updated_at=?
            WHERE id=?
            """,
            (utils.now_iso(), period_id),
        )
    logging.info(f"Membership reactivated: id={period_id} client={period.client_id}")
    return get_period(period_id)


def mark_active(period: MembershipPeriod, conn: sqlite3.Connection) -> None:
    """A payment puts its membership back to active (cancelled excluded)."""
    if period.is_cancelled:
        raise ValidationError(
            f"Membership {period.id} is cancelled, reactivate it before recording a payment.",
            field="membership_id",
        )
    if period.status is not MembershipStatus.ACTIVE:
        conn.execute(
            "UPDATE memberships SET status='active', updated_at=? WHERE id=?",
            (utils.now_iso(), period.id),
        )
        logging.info(f"Membership {period.id} set active by payment (was {period.status.value})")
