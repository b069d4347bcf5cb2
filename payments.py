"""
payments.py
Payment recorder: persists money received for a membership period,
stamps the invoice number, reactivates the membership and mirrors the
sale into the revenue order stream.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date

import clients
import db
import invoices
import ledger
import orders
import plans
import utils
from errors import ConflictError, NotFoundError, ValidationError
from models import MembershipPeriod, Payment, PaymentMethod


def get_payment(payment_id: int, conn: sqlite3.Connection | None = None) -> Payment:
    row = db.fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,), conn=conn)
    if not row:
        raise NotFoundError(f"Payment {payment_id} not found.")
    return Payment.from_row(row)


def list_payments(
    client_id: int | None = None,
    membership_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[Payment]:
    sql = "SELECT * FROM payments WHERE 1=1"
    params: list = []
    if client_id is not None:
        sql += " AND client_id = ?"
        params.append(client_id)
    if membership_id is not None:
        sql += " AND membership_id = ?"
        params.append(membership_id)
    if start is not None:
        sql += " AND payment_date >= ?"
        params.append(utils.parse_iso(start).isoformat())
    if end is not None:
        sql += " AND payment_date <= ?"
        params.append(utils.parse_iso(end).isoformat())
    sql += " ORDER BY payment_date DESC, id DESC"
    return [Payment.from_row(r) for r in db.fetch_all(sql, tuple(params))]


def _insert_payment(
    conn: sqlite3.Connection,
    period: MembershipPeriod,
    plan_id: int,
    amount,
    method,
    payment_date,
    period_start,
    period_end,
    invoice_required: bool,
    invoice_number: str | None,
    notes: str | None,
    account_ref: str | None,
) -> Payment:
    errors = utils.validate_payment_inputs(amount, method, payment_date, period_start, period_end)
    if errors:
        raise ValidationError(errors)

    client = clients.get_client(period.client_id, conn=conn)
    plans.get_active_plan(plan_id, conn=conn)
    ledger.mark_active(period, conn)

    number, auto = invoices.assign(conn, invoice_number)
    now = utils.now_iso()
    values = [
        period.id,
        period.client_id,
        plan_id,
        account_ref or period.account_ref or client.account_ref,
        str(utils.to_money(amount)),
        PaymentMethod(method).value,
        utils.parse_iso(payment_date).isoformat(),
        utils.parse_iso(period_start).isoformat(),
        utils.parse_iso(period_end).isoformat(),
        int(bool(invoice_required)),
        number,
        utils.clean(notes),
        now,
        now,
    ]
    sql = """
        INSERT INTO payments(membership_id, client_id, plan_id, account_ref, amount, method,
            payment_date, period_start, period_end, invoice_required, invoice_number, notes,
            created_at, updated_at)
        VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?)
    """
    try:
        payment_id = db.execute(sql, tuple(values), conn=conn)
    except sqlite3.IntegrityError as e:
        if not auto:
            raise ConflictError(f"Invoice number {number} is already used.") from e
        # auto-assigned number collided (fallback path): keep the payment, number it later
        logging.warning(f"Invoice number {number} collided ({e}); payment stored without one")
        values[10] = None
        payment_id = db.execute(sql, tuple(values), conn=conn)

    payment = get_payment(payment_id, conn=conn)
    logging.info(
        f"Payment recorded: id={payment.id} invoice={payment.invoice_number} client={payment.client_id} "
        f"membership={payment.membership_id} amount={payment.amount} {payment.method.value}"
    )
    return payment


def _emit_order(payment: Payment) -> None:
    try:
        client = clients.get_client(payment.client_id)
    except (NotFoundError, sqlite3.Error) as e:
        logging.warning(f"Could not load client for revenue order of payment {payment.id}: {e}")
        return
    orders.emit_gym_order(payment, client.name, client.email)


def record_payment(
    membership_id: int,
    client_id: int,
    plan_id: int,
    amount,
    method: PaymentMethod | str,
    payment_date,
    period_start,
    period_end,
    invoice_required: bool = False,
    notes: str | None = None,
    invoice_number: str | None = None,
    account_ref: str | None = None,
) -> Payment:
    """
    Record a payment against an existing membership.
    The membership must belong to `client_id` and `plan_id` must be active;
    a cancelled membership has to be reactivated first.
    """
    with ledger.client_transaction(client_id) as conn:
        period = ledger.get_period(membership_id, conn=conn)
        if period.client_id != client_id:
            raise ValidationError("Client does not match the membership.", field="client_id")
        payment = _insert_payment(
            conn, period, plan_id, amount, method, payment_date, period_start, period_end,
            invoice_required, invoice_number, notes, account_ref,
        )

    _emit_order(payment)
    return payment


def renew(
    client_id: int,
    plan_id: int,
    method: PaymentMethod | str,
    amount=None,
    payment_date=None,
    start_date=None,
    end_date=None,
    invoice_required: bool = False,
    notes: str | None = None,
    invoice_number: str | None = None,
    today: date | None = None,
) -> tuple[MembershipPeriod, Payment, bool]:
    """
    One-step renewal: chain the next period for the plan and record a
    payment covering exactly that period (amount defaults to the plan price).
    Returns (period, payment, is_advance_payment).
    """
    today = today or utils.today()
    with ledger.client_transaction(client_id) as conn:
        plan = plans.get_active_plan(plan_id, conn=conn)
        period, nxt = ledger.open_next_period(
            client_id, plan_id, start_date, end_date, today=today, conn=conn,
        )
        payment = _insert_payment(
            conn,
            period,
            plan_id,
            plan.price if amount is None else amount,
            method,
            payment_date or today,
            nxt.start,
            nxt.end,
            invoice_required,
            invoice_number,
            notes,
            None,
        )

    _emit_order(payment)
    if nxt.is_advance_payment:
        logging.info(f"Advance payment for client {client_id}: period starts {nxt.start}")
    return period, payment, nxt.is_advance_payment
