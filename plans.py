"""
plans.py
Membership plans: purchasable offerings with a price and a duration in days.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date

import db
import utils
from errors import ConflictError, NotFoundError, ValidationError
from models import Plan


def get_plan(plan_id: int, conn: sqlite3.Connection | None = None) -> Plan:
    row = db.fetch_one("SELECT * FROM plans WHERE id = ?", (plan_id,), conn=conn)
    if not row:
        raise NotFoundError(f"Plan {plan_id} not found.")
    return Plan.from_row(row)


def get_active_plan(plan_id: int, conn: sqlite3.Connection | None = None) -> Plan:
    plan = get_plan(plan_id, conn=conn)
    if not plan.is_active:
        raise ValidationError(f"Plan '{plan.name}' is not active.", field="plan_id")
    return plan


def list_plans(active_only: bool = False) -> list[Plan]:
    sql = "SELECT * FROM plans"
    if active_only:
        sql += " WHERE is_active = 1"
    sql += " ORDER BY name ASC, id ASC"
    return [Plan.from_row(r) for r in db.fetch_all(sql)]


def create_plan(name: str, price, duration_days: int, description: str | None = None, is_active: bool = True) -> Plan:
    errors = utils.validate_plan_inputs(name, price, duration_days)
    if errors:
        raise ValidationError(errors)

    now = utils.now_iso()
    plan_id = db.execute(
        """
        INSERT INTO plans(name, description, price, duration_days, is_active, created_at, updated_at)
        VALUES(?,?,?,?,?,?,?)
        """,
        (name.strip(), utils.clean(description), str(utils.to_money(price)), int(duration_days), int(is_active), now, now),
    )
    logging.info(f"Plan created: id={plan_id} name={name.strip()}")
    return get_plan(plan_id)


def update_plan(plan_id: int, name=None, price=None, duration_days=None, description=None, is_active=None) -> Plan:
    """
    Edit a plan. Issued periods keep their own dates and price snapshot,
    so only periods created afterwards see the new values.
    """
    current = get_plan(plan_id)
    errors = utils.validate_plan_inputs(
        current.name if name is None else name,
        current.price if price is None else price,
        current.duration_days if duration_days is None else duration_days,
    )
    if errors:
        raise ValidationError(errors)

    db.execute(
        """
        UPDATE plans SET name=?, description=?, price=?, duration_days=?, is_active=?, updated_at=?
        WHERE id=?
        """,
        (
            current.name if name is None else name.strip(),
            current.description if description is None else utils.clean(description),
            str(current.price if price is None else utils.to_money(price)),
            current.duration_days if duration_days is None else int(duration_days),
            int(current.is_active if is_active is None else is_active),
            utils.now_iso(),
            plan_id,
        ),
    )
    return get_plan(plan_id)


def delete_plan(plan_id: int, today: date | None = None) -> Plan:
    """
    Soft delete: the plan is deactivated, never removed.
    Refused while a non-cancelled period on this plan is still running.
    """
    today = today or utils.today()
    plan = get_plan(plan_id)
    running = db.fetch_one(
        """
        SELECT id FROM memberships
        WHERE plan_id=? AND status != 'cancelled' AND end_date >= ?
        LIMIT 1
        """,
        (plan_id, today.isoformat()),
    )
    if running:
        raise ConflictError(f"Plan '{plan.name}' has active memberships, wait until they end.")

    db.execute("UPDATE plans SET is_active=0, updated_at=? WHERE id=?", (utils.now_iso(), plan_id))
    logging.info(f"Plan deactivated: id={plan_id} name={plan.name}")
    return get_plan(plan_id)
