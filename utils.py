"""
utils.py
Validation, dates, money, exports, sample data.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum

import pandas as pd

from config import Config
from models import PaymentMethod


def today() -> date:
    return date.today()


def now_iso() -> str:
    return datetime.now().isoformat(timespec="microseconds")


def parse_iso(d) -> date:
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    return date.fromisoformat(str(d)[:10])


def days_between(earlier: date, later: date) -> int:
    """Whole days from `earlier` to `later` (negative when later < earlier)."""
    return (later - earlier).days


def period_end_for(start: date, duration_days: int) -> date:
    # end is inclusive: a 30-day plan starting on the 1st ends on the 30th
    return start + timedelta(days=duration_days - 1)


def to_money(value) -> Decimal:
    """Parse an amount into a Decimal. Raises ValueError on garbage."""
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"not a number: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return amount


def phone_digits(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def validate_client_inputs(document_id: str | None, name: str | None, phone: str | None) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not (document_id or "").strip():
        errors["document_id"] = "Document ID is required."
    if not (name or "").strip():
        errors["name"] = "Name is required."
    if not (phone or "").strip():
        errors["phone"] = "Phone is required."
    elif len(phone_digits(phone)) < Config.MIN_PHONE_DIGITS:
        errors["phone"] = f"Phone must have at least {Config.MIN_PHONE_DIGITS} digits."
    return errors


def validate_plan_inputs(name: str | None, price, duration_days) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not (name or "").strip():
        errors["name"] = "Plan name is required."
    try:
        if to_money(price) <= 0:
            errors["price"] = "Price must be > 0."
    except ValueError:
        errors["price"] = "Price must be numeric."
    try:
        if int(duration_days) <= 0:
            errors["duration_days"] = "Duration must be > 0 days."
    except (TypeError, ValueError):
        errors["duration_days"] = "Duration must be a whole number of days."
    return errors


def validate_date_range(start, end, start_field: str = "start_date", end_field: str = "end_date") -> dict[str, str]:
    errors: dict[str, str] = {}
    try:
        sd = parse_iso(start)
        ed = parse_iso(end)
    except (TypeError, ValueError):
        errors[start_field] = "Dates must be valid ISO dates (YYYY-MM-DD)."
        return errors
    if ed < sd:
        errors[end_field] = "End date must be on or after start date."
    return errors


def validate_payment_inputs(amount, method, payment_date, period_start, period_end) -> dict[str, str]:
    errors: dict[str, str] = {}
    try:
        if to_money(amount) <= 0:
            errors["amount"] = "Amount must be > 0."
    except ValueError:
        errors["amount"] = "Amount must be numeric."
    try:
        PaymentMethod(method)
    except ValueError:
        errors["method"] = "Method must be one of: cash, transfer, mixed."
    try:
        parse_iso(payment_date)
    except (TypeError, ValueError):
        errors["payment_date"] = "Payment date must be a valid ISO date."
    errors.update(validate_date_range(period_start, period_end, "period_start", "period_end"))
    return errors


def records_to_csv_bytes(records) -> bytes:
    """CSV export of model records (payments, collections rows)."""
    df = pd.DataFrame(
        [{k: (v.value if isinstance(v, Enum) else v) for k, v in vars(r).items()} for r in records]
    )
    return df.to_csv(index=False).encode("utf-8")


def insert_sample_data() -> None:
    """
    Insert 3 clients, one plan and a few payments
    (safe to run multiple times: new document IDs are generated each run).
    """
    import clients
    import ledger
    import payments
    import plans

    stamp = datetime.now().strftime("%H%M%S%f")
    monthly = plans.create_plan("Monthly", "100000", 30, description="Sample 30-day plan")

    # Client 1: up to date, renewed today
    c1 = clients.create_client(f"S1-{stamp}", "Ahmed Hassan", "3000000001")
    payments.renew(c1.id, monthly.id, PaymentMethod.CASH, notes="Sample payment")

    # Client 2: paid two months ago, now overdue
    c2 = clients.create_client(f"S2-{stamp}", "Mona Ali", "3000000002")
    start = date.today() - timedelta(days=60)
    period = ledger.create_period(c2.id, monthly.id, start, period_end_for(start, 30))
    payments.record_payment(
        period.id, c2.id, monthly.id, monthly.price, PaymentMethod.TRANSFER,
        start, period.start_date, period.end_date, notes="Old payment",
    )

    # Client 3: registered, never bought anything
    clients.create_client(f"S3-{stamp}", "Omar Samy", "3000000003")
