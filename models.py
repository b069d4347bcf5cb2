"""
models.py
Lightweight domain types (records, enums, status derivation).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    COURTESY = "courtesy"


# Stored values that are authoritative on their own; anything else is
# time-bound and must be compared against the clock on every read.
STICKY_STATUSES = (MembershipStatus.CANCELLED, MembershipStatus.COURTESY)


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    MIXED = "mixed"


class Channel(str, Enum):
    GYM = "gym"
    ONLINE = "online"
    BOTH = "both"


class Bucket(str, Enum):
    ACTIVE = "active"
    RENEWAL = "renewal"
    NO_PRODUCTS = "no-products"
    INACTIVE = "inactive"


def derive_status(stored: str, end_date: date, today: date) -> MembershipStatus:
    """
    Effective status of a period on `today`.
    cancelled/courtesy come straight from storage; everything else is
    active while end_date >= today and expired afterwards.
    """
    status = MembershipStatus(stored)
    if status in STICKY_STATUSES:
        return status
    return MembershipStatus.ACTIVE if end_date >= today else MembershipStatus.EXPIRED


def _d(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class Client:
    id: int | None
    document_id: str
    name: str
    phone: str
    email: str | None = None
    birth_date: date | None = None
    weight: float | None = None
    medical_restrictions: str | None = None
    account_ref: str | None = None
    is_inactive: bool = False
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> "Client":
        return cls(
            id=row["id"],
            document_id=row["document_id"],
            name=row["name"],
            phone=row["phone"],
            email=row["email"],
            birth_date=_d(row["birth_date"]),
            weight=row["weight"],
            medical_restrictions=row["medical_restrictions"],
            account_ref=row["account_ref"],
            is_inactive=bool(row["is_inactive"]),
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class Plan:
    id: int | None
    name: str
    price: Decimal
    duration_days: int
    description: str | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row) -> "Plan":
        return cls(
            id=row["id"],
            name=row["name"],
            price=Decimal(row["price"]),
            duration_days=int(row["duration_days"]),
            description=row["description"],
            is_active=bool(row["is_active"]),
        )


@dataclass(frozen=True)
class MembershipPeriod:
    id: int | None
    client_id: int
    plan_id: int
    start_date: date
    end_date: date
    status: MembershipStatus
    plan_price: Decimal
    account_ref: str | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> "MembershipPeriod":
        return cls(
            id=row["id"],
            client_id=row["client_id"],
            plan_id=row["plan_id"],
            start_date=_d(row["start_date"]),
            end_date=_d(row["end_date"]),
            status=MembershipStatus(row["status"]),
            plan_price=Decimal(row["plan_price"]),
            account_ref=row["account_ref"],
            created_at=row["created_at"],
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status is MembershipStatus.CANCELLED

    def effective_status(self, today: date) -> MembershipStatus:
        return derive_status(self.status, self.end_date, today)

    def grants_access(self, today: date) -> bool:
        """Active or courtesy, and not past its end date."""
        return not self.is_cancelled and self.end_date >= today


@dataclass(frozen=True)
class Payment:
    id: int | None
    membership_id: int
    client_id: int
    plan_id: int
    amount: Decimal
    method: PaymentMethod
    payment_date: date
    period_start: date
    period_end: date
    invoice_required: bool = False
    invoice_number: str | None = None
    notes: str | None = None
    account_ref: str | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> "Payment":
        return cls(
            id=row["id"],
            membership_id=row["membership_id"],
            client_id=row["client_id"],
            plan_id=row["plan_id"],
            amount=Decimal(row["amount"]),
            method=PaymentMethod(row["method"]),
            payment_date=_d(row["payment_date"]),
            period_start=_d(row["period_start"]),
            period_end=_d(row["period_end"]),
            invoice_required=bool(row["invoice_required"]),
            invoice_number=row["invoice_number"],
            notes=row["notes"],
            account_ref=row["account_ref"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class Order:
    id: int | None
    channel: Channel
    status: str
    amount: Decimal
    created_at: str
    method: str | None = None
    plan_id: int | None = None
    payment_id: int | None = None
    account_ref: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None

    @classmethod
    def from_row(cls, row) -> "Order":
        return cls(
            id=row["id"],
            channel=Channel(row["channel"]),
            status=row["status"],
            amount=Decimal(row["amount"]),
            created_at=row["created_at"],
            method=row["method"],
            plan_id=row["plan_id"],
            payment_id=row["payment_id"],
            account_ref=row["account_ref"],
            customer_name=row["customer_name"],
            customer_email=row["customer_email"],
        )


@dataclass(frozen=True)
class NextPeriod:
    start: date
    end: date
    is_advance_payment: bool


# ---------- Derived (never persisted) ----------

@dataclass(frozen=True)
class CollectionEntry:
    client_id: int
    client_name: str
    document_id: str
    phone: str
    email: str | None
    membership_id: int | None
    account_ref: str | None
    plan_name: str
    plan_price: Decimal
    membership_start_date: date | None
    membership_end_date: date
    days_overdue: int
    status: MembershipStatus
    last_payment_date: date | None = None
    last_payment_amount: Decimal | None = None


@dataclass(frozen=True)
class RosterEntry:
    client: Client
    bucket: Bucket
    has_active: bool
    has_expired_only: bool
    has_any_membership: bool
    latest_end_date: date | None
    days_since_expired: int | None
    suggest_inactivation: bool


@dataclass
class RevenueRow:
    channel: Channel
    total: Decimal = Decimal("0")
    cash: Decimal = Decimal("0")
    transfer: Decimal = Decimal("0")
    mixed: Decimal = Decimal("0")
    count: int = 0

    def as_dict(self) -> dict:
        return {
            "channel": self.channel.value,
            "total": self.total,
            "cash": self.cash,
            "transfer": self.transfer,
            "mixed": self.mixed,
            "count": self.count,
        }


@dataclass
class NormalizationReport:
    assigned: list[tuple[int, str]] = field(default_factory=list)
    repadded: list[tuple[int, str, str]] = field(default_factory=list)
    skipped: int = 0


@dataclass
class ImportReport:
    clients_created: int = 0
    clients_updated: int = 0
    plans_created: int = 0
    periods_created: int = 0
    payments_recorded: int = 0
    # (row number in the report, reason)
    skipped: list[tuple[int, str]] = field(default_factory=list)
