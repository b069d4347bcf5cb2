"""
roster.py
Client roster ranking: one bucket per client and an ordering that puts
clients needing attention first.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime

import db
import utils
from config import Config
from models import Bucket, Client, MembershipPeriod, RosterEntry

BUCKET_RANK = {
    Bucket.ACTIVE: 0,
    Bucket.RENEWAL: 1,
    Bucket.NO_PRODUCTS: 3,
    Bucket.INACTIVE: 3,
}


def classify_bucket(has_active: bool, has_expired_only: bool, has_any_membership: bool, manually_inactive: bool) -> Bucket:
    """Total over all 16 flag combinations; first matching rule wins."""
    if has_active:
        return Bucket.ACTIVE
    if has_expired_only and not manually_inactive:
        return Bucket.RENEWAL
    if not has_any_membership:
        return Bucket.NO_PRODUCTS
    if manually_inactive:
        return Bucket.INACTIVE
    # membership flagged but neither running nor expired: nothing to renew yet
    return Bucket.NO_PRODUCTS


def _created_key(created_at: str) -> float:
    try:
        return datetime.fromisoformat(created_at).timestamp()
    except (TypeError, ValueError):
        return 0.0


def build_entry(client: Client, periods: list[MembershipPeriod], as_of: date) -> RosterEntry:
    live = [p for p in periods if not p.is_cancelled]
    has_any = bool(live)
    has_active = any(p.grants_access(as_of) for p in live)
    has_expired_only = has_any and not has_active
    latest_end = max((p.end_date for p in live), default=None)

    days_since_expired = None
    if has_expired_only and latest_end is not None:
        days_since_expired = utils.days_between(latest_end, as_of)

    bucket = classify_bucket(has_active, has_expired_only, has_any, client.is_inactive)
    suggest = (
        bucket is Bucket.RENEWAL
        and days_since_expired is not None
        and days_since_expired > Config.INACTIVITY_SUGGESTION_DAYS
    )
    return RosterEntry(
        client=client,
        bucket=bucket,
        has_active=has_active,
        has_expired_only=has_expired_only,
        has_any_membership=has_any,
        latest_end_date=latest_end,
        days_since_expired=days_since_expired,
        suggest_inactivation=suggest,
    )


def sort_key(entry: RosterEntry):
    end = entry.latest_end_date
    return (
        BUCKET_RANK[entry.bucket],
        0 if end is not None else 1,
        -end.toordinal() if end is not None else 0,
        -_created_key(entry.client.created_at),
    )


def rank(
    clients: list[Client],
    periods: list[MembershipPeriod],
    as_of: date,
    bucket_filter: Bucket | str | None = None,
) -> list[RosterEntry]:
    """
    Pure ranking over an in-memory snapshot.
    The inactive filter selects every manually flagged client, whatever its bucket.
    """
    by_client: dict[int, list[MembershipPeriod]] = defaultdict(list)
    for p in periods:
        by_client[p.client_id].append(p)

    entries = [build_entry(c, by_client.get(c.id, []), as_of) for c in clients]

    if bucket_filter is not None:
        wanted = Bucket(bucket_filter)
        if wanted is Bucket.INACTIVE:
            entries = [e for e in entries if e.client.is_inactive]
        else:
            entries = [e for e in entries if e.bucket is wanted]

    entries.sort(key=sort_key)
    return entries


def rank_all(as_of: date | None = None, bucket_filter: Bucket | str | None = None, search: str = "") -> list[RosterEntry]:
    as_of = as_of or utils.today()
    sql = "SELECT * FROM clients"
    params: tuple = ()
    if search.strip():
        like = f"%{search.strip()}%"
        sql += " WHERE name LIKE ? OR document_id LIKE ? OR phone LIKE ?"
        params = (like, like, like)
    with db.get_conn() as conn:
        clients = [Client.from_row(r) for r in db.fetch_all(sql, params, conn=conn)]
        periods = [MembershipPeriod.from_row(r) for r in db.fetch_all("SELECT * FROM memberships", conn=conn)]
    return rank(clients, periods, as_of, bucket_filter)
