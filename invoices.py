"""
invoices.py
Invoice sequencer: fixed-width, zero-padded, strictly increasing invoice numbers.

The counter lives in app_settings and is bumped inside the caller's
BEGIN IMMEDIATE transaction, so the number and the payment row commit together.
"""

from __future__ import annotations

import logging
import sqlite3
import time

import db
import utils
from config import Config
from models import NormalizationReport

COUNTER_KEY = "invoice_counter"
FALLBACK_PREFIX = "TMP-"


def format_invoice(number: int, width: int | None = None) -> str:
    return str(number).zfill(width or Config.INVOICE_WIDTH)


def _numeric(invoice_number: str | None) -> int | None:
    value = (invoice_number or "").strip()
    return int(value) if value.isdigit() else None


def _max_existing(conn: sqlite3.Connection) -> int:
    row = db.fetch_one(
        """
        SELECT MAX(CAST(invoice_number AS INTEGER)) AS m FROM payments
        WHERE invoice_number IS NOT NULL AND invoice_number != ''
          AND invoice_number NOT GLOB '*[^0-9]*'
        """,
        conn=conn,
    )
    return int(row["m"] or 0)


def current_counter(conn: sqlite3.Connection) -> int:
    stored = db.get_setting(COUNTER_KEY, conn=conn)
    if stored is not None:
        return max(int(stored), _max_existing(conn))
    # first use: seed from the payment count, same as the historical numbering
    count = db.fetch_one("SELECT COUNT(*) AS c FROM payments", conn=conn)["c"]
    return max(int(count), _max_existing(conn))


def fallback_number() -> str:
    # never purely numeric, so it cannot collide with or push the counter
    return f"{FALLBACK_PREFIX}{int(time.time() * 1000)}"



def assign(conn: sqlite3.Connection, explicit: str | None = None) -> tuple[str, bool]:
    """
    Invoice number for a payment about to be inserted on `conn`.
    Returns (number, auto_assigned). Explicit numbers are used verbatim.
    Never raises on storage errors: numbering must not block a payment.
    """
    explicit = (explicit or "").strip()
    if explicit:
        return explicit, False

    try:
        nxt = current_counter(conn) + 1
        db.set_setting(COUNTER_KEY, str(nxt), conn=conn)
        return format_invoice(nxt), True
    except sqlite3.Error as e:
        number = fallback_number()
        logging.warning(f"Invoice counter unavailable ({e}); using fallback number {number}")
        return number, True


def normalize() -> NormalizationReport:
    """
    One-time cleanup of historical invoice numbers, oldest payment first:
    numeric numbers are re-padded to the configured width, missing numbers
    are filled from max(existing) + 1 upwards, and so are fallback numbers
    handed out while the counter was unavailable. Other non-numeric values
    are left alone.
    """
    report = NormalizationReport()
    with db.atomic() as conn:
        rows = db.fetch_all(
            "SELECT id, invoice_number FROM payments ORDER BY created_at ASC, id ASC",
            conn=conn,
        )
        taken = {r["invoice_number"] for r in rows if r["invoice_number"]}
        counter = _max_existing(conn)
        now = utils.now_iso()

        for row in rows:
            current = (row["invoice_number"] or "").strip()
            if not current or current.startswith(FALLBACK_PREFIX):
                counter += 1
                number = format_invoice(counter)
                while number in taken:
                    counter += 1
                    number = format_invoice(counter)
                conn.execute(
                    "UPDATE payments SET invoice_number=?, updated_at=? WHERE id=?",
                    (number, now, row["id"]),
                )
                taken.add(number)
                report.assigned.append((row["id"], number))
                continue

            value = _numeric(current)
            if value is None:
                logging.warning(f"Payment {row['id']} has a non-numeric invoice number: {current!r}")
                report.skipped += 1
                continue

            padded = format_invoice(value)
            if padded == current:
                report.skipped += 1
            elif padded in taken:
                logging.warning(f"Payment {row['id']}: {current!r} -> {padded!r} would duplicate, left as is")
                report.skipped += 1
            else:
                conn.execute(
                    "UPDATE payments SET invoice_number=?, updated_at=? WHERE id=?",
                    (padded, now, row["id"]),
                )
                taken.discard(current)
                taken.add(padded)
                report.repadded.append((row["id"], current, padded))

        db.set_setting(COUNTER_KEY, str(max(counter, current_counter(conn))), conn=conn)

    logging.info(
        f"Invoice numbers normalized: {len(report.assigned)} assigned, "
        f"{len(report.repadded)} re-padded, {report.skipped} unchanged"
    )
    return report
