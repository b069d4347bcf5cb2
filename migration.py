"""
migration.py
Bulk import of an exported expiry report (one row per sale) into clients,
plans, membership periods and payments.

The export is a CSV with the previous system's Spanish headers
(AFILIADO, DOCUMENTO, INICIO, FIN, PRODUCTO, VLR. PAGADO, ...);
headers already named after our fields are accepted as well.
Prices come as "$125.000,00", dates as "2024/01/31".
"""

from __future__ import annotations

import logging
import re
from datetime import date
from decimal import Decimal

import pandas as pd

import clients
import ledger
import payments
import plans
import utils
from config import Config
from errors import GymError
from models import Client, ImportReport, PaymentMethod, Plan

# export header -> field
COLUMNS = {
    "AFILIADO": "name",
    "DOCUMENTO": "document_id",
    "FECHA FACTURA": "invoice_date",
    "FACTURA": "invoice_number",
    "INICIO": "start_date",
    "FIN": "end_date",
    "PRODUCTO": "product",
    "VLR. PAGADO": "amount",
    "FECHA NAC": "birth_date",
    "TELEFONO": "landline",
    "CELULAR": "phone",
    "E-MAIL": "email",
}
FIELDS = tuple(dict.fromkeys(COLUMNS.values()))
CLIENT_FIELDS = ("name", "phone", "email", "birth_date")

IMPORTED_PLAN_DAYS = 30
PLAN_NAME_LIMIT = 50
IMPORT_NOTE = "Imported from report"
ZERO = Decimal("0")


def parse_price(raw) -> Decimal | None:
    """'$125.000,00' -> 125000.00, '125.000' -> 125000, '99.5' -> 99.5. Garbage -> None."""
    text = str(raw or "").replace("$", "").replace(" ", "").strip()
    if not text:
        return None
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    elif re.fullmatch(r"\d{1,3}(\.\d{3})+", text):
        text = text.replace(".", "")
    try:
        return utils.to_money(text)
    except ValueError:
        return None


def parse_report_date(raw) -> date | None:
    text = str(raw or "").strip()
    if re.fullmatch(r"\d{4}/\d{2}/\d{2}", text):
        text = text.replace("/", "-")
    try:
        return utils.parse_iso(text)
    except ValueError:
        return None


def read_report(source) -> pd.DataFrame:
    """Load the CSV export (path or file object), headers mapped to field names."""
    df = pd.read_csv(source, dtype=str, keep_default_na=False)
    df = df.rename(columns=lambda c: COLUMNS.get(str(c).strip().upper(), str(c).strip().lower()))
    for column in FIELDS:
        if column not in df.columns:
            df[column] = ""
    return df[list(FIELDS)].apply(lambda s: s.str.strip())


def prepare(df: pd.DataFrame) -> list[dict]:
    """Typed rows, oldest sale first. `row` is the line number in the file."""
    df = df.copy()
    # line 1 is the header
    df["row"] = range(2, len(df) + 2)
    for column in ("invoice_date", "start_date", "end_date", "birth_date"):
        df[column] = df[column].map(parse_report_date)
    df["amount"] = df["amount"].map(parse_price)
    df["phone"] = df["phone"].where(df["phone"] != "", df["landline"])
    df["product"] = df["product"].str.slice(0, PLAN_NAME_LIMIT).str.strip()

    records = df.to_dict("records")
    records.sort(key=lambda r: (r["start_date"] or date.min, r["row"]))
    return records


def _client_changes(client: Client, row: dict) -> dict:
    changes = {}
    if row["name"] and row["name"] != client.name:
        changes["name"] = row["name"]
    if (
        row["phone"]
        and len(utils.phone_digits(row["phone"])) >= Config.MIN_PHONE_DIGITS
        and row["phone"] != client.phone
    ):
        changes["phone"] = row["phone"]
    if row["email"] and row["email"] != client.email:
        changes["email"] = row["email"]
    if row["birth_date"] and row["birth_date"] != client.birth_date:
        changes["birth_date"] = row["birth_date"]
    return changes


def import_clients(records: list[dict], report: ImportReport) -> tuple[dict[str, Client], dict[str, str]]:
    """
    Upsert one client per document ID, each field taken from the most
    recent row that fills it in.
    Returns (clients by document, failure reason by document).
    """
    merged: dict[str, dict] = {}
    for row in records:
        values = merged.setdefault(row["document_id"], dict.fromkeys(CLIENT_FIELDS))
        for key in CLIENT_FIELDS:
            if row[key]:
                values[key] = row[key]

    imported: dict[str, Client] = {}
    failures: dict[str, str] = {}
    for document_id, row in merged.items():
        try:
            existing = clients.find_by_document(document_id)
            if existing is None:
                imported[document_id] = clients.create_client(
                    document_id, row["name"], row["phone"], row["email"], row["birth_date"]
                )
                report.clients_created += 1
                continue
            changes = _client_changes(existing, row)
            if changes:
                existing = clients.update_client(existing.id, **changes)
                report.clients_updated += 1
            imported[document_id] = existing
        except GymError as e:
            failures[document_id] = f"client {document_id} not imported ({e})"
    return imported, failures


def import_plans(records: list[dict], report: ImportReport) -> dict[str, Plan]:
    """
    One plan per product, priced at the highest amount paid for it.
    Plans that already exist under the same name are reused untouched.
    """
    existing = {p.name: p for p in plans.list_plans()}
    prices: dict[str, Decimal] = {}
    for row in records:
        if row["product"]:
            prices[row["product"]] = max(prices.get(row["product"], ZERO), row["amount"] or ZERO)

    by_product: dict[str, Plan] = {}
    for product, price in prices.items():
        plan = existing.get(product)
        if plan is None:
            try:
                plan = plans.create_plan(product, price, IMPORTED_PLAN_DAYS, description=IMPORT_NOTE)
            except GymError as e:
                logging.warning(f"Import: no plan created for product {product!r}: {e}")
                continue
            report.plans_created += 1
        by_product[product] = plan
    return by_product


def _already_imported(client_id: int, start: date, end: date) -> bool:
    return any(
        p.start_date == start and p.end_date == end
        for p in ledger.list_periods(client_id, include_cancelled=False)
    )


def import_history(
    records: list[dict],
    by_document: dict[str, Client],
    failures: dict[str, str],
    by_product: dict[str, Plan],
    report: ImportReport,
    method: PaymentMethod | str = PaymentMethod.CASH,
) -> None:
    """One membership period per row, plus its payment when an amount was paid."""
    for row in records:
        client = by_document.get(row["document_id"])
        plan = by_product.get(row["product"])
        start, end = row["start_date"], row["end_date"]

        if client is None:
            reason = failures.get(row["document_id"], "client not imported")
        elif plan is None:
            reason = f"no plan for product {row['product']!r}"
        elif start is None or end is None:
            reason = "missing start or end date"
        elif _already_imported(client.id, start, end):
            reason = "already imported"
        else:
            reason = None
        if reason:
            report.skipped.append((row["row"], reason))
            continue

        try:
            period = ledger.create_period(client.id, plan.id, start, end)
            report.periods_created += 1
            if row["amount"] and row["amount"] > 0:
                payments.record_payment(
                    period.id, client.id, plan.id, row["amount"], method,
                    row["invoice_date"] or start, start, end,
                    notes=IMPORT_NOTE, invoice_number=row["invoice_number"] or None,
                )
                report.payments_recorded += 1
        except GymError as e:
            report.skipped.append((row["row"], str(e)))


def run_import(source, method: PaymentMethod | str = PaymentMethod.CASH) -> ImportReport:
    """
    Import a whole report. Rows are independent: a bad row is skipped and
    reported, the rest still go in. Running the same file twice adds nothing.
    """
    report = ImportReport()
    records = []
    for row in prepare(read_report(source)):
        # header repeats and footers carry no numeric document
        if not row["document_id"].isdigit() or not row["name"]:
            report.skipped.append((row["row"], "not a client row"))
            continue
        records.append(row)

    by_document, failures = import_clients(records, report)
    by_product = import_plans(records, report)
    import_history(records, by_document, failures, by_product, report, method)

    for line, reason in report.skipped:
        logging.warning(f"Import: row {line} skipped: {reason}")
    logging.info(
        f"Import finished: {report.clients_created} clients created, {report.clients_updated} updated, "
        f"{report.plans_created} plans, {report.periods_created} periods, "
        f"{report.payments_recorded} payments, {len(report.skipped)} rows skipped"
    )
    return report
