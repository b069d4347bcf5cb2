"""Tests for the bulk report import."""
from __future__ import annotations

import io
from datetime import date
from decimal import Decimal

import pytest

import clients
import db
import ledger
import migration
import payments
import plans

HEADER = "SEDE,AFILIADO,DOCUMENTO,FECHA FACTURA,INICIO,FIN,PRODUCTO,VLR. PAGADO,CELULAR,TELEFONO,E-MAIL\n"

REPORT = HEADER + (
    'GYM,Ana Perez,1001,2024/01/01,2024/01/01,2024/01/30,Plan Mensual,"$100.000,00",3001234567,,ana@example.com\n'
    'GYM,Ana Perez,1001,2024/01/31,2024/01/31,2024/02/29,Plan Mensual,"$120.000,00",3001234567,,\n'
    'GYM,Luis Gomez,1002,2024/01/15,2024/01/15,2024/02/13,Plan VIP,"$200.000,00",,6041234567,\n'
    + HEADER +
    'GYM,Sin Telefono,1003,2024/01/10,2024/01/10,2024/02/08,Plan Mensual,"$100.000,00",123,,\n'
)


def _run(text, **kwargs):
    return migration.run_import(io.StringIO(text), **kwargs)


@pytest.mark.parametrize("raw, expected", [
    ("$125.000,00", Decimal("125000")),
    ("125.000", Decimal("125000")),
    ("99.5", Decimal("99.5")),
    ("", None),
    ("gratis", None),
])
def test_parse_price(raw, expected):
    assert migration.parse_price(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("2024/01/31", date(2024, 1, 31)),
    ("2024-01-31", date(2024, 1, 31)),
    ("31/01/2024", None),
    ("", None),
])
def test_parse_report_date(raw, expected):
    assert migration.parse_report_date(raw) == expected


class TestRunImport:

    def test_imports_clients_plans_periods_and_payments(self):
        report = _run(REPORT)

        assert report.clients_created == 2
        assert report.plans_created == 2
        assert report.periods_created == 3
        assert report.payments_recorded == 3
        assert [line for line, _ in report.skipped] == [5, 6]
        assert report.skipped[0][1] == "not a client row"
        assert "1003" in report.skipped[1][1]

        ana = clients.find_by_document("1001")
        assert ana.name == "Ana Perez"
        # a blank email on the later row does not wipe the earlier one
        assert ana.email == "ana@example.com"
        assert clients.find_by_document("1002").phone == "6041234567"
        assert clients.find_by_document("1003") is None

        periods = ledger.list_periods(ana.id)
        assert [(p.start_date, p.end_date) for p in periods] == [
            (date(2024, 1, 1), date(2024, 1, 30)),
            (date(2024, 1, 31), date(2024, 2, 29)),
        ]
        paid = payments.list_payments(client_id=ana.id)
        assert sorted(p.amount for p in paid) == [Decimal("100000"), Decimal("120000")]
        assert all(p.notes == migration.IMPORT_NOTE for p in paid)
        assert sorted(p.invoice_number for p in payments.list_payments()) == ["0001", "0002", "0003"]

        mensual = next(p for p in plans.list_plans() if p.name == "Plan Mensual")
        assert mensual.price == Decimal("120000")
        assert mensual.duration_days == 30

    def test_second_run_adds_nothing(self):
        _run(REPORT)
        again = _run(REPORT)
        assert (again.clients_created, again.clients_updated, again.plans_created) == (0, 0, 0)
        assert (again.periods_created, again.payments_recorded) == (0, 0)
        assert sum(1 for _, reason in again.skipped if reason == "already imported") == 3
        assert db.fetch_one("SELECT COUNT(*) AS n FROM payments")["n"] == 3

    def test_existing_client_is_updated_and_plan_reused(self):
        existing = clients.create_client("1001", "Ana", "300 000 0000")
        plans.create_plan("Plan Mensual", "90000", 30)

        report = _run(REPORT)

        assert report.clients_updated == 1
        assert report.plans_created == 1
        updated = clients.get_client(existing.id)
        assert updated.name == "Ana Perez"
        assert updated.phone == "3001234567"
        mensual = next(p for p in plans.list_plans() if p.name == "Plan Mensual")
        assert mensual.price == Decimal("90000")

    def test_overlapping_sale_is_skipped(self):
        text = HEADER + (
            'GYM,Ana Perez,1001,2024/01/01,2024/01/01,2024/01/30,Plan Mensual,"$100.000,00",3001234567,,\n'
            'GYM,Ana Perez,1001,2024/01/15,2024/01/15,2024/02/13,Plan Mensual,"$100.000,00",3001234567,,\n'
        )
        report = _run(text)
        assert report.periods_created == 1
        assert [line for line, _ in report.skipped] == [3]

    def test_invoice_numbers_from_the_report_are_kept(self):
        text = (
            "AFILIADO,DOCUMENTO,FACTURA,INICIO,FIN,PRODUCTO,VLR. PAGADO,CELULAR\n"
            'Ana Perez,1001,A-17,2024/01/01,2024/01/30,Plan Mensual,"$100.000,00",3001234567\n'
        )
        report = _run(text, method="transfer")
        assert report.payments_recorded == 1
        [payment] = payments.list_payments()
        assert payment.invoice_number == "A-17"
        assert payment.method.value == "transfer"
        # no invoice date in the report: paid on the start date
        assert payment.payment_date == date(2024, 1, 1)
