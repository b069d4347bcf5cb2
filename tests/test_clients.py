"""Tests for the client directory."""
from __future__ import annotations

from datetime import date

import pytest

import clients
import db
import ledger
import payments
from errors import ConflictError, NotFoundError, ValidationError


class TestCreateClient:

    def test_create_trims_and_stores(self):
        c = clients.create_client("  123  ", " Ana ", "(300) 123-4567", email=" ")
        assert c.document_id == "123"
        assert c.name == "Ana"
        assert c.email is None
        assert c.account_ref is None
        assert c.is_inactive is False

    def test_missing_fields_reported_per_field(self):
        with pytest.raises(ValidationError) as exc:
            clients.create_client("", "", "")
        assert set(exc.value.errors) == {"document_id", "name", "phone"}

    def test_phone_needs_ten_digits(self):
        with pytest.raises(ValidationError) as exc:
            clients.create_client("1", "Ana", "300-123-45")
        assert "phone" in exc.value.errors

    def test_duplicate_document_is_conflict(self):
        clients.create_client("123", "Ana", "3001234567")
        with pytest.raises(ConflictError):
            clients.create_client(" 123", "Other", "3001234567")


class TestLookups:

    def test_find_by_document(self, make_client):
        c = make_client("Ana")
        assert clients.find_by_document(c.document_id).id == c.id
        assert clients.find_by_document("nope") is None

    def test_search_matches_name_document_phone(self, make_client):
        make_client("Ana Gomez", phone="3001111111")
        make_client("Luis Perez", phone="3002222222")
        assert [c.name for c in clients.list_clients("gomez")] == ["Ana Gomez"]
        assert [c.name for c in clients.list_clients("2222")] == ["Luis Perez"]

    def test_get_unknown_client(self):
        with pytest.raises(NotFoundError):
            clients.get_client(999)


class TestUpdateClient:

    def test_document_id_is_immutable(self, make_client):
        c = make_client()
        with pytest.raises(ValidationError):
            clients.update_client(c.id, document_id="X")

    def test_update_fields(self, make_client):
        c = make_client()
        updated = clients.update_client(c.id, name="New Name", weight=70.5, birth_date="1990-05-01")
        assert updated.name == "New Name"
        assert updated.weight == 70.5
        assert updated.birth_date == date(1990, 5, 1)

    def test_update_revalidates_phone(self, make_client):
        c = make_client()
        with pytest.raises(ValidationError):
            clients.update_client(c.id, phone="123")


class TestLinkAccount:

    def test_link_once_and_propagate(self, make_client, monthly):
        c = make_client()
        period, payment, _ = payments.renew(c.id, monthly.id, "cash", today=date(2024, 1, 1))
        linked = clients.link_account(c.document_id, "acct-1")
        assert linked.account_ref == "acct-1"
        assert ledger.get_period(period.id).account_ref == "acct-1"
        assert payments.get_payment(payment.id).account_ref == "acct-1"

    def test_link_is_never_reset(self, make_client):
        c = make_client()
        clients.link_account(c.document_id, "acct-1")
        assert clients.link_account(c.document_id, "acct-1").account_ref == "acct-1"
        with pytest.raises(ConflictError):
            clients.link_account(c.document_id, "acct-2")

    def test_link_lost_to_a_concurrent_link_is_conflict(self, make_client, monkeypatch):
        c = make_client()
        stale = clients.find_by_document(c.document_id)
        db.execute("UPDATE clients SET account_ref='acct-A' WHERE id=?", (c.id,))
        monkeypatch.setattr(clients, "find_by_document", lambda document_id, conn=None: stale)
        with pytest.raises(ConflictError):
            clients.link_account(c.document_id, "acct-B")
        assert clients.get_client(c.id).account_ref == "acct-A"

    def test_new_periods_copy_the_link(self, make_client, monthly):
        c = make_client()
        clients.link_account(c.document_id, "acct-9")
        period = ledger.create_period(c.id, monthly.id, today=date(2024, 1, 1))
        assert period.account_ref == "acct-9"


class TestInactiveAndDelete:

    def test_toggle_inactive(self, make_client):
        c = make_client()
        assert clients.set_inactive(c.id, True).is_inactive is True
        assert clients.set_inactive(c.id, False).is_inactive is False
        with pytest.raises(ValidationError):
            clients.set_inactive(c.id, "yes")

    def test_delete_client_without_history(self, make_client):
        c = make_client()
        clients.delete_client(c.id)
        with pytest.raises(NotFoundError):
            clients.get_client(c.id)

    def test_delete_refused_with_live_membership(self, make_client, monthly):
        c = make_client()
        ledger.create_period(c.id, monthly.id, date(2020, 1, 1), date(2020, 1, 30))
        with pytest.raises(ConflictError):
            clients.delete_client(c.id)

    def test_delete_allowed_when_only_cancelled(self, make_client, monthly):
        c = make_client()
        period = ledger.create_period(c.id, monthly.id, date(2020, 1, 1), date(2020, 1, 30))
        ledger.cancel(period.id)
        clients.delete_client(c.id)
        assert db.fetch_one("SELECT COUNT(*) AS n FROM memberships")["n"] == 0

    def test_delete_refused_with_payments(self, make_client, monthly):
        c = make_client()
        period, _, _ = payments.renew(c.id, monthly.id, "cash", today=date(2020, 1, 1))
        ledger.cancel(period.id)
        with pytest.raises(ConflictError):
            clients.delete_client(c.id)
