"""Tests for schema setup."""
from __future__ import annotations

import sqlite3
from datetime import date

import db
import ledger
from config import Config
from models import MembershipStatus


def test_init_db_is_idempotent():
    db.init_db()
    db.init_db()
    assert db.fetch_one("SELECT COUNT(*) AS n FROM memberships")["n"] == 0


def test_init_db_adds_missing_columns(tmp_path, monkeypatch):
    old = tmp_path / "old.db"
    conn = sqlite3.connect(old)
    conn.execute(
        """
        CREATE TABLE memberships (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_id INTEGER NOT NULL,
            plan_id INTEGER NOT NULL,
            account_ref TEXT,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            status TEXT NOT NULL,
            plan_price TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.close()
    monkeypatch.setattr(Config, "DB_PATH", old)
    db.init_db()

    columns = {r["name"] for r in db.fetch_all("PRAGMA table_info(memberships)")}
    assert "status_before_cancel" in columns


def test_cancel_and_reactivate_on_upgraded_row(make_client, monthly):
    c = make_client()
    period = ledger.create_period(c.id, monthly.id, today=date(2024, 1, 1))
    # a row cancelled before the column existed has no remembered status
    db.execute("UPDATE memberships SET status='cancelled', status_before_cancel=NULL WHERE id=?", (period.id,))
    assert ledger.reactivate(period.id).status is MembershipStatus.ACTIVE
