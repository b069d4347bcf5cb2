"""
db.py
SQLite helpers + initialization (creates DB/tables, settings, atomic write transactions).
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from config import Config


def _connect(**kwargs) -> sqlite3.Connection:
    conn = sqlite3.connect(Config.DB_PATH, check_same_thread=False, timeout=30, **kwargs)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_conn():
    conn = _connect()
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


@contextmanager
def atomic():
    """
    Write transaction taken with BEGIN IMMEDIATE.
    The write lock is held from the first read, so read-then-write sequences
    (chaining, invoice counter) cannot interleave with another writer.
    """
    conn = _connect(isolation_level=None)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def execute(sql: str, params: tuple = (), conn: sqlite3.Connection | None = None) -> int:
    if conn is not None:
        return conn.execute(sql, params).lastrowid
    with get_conn() as c:
        cur = c.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = (), conn: sqlite3.Connection | None = None):
    if conn is not None:
        return conn.execute(sql, params).fetchone()
    with get_conn() as c:
        return c.execute(sql, params).fetchone()


def fetch_all(sql: str, params: tuple = (), conn: sqlite3.Connection | None = None) -> list[sqlite3.Row]:
    if conn is not None:
        return conn.execute(sql, params).fetchall()
    with get_conn() as c:
        return c.execute(sql, params).fetchall()


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS clients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        document_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT NOT NULL,
        birth_date TEXT,
        weight REAL,
        medical_restrictions TEXT,
        account_ref TEXT,
        is_inactive INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS plans (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        price TEXT NOT NULL,
        duration_days INTEGER NOT NULL CHECK(duration_days > 0),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memberships (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        client_id INTEGER NOT NULL,
        plan_id INTEGER NOT NULL,
        account_ref TEXT,
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        status TEXT NOT NULL CHECK(status IN ('active','expired','cancelled','courtesy')),
        status_before_cancel TEXT,
        plan_price TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK(end_date >= start_date),
        FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE,
        FOREIGN KEY(plan_id) REFERENCES plans(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        membership_id INTEGER NOT NULL,
        client_id INTEGER NOT NULL,
        plan_id INTEGER NOT NULL,
        account_ref TEXT,
        amount TEXT NOT NULL,
        method TEXT NOT NULL CHECK(method IN ('cash','transfer','mixed')),
        payment_date TEXT NOT NULL,
        period_start TEXT NOT NULL,
        period_end TEXT NOT NULL,
        invoice_required INTEGER NOT NULL DEFAULT 0,
        invoice_number TEXT,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY(membership_id) REFERENCES memberships(id),
        FOREIGN KEY(client_id) REFERENCES clients(id),
        FOREIGN KEY(plan_id) REFERENCES plans(id)
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_payments_invoice_number
    ON payments(invoice_number) WHERE invoice_number IS NOT NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        channel TEXT NOT NULL CHECK(channel IN ('gym','online')),
        status TEXT NOT NULL,
        amount TEXT NOT NULL,
        method TEXT,
        plan_id INTEGER,
        payment_id INTEGER,
        account_ref TEXT,
        customer_name TEXT,
        customer_email TEXT,
        created_at TEXT NOT NULL
    )
    """,
    # Small key/value table (invoice counter lives here)
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
)


# columns added after the first release: (table, column, type)
ADDED_COLUMNS = (
    ("memberships", "status_before_cancel", "TEXT"),
)


def _create_tables() -> None:
    with get_conn() as conn:
        for statement in SCHEMA:
            conn.execute(statement)
        for table, column, kind in ADDED_COLUMNS:
            existing = {r["name"] for r in conn.execute(f"PRAGMA table_info({table})")}
            if column not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {kind}")
                logging.info(f"Added column {table}.{column}")



def get_setting(key: str, default: str | None = None, conn: sqlite3.Connection | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,), conn=conn)
    if row:
        return str(row["value"])
    return default


def set_setting(key: str, value: str, conn: sqlite3.Connection | None = None) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
        conn=conn,
    )


def init_db() -> None:
    """
    Initialize the database.
    - Create tables and indexes (idempotent)
    - Add columns missing from databases created by older versions
    """
    Path(Config.DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    _create_tables()
    logging.info(f"Database ready at {Config.DB_PATH}")
