"""
clients.py
Client directory: identity records keyed by document ID.
"""

from __future__ import annotations

import logging
import sqlite3

import db
import utils
from errors import ConflictError, NotFoundError, ValidationError
from models import Client

# Fields an operator may edit after creation (document_id is immutable)
EDITABLE_FIELDS = ("name", "email", "phone", "birth_date", "weight", "medical_restrictions")


def get_client(client_id: int, conn: sqlite3.Connection | None = None) -> Client:
    row = db.fetch_one("SELECT * FROM clients WHERE id = ?", (client_id,), conn=conn)
    if not row:
        raise NotFoundError(f"Client {client_id} not found.")
    return Client.from_row(row)


def find_by_document(document_id: str, conn: sqlite3.Connection | None = None) -> Client | None:
    row = db.fetch_one(
        "SELECT * FROM clients WHERE document_id = ?", ((document_id or "").strip(),), conn=conn
    )
    return Client.from_row(row) if row else None


def list_clients(search: str = "", registered_only: bool = False, unregistered_only: bool = False) -> list[Client]:
    sql = "SELECT * FROM clients WHERE 1=1"
    params: list = []

    if registered_only:
        sql += " AND account_ref IS NOT NULL"
    if unregistered_only:
        sql += " AND account_ref IS NULL"

    if search.strip():
        sql += " AND (name LIKE ? OR document_id LIKE ? OR phone LIKE ?)"
        like = f"%{search.strip()}%"
        params.extend([like, like, like])

    sql += " ORDER BY created_at DESC, id DESC"
    return [Client.from_row(r) for r in db.fetch_all(sql, tuple(params))]


def create_client(
    document_id: str,
    name: str,
    phone: str,
    email: str | None = None,
    birth_date=None,
    weight: float | None = None,
    medical_restrictions: str | None = None,
) -> Client:
    errors = utils.validate_client_inputs(document_id, name, phone)
    if errors:
        raise ValidationError(errors)

    document_id = document_id.strip()
    if find_by_document(document_id):
        raise ConflictError(f"A client with document ID {document_id} already exists.")

    now = utils.now_iso()
    try:
        client_id = db.execute(
            """
            INSERT INTO clients(document_id, name, email, phone, birth_date, weight,
                medical_restrictions, is_inactive, created_at, updated_at)
            VALUES(?,?,?,?,?,?,?,0,?,?)
            """,
            (
                document_id,
                name.strip(),
                utils.clean(email),
                phone.strip(),
                utils.parse_iso(birth_date).isoformat() if birth_date else None,
                weight or None,
                utils.clean(medical_restrictions),
                now,
                now,
            ),
        )
    except sqlite3.IntegrityError as e:
        # lost a race against another insert with the same document
        raise ConflictError(f"A client with document ID {document_id} already exists.") from e

    logging.info(f"Client created: id={client_id} document={document_id}")
    return get_client(client_id)


def update_client(client_id: int, **changes) -> Client:
    if "document_id" in changes:
        raise ValidationError("Document ID cannot be changed.", field="document_id")
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    current = get_client(client_id)
    merged = {
        "name": current.name,
        "phone": current.phone,
        **{k: v for k, v in changes.items() if k in ("name", "phone")},
    }
    errors = utils.validate_client_inputs(current.document_id, merged["name"], merged["phone"])
    if errors:
        raise ValidationError(errors)

    values = []
    assignments = []
    for key, value in changes.items():
        if key in ("name", "phone"):
            value = value.strip()
        elif key in ("email", "medical_restrictions"):
            value = utils.clean(value)
        elif key == "birth_date":
            value = utils.parse_iso(value).isoformat() if value else None
        elif key == "weight":
            value = value or None
        assignments.append(f"{key}=?")
        values.append(value)

    if assignments:
        db.execute(
            f"UPDATE clients SET {', '.join(assignments)}, updated_at=? WHERE id=?",
            (*values, utils.now_iso(), client_id),
        )
    return get_client(client_id)


def link_account(document_id: str, account_ref: str) -> Client:
    """
    Attach an online account to the client with this document ID.
    The link is set once; periods and payments without a reference inherit it.
    """
    account_ref = (account_ref or "").strip()
    if not account_ref:
        raise ValidationError("Account reference is required.", field="account_ref")

    with db.atomic() as conn:
        client = find_by_document(document_id, conn=conn)
        if client is None:
            raise NotFoundError(f"No client with document ID {document_id}.")
        if client.account_ref == account_ref:
            return client
        if client.account_ref:
            raise ConflictError(f"Client {client.document_id} is already linked to another account.")

        now = utils.now_iso()
        cur = conn.execute(
            "UPDATE clients SET account_ref=?, updated_at=? WHERE id=? AND account_ref IS NULL",
            (account_ref, now, client.id),
        )
        if cur.rowcount == 0:
            raise ConflictError(f"Client {client.document_id} is already linked to another account.")
        conn.execute(
            "UPDATE memberships SET account_ref=? WHERE client_id=? AND account_ref IS NULL",
            (account_ref, client.id),
        )
        conn.execute(
            "UPDATE payments SET account_ref=? WHERE client_id=? AND account_ref IS NULL",
            (account_ref, client.id),
        )

    logging.info(f"Client {client.id} linked to account {account_ref}")
    return get_client(client.id)


def set_inactive(client_id: int, is_inactive: bool) -> Client:
    if not isinstance(is_inactive, bool):
        raise ValidationError("is_inactive must be a boolean.", field="is_inactive")
    get_client(client_id)
    db.execute(
        "UPDATE clients SET is_inactive=?, updated_at=? WHERE id=?",
        (int(is_inactive), utils.now_iso(), client_id),
    )
    logging.info(f"Client {client_id} marked {'inactive' if is_inactive else 'active'}")
    return get_client(client_id)


def delete_client(client_id: int) -> None:
    """Hard delete, only for clients with no live membership and no payment history."""
    client = get_client(client_id)
    with db.atomic() as conn:
        live = db.fetch_one(
            "SELECT id FROM memberships WHERE client_id=? AND status != 'cancelled' LIMIT 1",
            (client_id,),
            conn=conn,
        )
        if live:
            raise ConflictError(
                f"Client {client.document_id} has memberships, mark the client inactive instead."
            )
        paid = db.fetch_one("SELECT id FROM payments WHERE client_id=? LIMIT 1", (client_id,), conn=conn)
        if paid:
            raise ConflictError(
                f"Client {client.document_id} has payment history, mark the client inactive instead."
            )
        conn.execute("DELETE FROM clients WHERE id=?", (client_id,))
    logging.info(f"Client deleted: id={client_id} document={client.document_id}")
