"""Shared fixtures: every test gets its own throwaway SQLite database."""
from __future__ import annotations

import itertools

import pytest

import clients
import db
import plans
from config import Config

_doc_counter = itertools.count(1)


@pytest.fixture(autouse=True)
def _isolate_db(tmp_path, monkeypatch):
    """Point the engine at a temp database and create the schema."""
    monkeypatch.setattr(Config, "DB_PATH", tmp_path / "gym.db")
    monkeypatch.setattr(Config, "LOGS_DIR", str(tmp_path / "logs"))
    db.init_db()
    yield


@pytest.fixture
def monthly():
    return plans.create_plan("Monthly", "100", 30)


@pytest.fixture
def make_client():
    def _make(name: str = "Client", phone: str = "300 123 4567", **kwargs):
        return clients.create_client(f"DOC-{next(_doc_counter)}", name, phone, **kwargs)
    return _make
