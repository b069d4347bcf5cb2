"""
config.py
Central configuration for the membership & billing engine.
Every value can be overridden through an environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    """
    System configuration.
    Kept as class attributes so tests can monkeypatch single values.
    """

    # --- Database ---
    DB_PATH = Path(os.environ.get("GYM_DB_PATH", Path(__file__).with_name("gym.db")))

    # --- Logging ---
    LOGS_DIR = os.environ.get("GYM_LOGS_DIR", "logs")
    LOG_LEVEL = os.environ.get("GYM_LOG_LEVEL", "INFO")

    # --- Billing ---
    # Single zero-pad width for every invoice number (live and normalization paths)
    INVOICE_WIDTH = _env_int("GYM_INVOICE_WIDTH", 4)

    # --- Collections / roster ---
    OVERDUE_SENTINEL_DAYS = 999
    INACTIVITY_SUGGESTION_DAYS = _env_int("GYM_INACTIVITY_DAYS", 30)

    # --- Clients ---
    MIN_PHONE_DIGITS = 10

    @classmethod
    def ensure_directories(cls) -> None:
        """Create the log directory and the database's parent directory."""
        Path(cls.LOGS_DIR).mkdir(parents=True, exist_ok=True)
        Path(cls.DB_PATH).parent.mkdir(parents=True, exist_ok=True)
