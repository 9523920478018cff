# backend/devtrack/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/devtrack.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///devtrack.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Inventory rule limits (see devtrack.rules.RulesConfig)
    MAX_RECEIPT_QUANTITY = _env_int("MAX_RECEIPT_QUANTITY", 1_000_000)
    ADJUSTMENT_CEILING = _env_int("ADJUSTMENT_CEILING", 10_000)
    BULK_ADJUSTMENT_CEILING = _env_int("BULK_ADJUSTMENT_CEILING", 1_000_000)
    MAX_BATCH_SIZE = _env_int("MAX_BATCH_SIZE", 100)
    MAX_HIERARCHY_DEPTH = _env_int("MAX_HIERARCHY_DEPTH", 5)
    REORDER_WINDOW_DAYS = _env_int("REORDER_WINDOW_DAYS", 90)
    DEFAULT_LEAD_TIME_DAYS = _env_int("DEFAULT_LEAD_TIME_DAYS", 7)
