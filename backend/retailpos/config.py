# backend/retailpos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local SQLite file unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///retailpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payments: amounts may fall short of the total by at most this many cents
    PAYMENT_TOLERANCE_CENTS = _env_int("PAYMENT_TOLERANCE_CENTS", 1)

    # Loyalty: one point per LOYALTY_POINT_VALUE_CENTS of sale total (default $10)
    LOYALTY_POINT_VALUE_CENTS = _env_int("LOYALTY_POINT_VALUE_CENTS", 1000)

    # Stock reservation race handling (conditional update hit zero rows)
    STOCK_RESERVE_RETRY_ATTEMPTS = _env_int("STOCK_RESERVE_RETRY_ATTEMPTS", 2)
    STOCK_RESERVE_RETRY_BACKOFF_SECONDS = _env_float("STOCK_RESERVE_RETRY_BACKOFF_SECONDS", 0.05)

    # Whole-transaction retry on lock/deadlock errors
    TRANSACTION_RETRY_ATTEMPTS = _env_int("TRANSACTION_RETRY_ATTEMPTS", 3)
    TRANSACTION_RETRY_BACKOFF_SECONDS = _env_float("TRANSACTION_RETRY_BACKOFF_SECONDS", 0.1)

    # Background alert checks (0 disables the timer)
    ALERT_CHECK_INTERVAL_SECONDS = _env_int("ALERT_CHECK_INTERVAL_SECONDS", 6 * 60 * 60)
    EXPIRY_WARNING_DAYS = _env_int("EXPIRY_WARNING_DAYS", 7)
    LOW_ROTATION_DAYS = _env_int("LOW_ROTATION_DAYS", 30)

    # Identity: bcrypt cost factor and session timeouts
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 8)

    # Browser origins allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
