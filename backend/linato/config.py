# backend/linato/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/linato.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///linato.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Receipt numbers roll over at midnight in this zone
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    # Cancelling a confirmed order leaves its stock deducted unless enabled
    CANCEL_RESTORES_STOCK = _env_bool("CANCEL_RESTORES_STOCK", False)

    SESSION_ABSOLUTE_HOURS = int(os.environ.get("SESSION_ABSOLUTE_HOURS", "12"))
    SESSION_IDLE_HOURS = int(os.environ.get("SESSION_IDLE_HOURS", "2"))

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]

    # Seed values for the "pos" settings row
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "12")
    DEFAULT_SERVICE_CHARGE_RATE = os.environ.get("DEFAULT_SERVICE_CHARGE_RATE", "0")

    # bcrypt cost factor for passwords and PINs
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
