from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Setting
from ..validation import MAX_RATE, parse_money, money
from .concurrency import run_atomic


POS_KEY = "pos"
POS_FIELDS = ("tax_rate", "service_charge_rate")


def _pos_defaults() -> dict[str, str]:
    return {
        "tax_rate": str(money(current_app.config.get("DEFAULT_TAX_RATE", "12"))),
        "service_charge_rate": str(money(current_app.config.get("DEFAULT_SERVICE_CHARGE_RATE", "0"))),
    }


def get_setting(key: str) -> Setting | None:
    return db.session.query(Setting).filter_by(key=key).first()


def get_pos_settings() -> Setting:
    """The register's default rates; created from config defaults on first read."""
    def _op():
        setting = get_setting(POS_KEY)
        if setting is None:
            setting = Setting(key=POS_KEY, value=_pos_defaults())
            db.session.add(setting)
            db.session.flush()
        return setting

    return run_atomic(_op)


def pos_rates() -> dict[str, Decimal]:
    value = get_pos_settings().value or {}
    defaults = _pos_defaults()
    return {field: money(value.get(field, defaults[field])) for field in POS_FIELDS}


def update_pos_settings(data: dict[str, Any], user_id: int | None = None) -> Setting:
    """
    Replace the POS rates. Both fields required, both >= 0.

    Stored as 2-place strings inside the JSON value so they round-trip
    without float drift.
    """
    value = {
        field: str(parse_money(data.get(field), field, required=True, maximum=MAX_RATE))
        for field in POS_FIELDS
    }

    def _op():
        setting = get_setting(POS_KEY)
        if setting is None:
            setting = Setting(key=POS_KEY)
            db.session.add(setting)
        setting.value = value
        setting.updated_by_user_id = user_id
        db.session.flush()
        return setting

    setting = run_atomic(_op)
    current_app.logger.info("POS settings updated by user %s: %s", user_id, value)
    return setting
