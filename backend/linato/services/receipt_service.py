# Overview: Per-day receipt number allocation.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import ReceiptSequence
from linato.time_utils import business_date
from .concurrency import insert_if_absent, lock_for_update


RECEIPT_PREFIX = "LIN"
RECEIPT_PAD = 4


def format_receipt_number(day: date, number: int) -> str:
    return f"{RECEIPT_PREFIX}-{day:%Y%m%d}-{number:0{RECEIPT_PAD}d}"


def next_receipt_number(today: date | None = None) -> str:
    """
    Atomically allocate the next receipt number for the business day.

    Must run inside the caller's transaction (order creation). The
    sequence row stays locked FOR UPDATE until that transaction ends, so
    concurrent order creation on the same day is serialized here and no
    two orders can receive the same number.

    Returns:
        "LIN-YYYYMMDD-####", counter starting at 0001 each day
    """
    day = today or business_date(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))

    # Day row starts at 0; a concurrent creator is not an error
    insert_if_absent(ReceiptSequence, {"date": day, "last_number": 0}, key="date")

    sequence = lock_for_update(
        db.session.query(ReceiptSequence).filter_by(date=day)
    ).populate_existing().one()

    sequence.last_number += 1
    db.session.flush()

    return format_receipt_number(day, sequence.last_number)
