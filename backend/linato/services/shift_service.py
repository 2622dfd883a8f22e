# Overview: Service-layer operations for cashier shifts; encapsulates business logic and database work.

"""
Cashier Shift Service

WHY: Cash accountability. A shift is one cashier's drawer from opening
float to counted close; the difference between what the drawer should
hold and what was counted is the discrepancy.

DESIGN PRINCIPLES:
- One open shift per user at a time
- Closed shifts are never reopened or edited
- Expected cash = opening float + cash payments on orders tagged with
  this shift (Order.shift_id, fixed when the order was created), no matter
  who received the payment
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashierShift, Order, Payment
from ..validation import NotFoundError, StateError, ValidationError, money
from linato.time_utils import utcnow
from .concurrency import lock_for_update, run_atomic
from .payment_service import METHOD_CASH


# =============================================================================
# QUERIES
# =============================================================================

def get_open_shift(user_id: int) -> CashierShift | None:
    return (
        db.session.query(CashierShift)
        .filter(CashierShift.user_id == user_id, CashierShift.closed_at.is_(None))
        .order_by(CashierShift.opened_at.desc())
        .first()
    )


def get_shift(shift_id: int) -> CashierShift:
    shift = db.session.get(CashierShift, shift_id)
    if not shift:
        raise NotFoundError(f"Shift {shift_id} not found")
    return shift


def list_shifts(user_id: int | None = None, limit: int = 50) -> list[CashierShift]:
    query = db.session.query(CashierShift)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.order_by(CashierShift.opened_at.desc()).limit(limit).all()


def cash_payments_total(shift_id: int) -> Decimal:
    """Sum of cash payments on orders created under this shift."""
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .join(Order, Order.id == Payment.order_id)
        .filter(Order.shift_id == shift_id, Payment.method == METHOD_CASH)
        .scalar()
    )
    return money(total)


# =============================================================================
# OPEN / CLOSE
# =============================================================================

def open_shift(user_id: int, opening_cash: Decimal) -> CashierShift:
    """
    Open a drawer for a cashier.

    Raises:
        ValidationError: negative opening float
        StateError: user already has an open shift
    """
    opening_cash = money(opening_cash)
    if opening_cash < 0:
        raise ValidationError("opening_cash cannot be negative")

    def _op():
        if get_open_shift(user_id):
            raise StateError("You already have an open shift.")

        shift = CashierShift(
            user_id=user_id,
            opened_at=utcnow(),
            opening_cash=opening_cash,
        )
        db.session.add(shift)
        db.session.flush()
        return shift

    try:
        shift = run_atomic(_op)
    except IntegrityError:
        # A concurrent open won the partial unique index on (user_id) WHERE closed_at IS NULL
        if get_open_shift(user_id) is None:
            raise
        raise StateError("You already have an open shift.")
    current_app.logger.info("Shift %s opened by user %s with %s", shift.id, user_id, opening_cash)
    return shift


def close_shift(
    shift_id: int,
    closing_cash: Decimal,
    notes: str | None = None,
) -> CashierShift:
    """
    Count the drawer and close the shift.

    expected_cash = opening_cash + cash payments
    discrepancy   = closing_cash - expected_cash  (positive = over, negative = short)

    Raises:
        NotFoundError: no such shift
        StateError: shift already closed
    """
    closing_cash = money(closing_cash)
    if closing_cash < 0:
        raise ValidationError("closing_cash cannot be negative")

    def _op():
        shift = lock_for_update(db.session.query(CashierShift).filter_by(id=shift_id)).first()
        if not shift:
            raise NotFoundError(f"Shift {shift_id} not found")
        if not shift.is_open:
            raise StateError("Shift is already closed.")

        expected = money(money(shift.opening_cash) + cash_payments_total(shift.id))

        shift.closing_cash = closing_cash
        shift.expected_cash = expected
        shift.discrepancy = money(closing_cash - expected)
        shift.notes = notes
        shift.closed_at = utcnow()
        return shift

    shift = run_atomic(_op)
    current_app.logger.info(
        "Shift %s closed: expected %s, counted %s, discrepancy %s",
        shift.id, shift.expected_cash, shift.closing_cash, shift.discrepancy,
    )
    return shift


def close_open_shift(user_id: int, closing_cash: Decimal, notes: str | None = None) -> CashierShift:
    """Close the caller's current shift (the register's "End shift" button)."""
    shift = get_open_shift(user_id)
    if not shift:
        raise StateError("No open shift found.")
    return close_shift(shift.id, closing_cash, notes)
