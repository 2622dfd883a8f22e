# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Ledger Service

WHY: An order can be settled with several tenders (part cash, part GCash).
Each payment is an immutable row; the order's paid_total is derived from
those rows, never accumulated by hand.

DESIGN PRINCIPLES:
- Split payments: one order, many payments
- Overpayment allowed: balance goes negative and the register shows change
- paid_total recomputed as SUM(payments.amount) under the order row lock,
  so two terminals paying the same order at once cannot lose an update
- Payments require a confirmed (or later) order; pending carts and
  cancelled orders are rejected
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, Payment
from ..validation import ValidationError, NotFoundError, StateError, money
from linato.time_utils import utcnow
from .concurrency import lock_for_update, run_atomic


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_GCASH = "gcash"
METHOD_CARD = "card"

VALID_METHODS = [METHOD_CASH, METHOD_GCASH, METHOD_CARD]

# Order statuses that cannot take money
_UNPAYABLE_STATUSES = {"pending": "Order must be confirmed before payment.",
                       "cancelled": "Cancelled orders cannot be paid."}


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def add_payment(
    order_id: int,
    user_id: int,
    method: str,
    amount: Decimal,
    reference_no: str | None = None,
) -> tuple[Payment, Order]:
    """
    Record a payment against an order.

    Args:
        order_id: Order being paid
        user_id: Cashier receiving the money
        method: cash, gcash, or card
        amount: Positive amount (Decimal, 2 places)
        reference_no: Wallet/card reference, optional

    Returns:
        (payment, order) with order.paid_total and order.balance refreshed

    Raises:
        ValidationError: bad method or amount <= 0
        NotFoundError: no such order
        StateError: order is pending or cancelled
    """
    if method not in VALID_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_METHODS}")

    amount = money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")

        if order.status in _UNPAYABLE_STATUSES:
            raise StateError(_UNPAYABLE_STATUSES[order.status])

        payment = Payment(
            order_id=order.id,
            method=method,
            amount=amount,
            reference_no=reference_no,
            paid_at=utcnow(),
            received_by=user_id,
        )
        db.session.add(payment)
        db.session.flush()

        paid = (
            db.session.query(func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.order_id == order.id)
            .scalar()
        )
        order.paid_total = money(paid)
        order.balance = money(money(order.total) - order.paid_total)

        return payment, order

    payment, order = run_atomic(_op)
    current_app.logger.info(
        "Payment %s of %s on order %s (balance %s)",
        method, payment.amount, order.receipt_number, order.balance,
    )
    return payment, order


# =============================================================================
# QUERIES
# =============================================================================

def list_payments(order_id: int) -> list[Payment]:
    if db.session.get(Order, order_id) is None:
        raise NotFoundError(f"Order {order_id} not found")
    return (
        db.session.query(Payment)
        .filter_by(order_id=order_id)
        .order_by(Payment.paid_at, Payment.id)
        .all()
    )
