# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Lifecycle Service

WHY: An order is a document with a lifecycle, not a bag of rows. Every
transition here is one transaction, and the side effects that go with it
(stock deduction, table occupancy, timestamps) commit or roll back with it.

STATE MACHINE:

    pending --confirm--> confirmed --> preparing --> ready --> served --> completed
       |                     |             |           |          |
       +---------------------+-------------+-----------+----------+--> cancelled

- held is a flag (held_at) on a pending order, not a state.
- Kitchen progression only moves forward; repeating the current status is
  a no-op that keeps the first timestamp.
- cancel is allowed from any state except cancelled and needs an admin PIN.

SIDE EFFECTS:
- confirm: table -> occupied; one "sale" stock movement per item
- served/completed: table -> available
- cancel: table -> available; stock is only returned when
  CANCEL_RESTORES_STOCK is enabled (default: confirmed food is consumed)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Order, OrderItem, Product, DiningTable, MovementSource
from ..validation import (
    ValidationError,
    NotFoundError,
    StateError,
    AuthorizationError,
    MAX_MONEY,
    MAX_RATE,
    money,
    parse_money,
    parse_int,
    parse_choice,
    parse_text,
    parse_bool,
)
from linato.time_utils import utcnow, business_day_bounds
from . import pricing_service, inventory_service, auth_service, receipt_service
from .concurrency import lock_for_update, run_atomic, compare_and_set


# =============================================================================
# CONSTANTS
# =============================================================================

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_PREPARING = "preparing"
STATUS_READY = "ready"
STATUS_SERVED = "served"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = [
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_PREPARING,
    STATUS_READY,
    STATUS_SERVED,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
]

# Targets accepted by set_order_status
PROGRESS_STATUSES = [STATUS_PREPARING, STATUS_READY, STATUS_SERVED, STATUS_COMPLETED]

# Statuses shown on the kitchen display
KITCHEN_STATUSES = [STATUS_CONFIRMED, STATUS_PREPARING, STATUS_READY]

_PROGRESS_RANK = {
    STATUS_CONFIRMED: 1,
    STATUS_PREPARING: 2,
    STATUS_READY: 3,
    STATUS_SERVED: 4,
    STATUS_COMPLETED: 5,
}

DINE_IN = "dine_in"
TAKEOUT = "takeout"
DELIVERY = "delivery"

VALID_DINE_TYPES = [DINE_IN, TAKEOUT, DELIVERY]

# Largest quantity accepted on a single order line
MAX_QTY = 9999

TABLE_AVAILABLE = "available"
TABLE_OCCUPIED = "occupied"


# =============================================================================
# PAYLOAD
# =============================================================================

@dataclass
class OrderInput:
    """Validated create/edit payload. Same shape for both operations."""
    dine_type: str
    items: list[dict]
    table_id: int | None = None
    customer_name: str | None = None
    phone: str | None = None
    address: str | None = None
    discount_amount: Decimal = Decimal("0.00")
    service_charge_rate: Decimal = Decimal("0.00")
    tax_rate: Decimal = Decimal("0.00")
    rounding: Decimal = Decimal("0.00")
    hold: bool = False
    product_ids: list[int] = field(default_factory=list)


def parse_order_payload(data: dict | None) -> OrderInput:
    """
    Validate an order body before anything touches the database.

    Rules:
    - dine_type is dine_in, takeout, or delivery
    - dine_in requires table_id; other modes drop any table_id sent
    - delivery requires customer_name, phone, and address
    - at least one item; qty >= 1; discounts and rates >= 0
    - rounding may be negative (cash rounding down)
    """
    if not isinstance(data, dict):
        raise ValidationError("JSON body required")

    dine_type = parse_choice(data.get("dine_type"), "dine_type", VALID_DINE_TYPES)

    table_id = parse_int(data.get("table_id"), "table_id", required=False, minimum=1)
    if dine_type == DINE_IN and table_id is None:
        raise ValidationError("Table is required for dine-in orders.")
    if dine_type != DINE_IN:
        table_id = None

    customer_name = parse_text(data.get("customer_name"), "customer_name", max_length=120)
    phone = parse_text(data.get("phone"), "phone", max_length=30)
    address = parse_text(data.get("address"), "address", max_length=255)
    if dine_type == DELIVERY and not (customer_name and phone and address):
        raise ValidationError("Customer name, phone, and address are required for delivery orders.")

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items.{index} must be an object")
        items.append({
            "product_id": parse_int(raw.get("product_id"), f"items.{index}.product_id", minimum=1),
            "qty": parse_int(raw.get("qty"), f"items.{index}.qty", minimum=1, maximum=MAX_QTY),
            "discount_amount": parse_money(raw.get("discount_amount"), f"items.{index}.discount_amount"),
            "notes": parse_text(raw.get("notes"), f"items.{index}.notes", max_length=200),
        })

    return OrderInput(
        dine_type=dine_type,
        items=items,
        table_id=table_id,
        customer_name=customer_name,
        phone=phone,
        address=address,
        discount_amount=parse_money(data.get("discount_amount"), "discount_amount"),
        service_charge_rate=parse_money(
            data.get("service_charge_rate"), "service_charge_rate", maximum=MAX_RATE
        ),
        tax_rate=parse_money(data.get("tax_rate"), "tax_rate", maximum=MAX_RATE),
        rounding=parse_money(data.get("rounding"), "rounding", allow_negative=True),
        hold=parse_bool(data.get("hold"), "hold"),
        product_ids=sorted({item["product_id"] for item in items}),
    )


def _load_products(product_ids: list[int]) -> dict[int, Product]:
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        raise ValidationError(
            "Unknown product(s) in order",
            details={"product_ids": missing},
        )
    inactive = [pid for pid in product_ids if not products[pid].is_active]
    if inactive:
        raise ValidationError(
            "Inactive product(s) in order",
            details={"product_ids": inactive},
        )
    return products


def _require_table(table_id: int | None) -> None:
    if table_id is None:
        return
    if db.session.get(DiningTable, table_id) is None:
        raise ValidationError(f"Table {table_id} not found")


def _priced_items(payload: OrderInput) -> tuple[list[dict], pricing_service.Totals]:
    products = _load_products(payload.product_ids)
    line_items = pricing_service.build_line_items(payload.items, products)
    totals = pricing_service.calculate_totals(
        pricing_service.cart_lines(line_items),
        discount_amount=payload.discount_amount,
        service_charge_rate=payload.service_charge_rate,
        tax_rate=payload.tax_rate,
        rounding=payload.rounding,
    )
    _check_capacity(line_items, totals)
    return line_items, totals


def _check_capacity(line_items: list[dict], totals: pricing_service.Totals) -> None:
    """Reject carts whose amounts would overflow the money columns."""
    amounts = [li["line_total"] for li in line_items]
    amounts += [
        totals.subtotal,
        totals.discount_amount,
        totals.service_charge_amount,
        totals.tax_amount,
        totals.total,
    ]
    if any(abs(amount) > MAX_MONEY for amount in amounts):
        raise ValidationError(f"Order amounts must not exceed {MAX_MONEY}")


# =============================================================================
# LOOKUPS
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _get_order_locked(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_orders(
    *,
    status: str | None = None,
    receipt_number: str | None = None,
    table_id: int | None = None,
    on_date: date | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Order], int]:
    """Newest first. Returns (page_of_orders, total_count)."""
    query = db.session.query(Order)

    if status:
        query = query.filter(Order.status == status)
    if receipt_number:
        query = query.filter(Order.receipt_number.like(f"%{receipt_number}%"))
    if table_id:
        query = query.filter(Order.table_id == table_id)
    if on_date:
        start, end = business_day_bounds(on_date, current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
        query = query.filter(Order.created_at >= start, Order.created_at < end)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return orders, total


def list_kitchen_orders(status: str | None = None) -> list[Order]:
    """Kitchen queue: confirmed/preparing/ready, oldest confirmation first."""
    query = db.session.query(Order).filter(Order.status.in_(KITCHEN_STATUSES))
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.confirmed_at, Order.id).all()


# =============================================================================
# CREATE / EDIT
# =============================================================================

def create_order(payload: OrderInput, cashier_id: int, shift_id: int | None = None) -> Order:
    """
    Create a pending order with its items, totals, and receipt number.

    Args:
        payload: Validated body (see parse_order_payload)
        cashier_id: User ringing up the order
        shift_id: The cashier's open shift, if any. Fixed for the life of
            the order; shift close sums cash payments by this id.

    Returns:
        The new order (status pending, paid_total 0, balance == total)
    """
    def _op():
        _require_table(payload.table_id)
        line_items, totals = _priced_items(payload)

        order = Order(
            receipt_number=receipt_service.next_receipt_number(),
            status=STATUS_PENDING,
            dine_type=payload.dine_type,
            table_id=payload.table_id,
            customer_name=payload.customer_name,
            phone=payload.phone,
            address=payload.address,
            paid_total=Decimal("0.00"),
            balance=totals.total,
            held_at=utcnow() if payload.hold else None,
            cashier_id=cashier_id,
            shift_id=shift_id,
            **totals.as_columns(),
        )
        order.items = [OrderItem(**li) for li in line_items]

        db.session.add(order)
        db.session.flush()
        return order

    order = run_atomic(_op)
    current_app.logger.info(
        "Order %s created by user %s (total %s, shift %s)",
        order.receipt_number, cashier_id, order.total, shift_id,
    )
    return order


def update_order(order_id: int, payload: OrderInput) -> Order:
    """
    Replace a pending order's items and recompute everything.

    Items are deleted and re-inserted (no partial patch). balance is
    recomputed against whatever has already been paid.

    Raises:
        StateError: order is not pending
    """
    def _op():
        order = _get_order_locked(order_id)
        if order.status != STATUS_PENDING:
            raise StateError("Only pending orders can be edited.")

        _require_table(payload.table_id)
        line_items, totals = _priced_items(payload)

        order.dine_type = payload.dine_type
        order.table_id = payload.table_id
        order.customer_name = payload.customer_name
        order.phone = payload.phone
        order.address = payload.address
        for column, value in totals.as_columns().items():
            setattr(order, column, value)
        order.balance = money(totals.total - money(order.paid_total))
        if payload.hold and order.held_at is None:
            order.held_at = utcnow()

        # delete-orphan cascade removes the previous lines
        order.items = [OrderItem(**li) for li in line_items]
        db.session.flush()
        return order

    return run_atomic(_op)


# =============================================================================
# HOLD / RESUME
# =============================================================================

def hold_order(order_id: int) -> Order:
    """Park a pending order. Holding an already-held order keeps the first held_at."""
    def _op():
        order = _get_order_locked(order_id)
        if order.status != STATUS_PENDING:
            raise StateError("Only pending orders can be held.")
        if order.held_at is None:
            order.held_at = utcnow()
        return order

    return run_atomic(_op)


def resume_order(order_id: int) -> Order:
    """Clear the held flag. No status check: this only clears a flag."""
    def _op():
        order = _get_order_locked(order_id)
        order.held_at = None
        return order

    return run_atomic(_op)


# =============================================================================
# CONFIRM
# =============================================================================

def _set_table_status(table_id: int, status: str) -> None:
    db.session.query(DiningTable).filter_by(id=table_id).update(
        {"status": status}, synchronize_session="fetch"
    )


def confirm_order(order_id: int, user_id: int | None = None) -> Order:
    """
    Send a pending order to the kitchen.

    The status flip is a conditional UPDATE (... WHERE status = 'pending');
    only the caller whose update hits exactly one row goes on to deduct
    stock. A retried or duplicated confirm can therefore never deduct twice.

    In the same transaction:
    - dine-in table -> occupied
    - per item: stock row created if missing, qty deducted, "sale"
      movement appended referencing this order

    Raises:
        NotFoundError: no such order
        StateError: order is not pending (already confirmed, cancelled, ...)
    """
    def _op():
        order = get_order(order_id)
        now = utcnow()

        won = compare_and_set(
            Order,
            order_id,
            expected={"status": STATUS_PENDING},
            values={"status": STATUS_CONFIRMED, "confirmed_at": now, "held_at": None},
        )
        if not won:
            db.session.refresh(order)
            raise StateError(f"Order cannot be confirmed (status: {order.status}).")

        db.session.refresh(order)

        if order.dine_type == DINE_IN and order.table_id:
            _set_table_status(order.table_id, TABLE_OCCUPIED)

        for item in order.items:
            inventory_service.record_movement(
                product_id=item.product_id,
                movement_type=inventory_service.MOVEMENT_SALE,
                quantity=-item.qty,
                source=MovementSource.for_order(order.id),
                user_id=user_id or order.cashier_id,
                notes="Order confirmed",
            )

        return order

    order = run_atomic(_op)
    current_app.logger.info("Order %s confirmed", order.receipt_number)
    return order


# =============================================================================
# KITCHEN / FRONT-OF-HOUSE PROGRESSION
# =============================================================================

def set_order_status(order_id: int, status: str) -> Order:
    """
    Move a confirmed order along preparing -> ready -> served -> completed.

    Timestamps are set only if not already set, so repeating a status
    (two kitchen screens tapping "preparing") keeps the earliest time.
    served and completed both stamp served_at and release a dine-in table.

    Raises:
        ValidationError: target is not a progression status
        StateError: order is pending/cancelled, or the move goes backwards
    """
    if status not in PROGRESS_STATUSES:
        raise ValidationError(f"status must be one of {PROGRESS_STATUSES}")

    def _op():
        order = _get_order_locked(order_id)

        if order.status == STATUS_PENDING:
            raise StateError("Order must be confirmed before it can progress.")
        if order.status == STATUS_CANCELLED:
            raise StateError("Cancelled orders cannot change status.")
        if _PROGRESS_RANK[status] < _PROGRESS_RANK[order.status]:
            raise StateError(f"Cannot move order from {order.status} back to {status}.")

        now = utcnow()
        order.status = status

        if status == STATUS_PREPARING and order.preparing_at is None:
            order.preparing_at = now

        if status == STATUS_READY and order.ready_at is None:
            order.ready_at = now

        if status in (STATUS_SERVED, STATUS_COMPLETED):
            if order.served_at is None:
                order.served_at = now
                if order.dine_type == DINE_IN and order.table_id:
                    _set_table_status(order.table_id, TABLE_AVAILABLE)

        return order

    return run_atomic(_op)


# =============================================================================
# CANCEL / VOID
# =============================================================================

def cancel_order(order_id: int, admin_pin: str | None, reason: str | None = None) -> Order:
    """
    Void an order with an admin's PIN.

    Any active admin's PIN is accepted; that admin is recorded as voided_by.

    Stock policy (CANCEL_RESTORES_STOCK):
    - False (default): stock deducted at confirm stays deducted. The food
      was fired and is treated as consumed.
    - True: each item of a confirmed order is returned through an
      "adjustment" movement referencing the order.

    Raises:
        StateError: already cancelled
        ValidationError: no PIN supplied
        AuthorizationError: PIN matches no active admin
    """
    def _op():
        order = _get_order_locked(order_id)
        if order.status == STATUS_CANCELLED:
            raise StateError("Order already cancelled.")

        if not admin_pin:
            raise ValidationError("admin_pin is required")

        admin = auth_service.find_admin_by_pin(admin_pin)
        if not admin:
            raise AuthorizationError("Invalid admin PIN.")

        was_confirmed = order.confirmed_at is not None
        holds_table = (
            order.dine_type == DINE_IN
            and order.table_id
            and was_confirmed
            and order.served_at is None
        )

        order.status = STATUS_CANCELLED
        order.cancelled_at = utcnow()
        order.voided_by = admin.id
        order.void_reason = reason
        order.held_at = None

        if holds_table:
            _set_table_status(order.table_id, TABLE_AVAILABLE)

        if was_confirmed and current_app.config.get("CANCEL_RESTORES_STOCK", False):
            for item in order.items:
                inventory_service.record_movement(
                    product_id=item.product_id,
                    movement_type=inventory_service.MOVEMENT_ADJUSTMENT,
                    quantity=item.qty,
                    source=MovementSource.for_order(order.id),
                    user_id=admin.id,
                    notes="Order cancelled",
                )

        return order

    order = run_atomic(_op)
    current_app.logger.info(
        "Order %s cancelled by admin %s: %s",
        order.receipt_number, order.voided_by, reason or "(no reason)",
    )
    return order
