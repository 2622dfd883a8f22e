from __future__ import annotations

from ..extensions import db
from ..validation import money_str
from linato.time_utils import to_utc_z


class Order(db.Model):
    """
    One ticket, from cart to settlement.

    LIFECYCLE:
    - pending: editable cart; may be held/resumed (held_at flag)
    - confirmed: sent to the kitchen, stock deducted, table occupied
    - preparing / ready: kitchen progression
    - served / completed: handed over, table released
    - cancelled: voided with an admin PIN

    MONEY: All monetary fields are Numeric(12, 2) and handled as Decimal.
    balance is always round(total - paid_total, 2).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable receipt number (e.g., "LIN-20260204-0001")
    receipt_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    dine_type = db.Column(db.String(16), nullable=False, default="dine_in")

    table_id = db.Column(db.Integer, db.ForeignKey("dining_tables.id"), nullable=True, index=True)

    # Delivery contact (required for delivery orders)
    customer_name = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    address = db.Column(db.Text, nullable=True)

    # Totals (computed by pricing_service)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    service_charge_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    service_charge_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    rounding = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Settlement (recomputed from payments)
    paid_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Lifecycle timestamps
    held_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    preparing_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    served_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail (admin who entered the PIN)
    voided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Fixed at creation; never reassigned
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    table = db.relationship("DiningTable", backref=db.backref("orders", lazy=True))
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    voided_by_user = db.relationship("User", foreign_keys=[voided_by])
    shift = db.relationship("CashierShift", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy=True,
    )
    payments = db.relationship(
        "Payment",
        back_populates="order",
        order_by="Payment.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} receipt={self.receipt_number!r} status={self.status}>"

    @property
    def is_held(self) -> bool:
        return self.held_at is not None

    def to_dict(self, include_items: bool = True, include_payments: bool = True) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "status": self.status,
            "dine_type": self.dine_type,
            "table_id": self.table_id,
            "table": self.table.to_dict() if self.table else None,
            "customer_name": self.customer_name,
            "phone": self.phone,
            "address": self.address,
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "service_charge_rate": money_str(self.service_charge_rate),
            "service_charge_amount": money_str(self.service_charge_amount),
            "tax_rate": money_str(self.tax_rate),
            "tax_amount": money_str(self.tax_amount),
            "rounding": money_str(self.rounding),
            "total": money_str(self.total),
            "paid_total": money_str(self.paid_total),
            "balance": money_str(self.balance),
            "is_held": self.is_held,
            "held_at": to_utc_z(self.held_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "preparing_at": to_utc_z(self.preparing_at),
            "ready_at": to_utc_z(self.ready_at),
            "served_at": to_utc_z(self.served_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "cashier_id": self.cashier_id,
            "shift_id": self.shift_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        if include_payments:
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class OrderItem(db.Model):
    """
    One line on an order.

    name_snapshot and price are copied from the product when the line is
    written and never refreshed. Lines are replaced wholesale on edit.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name_snapshot = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name_snapshot": self.name_snapshot,
            "price": money_str(self.price),
            "qty": self.qty,
            "discount_amount": money_str(self.discount_amount),
            "line_total": money_str(self.line_total),
            "notes": self.notes,
        }


class Payment(db.Model):
    """
    Settlement event against an order.

    IMMUTABLE: Payments are append-only. Order.paid_total is recomputed
    from the sum of these rows after every insert.

    METHODS:
    - cash: counted into the shift drawer at close
    - gcash: e-wallet transfer (reference_no expected)
    - card: card terminal slip (reference_no expected)
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    method = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    # Wallet/card reference
    reference_no = db.Column(db.String(120), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    received_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    order = db.relationship("Order", back_populates="payments")
    receiver = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "amount": money_str(self.amount),
            "reference_no": self.reference_no,
            "paid_at": to_utc_z(self.paid_at),
            "received_by": self.received_by,
        }


class ReceiptSequence(db.Model):
    """
    Per-date receipt counter.

    WHY: A row per calendar date is the lock target for receipt number
    allocation. The counter never goes backwards and a new date starts a
    fresh row, so no reset job is needed.
    """
    __tablename__ = "receipt_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, unique=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "last_number": self.last_number,
            "updated_at": to_utc_z(self.updated_at),
        }
