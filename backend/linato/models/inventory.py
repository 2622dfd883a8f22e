from __future__ import annotations

import enum
from dataclasses import dataclass

from ..extensions import db
from linato.time_utils import to_utc_z


class InventoryStock(db.Model):
    """
    Current on-hand count per product.

    current_stock has no floor: a busy night may sell past zero and the
    count goes negative until the next restock.
    One row per product, created lazily (0/0) on first reference.
    """
    __tablename__ = "inventory_stocks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock", uselist=False, lazy=True))

    @property
    def is_low(self) -> bool:
        return self.current_stock <= self.reorder_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "current_stock": self.current_stock,
            "reorder_level": self.reorder_level,
            "is_low": self.is_low,
            "updated_at": to_utc_z(self.updated_at),
        }


class SourceKind(str, enum.Enum):
    ORDER = "order"
    MANUAL = "manual"


@dataclass(frozen=True)
class MovementSource:
    """
    What caused a stock movement.

    Stored as (reference_type, reference_id) on StockMovement; ORDER always
    carries the order id, MANUAL never does.
    """
    kind: SourceKind
    order_id: int | None = None

    @classmethod
    def for_order(cls, order_id: int) -> "MovementSource":
        return cls(kind=SourceKind.ORDER, order_id=order_id)

    @classmethod
    def manual(cls) -> "MovementSource":
        return cls(kind=SourceKind.MANUAL)

    @classmethod
    def from_columns(cls, reference_type: str, reference_id: int | None) -> "MovementSource":
        kind = SourceKind(reference_type)
        if kind is SourceKind.ORDER:
            return cls.for_order(reference_id)
        return cls.manual()

    def to_columns(self) -> tuple[str, int | None]:
        if self.kind is SourceKind.ORDER:
            return self.kind.value, self.order_id
        return self.kind.value, None


class StockMovement(db.Model):
    """
    Append-only inventory ledger entry.

    TYPES:
    - sale: written only by order confirmation (negative quantity)
    - restock: goods received (positive quantity)
    - adjustment: manual correction, waste, stock override (either sign)

    INVARIANT: after_stock == before_stock + quantity, and the movements for
    a product, in id order, sum to InventoryStock.current_stock.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    # Signed delta
    quantity = db.Column(db.Integer, nullable=False)
    before_stock = db.Column(db.Integer, nullable=False)
    after_stock = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(16), nullable=False, default=SourceKind.MANUAL.value)
    reference_id = db.Column(db.Integer, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    user = db.relationship("User")

    @property
    def source(self) -> MovementSource:
        return MovementSource.from_columns(self.reference_type, self.reference_id)

    @source.setter
    def source(self, value: MovementSource) -> None:
        self.reference_type, self.reference_id = value.to_columns()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "before_stock": self.before_stock,
            "after_stock": self.after_stock,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
