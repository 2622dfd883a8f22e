# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/linato/services/inventory_service.py

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- InventoryStock.current_stock is the on-hand count; one row per product,
  created lazily with 0/0 on first reference.
- Every change to current_stock appends exactly one StockMovement in the
  same DB transaction, with before/after snapshots.
- For every movement: after_stock == before_stock + quantity.
- Summing a product's movement quantities from zero reproduces
  current_stock (see verify_ledger).

Movement types:
- sale: written only by order confirmation; quantity is always negative.
- restock: manual, quantity > 0.
- adjustment: manual, quantity != 0 (waste, miscounts, stock overrides,
  and stock returned by a cancelled order when CANCEL_RESTORES_STOCK is on).

No floor: current_stock may go negative. Selling is never blocked by stock.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import InventoryStock, StockMovement, Product, MovementSource, SourceKind
from ..validation import ValidationError, NotFoundError
from .concurrency import insert_if_absent, lock_for_update, run_atomic


MOVEMENT_SALE = "sale"
MOVEMENT_RESTOCK = "restock"
MOVEMENT_ADJUSTMENT = "adjustment"

VALID_MOVEMENT_TYPES = [MOVEMENT_SALE, MOVEMENT_RESTOCK, MOVEMENT_ADJUSTMENT]
MANUAL_MOVEMENT_TYPES = [MOVEMENT_ADJUSTMENT, MOVEMENT_RESTOCK]


# =============================================================================
# LEDGER PRIMITIVES (run inside the caller's transaction)
# =============================================================================

def get_or_create_stock(product_id: int, *, lock: bool = True) -> InventoryStock:
    """
    Return the product's stock row, creating it with 0/0 if absent.

    With lock=True the row is read FOR UPDATE so concurrent deductions on
    the same product serialize.
    """
    def _select():
        query = db.session.query(InventoryStock).filter_by(product_id=product_id)
        if lock:
            query = lock_for_update(query)
        return query.populate_existing().first()

    stock = _select()
    if stock is None:
        # First reference; a concurrent creator may have inserted it already
        insert_if_absent(
            InventoryStock,
            {"product_id": product_id, "current_stock": 0, "reorder_level": 0},
            key="product_id",
        )
        stock = _select()
    return stock


def record_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    source: MovementSource,
    user_id: int | None,
    notes: str | None = None,
) -> StockMovement:
    """
    Apply a signed quantity to the product's stock and append the ledger row.

    Does not commit. Callers wrap this in their own transaction so the
    stock change and whatever caused it land together.
    """
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type}")

    stock = get_or_create_stock(product_id)

    before = stock.current_stock
    after = before + quantity
    stock.current_stock = after

    movement = StockMovement(
        product_id=product_id,
        type=movement_type,
        quantity=quantity,
        before_stock=before,
        after_stock=after,
        user_id=user_id,
        notes=notes,
    )
    movement.source = source
    db.session.add(movement)
    db.session.flush()
    return movement


# =============================================================================
# MANUAL OPERATIONS
# =============================================================================

def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def adjust_stock(
    product_id: int,
    user_id: int,
    movement_type: str,
    quantity: int,
    notes: str | None = None,
) -> StockMovement:
    """
    Record a manual restock or adjustment.

    Args:
        product_id: Product being counted
        user_id: Staff member making the change
        movement_type: "restock" (quantity > 0) or "adjustment" (quantity != 0)
        quantity: Signed delta
        notes: Free text (supplier, reason for waste, etc.)

    Raises:
        ValidationError: bad type or quantity
        NotFoundError: product does not exist
    """
    def _op():
        if movement_type not in MANUAL_MOVEMENT_TYPES:
            raise ValidationError(
                f"Invalid movement type: {movement_type}. Must be one of {MANUAL_MOVEMENT_TYPES}"
            )
        if movement_type == MOVEMENT_RESTOCK and quantity <= 0:
            raise ValidationError("Restock quantity must be positive")
        if quantity == 0:
            raise ValidationError("Adjustment quantity cannot be zero")

        _require_product(product_id)

        return record_movement(
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            source=MovementSource.manual(),
            user_id=user_id,
            notes=notes,
        )

    movement = run_atomic(_op)
    current_app.logger.info(
        "Stock %s for product %s: %+d (%d -> %d)",
        movement.type, movement.product_id, movement.quantity,
        movement.before_stock, movement.after_stock,
    )
    return movement


def update_stock(
    product_id: int,
    current_stock: int,
    reorder_level: int,
    user_id: int | None = None,
) -> InventoryStock:
    """
    Administrative override of on-hand count and reorder level.

    WHY the synthetic movement: setting current_stock directly would break
    the "movements sum to current_stock" invariant. When the count changes,
    the difference is booked as an adjustment so the ledger still explains
    every unit.
    """
    def _op():
        _require_product(product_id)
        stock = get_or_create_stock(product_id)

        delta = current_stock - stock.current_stock
        if delta:
            record_movement(
                product_id=product_id,
                movement_type=MOVEMENT_ADJUSTMENT,
                quantity=delta,
                source=MovementSource.manual(),
                user_id=user_id,
                notes="Stock override",
            )

        stock.reorder_level = reorder_level
        return stock

    return run_atomic(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_stock(product_id: int) -> InventoryStock | None:
    return db.session.query(InventoryStock).filter_by(product_id=product_id).first()


def list_stocks(q: str | None = None) -> list[InventoryStock]:
    """All stock rows, optionally filtered by product name or SKU."""
    query = db.session.query(InventoryStock).join(Product)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
    return query.order_by(Product.name).all()


def low_stock() -> list[InventoryStock]:
    """Products at or below their reorder level, lowest first."""
    return (
        db.session.query(InventoryStock)
        .filter(InventoryStock.current_stock <= InventoryStock.reorder_level)
        .order_by(InventoryStock.current_stock, InventoryStock.product_id)
        .all()
    )


def list_movements(
    product_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[StockMovement]:
    """Newest first."""
    query = db.session.query(StockMovement)
    if product_id is not None:
        query = query.filter_by(product_id=product_id)
    return (
        query.order_by(StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def movements_for_order(order_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(reference_type=SourceKind.ORDER.value, reference_id=order_id)
        .order_by(StockMovement.id)
        .all()
    )


@dataclass
class LedgerCheck:
    product_id: int
    current_stock: int
    movement_sum: int
    broken_rows: list[int]

    @property
    def ok(self) -> bool:
        return self.current_stock == self.movement_sum and not self.broken_rows

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "current_stock": self.current_stock,
            "movement_sum": self.movement_sum,
            "broken_rows": self.broken_rows,
            "ok": self.ok,
        }


def verify_ledger(product_id: int) -> LedgerCheck:
    """
    Check the ledger invariants for one product.

    - Sum of movement quantities (from zero) equals current_stock
    - Every row satisfies after_stock == before_stock + quantity
    """
    stock = get_stock(product_id)
    current = stock.current_stock if stock else 0

    movement_sum = int(
        db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
        or 0
    )

    broken = [
        row.id
        for row in db.session.query(StockMovement.id)
        .filter(
            StockMovement.product_id == product_id,
            StockMovement.after_stock != StockMovement.before_stock + StockMovement.quantity,
        )
        .all()
    ]

    return LedgerCheck(
        product_id=product_id,
        current_stock=current,
        movement_sum=movement_sum,
        broken_rows=broken,
    )
