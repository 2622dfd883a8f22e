# Overview: Service-layer operations for the menu catalog and floor tables.

"""
Catalog Service

Categories, products, and dining tables. Plain CRUD with uniqueness
checks; nothing here is ever hard-deleted because historical orders
reference products and tables. Deactivate instead (is_active = False).

Product stock is never written directly: an initial count on product
creation goes through inventory_service.update_stock so the movement
ledger explains it.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import or_

from ..extensions import db
from ..models import Category, Product, DiningTable
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    parse_bool,
    parse_int,
    parse_money,
    parse_text,
)
from . import inventory_service
from .concurrency import run_atomic


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories(active_only: bool = False) -> list[Category]:
    query = db.session.query(Category)
    if active_only:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.sort_order, Category.name).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def _check_category_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f"Category '{name}' already exists")


def create_category(data: dict[str, Any]) -> Category:
    name = parse_text(data.get("name"), "name", max_length=120)
    if not name:
        raise ValidationError("name is required")

    def _op():
        _check_category_name(name)
        category = Category(
            name=name,
            sort_order=parse_int(data.get("sort_order"), "sort_order", required=False) or 0,
            is_active=parse_bool(data.get("is_active"), "is_active", default=True),
        )
        db.session.add(category)
        db.session.flush()
        return category

    return run_atomic(_op)


def update_category(category_id: int, data: dict[str, Any]) -> Category:
    def _op():
        category = get_category(category_id)
        if "name" in data:
            name = parse_text(data.get("name"), "name", max_length=120)
            if not name:
                raise ValidationError("name cannot be empty")
            _check_category_name(name, exclude_id=category.id)
            category.name = name
        if "sort_order" in data:
            category.sort_order = parse_int(data.get("sort_order"), "sort_order")
        if "is_active" in data:
            category.is_active = parse_bool(data.get("is_active"), "is_active")
        return category

    return run_atomic(_op)


# =============================================================================
# PRODUCTS
# =============================================================================

def list_products(
    *,
    category_id: int | None = None,
    active_only: bool = False,
    q: str | None = None,
) -> list[Product]:
    query = db.session.query(Product)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
    return query.order_by(Product.name).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _check_sku(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"SKU '{sku}' already exists")


def _parse_category_id(value: Any) -> int | None:
    category_id = parse_int(value, "category_id", required=False, minimum=1)
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError(f"Category {category_id} not found")
    return category_id


def create_product(data: dict[str, Any], user_id: int | None = None) -> Product:
    """
    Create a menu item, optionally with an opening stock count.

    Accepted keys: name, sku, price, category_id, is_active,
    current_stock, reorder_level.
    """
    name = parse_text(data.get("name"), "name", max_length=255)
    sku = parse_text(data.get("sku"), "sku", max_length=64)
    if not name or not sku:
        raise ValidationError("name and sku are required")
    price = parse_money(data.get("price"), "price", required=True)
    current_stock = parse_int(data.get("current_stock"), "current_stock", required=False)
    reorder_level = parse_int(data.get("reorder_level"), "reorder_level", required=False, minimum=0)

    def _op():
        _check_sku(sku)
        product = Product(
            name=name,
            sku=sku,
            price=price,
            category_id=_parse_category_id(data.get("category_id")),
            is_active=parse_bool(data.get("is_active"), "is_active", default=True),
        )
        db.session.add(product)
        db.session.flush()
        return product

    product = run_atomic(_op)

    if current_stock is not None or reorder_level is not None:
        inventory_service.update_stock(
            product.id,
            current_stock=current_stock or 0,
            reorder_level=reorder_level or 0,
            user_id=user_id,
        )
    return product


def update_product(product_id: int, data: dict[str, Any]) -> Product:
    """Partial update. Price changes never touch existing order lines."""
    def _op():
        product = get_product(product_id)
        if "name" in data:
            name = parse_text(data.get("name"), "name", max_length=255)
            if not name:
                raise ValidationError("name cannot be empty")
            product.name = name
        if "sku" in data:
            sku = parse_text(data.get("sku"), "sku", max_length=64)
            if not sku:
                raise ValidationError("sku cannot be empty")
            _check_sku(sku, exclude_id=product.id)
            product.sku = sku
        if "price" in data:
            product.price = parse_money(data.get("price"), "price", required=True)
        if "category_id" in data:
            product.category_id = _parse_category_id(data.get("category_id"))
        if "is_active" in data:
            product.is_active = parse_bool(data.get("is_active"), "is_active")
        return product

    return run_atomic(_op)


# =============================================================================
# TABLES
# =============================================================================

def list_tables(status: str | None = None, active_only: bool = False) -> list[DiningTable]:
    query = db.session.query(DiningTable)
    if status:
        query = query.filter(DiningTable.status == status)
    if active_only:
        query = query.filter(DiningTable.is_active.is_(True))
    return query.order_by(DiningTable.name).all()


def get_table(table_id: int) -> DiningTable:
    table = db.session.get(DiningTable, table_id)
    if not table:
        raise NotFoundError(f"Table {table_id} not found")
    return table


def _check_table_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(DiningTable.id).filter(DiningTable.name == name)
    if exclude_id is not None:
        query = query.filter(DiningTable.id != exclude_id)
    if query.first():
        raise ConflictError(f"Table '{name}' already exists")


def create_table(data: dict[str, Any]) -> DiningTable:
    name = parse_text(data.get("name"), "name", max_length=64)
    if not name:
        raise ValidationError("name is required")
    capacity = parse_int(data.get("capacity"), "capacity", minimum=1)

    def _op():
        _check_table_name(name)
        table = DiningTable(name=name, capacity=capacity)
        db.session.add(table)
        db.session.flush()
        return table

    return run_atomic(_op)


def update_table(table_id: int, data: dict[str, Any]) -> DiningTable:
    """Name, capacity, and is_active only. status belongs to the order lifecycle."""
    if "status" in data:
        raise ValidationError("Table status is managed by orders")

    def _op():
        table = get_table(table_id)
        if "name" in data:
            name = parse_text(data.get("name"), "name", max_length=64)
            if not name:
                raise ValidationError("name cannot be empty")
            _check_table_name(name, exclude_id=table.id)
            table.name = name
        if "capacity" in data:
            table.capacity = parse_int(data.get("capacity"), "capacity", minimum=1)
        if "is_active" in data:
            table.is_active = parse_bool(data.get("is_active"), "is_active")
        return table

    return run_atomic(_op)
