"""
Inventory ledger tests.

Verifies:
- Manual restock/adjustment validation
- before/after snapshots on every movement
- Stock overrides are booked as adjustments so the ledger stays whole
- Low-stock listing and ledger verification
"""

import pytest

from linato.extensions import db
from linato.models import InventoryStock, Product, StockMovement
from linato.services import inventory_service
from linato.services.concurrency import insert_if_absent
from linato.validation import NotFoundError, ValidationError


class TestAdjustStock:

    def test_restock(self, product_a, admin):
        movement = inventory_service.adjust_stock(product_a.id, admin.id, "restock", 20, notes="Supplier drop")

        assert movement.type == "restock"
        assert movement.quantity == 20
        assert movement.before_stock == 10
        assert movement.after_stock == 30
        assert movement.reference_type == "manual"
        assert movement.reference_id is None
        assert movement.user_id == admin.id
        assert inventory_service.get_stock(product_a.id).current_stock == 30

    def test_negative_adjustment_may_go_below_zero(self, product_b, admin):
        movement = inventory_service.adjust_stock(product_b.id, admin.id, "adjustment", -8, notes="Spoiled")
        assert movement.after_stock == -3
        assert inventory_service.verify_ledger(product_b.id).ok

    @pytest.mark.parametrize(
        "movement_type, quantity, message",
        [
            ("restock", 0, "positive"),
            ("restock", -3, "positive"),
            ("adjustment", 0, "zero"),
            ("sale", -1, "Invalid movement type"),
            ("theft", 1, "Invalid movement type"),
        ],
    )
    def test_rejected(self, product_a, admin, movement_type, quantity, message):
        with pytest.raises(ValidationError, match=message):
            inventory_service.adjust_stock(product_a.id, admin.id, movement_type, quantity)
        assert inventory_service.get_stock(product_a.id).current_stock == 10

    def test_unknown_product(self, db_session, admin):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(999, admin.id, "restock", 1)


class TestUpdateStock:

    def test_override_books_difference(self, product_a, admin):
        stock = inventory_service.update_stock(product_a.id, current_stock=4, reorder_level=6, user_id=admin.id)

        assert stock.current_stock == 4
        assert stock.reorder_level == 6

        latest = inventory_service.list_movements(product_a.id, limit=1)[0]
        assert latest.type == "adjustment"
        assert latest.quantity == -6
        assert latest.user_id == admin.id
        assert inventory_service.verify_ledger(product_a.id).ok

    def test_reorder_only_change_writes_no_movement(self, product_a):
        before = db.session.query(StockMovement).count()
        inventory_service.update_stock(product_a.id, current_stock=10, reorder_level=9)
        assert db.session.query(StockMovement).count() == before

    def test_creates_stock_row(self, db_session, category):
        product = Product(category_id=category.id, sku="X-1", name="Garlic Bread", price=90)
        db_session.add(product)
        db_session.commit()
        assert inventory_service.get_stock(product.id) is None

        inventory_service.update_stock(product.id, current_stock=12, reorder_level=3)
        assert inventory_service.get_stock(product.id).current_stock == 12


class TestGetOrCreateStock:

    def test_existing_row_is_left_alone(self, db_session, product_a):
        insert_if_absent(
            InventoryStock,
            {"product_id": product_a.id, "current_stock": 0, "reorder_level": 0},
            key="product_id",
        )
        db_session.commit()

        rows = db_session.query(InventoryStock).filter_by(product_id=product_a.id).all()
        assert [r.current_stock for r in rows] == [10]

    def test_row_created_by_another_writer_is_reused(self, db_session, category, monkeypatch):
        product = Product(category_id=category.id, sku="X-2", name="Tiramisu", price=150)
        db_session.add(product)
        db_session.commit()
        real_insert = inventory_service.insert_if_absent

        def racing_insert(model, values, *, key):
            # Another confirm creates the row between our lookup and insert
            db.session.execute(
                InventoryStock.__table__.insert().values(product_id=product.id, current_stock=7, reorder_level=2)
            )
            real_insert(model, values, key=key)

        monkeypatch.setattr(inventory_service, "insert_if_absent", racing_insert)
        stock = inventory_service.get_or_create_stock(product.id)

        assert stock.current_stock == 7
        assert stock.reorder_level == 2
        assert db_session.query(InventoryStock).filter_by(product_id=product.id).count() == 1

    def test_creates_zero_row(self, db_session, category):
        product = Product(category_id=category.id, sku="X-3", name="Panna Cotta", price=120)
        db_session.add(product)
        db_session.commit()

        stock = inventory_service.get_or_create_stock(product.id)
        assert (stock.current_stock, stock.reorder_level) == (0, 0)


class TestQueries:

    def test_low_stock(self, product_a, product_b, admin):
        inventory_service.adjust_stock(product_b.id, admin.id, "adjustment", -3)

        low = inventory_service.low_stock()
        assert [s.product_id for s in low] == [product_b.id]

        inventory_service.adjust_stock(product_a.id, admin.id, "adjustment", -9)
        assert [s.product_id for s in inventory_service.low_stock()] == [product_a.id, product_b.id]

    def test_list_stocks_search(self, product_a, product_b):
        assert [s.product_id for s in inventory_service.list_stocks("carbo")] == [product_b.id]
        assert [s.product_id for s in inventory_service.list_stocks("PA-00")] == [product_b.id, product_a.id]

    def test_movements_newest_first(self, product_a, admin):
        inventory_service.adjust_stock(product_a.id, admin.id, "restock", 5)
        inventory_service.adjust_stock(product_a.id, admin.id, "adjustment", -1)

        movements = inventory_service.list_movements(product_a.id)
        assert [m.quantity for m in movements] == [-1, 5, 10]


class TestVerifyLedger:

    def test_clean_ledger(self, product_a, admin):
        inventory_service.adjust_stock(product_a.id, admin.id, "restock", 3)
        check = inventory_service.verify_ledger(product_a.id)
        assert check.ok
        assert check.to_dict() == {
            "product_id": product_a.id,
            "current_stock": 13,
            "movement_sum": 13,
            "broken_rows": [],
            "ok": True,
        }

    def test_detects_out_of_band_edit(self, db_session, product_a):
        db_session.query(InventoryStock).filter_by(product_id=product_a.id).update({"current_stock": 99})
        db_session.commit()

        check = inventory_service.verify_ledger(product_a.id)
        assert not check.ok
        assert check.movement_sum == 10

    def test_detects_broken_snapshot(self, db_session, product_a):
        row = db_session.query(StockMovement).filter_by(product_id=product_a.id).first()
        row.after_stock = row.after_stock + 1
        db_session.commit()

        assert inventory_service.verify_ledger(product_a.id).broken_rows == [row.id]
