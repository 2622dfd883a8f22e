"""
Order lifecycle tests.

Verifies:
- Create/edit validation and pricing
- Hold/resume flag semantics
- Confirm side effects (stock, movements, table) and double-confirm safety
- Forward-only kitchen progression with first-write timestamps
- Admin-PIN cancel, table release, and the stock restore policy
"""

from decimal import Decimal

import pytest

from linato.extensions import db
from linato.models import DiningTable, InventoryStock, Order, Product
from linato.services import auth_service, inventory_service, order_service, shift_service
from linato.validation import AuthorizationError, NotFoundError, StateError, ValidationError

from conftest import ADMIN_PIN


D = Decimal


def _stock(product_id: int) -> int:
    db.session.expire_all()
    return db.session.query(InventoryStock).filter_by(product_id=product_id).one().current_stock


# =============================================================================
# PAYLOAD VALIDATION
# =============================================================================


class TestParseOrderPayload:

    def test_dine_in_requires_table(self, product_a):
        with pytest.raises(ValidationError, match="Table is required"):
            order_service.parse_order_payload({
                "dine_type": "dine_in",
                "items": [{"product_id": product_a.id, "qty": 1}],
            })

    def test_delivery_requires_contact(self, product_a):
        with pytest.raises(ValidationError, match="delivery"):
            order_service.parse_order_payload({
                "dine_type": "delivery",
                "customer_name": "Juan",
                "phone": "0917",
                "items": [{"product_id": product_a.id, "qty": 1}],
            })

    @pytest.mark.parametrize(
        "items",
        [
            [],
            None,
            [{"product_id": 1, "qty": 0}],
            [{"product_id": 1, "qty": 1.5}],
            [{"product_id": 1, "qty": 1, "discount_amount": -1}],
            ["not-an-object"],
        ],
    )
    def test_bad_items_rejected(self, items):
        with pytest.raises(ValidationError):
            order_service.parse_order_payload({"dine_type": "takeout", "items": items})

    def test_unknown_dine_type(self):
        with pytest.raises(ValidationError, match="dine_type"):
            order_service.parse_order_payload({"dine_type": "drive_thru", "items": [{"product_id": 1, "qty": 1}]})

    def test_negative_rates_rejected_but_negative_rounding_allowed(self):
        base = {"dine_type": "takeout", "items": [{"product_id": 1, "qty": 1}]}
        with pytest.raises(ValidationError):
            order_service.parse_order_payload({**base, "tax_rate": -1})

        payload = order_service.parse_order_payload({**base, "rounding": "-0.20"})
        assert payload.rounding == D("-0.20")

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"discount_amount": "1e30"}, "discount_amount is out of range"),
            ({"rounding": "-1e30"}, "rounding is out of range"),
            ({"tax_rate": 1000}, "tax_rate is out of range"),
            ({"service_charge_rate": "999.995"}, "service_charge_rate is out of range"),
            ({"items": [{"product_id": 1, "qty": 10**30}]}, "qty must be at most 9999"),
            ({"items": [{"product_id": 1, "qty": "10000"}]}, "qty must be at most 9999"),
            ({"items": [{"product_id": 1, "qty": 1, "discount_amount": 1e30}]}, "discount_amount is out of range"),
            ({"table_id": 10**30, "dine_type": "dine_in"}, "table_id must be at most"),
        ],
    )
    def test_oversized_numbers_rejected(self, overrides, message):
        body = {"dine_type": "takeout", "items": [{"product_id": 1, "qty": 1}], **overrides}
        with pytest.raises(ValidationError, match=message):
            order_service.parse_order_payload(body)

    def test_rate_at_column_limit_accepted(self):
        payload = order_service.parse_order_payload({
            "dine_type": "takeout",
            "items": [{"product_id": 1, "qty": 9999}],
            "tax_rate": "999.99",
        })
        assert payload.tax_rate == D("999.99")
        assert payload.items[0]["qty"] == 9999

    def test_takeout_drops_table(self):
        payload = order_service.parse_order_payload({
            "dine_type": "takeout",
            "table_id": 4,
            "items": [{"product_id": 1, "qty": 1}],
        })
        assert payload.table_id is None

    def test_body_must_be_object(self):
        with pytest.raises(ValidationError, match="JSON body"):
            order_service.parse_order_payload(None)


# =============================================================================
# CREATE / EDIT
# =============================================================================


class TestCreateOrder:

    def test_dine_in_order(self, make_order, product_a, table, cashier):
        order = make_order(
            [{"product_id": product_a.id, "qty": 2, "notes": "extra cheese"}],
            dine_type="dine_in",
            table_id=table.id,
            tax_rate=12,
        )

        assert order.status == "pending"
        assert order.receipt_number.startswith("LIN-")
        assert order.table_id == table.id
        assert order.cashier_id == cashier.id
        assert order.subtotal == D("560.00")
        assert order.tax_amount == D("67.20")
        assert order.total == D("627.20")
        assert order.paid_total == D("0.00")
        assert order.balance == order.total
        assert order.held_at is None

        [item] = order.items
        assert item.name_snapshot == "Spaghetti Bolognese"
        assert item.price == D("280.00")
        assert item.line_total == D("560.00")
        assert item.notes == "extra cheese"

    def test_create_does_not_touch_stock_or_table(self, make_order, product_a, table):
        make_order([{"product_id": product_a.id, "qty": 2}], dine_type="dine_in", table_id=table.id)

        assert _stock(product_a.id) == 10
        assert db.session.get(DiningTable, table.id).status == "available"

    def test_hold_on_create(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 1}], hold=True)
        assert order.held_at is not None
        assert order.is_held

    def test_unknown_table(self, make_order, product_a):
        with pytest.raises(ValidationError, match="Table 999"):
            make_order([{"product_id": product_a.id, "qty": 1}], dine_type="dine_in", table_id=999)
        assert db.session.query(Order).count() == 0

    def test_unknown_product(self, make_order, product_a):
        with pytest.raises(ValidationError) as exc:
            make_order([{"product_id": product_a.id, "qty": 1}, {"product_id": 4242, "qty": 1}])
        assert exc.value.details == {"product_ids": [4242]}
        assert db.session.query(Order).count() == 0

    def test_inactive_product(self, db_session, make_order, product_a):
        product_a.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError, match="Inactive"):
            make_order([{"product_id": product_a.id, "qty": 1}])

    def test_totals_beyond_money_columns_rejected(self, db_session, make_order, product_a):
        product_a.price = D("9999999999.99")
        db_session.commit()

        with pytest.raises(ValidationError, match="Order amounts"):
            make_order([{"product_id": product_a.id, "qty": 2}])
        assert db.session.query(Order).count() == 0

    def test_shift_is_recorded(self, make_order, product_a, cashier):
        shift = shift_service.open_shift(cashier.id, D("0"))

        order = make_order([{"product_id": product_a.id, "qty": 1}], shift_id=shift.id)
        assert order.shift_id == shift.id


class TestUpdateOrder:

    def test_replaces_items_and_recomputes(self, make_order, product_a, product_b):
        order = make_order([{"product_id": product_a.id, "qty": 1}], tax_rate=12)
        old_item_ids = [i.id for i in order.items]

        payload = order_service.parse_order_payload({
            "dine_type": "takeout",
            "items": [
                {"product_id": product_b.id, "qty": 2},
                {"product_id": product_a.id, "qty": 1, "discount_amount": "30.00"},
            ],
            "tax_rate": 12,
        })
        order = order_service.update_order(order.id, payload)

        assert [i.product_id for i in order.items] == [product_b.id, product_a.id]
        assert not set(old_item_ids) & {i.id for i in order.items}
        assert order.subtotal == D("800.00")
        assert order.discount_amount == D("30.00")
        assert order.tax_amount == D("92.40")
        assert order.total == D("862.40")
        assert order.balance == D("862.40")

    def test_product_price_change_does_not_rewrite_existing_lines(self, db_session, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        product_a.price = D("300.00")
        db_session.commit()

        db_session.expire_all()
        assert db_session.get(Order, order.id).items[0].price == D("280.00")

    def test_only_pending(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        order_service.confirm_order(order.id)

        payload = order_service.parse_order_payload({
            "dine_type": "takeout",
            "items": [{"product_id": product_a.id, "qty": 5}],
        })
        with pytest.raises(StateError, match="pending"):
            order_service.update_order(order.id, payload)

    def test_missing_order(self, product_a):
        payload = order_service.parse_order_payload({
            "dine_type": "takeout",
            "items": [{"product_id": product_a.id, "qty": 1}],
        })
        with pytest.raises(NotFoundError):
            order_service.update_order(999, payload)


# =============================================================================
# HOLD / RESUME
# =============================================================================


class TestHoldResume:

    def test_hold_is_idempotent(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 1}])

        first = order_service.hold_order(order.id).held_at
        second = order_service.hold_order(order.id).held_at

        assert first is not None
        assert second == first

    def test_resume_clears_flag(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 1}], hold=True)
        order = order_service.resume_order(order.id)
        assert order.held_at is None
        assert order.status == "pending"

    def test_cannot_hold_confirmed(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        order_service.confirm_order(order.id)
        with pytest.raises(StateError):
            order_service.hold_order(order.id)


# =============================================================================
# CONFIRM
# =============================================================================


class TestConfirmOrder:

    def test_side_effects(self, make_order, product_a, product_b, table):
        order = make_order(
            [{"product_id": product_a.id, "qty": 3}, {"product_id": product_b.id, "qty": 1}],
            dine_type="dine_in",
            table_id=table.id,
            hold=True,
        )

        order = order_service.confirm_order(order.id)

        assert order.status == "confirmed"
        assert order.confirmed_at is not None
        assert order.held_at is None
        assert _stock(product_a.id) == 7
        assert _stock(product_b.id) == 4
        assert db.session.get(DiningTable, table.id).status == "occupied"

        movements = inventory_service.movements_for_order(order.id)
        assert [(m.product_id, m.type, m.quantity) for m in movements] == [
            (product_a.id, "sale", -3),
            (product_b.id, "sale", -1),
        ]
        assert movements[0].before_stock == 10
        assert movements[0].after_stock == 7

    def test_double_confirm_deducts_once(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 2}])
        order_service.confirm_order(order.id)

        with pytest.raises(StateError, match="confirmed"):
            order_service.confirm_order(order.id)

        assert _stock(product_a.id) == 8
        assert len(inventory_service.movements_for_order(order.id)) == 1

    def test_stock_may_go_negative(self, make_order, product_b):
        order = make_order([{"product_id": product_b.id, "qty": 8}])
        order_service.confirm_order(order.id)
        assert _stock(product_b.id) == -3

    def test_creates_missing_stock_row(self, db_session, make_order, category):
        product = Product(category_id=category.id, sku="NEW-1", name="Special", price=D("99.00"))
        db_session.add(product)
        db_session.commit()

        order = make_order([{"product_id": product.id, "qty": 2}])
        order_service.confirm_order(order.id)

        assert _stock(product.id) == -2

    def test_cannot_confirm_cancelled(self, make_order, product_a, admin):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        order_service.cancel_order(order.id, ADMIN_PIN)
        with pytest.raises(StateError):
            order_service.confirm_order(order.id)
        assert _stock(product_a.id) == 10

    def test_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.confirm_order(12345)

    def test_ledger_consistent_after_confirm(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 4}])
        order_service.confirm_order(order.id)
        assert inventory_service.verify_ledger(product_a.id).ok


# =============================================================================
# PROGRESSION
# =============================================================================


class TestSetOrderStatus:

    @pytest.fixture
    def confirmed(self, make_order, product_a, table):
        order = make_order([{"product_id": product_a.id, "qty": 1}], dine_type="dine_in", table_id=table.id)
        return order_service.confirm_order(order.id)

    def test_full_progression(self, confirmed, table):
        order = order_service.set_order_status(confirmed.id, "preparing")
        assert order.preparing_at is not None

        order = order_service.set_order_status(confirmed.id, "ready")
        assert order.ready_at is not None

        order = order_service.set_order_status(confirmed.id, "served")
        assert order.served_at is not None
        assert db.session.get(DiningTable, table.id).status == "available"

        order = order_service.set_order_status(confirmed.id, "completed")
        assert order.status == "completed"

    def test_timestamps_set_once(self, confirmed):
        first = order_service.set_order_status(confirmed.id, "preparing").preparing_at
        again = order_service.set_order_status(confirmed.id, "preparing").preparing_at
        assert again == first

    def test_completed_stamps_served_and_releases_table(self, confirmed, table):
        order = order_service.set_order_status(confirmed.id, "completed")
        assert order.served_at is not None
        assert db.session.get(DiningTable, table.id).status == "available"

    def test_backwards_rejected(self, confirmed):
        order_service.set_order_status(confirmed.id, "ready")
        with pytest.raises(StateError, match="back"):
            order_service.set_order_status(confirmed.id, "preparing")

    def test_pending_rejected(self, make_order, product_a):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        with pytest.raises(StateError, match="confirmed"):
            order_service.set_order_status(order.id, "preparing")

    @pytest.mark.parametrize("target", ["pending", "confirmed", "cancelled", "bogus", None])
    def test_invalid_target(self, confirmed, target):
        with pytest.raises(ValidationError):
            order_service.set_order_status(confirmed.id, target)


# =============================================================================
# CANCEL
# =============================================================================


class TestCancelOrder:

    def test_requires_pin(self, make_order, product_a, admin):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        with pytest.raises(ValidationError, match="admin_pin"):
            order_service.cancel_order(order.id, None)

    def test_wrong_pin(self, make_order, product_a, admin):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        with pytest.raises(AuthorizationError):
            order_service.cancel_order(order.id, "9999")
        assert db.session.get(Order, order.id).status == "pending"

    def test_inactive_admin_pin_rejected(self, make_order, product_a, admin):
        auth_service.set_active(admin.id, False)
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        with pytest.raises(AuthorizationError):
            order_service.cancel_order(order.id, ADMIN_PIN)

    def test_cancel_confirmed_dine_in(self, make_order, product_a, table, admin):
        order = make_order([{"product_id": product_a.id, "qty": 2}], dine_type="dine_in", table_id=table.id)
        order_service.confirm_order(order.id)

        order = order_service.cancel_order(order.id, ADMIN_PIN, reason="Customer left")

        assert order.status == "cancelled"
        assert order.cancelled_at is not None
        assert order.voided_by == admin.id
        assert order.void_reason == "Customer left"
        assert db.session.get(DiningTable, table.id).status == "available"
        # Default policy: fired food stays consumed
        assert _stock(product_a.id) == 8

    def test_cancel_restores_stock_when_enabled(self, app, monkeypatch, make_order, product_a, admin):
        monkeypatch.setitem(app.config, "CANCEL_RESTORES_STOCK", True)
        order = make_order([{"product_id": product_a.id, "qty": 2}])
        order_service.confirm_order(order.id)

        order_service.cancel_order(order.id, ADMIN_PIN)

        assert _stock(product_a.id) == 10
        movements = inventory_service.movements_for_order(order.id)
        assert [(m.type, m.quantity) for m in movements] == [("sale", -2), ("adjustment", 2)]
        assert movements[1].user_id == admin.id
        assert inventory_service.verify_ledger(product_a.id).ok

    def test_restore_policy_ignores_unconfirmed(self, app, monkeypatch, make_order, product_a, admin):
        monkeypatch.setitem(app.config, "CANCEL_RESTORES_STOCK", True)
        order = make_order([{"product_id": product_a.id, "qty": 2}])

        order_service.cancel_order(order.id, ADMIN_PIN)

        assert _stock(product_a.id) == 10
        assert inventory_service.movements_for_order(order.id) == []

    def test_pending_cancel_leaves_other_orders_table(self, make_order, product_a, table, admin):
        seated = make_order([{"product_id": product_a.id, "qty": 1}], dine_type="dine_in", table_id=table.id)
        order_service.confirm_order(seated.id)
        draft = make_order([{"product_id": product_a.id, "qty": 1}], dine_type="dine_in", table_id=table.id)

        order_service.cancel_order(draft.id, ADMIN_PIN)

        assert db.session.get(DiningTable, table.id).status == "occupied"

    def test_already_cancelled(self, make_order, product_a, admin):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        order_service.cancel_order(order.id, ADMIN_PIN)
        with pytest.raises(StateError, match="already cancelled"):
            order_service.cancel_order(order.id, ADMIN_PIN)

    def test_cancelled_orders_cannot_progress(self, make_order, product_a, admin):
        order = make_order([{"product_id": product_a.id, "qty": 1}])
        order_service.confirm_order(order.id)
        order_service.cancel_order(order.id, ADMIN_PIN)
        with pytest.raises(StateError):
            order_service.set_order_status(order.id, "preparing")


# =============================================================================
# QUERIES
# =============================================================================


class TestQueries:

    def test_kitchen_queue(self, make_order, product_a, admin):
        first = make_order([{"product_id": product_a.id, "qty": 1}])
        second = make_order([{"product_id": product_a.id, "qty": 1}])
        pending = make_order([{"product_id": product_a.id, "qty": 1}])
        order_service.confirm_order(first.id)
        order_service.confirm_order(second.id)
        order_service.set_order_status(second.id, "preparing")

        queue = order_service.list_kitchen_orders()
        assert [o.id for o in queue] == [first.id, second.id]
        assert pending.id not in [o.id for o in queue]

        assert [o.id for o in order_service.list_kitchen_orders("preparing")] == [second.id]

    def test_list_orders_filters_and_paginates(self, make_order, product_a):
        orders = [make_order([{"product_id": product_a.id, "qty": 1}]) for _ in range(3)]
        order_service.confirm_order(orders[0].id)

        page, total = order_service.list_orders(per_page=2)
        assert total == 3
        assert len(page) == 2

        confirmed, total = order_service.list_orders(status="confirmed")
        assert total == 1
        assert confirmed[0].id == orders[0].id

        by_receipt, _ = order_service.list_orders(receipt_number=orders[2].receipt_number[-4:])
        assert [o.id for o in by_receipt] == [orders[2].id]
