"""
HTTP API tests.

Verifies:
- Bearer-token authentication and role gates (401 vs 403)
- Error taxonomy mapped to status codes (400/403/404/409)
- A full dine-in order over HTTP: create -> confirm -> kitchen -> pay -> complete
"""

import pytest

from conftest import ADMIN_PIN, PASSWORD, auth_headers, get_auth_token


# =============================================================================
# SYSTEM / AUTH
# =============================================================================


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert response.json["checks"]["database"]["status"] == "healthy"
    assert "business_date" in response.json


class TestAuth:

    def test_login_and_me(self, client, cashier):
        response = client.post("/api/auth/login", json={"email": cashier.email, "password": PASSWORD})
        assert response.status_code == 200
        token = response.json["token"]

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["role"] == "cashier"

    def test_bad_password(self, client, cashier):
        response = client.post("/api/auth/login", json={"email": cashier.email, "password": "nope"})
        assert response.status_code == 401

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/auth/login", json={"email": "x@linato.test"})
        assert response.status_code == 400

    def test_logout_revokes_token(self, client, cashier):
        token = get_auth_token(client, cashier.email)
        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_deactivated_user_loses_access(self, client, admin_headers, cashier):
        token = get_auth_token(client, cashier.email)

        response = client.patch(f"/api/users/{cashier.id}", json={"is_active": False}, headers=admin_headers)
        assert response.status_code == 200

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


class TestRoleGates:

    @pytest.mark.parametrize("path", ["/api/orders", "/api/users", "/api/inventory/stocks", "/api/kds/orders"])
    def test_no_token(self, client, db_session, path):
        assert client.get(path).status_code == 401

    def test_garbage_token(self, client, db_session):
        assert client.get("/api/orders", headers=auth_headers("not-a-token")).status_code == 401

    @pytest.mark.parametrize(
        "path",
        ["/api/users", "/api/inventory/stocks", "/api/reports/daily", "/api/kds/orders"],
    )
    def test_cashier_forbidden(self, client, cashier_headers, path):
        response = client.get(path, headers=cashier_headers)
        assert response.status_code == 403
        assert response.json["error"] == "Permission denied"

    @pytest.mark.parametrize("path", ["/api/orders", "/api/shifts/current", "/api/products"])
    def test_kitchen_forbidden(self, client, kitchen_headers, path):
        assert client.get(path, headers=kitchen_headers).status_code == 403

    def test_cashier_cannot_edit_menu(self, client, cashier_headers, category):
        response = client.post(
            "/api/products",
            json={"name": "Pizza", "sku": "PZ-1", "price": "300.00", "category_id": category.id},
            headers=cashier_headers,
        )
        assert response.status_code == 403


# =============================================================================
# ORDERS
# =============================================================================


def _create(client, headers, body):
    response = client.post("/api/orders", json=body, headers=headers)
    assert response.status_code == 201, response.json
    return response.json["order"]


class TestOrderFlow:

    def test_dine_in_lifecycle(
        self, client, cashier_headers, kitchen_headers, product_a, product_b, table
    ):
        shift = client.post("/api/shifts/open", json={"opening_cash": "1000.00"}, headers=cashier_headers)
        assert shift.status_code == 201
        shift_id = shift.json["shift"]["id"]

        order = _create(client, cashier_headers, {
            "dine_type": "dine_in",
            "table_id": table.id,
            "items": [{"product_id": product_a.id, "qty": 2}],
            "tax_rate": 12,
        })
        assert order["status"] == "pending"
        assert order["total"] == "627.20"
        assert order["balance"] == "627.20"
        assert order["shift_id"] == shift_id
        order_id = order["id"]

        # Edit while pending
        response = client.put(f"/api/orders/{order_id}", json={
            "dine_type": "dine_in",
            "table_id": table.id,
            "items": [
                {"product_id": product_a.id, "qty": 2},
                {"product_id": product_b.id, "qty": 1},
            ],
            "tax_rate": 12,
        }, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["order"]["total"] == "918.40"

        # Payment before confirm is refused
        response = client.post(
            f"/api/orders/{order_id}/payments", json={"method": "cash", "amount": "100"}, headers=cashier_headers
        )
        assert response.status_code == 409

        response = client.post(f"/api/orders/{order_id}/confirm", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["order"]["status"] == "confirmed"

        tables = client.get("/api/tables", headers=cashier_headers).json["tables"]
        assert tables[0]["status"] == "occupied"

        # Second confirm conflicts and does not deduct again
        assert client.post(f"/api/orders/{order_id}/confirm", headers=cashier_headers).status_code == 409
        product = client.get(f"/api/products/{product_a.id}", headers=cashier_headers).json["product"]
        assert product["current_stock"] == 8

        # Kitchen
        queue = client.get("/api/kds/orders", headers=kitchen_headers).json["orders"]
        assert [o["id"] for o in queue] == [order_id]
        for status in ("preparing", "ready"):
            response = client.patch(
                f"/api/kds/orders/{order_id}/status", json={"status": status}, headers=kitchen_headers
            )
            assert response.status_code == 200
            assert response.json["order"]["status"] == status

        # Split payment with change
        response = client.post(
            f"/api/orders/{order_id}/payments", json={"method": "card", "amount": "418.40"}, headers=cashier_headers
        )
        assert response.status_code == 201
        assert response.json["order"]["balance"] == "500.00"

        response = client.post(
            f"/api/orders/{order_id}/payments", json={"method": "cash", "amount": "600"}, headers=cashier_headers
        )
        assert response.json["order"]["paid_total"] == "1018.40"
        assert response.json["order"]["balance"] == "-100.00"

        payments = client.get(f"/api/orders/{order_id}/payments", headers=cashier_headers).json["payments"]
        assert [p["method"] for p in payments] == ["card", "cash"]

        response = client.post(f"/api/orders/{order_id}/status", json={"status": "completed"}, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["order"]["served_at"] is not None

        tables = client.get("/api/tables", headers=cashier_headers).json["tables"]
        assert tables[0]["status"] == "available"

        # Cash drawer: 1000 float + 600 cash
        response = client.post("/api/shifts/close", json={"closing_cash": "1600.00"}, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["shift"]["expected_cash"] == "1600.00"
        assert response.json["shift"]["discrepancy"] == "0.00"

    def test_validation_errors(self, client, cashier_headers, product_a):
        response = client.post("/api/orders", json={
            "dine_type": "dine_in",
            "items": [{"product_id": product_a.id, "qty": 1}],
        }, headers=cashier_headers)
        assert response.status_code == 400
        assert "Table" in response.json["error"]

        response = client.post("/api/orders", json={
            "dine_type": "takeout",
            "items": [{"product_id": 999, "qty": 1}],
        }, headers=cashier_headers)
        assert response.status_code == 400
        assert response.json["details"] == {"product_ids": [999]}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"discount_amount": "1e30"},
            {"tax_rate": "1000"},
            {"items": [{"product_id": 1, "qty": 10**30}]},
            {"items": [{"product_id": 1, "qty": "9" * 5000}]},
        ],
    )
    def test_oversized_numbers_are_400(self, client, cashier_headers, product_a, overrides):
        body = {"dine_type": "takeout", "items": [{"product_id": product_a.id, "qty": 1}], **overrides}
        response = client.post("/api/orders", json=body, headers=cashier_headers)
        assert response.status_code == 400
        assert "error" in response.json

    def test_missing_order(self, client, cashier_headers):
        assert client.get("/api/orders/999", headers=cashier_headers).status_code == 404
        assert client.post("/api/orders/999/confirm", headers=cashier_headers).status_code == 404

    @pytest.mark.parametrize(
        "target, path",
        [
            ("linato.services.order_service.get_order", "/api/orders/1"),
            ("linato.services.payment_service.list_payments", "/api/orders/1/payments"),
        ],
    )
    def test_unexpected_failure_is_500(self, client, cashier_headers, monkeypatch, target, path):
        def broken(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(target, broken)
        response = client.get(path, headers=cashier_headers)
        assert response.status_code == 500
        assert response.json == {"error": "Internal server error"}

    def test_hold_and_resume(self, client, cashier_headers, product_a):
        order = _create(client, cashier_headers, {
            "dine_type": "takeout",
            "items": [{"product_id": product_a.id, "qty": 1}],
            "hold": True,
        })
        assert order["is_held"] is True

        response = client.post(f"/api/orders/{order['id']}/resume", headers=cashier_headers)
        assert response.json["order"]["is_held"] is False

        response = client.post(f"/api/orders/{order['id']}/hold", headers=cashier_headers)
        assert response.json["order"]["is_held"] is True

    def test_void_alias_needs_admin_pin(self, client, cashier_headers, admin, product_a):
        order = _create(client, cashier_headers, {
            "dine_type": "takeout",
            "items": [{"product_id": product_a.id, "qty": 1}],
        })

        response = client.post(f"/api/orders/{order['id']}/void", json={"admin_pin": "0000"}, headers=cashier_headers)
        assert response.status_code == 403

        response = client.post(
            f"/api/orders/{order['id']}/void",
            json={"admin_pin": ADMIN_PIN, "reason": "Duplicate ticket"},
            headers=cashier_headers,
        )
        assert response.status_code == 200
        assert response.json["order"]["status"] == "cancelled"
        assert response.json["order"]["voided_by"] == admin.id

        response = client.post(f"/api/orders/{order['id']}/cancel", json={"admin_pin": ADMIN_PIN}, headers=cashier_headers)
        assert response.status_code == 409

    def test_kitchen_cannot_serve(self, client, cashier_headers, kitchen_headers, product_a):
        order = _create(client, cashier_headers, {
            "dine_type": "takeout",
            "items": [{"product_id": product_a.id, "qty": 1}],
        })
        client.post(f"/api/orders/{order['id']}/confirm", headers=cashier_headers)

        response = client.patch(
            f"/api/kds/orders/{order['id']}/status", json={"status": "served"}, headers=kitchen_headers
        )
        assert response.status_code == 400

    def test_list_orders(self, client, cashier_headers, product_a):
        for _ in range(3):
            _create(client, cashier_headers, {
                "dine_type": "takeout",
                "items": [{"product_id": product_a.id, "qty": 1}],
            })

        response = client.get("/api/orders?per_page=2", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["total"] == 3
        assert len(response.json["orders"]) == 2

        assert client.get("/api/orders?date=yesterday", headers=cashier_headers).status_code == 400


# =============================================================================
# ADMIN SURFACES
# =============================================================================


class TestAdmin:

    def test_create_product_books_opening_stock(self, client, admin_headers, category):
        response = client.post("/api/products", json={
            "name": "Lasagna",
            "sku": "PA-010",
            "price": "320.00",
            "category_id": category.id,
            "current_stock": 12,
            "reorder_level": 3,
        }, headers=admin_headers)
        assert response.status_code == 201
        product = response.json["product"]
        assert product["current_stock"] == 12

        check = client.get(f"/api/inventory/verify/{product['id']}", headers=admin_headers).json["check"]
        assert check["ok"] is True

        duplicate = client.post("/api/products", json={
            "name": "Lasagna 2", "sku": "PA-010", "price": "1.00", "category_id": category.id,
        }, headers=admin_headers)
        assert duplicate.status_code == 409

    def test_table_status_is_not_editable(self, client, admin_headers, table):
        response = client.patch(f"/api/tables/{table.id}", json={"status": "occupied"}, headers=admin_headers)
        assert response.status_code == 400

    def test_stock_movement_endpoint(self, client, admin_headers, product_a):
        response = client.post("/api/inventory/movements", json={
            "product_id": product_a.id, "type": "restock", "quantity": 5, "notes": "Delivery",
        }, headers=admin_headers)
        assert response.status_code == 201
        assert response.json["stock"]["current_stock"] == 15

        response = client.post("/api/inventory/movements", json={
            "product_id": product_a.id, "type": "sale", "quantity": -1,
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_stock_override_requires_fields(self, client, admin_headers, product_a):
        response = client.patch(f"/api/inventory/stocks/{product_a.id}", json={"current_stock": 3}, headers=admin_headers)
        assert response.status_code == 400

        response = client.patch(
            f"/api/inventory/stocks/{product_a.id}",
            json={"current_stock": 3, "reorder_level": 4},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json["stock"]["is_low"] is True

    def test_pos_settings(self, client, admin_headers, cashier_headers):
        response = client.get("/api/settings/pos", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["setting"]["value"]["tax_rate"] == "12.00"

        body = {"tax_rate": "12", "service_charge_rate": "5"}
        assert client.put("/api/settings/pos", json=body, headers=cashier_headers).status_code == 403

        response = client.put("/api/settings/pos", json=body, headers=admin_headers)
        assert response.status_code == 200
        assert response.json["setting"]["value"]["service_charge_rate"] == "5.00"

        response = client.put(
            "/api/settings/pos", json={"tax_rate": "1000", "service_charge_rate": "5"}, headers=admin_headers
        )
        assert response.status_code == 400

    def test_create_user_and_set_pin(self, client, admin_headers):
        response = client.post("/api/users", json={
            "name": "Ana", "email": "ana@linato.test", "password": PASSWORD, "role": "admin",
        }, headers=admin_headers)
        assert response.status_code == 201
        user_id = response.json["user"]["id"]
        assert response.json["user"]["has_pin"] is False

        response = client.post(f"/api/users/{user_id}/pin", json={"pin": "4321"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json["user"]["has_pin"] is True

    def test_daily_report(self, client, admin_headers, cashier_headers, product_a):
        _create(client, cashier_headers, {"dine_type": "takeout", "items": [{"product_id": product_a.id, "qty": 1}]})

        response = client.get("/api/reports/daily", headers=admin_headers)
        assert response.status_code == 200
        assert response.json["order_count"] == 1
        assert response.json["net_sales"] == "280.00"

        assert client.get("/api/reports/daily?date=2026-13-40", headers=admin_headers).status_code == 400
