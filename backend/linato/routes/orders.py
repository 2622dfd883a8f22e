# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/linato/routes/orders.py
"""
Order API Routes

DESIGN:
- Create/edit accept the same body; the service validates and prices it
- Lifecycle transitions are POST sub-resources (/hold, /confirm, ...)
- /void is an alias of /cancel (both need an admin PIN)
- Payments live under /orders/<id>/payments

SECURITY:
- admin and cashier roles only; kitchen staff use /api/kds
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service, payment_service, shift_service
from ..services.auth_service import ROLE_ADMIN, ROLE_CASHIER
from ..decorators import require_auth, require_role
from ..validation import (
    POSError,
    ValidationError,
    error_response,
    parse_money,
    parse_text,
)
from linato.time_utils import parse_date


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

FRONT_OF_HOUSE = (ROLE_ADMIN, ROLE_CASHIER)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _query_date():
    try:
        return parse_date(request.args.get("date"))
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")


# =============================================================================
# LISTING
# =============================================================================

@orders_bp.get("")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def list_orders_route():
    """
    Query params:
    - status, receipt_number (partial match), table_id
    - date (YYYY-MM-DD, business day)
    - page (default 1), per_page (default 20, max 100)
    """
    try:
        on_date = _query_date()
        page = max(request.args.get("page", 1, type=int), 1)
        per_page = min(max(request.args.get("per_page", 20, type=int), 1), 100)

        orders, total = order_service.list_orders(
            status=request.args.get("status"),
            receipt_number=request.args.get("receipt_number"),
            table_id=request.args.get("table_id", type=int),
            on_date=on_date,
            page=page,
            per_page=per_page,
        )

        return jsonify({
            "orders": [o.to_dict(include_payments=False) for o in orders],
            "page": page,
            "per_page": per_page,
            "total": total,
        }), 200

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def get_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.get_order(order_id).to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATE / EDIT
# =============================================================================

@orders_bp.post("")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def create_order_route():
    """
    Request body:
    {
        "dine_type": "dine_in",
        "table_id": 3,
        "items": [{"product_id": 1, "qty": 2, "discount_amount": 0, "notes": "no onions"}],
        "discount_amount": 0,
        "service_charge_rate": 0,
        "tax_rate": 12,
        "rounding": 0,
        "hold": false
    }

    The order is tagged with the caller's open shift, if any.
    """
    try:
        payload = order_service.parse_order_payload(request.get_json(silent=True))
        shift = shift_service.get_open_shift(g.current_user.id)

        order = order_service.create_order(
            payload,
            cashier_id=g.current_user.id,
            shift_id=shift.id if shift else None,
        )
        return jsonify({"order": order.to_dict()}), 201

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
@orders_bp.put("/<int:order_id>")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def update_order_route(order_id: int):
    """Same body as create. Only pending orders can be edited."""
    try:
        payload = order_service.parse_order_payload(request.get_json(silent=True))
        order = order_service.update_order(order_id, payload)
        return jsonify({"order": order.to_dict()}), 200

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@orders_bp.post("/<int:order_id>/hold")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def hold_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.hold_order(order_id).to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to hold order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/resume")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def resume_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.resume_order(order_id).to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resume order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/confirm")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def confirm_order_route(order_id: int):
    try:
        order = order_service.confirm_order(order_id, user_id=g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/status")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def set_status_route(order_id: int):
    """Request body: {"status": "served"}"""
    try:
        status = _json_body().get("status")
        order = order_service.set_order_status(order_id, status)
        return jsonify({"order": order.to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@orders_bp.post("/<int:order_id>/void")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def cancel_order_route(order_id: int):
    """Request body: {"admin_pin": "1234", "reason": "Customer left"}"""
    try:
        data = _json_body()
        order = order_service.cancel_order(
            order_id,
            admin_pin=data.get("admin_pin"),
            reason=parse_text(data.get("reason"), "reason", max_length=255),
        )
        return jsonify({"order": order.to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS
# =============================================================================

@orders_bp.get("/<int:order_id>/payments")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def list_payments_route(order_id: int):
    try:
        payments = payment_service.list_payments(order_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payments")
@require_auth
@require_role(*FRONT_OF_HOUSE)
def add_payment_route(order_id: int):
    """
    Request body:
    {
        "method": "cash",          (cash, gcash, card)
        "amount": "500.00",
        "reference_no": "GC-123"   (optional)
    }

    Response carries the updated order so the register can show the
    remaining balance (negative = change due).
    """
    try:
        data = _json_body()
        payment, order = payment_service.add_payment(
            order_id=order_id,
            user_id=g.current_user.id,
            method=data.get("method"),
            amount=parse_money(data.get("amount"), "amount", required=True),
            reference_no=parse_text(data.get("reference_no"), "reference_no", max_length=120),
        )
        return jsonify({"payment": payment.to_dict(), "order": order.to_dict()}), 201

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500
