# Overview: Flask API routes for the kitchen display; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import order_service
from ..services.auth_service import ROLE_ADMIN, ROLE_KITCHEN
from ..decorators import require_auth, require_role
from ..validation import POSError, ValidationError, error_response


kds_bp = Blueprint("kds", __name__, url_prefix="/api/kds")

# The kitchen screen only moves tickets into and out of the kitchen
KITCHEN_TARGETS = [order_service.STATUS_PREPARING, order_service.STATUS_READY]


@kds_bp.get("/orders")
@require_auth
@require_role(ROLE_ADMIN, ROLE_KITCHEN)
def kitchen_queue_route():
    """Query param: status (confirmed, preparing, ready)."""
    status = request.args.get("status")
    if status and status not in order_service.KITCHEN_STATUSES:
        return jsonify({"error": f"status must be one of {order_service.KITCHEN_STATUSES}"}), 400

    orders = order_service.list_kitchen_orders(status)
    return jsonify({"orders": [o.to_dict(include_payments=False) for o in orders]}), 200


@kds_bp.patch("/orders/<int:order_id>/status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_KITCHEN)
def kitchen_status_route(order_id: int):
    """Request body: {"status": "preparing"} or {"status": "ready"}"""
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if status not in KITCHEN_TARGETS:
            raise ValidationError(f"status must be one of {KITCHEN_TARGETS}")

        order = order_service.set_order_status(order_id, status)
        return jsonify({"order": order.to_dict(include_payments=False)}), 200

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update kitchen status")
        return jsonify({"error": "Internal server error"}), 500
