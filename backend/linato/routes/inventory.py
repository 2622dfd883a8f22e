# backend/linato/routes/inventory.py
"""
Inventory management routes.

SECURITY: All routes require authentication and the admin role.
Sale movements are never posted here; they are written by order
confirmation only.

Stock semantics:
- current_stock may go negative (selling is never blocked)
- PATCH /stocks/<product_id> is an override; a changed count is booked
  as an "adjustment" movement so the ledger stays complete
"""
from flask import Blueprint, request, g, current_app

from ..services import inventory_service
from ..services.auth_service import ROLE_ADMIN
from ..validation import (
    POSError,
    error_response,
    parse_choice,
    parse_int,
    parse_text,
    require_fields,
)
from ..decorators import require_auth, require_role


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/stocks")
@require_auth
@require_role(ROLE_ADMIN)
def list_stocks_route():
    """Query param: q (product name or SKU)."""
    stocks = inventory_service.list_stocks(request.args.get("q"))
    return {"stocks": [s.to_dict() for s in stocks]}, 200


@inventory_bp.get("/low-stock")
@require_auth
@require_role(ROLE_ADMIN)
def low_stock_route():
    stocks = inventory_service.low_stock()
    return {"stocks": [s.to_dict() for s in stocks]}, 200


@inventory_bp.patch("/stocks/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_stock_route(product_id: int):
    """
    Request body:
    {
        "current_stock": 25,
        "reorder_level": 5
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, ["current_stock", "reorder_level"])
        stock = inventory_service.update_stock(
            product_id,
            current_stock=parse_int(payload.get("current_stock"), "current_stock"),
            reorder_level=parse_int(payload.get("reorder_level"), "reorder_level", minimum=0),
            user_id=g.current_user.id,
        )
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to override stock")
        return {"error": "Internal server error"}, 500

    current_app.logger.info(
        "Stock override for product %s by user %s: %s (reorder %s)",
        product_id, g.current_user.id, stock.current_stock, stock.reorder_level,
    )
    return {"stock": stock.to_dict()}, 200


@inventory_bp.get("/movements")
@require_auth
@require_role(ROLE_ADMIN)
def list_movements_route():
    """Query params: product_id, limit (default 100, max 500), offset."""
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    movements = inventory_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        limit=limit,
        offset=offset,
    )
    return {"movements": [m.to_dict() for m in movements], "limit": limit, "offset": offset}, 200


@inventory_bp.post("/movements")
@require_auth
@require_role(ROLE_ADMIN)
def create_movement_route():
    """
    Manual restock or adjustment.

    Request body:
    {
        "product_id": 1,
        "type": "restock",     (restock: qty > 0; adjustment: qty != 0)
        "quantity": 10,
        "notes": "Supplier delivery"
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        movement = inventory_service.adjust_stock(
            product_id=parse_int(payload.get("product_id"), "product_id", minimum=1),
            user_id=g.current_user.id,
            movement_type=parse_choice(
                payload.get("type"), "type", inventory_service.MANUAL_MOVEMENT_TYPES
            ),
            quantity=parse_int(payload.get("quantity"), "quantity"),
            notes=parse_text(payload.get("notes"), "notes", max_length=255),
        )
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return {"error": "Internal server error"}, 500

    stock = inventory_service.get_stock(movement.product_id)
    return {"movement": movement.to_dict(), "stock": stock.to_dict()}, 201


@inventory_bp.get("/verify/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def verify_ledger_route(product_id: int):
    """Check that the product's movements reproduce its current stock."""
    return {"check": inventory_service.verify_ledger(product_id).to_dict()}, 200
