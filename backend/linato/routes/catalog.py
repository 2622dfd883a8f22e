# Overview: Flask API routes for categories, products, and tables; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import catalog_service, inventory_service
from ..services.auth_service import ROLE_ADMIN, ROLE_CASHIER
from ..decorators import require_auth, require_role
from ..validation import POSError, error_response


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _active_only() -> bool:
    return request.args.get("active", "").lower() in ("1", "true")


def _product_dict(product) -> dict:
    data = product.to_dict()
    stock = inventory_service.get_stock(product.id)
    data["current_stock"] = stock.current_stock if stock else 0
    data["reorder_level"] = stock.reorder_level if stock else 0
    return data


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def list_categories_route():
    categories = catalog_service.list_categories(active_only=_active_only())
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@catalog_bp.get("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def get_category_route(category_id: int):
    try:
        return jsonify({"category": catalog_service.get_category(category_id).to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/categories")
@require_auth
@require_role(ROLE_ADMIN)
def create_category_route():
    try:
        category = catalog_service.create_category(_json_body())
        return jsonify({"category": category.to_dict()}), 201
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_category_route(category_id: int):
    try:
        category = catalog_service.update_category(category_id, _json_body())
        return jsonify({"category": category.to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def list_products_route():
    """Query params: category_id, q (name/SKU search), active=1."""
    products = catalog_service.list_products(
        category_id=request.args.get("category_id", type=int),
        active_only=_active_only(),
        q=request.args.get("q"),
    )
    return jsonify({"products": [_product_dict(p) for p in products]}), 200


@catalog_bp.get("/products/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def get_product_route(product_id: int):
    try:
        return jsonify({"product": _product_dict(catalog_service.get_product(product_id))}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Request body:
    {
        "name": "Chicken Adobo",
        "sku": "MAIN-001",
        "price": "280.00",
        "category_id": 1,
        "current_stock": 20,   (optional, booked as a stock adjustment)
        "reorder_level": 5     (optional)
    }
    """
    try:
        product = catalog_service.create_product(_json_body(), user_id=g.current_user.id)
        return jsonify({"product": _product_dict(product)}), 201
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/products/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, _json_body())
        return jsonify({"product": _product_dict(product)}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TABLES
# =============================================================================

@catalog_bp.get("/tables")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def list_tables_route():
    tables = catalog_service.list_tables(
        status=request.args.get("status"),
        active_only=_active_only(),
    )
    return jsonify({"tables": [t.to_dict() for t in tables]}), 200


@catalog_bp.get("/tables/<int:table_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def get_table_route(table_id: int):
    try:
        return jsonify({"table": catalog_service.get_table(table_id).to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load table")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/tables")
@require_auth
@require_role(ROLE_ADMIN)
def create_table_route():
    try:
        table = catalog_service.create_table(_json_body())
        return jsonify({"table": table.to_dict()}), 201
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create table")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/tables/<int:table_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_table_route(table_id: int):
    try:
        table = catalog_service.update_table(table_id, _json_body())
        return jsonify({"table": table.to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update table")
        return jsonify({"error": "Internal server error"}), 500
