# Overview: Flask API routes for staff account management (admin only).

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..models import User
from ..services import auth_service
from ..decorators import require_auth, require_role
from ..validation import POSError, ValidationError, error_response, parse_bool


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(auth_service.ROLE_ADMIN)
def list_users_route():
    users = db.session.query(User).order_by(User.name).all()
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@users_bp.post("")
@require_auth
@require_role(auth_service.ROLE_ADMIN)
def create_user_route():
    """
    Request body:
    {
        "name": "Ana Cruz",
        "email": "ana@example.com",
        "password": "changeme1",
        "role": "cashier",
        "pin": "1234"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        name = data.get("name")
        email = data.get("email")
        password = data.get("password")

        if not all([name, email, password]):
            raise ValidationError("name, email, and password required")

        user = auth_service.create_user(
            name=name,
            email=email,
            password=password,
            role=data.get("role", auth_service.ROLE_CASHIER),
            pin=data.get("pin"),
        )
        current_app.logger.info("User %s created by admin %s", user.email, g.current_user.id)
        return jsonify({"user": user.to_dict()}), 201

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(auth_service.ROLE_ADMIN)
def get_user_route(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify({"user": user.to_dict()}), 200


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(auth_service.ROLE_ADMIN)
def update_user_route(user_id: int):
    """Name, role, and is_active. Deactivation ends the user's sessions on their next request."""
    try:
        data = request.get_json(silent=True) or {}
        user = db.session.get(User, user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404

        if "role" in data:
            if data["role"] not in auth_service.VALID_ROLES:
                raise ValidationError(f"role must be one of {auth_service.VALID_ROLES}")
            user.role = data["role"]
        if "name" in data:
            if not data["name"]:
                raise ValidationError("name cannot be empty")
            user.name = data["name"]
        db.session.commit()

        if "is_active" in data:
            user = auth_service.set_active(user.id, parse_bool(data["is_active"], "is_active"))

        return jsonify({"user": user.to_dict()}), 200

    except POSError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/<int:user_id>/pin")
@users_bp.patch("/<int:user_id>/pin")
@require_auth
@require_role(auth_service.ROLE_ADMIN)
def set_pin_route(user_id: int):
    """Request body: {"pin": "4321"}"""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.set_pin(user_id, data.get("pin"))
        return jsonify({"user": user.to_dict()}), 200

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set PIN")
        return jsonify({"error": "Internal server error"}), 500
