from flask import Blueprint, request, jsonify, g, current_app

from ..services import settings_service
from ..services.auth_service import ROLE_ADMIN, ROLE_CASHIER
from ..decorators import require_auth, require_role
from ..validation import POSError, error_response


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/pos")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def get_pos_settings_route():
    return jsonify({"setting": settings_service.get_pos_settings().to_dict()}), 200


@settings_bp.put("/pos")
@require_auth
@require_role(ROLE_ADMIN)
def update_pos_settings_route():
    """Request body: {"tax_rate": 12, "service_charge_rate": 10}"""
    try:
        setting = settings_service.update_pos_settings(
            request.get_json(silent=True) or {},
            user_id=g.current_user.id,
        )
        return jsonify({"setting": setting.to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update POS settings")
        return jsonify({"error": "Internal server error"}), 500
