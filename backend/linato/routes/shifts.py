# Overview: Flask API routes for cashier shifts; parses input and returns JSON responses.

"""
Shift API Routes

- POST /api/shifts/open     {"opening_cash": "1000.00"}
- POST /api/shifts/close    {"closing_cash": "1850.00", "notes": "..."}
- GET  /api/shifts/current  caller's open shift (null if none)
- GET  /api/shifts/<id>
- GET  /api/shifts          recent shifts (admins see all, cashiers their own)

Cashiers open and close their own drawer. An admin may close another
user's shift by passing shift_id.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import shift_service
from ..services.auth_service import ROLE_ADMIN, ROLE_CASHIER
from ..decorators import require_auth, require_role
from ..validation import POSError, AuthorizationError, error_response, parse_money, parse_int, parse_text


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _ensure_can_view(shift) -> None:
    if g.current_user.role != ROLE_ADMIN and shift.user_id != g.current_user.id:
        raise AuthorizationError("Shift belongs to another user")


@shifts_bp.post("/open")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def open_shift_route():
    try:
        data = _json_body()
        shift = shift_service.open_shift(
            user_id=g.current_user.id,
            opening_cash=parse_money(data.get("opening_cash"), "opening_cash", required=True),
        )
        return jsonify({"shift": shift.to_dict()}), 201

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/close")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def close_shift_route():
    try:
        data = _json_body()
        closing_cash = parse_money(data.get("closing_cash"), "closing_cash", required=True)
        notes = parse_text(data.get("notes"), "notes", max_length=2000)
        shift_id = parse_int(data.get("shift_id"), "shift_id", required=False, minimum=1)

        if shift_id is not None:
            _ensure_can_view(shift_service.get_shift(shift_id))
            shift = shift_service.close_shift(shift_id, closing_cash, notes)
        else:
            shift = shift_service.close_open_shift(g.current_user.id, closing_cash, notes)

        return jsonify({"shift": shift.to_dict()}), 200

    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/current")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def current_shift_route():
    shift = shift_service.get_open_shift(g.current_user.id)
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.get("/<int:shift_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        _ensure_can_view(shift)
        return jsonify({"shift": shift.to_dict()}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def list_shifts_route():
    if g.current_user.role == ROLE_ADMIN:
        user_id = request.args.get("user_id", type=int)
    else:
        user_id = g.current_user.id
    shifts = shift_service.list_shifts(user_id=user_id)
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200
