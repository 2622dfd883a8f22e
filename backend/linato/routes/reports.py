# Overview: Flask API routes for sales reports; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import reporting_service
from ..services.auth_service import ROLE_ADMIN
from ..decorators import require_auth, require_role
from ..validation import POSError, ValidationError, error_response
from linato.time_utils import parse_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _report_date():
    """?date=YYYY-MM-DD, defaulting to today's business date."""
    try:
        return parse_date(request.args.get("date"))
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")


@reports_bp.get("/daily")
@require_auth
@require_role(ROLE_ADMIN)
def daily_report_route():
    try:
        return jsonify(reporting_service.daily_summary(_report_date())), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build daily report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/sales-by-product")
@require_auth
@require_role(ROLE_ADMIN)
def sales_by_product_route():
    try:
        return jsonify({"rows": reporting_service.sales_by_product(_report_date())}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build product sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/sales-by-category")
@require_auth
@require_role(ROLE_ADMIN)
def sales_by_category_route():
    try:
        return jsonify({"rows": reporting_service.sales_by_category(_report_date())}), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build category sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/shift")
@require_auth
@require_role(ROLE_ADMIN)
def shift_report_route():
    """?shift_id=N, or the caller's open shift when omitted."""
    try:
        report = reporting_service.shift_report(
            shift_id=request.args.get("shift_id", type=int),
            user_id=g.current_user.id,
        )
        return jsonify(report), 200
    except POSError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build shift report")
        return jsonify({"error": "Internal server error"}), 500
