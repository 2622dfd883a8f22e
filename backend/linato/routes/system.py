# backend/linato/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports the configured business day,
which is what receipt numbers are keyed on.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from linato.time_utils import utcnow, business_date

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database check failed
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "business_date": business_date(current_app.config.get("BUSINESS_TIMEZONE", "UTC")).isoformat(),
        "checks": {"database": database_health},
    }
    return response, 200 if healthy else 503
