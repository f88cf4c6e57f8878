# backend/stockpilot/routes/system.py
"""
System health endpoint.

Checks the database and the configured collaborators so deployments can be
probed without credentials.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..collaborators import IMAGE_STORE_KEY, REORDER_ADVISOR_KEY
from ..extensions import db
from ..models import Product, SessionToken, User
from stockpilot.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_collaborators() -> dict:
    """Configured means registered; remote services are not called."""
    extensions = current_app.extensions
    missing = [
        name for name, key in (("image_store", IMAGE_STORE_KEY), ("reorder_advisor", REORDER_ADVISOR_KEY))
        if extensions.get(key) is None
    ]
    if missing:
        return {"status": "degraded", "warning": f"Not configured: {', '.join(missing)}"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (missing collaborators only disable images / reorder advice)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    collaborators_health = check_collaborators()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif collaborators_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "collaborators": collaborators_health,
        }
    }

    return response, http_status
