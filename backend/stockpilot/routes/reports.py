# Overview: Flask API routes for the dashboard and reports; read-only aggregations.

from flask import Blueprint

from ..decorators import require_auth, require_permission
from ..permissions import VIEW_REPORTS
from ..results import run_action
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/dashboard")
@require_auth
@require_permission(VIEW_REPORTS)
def dashboard_route():
    """Overview counters, recent activity and the top 5 inventory alerts."""
    return run_action(reporting_service.get_dashboard).to_response()


@reports_bp.get("/reports")
@require_auth
@require_permission(VIEW_REPORTS)
def reports_route():
    """All-time sales summary and the top 10 inventory alerts."""
    return run_action(reporting_service.get_reports).to_response()
