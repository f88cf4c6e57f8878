# Overview: Flask API route for AI reorder suggestions.

from flask import Blueprint, g

from ..collaborators import get_reorder_advisor
from ..decorators import require_auth, require_permission
from ..permissions import USE_REORDER_ADVISOR
from ..results import run_action
from ..services import reorder_service
from .common import read_json

ai_bp = Blueprint("ai", __name__, url_prefix="/api/ai")


@ai_bp.post("/reorder-suggestion")
@require_auth
@require_permission(USE_REORDER_ADVISOR)
def reorder_suggestion_route():
    """
    JSON: product_id, lead_time_days, safety_stock.

    Average daily sales and current stock are read from the database.
    """
    data = read_json()
    return run_action(
        reorder_service.suggest_reorder,
        product_id=data.get("product_id"),
        lead_time_days=data.get("lead_time_days"),
        safety_stock=data.get("safety_stock"),
        advisor=get_reorder_advisor(),
        actor=g.current_user,
    ).to_response()
