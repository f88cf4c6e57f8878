# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/stockpilot/routes/inventory.py
"""
Inventory routes: receiving stock, manual adjustments and the movement log.

Every stock change writes an inventory movement; batches are consumed
earliest expiry first.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import ValidationError
from ..permissions import ADJUST_INVENTORY, RECEIVE_INVENTORY, VIEW_INVENTORY
from ..results import run_action
from ..services import inventory_service
from .common import flag, read_json

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _movement_limit() -> int:
    raw = request.args.get("limit")
    if raw in (None, ""):
        return inventory_service.MOVEMENT_LIST_LIMIT
    try:
        limit = int(raw)
    except ValueError:
        raise ValidationError(field_errors={"limit": ["must be an integer"]})
    if limit < 1 or limit > inventory_service.MOVEMENT_LIST_LIMIT:
        raise ValidationError(
            field_errors={"limit": [f"must be between 1 and {inventory_service.MOVEMENT_LIST_LIMIT}"]}
        )
    return limit


@inventory_bp.post("/stock-in")
@require_auth
@require_permission(RECEIVE_INVENTORY)
def stock_in_route():
    """
    Receive stock as a new batch.

    JSON: product_id, quantity, expiry_date (optional), unit_cost_cents (optional), notes (optional)
    """
    data = read_json()
    return run_action(
        inventory_service.record_stock_in,
        product_id=data.get("product_id"),
        quantity=data.get("quantity"),
        expiry_date=data.get("expiry_date"),
        unit_cost_cents=data.get("unit_cost_cents"),
        notes=data.get("notes"),
        actor=g.current_user,
        success_status=201,
    ).to_response()


@inventory_bp.post("/adjustments")
@require_auth
@require_permission(ADJUST_INVENTORY)
def adjustment_route():
    """
    Manual correction.

    JSON: product_id, quantity_change (signed, non-zero), reason, notes (optional),
    expiry_date (optional, used for positive changes)
    """
    data = read_json()
    return run_action(
        inventory_service.record_stock_adjustment,
        product_id=data.get("product_id"),
        quantity_change=data.get("quantity_change"),
        reason=data.get("reason"),
        notes=data.get("notes"),
        expiry_date=data.get("expiry_date"),
        actor=g.current_user,
        success_status=201,
    ).to_response()


@inventory_bp.get("/movements")
@require_auth
@require_permission(VIEW_INVENTORY)
def list_movements_route():
    """Newest first. Query params: product_id, type, limit (max 100)."""
    limit = _movement_limit()
    return run_action(
        inventory_service.list_movements,
        product_id=request.args.get("product_id"),
        movement_type=request.args.get("type"),
        limit=limit,
    ).to_response()


@inventory_bp.get("/products/<int:product_id>/batches")
@require_auth
@require_permission(VIEW_INVENTORY)
def list_batches_route(product_id: int):
    """Batches in consumption order; ?include_empty=true shows used-up batches too."""
    return run_action(
        inventory_service.list_batches, product_id=product_id, include_empty=flag("include_empty")
    ).to_response()


@inventory_bp.get("/products/<int:product_id>/stock-in-history")
@require_auth
@require_permission(VIEW_INVENTORY)
def stock_in_history_route(product_id: int):
    return run_action(inventory_service.stock_in_history, product_id=product_id).to_response()
