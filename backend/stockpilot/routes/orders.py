# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/stockpilot/routes/orders.py
"""
Order routes.

Lifecycle: pending -> processing -> shipped -> delivered -> completed, with
cancelled reachable until the order is delivered. The full
transition table is ALLOWED_TRANSITIONS in services/order_service.py.
Creating, editing and cancelling move stock.
"""
from flask import Blueprint, g

from ..decorators import require_auth, require_permission
from ..permissions import CREATE_ORDERS, DELETE_ORDERS, EDIT_ORDERS, VIEW_DELETED_ORDERS, VIEW_ORDERS
from ..results import run_action
from ..services import order_service
from .common import query_filters, read_json

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

LIST_FILTERS = ("search", "customer_id", "status", "start_date", "end_date", "page", "limit")


@orders_bp.get("")
@require_auth
@require_permission(VIEW_ORDERS)
def list_orders():
    """
    Query params: search (order number / customer name), customer_id,
    status, start_date, end_date (YYYY-MM-DD, inclusive), page, limit.
    """
    return run_action(order_service.list_orders, filters=query_filters(*LIST_FILTERS)).to_response()


@orders_bp.get("/deleted")
@require_auth
@require_permission(VIEW_DELETED_ORDERS)
def list_deleted_orders():
    return run_action(
        order_service.list_deleted_orders, filters=query_filters("page", "limit"), actor=g.current_user
    ).to_response()


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission(VIEW_ORDERS)
def get_order_route(order_id: int):
    return run_action(order_service.get_order, order_id=order_id).to_response()


@orders_bp.post("")
@require_auth
@require_permission(CREATE_ORDERS)
def create_order_route():
    return run_action(
        order_service.create_order, payload=read_json(), actor=g.current_user, success_status=201
    ).to_response()


@orders_bp.put("/<int:order_id>")
@require_auth
@require_permission(EDIT_ORDERS)
def update_order_route(order_id: int):
    """Pending and processing orders only; sending items replaces all lines."""
    return run_action(
        order_service.update_order, order_id=order_id, payload=read_json(), actor=g.current_user
    ).to_response()


@orders_bp.post("/<int:order_id>/status")
@require_auth
@require_permission(EDIT_ORDERS)
def update_order_status_route(order_id: int):
    data = read_json()
    return run_action(
        order_service.update_order_status, order_id=order_id, status=data.get("status"), actor=g.current_user
    ).to_response()


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_permission(DELETE_ORDERS)
def delete_order_route(order_id: int):
    """Soft delete (admin only); stock is not restored."""
    return run_action(order_service.soft_delete_order, order_id=order_id, actor=g.current_user).to_response()
