# Overview: Flask API routes for product and customer categories; parses input and returns JSON responses.

from flask import Blueprint, g

from ..decorators import require_auth, require_permission
from ..permissions import MANAGE_CATEGORIES, MANAGE_CUSTOMERS, VIEW_CATALOG, VIEW_CUSTOMERS
from ..results import run_action
from ..services import categories_service, customer_categories_service
from .common import flag, query_filters, read_json

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
customer_categories_bp = Blueprint("customer_categories", __name__, url_prefix="/api/customer-categories")


@categories_bp.get("")
@require_auth
@require_permission(VIEW_CATALOG)
def list_categories():
    filters = query_filters("search", "page", "limit")
    return run_action(categories_service.list_categories, filters=filters).to_response()


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission(VIEW_CATALOG)
def get_category_route(category_id: int):
    return run_action(categories_service.get_category, category_id=category_id).to_response()


@categories_bp.post("")
@require_auth
@require_permission(MANAGE_CATEGORIES)
def create_category_route():
    return run_action(
        categories_service.create_category, payload=read_json(), actor=g.current_user, success_status=201
    ).to_response()


@categories_bp.put("/<int:category_id>")
@require_auth
@require_permission(MANAGE_CATEGORIES)
def update_category_route(category_id: int):
    """Renaming also renames the category on its products."""
    return run_action(
        categories_service.update_category, category_id=category_id, payload=read_json(), actor=g.current_user
    ).to_response()


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission(MANAGE_CATEGORIES)
def delete_category_route(category_id: int):
    return run_action(
        categories_service.delete_category, category_id=category_id, actor=g.current_user
    ).to_response()


@customer_categories_bp.get("")
@require_auth
@require_permission(VIEW_CUSTOMERS)
def list_customer_categories():
    """?active_only=true hides inactive categories (used by pickers)."""
    return run_action(
        customer_categories_service.list_customer_categories, include_inactive=not flag("active_only")
    ).to_response()


@customer_categories_bp.get("/<int:category_id>")
@require_auth
@require_permission(VIEW_CUSTOMERS)
def get_customer_category_route(category_id: int):
    return run_action(customer_categories_service.get_customer_category, category_id=category_id).to_response()


@customer_categories_bp.post("")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def create_customer_category_route():
    """A missing code is generated from the name."""
    return run_action(
        customer_categories_service.create_customer_category,
        payload=read_json(),
        actor=g.current_user,
        success_status=201,
    ).to_response()


@customer_categories_bp.put("/<int:category_id>")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def update_customer_category_route(category_id: int):
    return run_action(
        customer_categories_service.update_customer_category,
        category_id=category_id,
        payload=read_json(),
        actor=g.current_user,
    ).to_response()


@customer_categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def delete_customer_category_route(category_id: int):
    return run_action(
        customer_categories_service.delete_customer_category, category_id=category_id, actor=g.current_user
    ).to_response()
