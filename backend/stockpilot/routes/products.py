# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockpilot/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_CATALOG
- Create/update require MANAGE_CATALOG, delete requires DELETE_PRODUCTS

Create and update accept JSON (images as base64 strings) or multipart form
data (images as files under "images").
"""
from flask import Blueprint, request, g

from ..collaborators import get_image_store
from ..decorators import require_auth, require_permission
from ..permissions import DELETE_PRODUCTS, MANAGE_CATALOG, VIEW_CATALOG
from ..results import run_action
from ..services import products_service
from .common import query_filters, read_images, read_payload, read_remove_image_ids

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission(VIEW_CATALOG)
def list_products():
    """
    List active products, newest first.

    Query params:
    - category: category name (case-insensitive substring)
    - search: matches name, SKU or description
    - stock_status: low | inStock | outOfStock | all
    - page, limit
    """
    filters = query_filters("category", "search", "stock_status", "page", "limit")
    return run_action(products_service.list_products, filters=filters).to_response()


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission(VIEW_CATALOG)
def get_product_route(product_id: int):
    return run_action(products_service.get_product, product_id=product_id).to_response()


@products_bp.post("")
@require_auth
@require_permission(MANAGE_CATALOG)
def create_product_route():
    payload = read_payload()
    images = read_images(payload)
    return run_action(
        products_service.create_product,
        payload=payload,
        actor=g.current_user,
        image_store=get_image_store(),
        images=images,
        success_status=201,
    ).to_response()


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission(MANAGE_CATALOG)
def update_product_route(product_id: int):
    """Patch product fields; remove_image_ids drops attached images."""
    payload = read_payload()
    images = read_images(payload)
    remove_ids = read_remove_image_ids(payload)
    return run_action(
        products_service.update_product,
        product_id=product_id,
        payload=payload,
        actor=g.current_user,
        image_store=get_image_store(),
        images=images,
        remove_image_ids=remove_ids,
    ).to_response()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission(DELETE_PRODUCTS)
def delete_product_route(product_id: int):
    """Deactivate a product (admin only)."""
    return run_action(
        products_service.delete_product,
        product_id=product_id,
        actor=g.current_user,
        image_store=get_image_store(),
    ).to_response()
