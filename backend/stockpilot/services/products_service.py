# backend/stockpilot/services/products_service.py
"""
Products Service

Product master data, images and price history.

Stock is never written here directly: opening stock on create goes through
inventory_service.add_batch, later changes through stock-in, adjustments
and orders.
"""
from __future__ import annotations

import logging

from flask import current_app, has_app_context
from sqlalchemy import and_, or_

from ..collaborators import ImageStore
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, PriceHistoryEntry, Product, ProductImage, User
from ..models.inventory import MOVEMENT_STOCK_IN
from ..permissions import DELETE_PRODUCTS, MANAGE_CATALOG, require_capability
from ..validation import (
    FieldErrors,
    ModelValidationPolicy,
    clean_int,
    clean_text,
    enforce_rules_product,
    validate_payload,
)
from stockpilot.time_utils import utcnow
from . import inventory_service
from .pagination import paginate

logger = logging.getLogger(__name__)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "sku", "description", "unit_of_measure", "category_id",
        "price_cents", "cost_cents", "low_stock_threshold", "expiry_date",
    },
    required_on_create={"name", "price_cents"},
)

STOCK_STATUSES = ("low", "inStock", "outOfStock", "all")


def _image_folder() -> str:
    if has_app_context():
        return current_app.config.get("IMAGE_FOLDER", "stockpilot_products")
    return "stockpilot_products"


def _get_active_product(product_id: int) -> Product:
    product = db.session.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if not product:
        raise NotFoundError("Product not found.", details={"product_id": product_id})
    return product


def _apply_category(product: Product, category_id) -> None:
    if category_id is None:
        product.category_id = None
        product.category_name = None
        return
    category = db.session.query(Category).filter_by(id=category_id).first()
    if not category:
        raise ValidationError(field_errors={"category_id": ["category not found"]})
    product.category_id = category.id
    product.category_name = category.name


def _ensure_sku_free(sku: str | None, *, exclude_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("A product with this SKU already exists.", details={"field": "sku"})


def _upload_images(image_store: ImageStore | None, images) -> list:
    images = list(images or [])
    if not images:
        return []
    if image_store is None:
        raise ValidationError(
            "Image uploads are not configured.",
            field_errors={"images": ["image storage is not configured"]},
        )
    folder = _image_folder()
    return [image_store.upload(data, folder) for data in images]


def _discard_images(image_store: ImageStore | None, public_ids) -> None:
    """Best-effort removal from the image store; failures are logged only."""
    if image_store is None:
        return
    for public_id in public_ids:
        try:
            image_store.delete(public_id)
        except Exception:
            logger.warning("Failed to delete image %s from the image store", public_id, exc_info=True)


def list_products(*, filters: dict | None = None) -> dict:
    """
    Active products, newest first.

    filters: category (case-insensitive substring of the category name),
    search (name / SKU / description), stock_status (low | inStock |
    outOfStock | all), page, limit.
    """
    filters = filters or {}
    query = db.session.query(Product).filter(Product.is_active.is_(True))

    category = clean_text(filters.get("category"))
    if category:
        query = query.filter(Product.category_name.ilike(f"%{category}%"))

    search = clean_text(filters.get("search"))
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.description.ilike(like),
        ))

    stock_status = clean_text(filters.get("stock_status")) or "all"
    if stock_status not in STOCK_STATUSES:
        raise ValidationError(field_errors={"stock_status": [f"must be one of: {', '.join(STOCK_STATUSES)}"]})
    if stock_status == "low":
        query = query.filter(and_(Product.stock > 0, Product.stock < Product.low_stock_threshold))
    elif stock_status == "inStock":
        query = query.filter(Product.stock > 0)
    elif stock_status == "outOfStock":
        query = query.filter(Product.stock <= 0)

    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    return paginate(query, page=filters.get("page"), per_page=filters.get("limit"))


def get_product(*, product_id: int) -> dict:
    return _get_active_product(product_id).to_dict(include_batches=True)


def create_product(
    *,
    payload: dict,
    actor: User,
    image_store: ImageStore | None = None,
    images=(),
) -> dict:
    """
    Create a product.

    payload may carry initial_stock (opening stock, becomes a batch dated
    with expiry_date) besides the product fields. An initial price-history
    entry is written. Uploaded images are removed again if the database
    write fails.
    """
    require_capability(actor, MANAGE_CATALOG)

    payload = dict(payload or {})
    errors = FieldErrors()
    initial_stock = clean_int(payload.pop("initial_stock", None), "initial_stock", errors, required=False, minimum=0)
    errors.raise_if_any()

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    _ensure_sku_free(patch.get("sku"))

    uploaded = _upload_images(image_store, images)
    try:
        product = Product(
            name=patch["name"],
            sku=patch.get("sku"),
            description=patch.get("description"),
            unit_of_measure=patch.get("unit_of_measure"),
            price_cents=patch["price_cents"],
            cost_cents=patch.get("cost_cents") or 0,
            low_stock_threshold=patch.get("low_stock_threshold") or 0,
            expiry_date=patch.get("expiry_date"),
            stock=0,
            is_active=True,
        )
        _apply_category(product, patch.get("category_id"))
        db.session.add(product)
        db.session.flush()

        product.price_history.append(
            PriceHistoryEntry(price_cents=product.price_cents, changed_at=utcnow(), changed_by_user_id=actor.id)
        )
        for image in uploaded:
            product.images.append(ProductImage(url=image.url, public_id=image.public_id))

        if initial_stock:
            inventory_service.add_batch(
                product=product,
                quantity=initial_stock,
                expiry_date=patch.get("expiry_date"),
                actor=actor,
                movement_type=MOVEMENT_STOCK_IN,
                unit_cost_cents=product.cost_cents,
                notes="Opening stock",
            )

        db.session.commit()
    except Exception:
        db.session.rollback()
        _discard_images(image_store, [image.public_id for image in uploaded])
        raise

    logger.info("Created product %s (%s)", product.id, product.name)
    return product.to_dict(include_batches=True)


def update_product(
    *,
    product_id: int,
    payload: dict,
    actor: User,
    image_store: ImageStore | None = None,
    images=(),
    remove_image_ids=(),
) -> dict:
    """
    Patch product fields.

    A price change appends a price-history entry. Stock cannot be set here.
    """
    require_capability(actor, MANAGE_CATALOG)

    payload = dict(payload or {})
    if "stock" in payload:
        raise ValidationError(field_errors={"stock": ["is changed through stock-in, adjustments and orders only"]})

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    product = _get_active_product(product_id)
    if "sku" in patch:
        _ensure_sku_free(patch["sku"], exclude_id=product.id)

    errors = FieldErrors()
    remove_ids = set()
    for raw in remove_image_ids or ():
        image_id = clean_int(raw, "remove_image_ids", errors)
        if image_id is not None:
            remove_ids.add(image_id)
    errors.raise_if_any()
    to_remove = [img for img in product.images if img.id in remove_ids]
    if len(to_remove) != len(remove_ids):
        raise ValidationError(field_errors={"remove_image_ids": ["image does not belong to this product"]})

    uploaded = _upload_images(image_store, images)
    try:
        old_price = product.price_cents
        for key, value in patch.items():
            if key == "category_id":
                _apply_category(product, value)
            else:
                setattr(product, key, value)

        if "price_cents" in patch and patch["price_cents"] != old_price:
            product.price_history.append(
                PriceHistoryEntry(price_cents=patch["price_cents"], changed_at=utcnow(), changed_by_user_id=actor.id)
            )

        for image in uploaded:
            product.images.append(ProductImage(url=image.url, public_id=image.public_id))
        for image in to_remove:
            product.images.remove(image)

        db.session.commit()
    except Exception:
        db.session.rollback()
        _discard_images(image_store, [image.public_id for image in uploaded])
        raise

    _discard_images(image_store, [image.public_id for image in to_remove])
    return product.to_dict(include_batches=True)


def delete_product(*, product_id: int, actor: User, image_store: ImageStore | None = None) -> dict:
    """
    Admin only. Deactivates the product (orders and movements keep pointing
    at it) and removes its images from the image store.
    """
    require_capability(actor, DELETE_PRODUCTS)

    product = _get_active_product(product_id)
    public_ids = [image.public_id for image in product.images]

    product.is_active = False
    product.images.clear()
    db.session.commit()

    _discard_images(image_store, public_ids)
    logger.info("Product %s deactivated by %s", product.id, actor.email)
    return {"id": product.id, "deleted": True}


def list_all_products() -> list[Product]:
    """Every product by name (CLI listing)."""
    return db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
