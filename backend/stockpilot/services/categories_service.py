# Overview: Service-layer operations for product categories; encapsulates business logic and database work.

from __future__ import annotations

import logging

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Category, Product, User
from ..permissions import MANAGE_CATEGORIES, require_capability
from ..validation import ModelValidationPolicy, clean_text, validate_payload
from .pagination import paginate

logger = logging.getLogger(__name__)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)


def _get_category(category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id).first()
    if not category:
        raise NotFoundError("Category not found.", details={"category_id": category_id})
    return category


def _ensure_name_free(name: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f'Category with name "{name}" already exists.', details={"field": "name"})


def list_categories(*, filters: dict | None = None) -> dict:
    """Categories by name, optional case-insensitive name search."""
    filters = filters or {}
    query = db.session.query(Category)
    search = clean_text(filters.get("search"))
    if search:
        query = query.filter(Category.name.ilike(f"%{search}%"))
    query = query.order_by(Category.name.asc(), Category.id.asc())
    return paginate(query, page=filters.get("page"), per_page=filters.get("limit"))


def get_category(*, category_id: int) -> dict:
    return _get_category(category_id).to_dict()


def create_category(*, payload: dict, actor: User) -> dict:
    require_capability(actor, MANAGE_CATEGORIES)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    _ensure_name_free(patch["name"])

    category = Category(name=patch["name"], description=patch.get("description"))
    db.session.add(category)
    db.session.commit()
    return category.to_dict()


def update_category(*, category_id: int, payload: dict, actor: User) -> dict:
    """
    Update name/description. A rename refreshes the denormalized
    category_name on every product of the category in the same transaction.
    """
    require_capability(actor, MANAGE_CATEGORIES)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    category = _get_category(category_id)

    renamed = "name" in patch and patch["name"] != category.name
    if renamed:
        _ensure_name_free(patch["name"], exclude_id=category.id)

    for key, value in patch.items():
        setattr(category, key, value)

    if renamed:
        updated = (
            db.session.query(Product)
            .filter(Product.category_id == category.id)
            .update({Product.category_name: category.name}, synchronize_session="fetch")
        )
        logger.info("Category %s renamed; refreshed %d products", category.id, updated)

    db.session.commit()
    return category.to_dict()


def delete_category(*, category_id: int, actor: User) -> dict:
    """Refused while any product references the category."""
    require_capability(actor, MANAGE_CATEGORIES)
    category = _get_category(category_id)

    in_use = db.session.query(Product).filter(Product.category_id == category.id).count()
    if in_use:
        raise ConflictError(
            f"Cannot delete category: {in_use} product(s) are using it.",
            details={"product_count": in_use},
        )

    db.session.delete(category)
    db.session.commit()
    return {"id": category_id, "deleted": True}
