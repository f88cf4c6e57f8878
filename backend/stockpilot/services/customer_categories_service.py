# Overview: Service-layer operations for customer categories; encapsulates business logic and database work.

from __future__ import annotations

import re

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, CustomerCategory, User
from ..permissions import MANAGE_CUSTOMERS, require_capability
from ..validation import ModelValidationPolicy, validate_payload

CODE_PATTERN = re.compile(r"^[A-Z_]+$")
CODE_FALLBACK = "CATEGORY"
CODE_BASE_MAX_LENGTH = 20
LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

CUSTOMER_CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "description", "is_active"},
    required_on_create={"name"},
)


def code_from_name(name: str | None) -> str:
    """
    Upper-case the name, keep ASCII letters, turn whitespace runs into "_".

    "Wholesale buyers" -> "WHOLESALE_BUYERS". Falls back to CATEGORY when
    nothing usable is left.
    """
    if not name:
        return CODE_FALLBACK
    code = re.sub(r"[^A-Za-z\s]", "", name.upper())
    code = re.sub(r"\s+", "_", code.strip())[:CODE_BASE_MAX_LENGTH]
    if not code:
        return CODE_FALLBACK
    if code.startswith("_"):
        code = CODE_FALLBACK + code
    return code


def letter_suffix(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, 27 -> AB ..."""
    suffix = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, len(LETTERS))
        suffix = LETTERS[rem] + suffix
    return suffix


def _code_taken(code: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(CustomerCategory).filter(CustomerCategory.code == code)
    if exclude_id is not None:
        query = query.filter(CustomerCategory.id != exclude_id)
    return query.first() is not None


def generate_unique_code(name: str) -> str:
    base = code_from_name(name)
    code = base
    index = 0
    while _code_taken(code):
        code = f"{base}_{letter_suffix(index)}"
        index += 1
    return code


def _normalize_code(patch: dict) -> None:
    if patch.get("code") is None:
        return
    code = patch["code"].upper()
    if not CODE_PATTERN.match(code):
        raise ValidationError(field_errors={"code": ["must contain only letters A-Z and underscores"]})
    patch["code"] = code


def _get(category_id: int) -> CustomerCategory:
    category = db.session.query(CustomerCategory).filter_by(id=category_id).first()
    if not category:
        raise NotFoundError("Customer category not found.", details={"customer_category_id": category_id})
    return category


def list_customer_categories(*, include_inactive: bool = True) -> list[dict]:
    query = db.session.query(CustomerCategory)
    if not include_inactive:
        query = query.filter(CustomerCategory.is_active.is_(True))
    categories = query.order_by(CustomerCategory.created_at.desc(), CustomerCategory.id.desc()).all()
    return [c.to_dict() for c in categories]


def get_customer_category(*, category_id: int) -> dict:
    return _get(category_id).to_dict()


def create_customer_category(*, payload: dict, actor: User) -> dict:
    require_capability(actor, MANAGE_CUSTOMERS)
    patch = validate_payload(
        model=CustomerCategory, payload=payload, policy=CUSTOMER_CATEGORY_POLICY, partial=False
    )
    _normalize_code(patch)

    if patch.get("code"):
        if _code_taken(patch["code"]):
            raise ConflictError(f'Customer category code "{patch["code"]}" already exists.', details={"field": "code"})
        code = patch["code"]
    else:
        code = generate_unique_code(patch["name"])

    category = CustomerCategory(
        name=patch["name"],
        code=code,
        description=patch.get("description"),
        is_active=patch.get("is_active", True),
    )
    db.session.add(category)
    db.session.commit()
    return category.to_dict()


def update_customer_category(*, category_id: int, payload: dict, actor: User) -> dict:
    require_capability(actor, MANAGE_CUSTOMERS)
    patch = validate_payload(
        model=CustomerCategory, payload=payload, policy=CUSTOMER_CATEGORY_POLICY, partial=True
    )
    _normalize_code(patch)
    category = _get(category_id)

    if "code" in patch:
        if patch["code"] is None:
            patch.pop("code")
        elif _code_taken(patch["code"], exclude_id=category.id):
            raise ConflictError(f'Customer category code "{patch["code"]}" already exists.', details={"field": "code"})

    for key, value in patch.items():
        setattr(category, key, value)

    db.session.commit()
    return category.to_dict()


def delete_customer_category(*, category_id: int, actor: User) -> dict:
    """Refused while customers reference the category."""
    require_capability(actor, MANAGE_CUSTOMERS)
    category = _get(category_id)

    in_use = db.session.query(Customer).filter(Customer.customer_category_id == category.id).count()
    if in_use:
        raise ConflictError(
            f"Cannot delete customer category: {in_use} customer(s) are using it.",
            details={"customer_count": in_use},
        )

    db.session.delete(category)
    db.session.commit()
    return {"id": category_id, "deleted": True}
