# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customers Service

- Orders keep a denormalized customer_name; a rename refreshes it on all of
  the customer's orders in the same transaction.
- Deleting is admin only and refused while orders reference the customer.
- Bulk import maps spreadsheet headers (English plus the localized headers
  used by the shop's templates) onto customer fields.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, CustomerCategory, Order, User
from ..permissions import DELETE_CUSTOMERS, IMPORT_CUSTOMERS, MANAGE_CUSTOMERS, require_capability
from ..validation import FieldErrors, ModelValidationPolicy, clean_text, validate_payload
from .pagination import paginate

logger = logging.getLogger(__name__)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "customer_category_id"},
    required_on_create={"name"},
)

# Lower-cased header -> customer field
IMPORT_HEADER_ALIASES = {
    "name": "name",
    "tên khách hàng": "name",
    "客戶名稱": "name",
    "姓名": "name",
    "名稱": "name",
    "email": "email",
    "mail": "email",
    "電子郵件": "email",
    "郵件": "email",
    "phone": "phone",
    "điện thoại": "phone",
    "電話": "phone",
    "手機": "phone",
    "address": "address",
    "địa chỉ": "address",
    "地址": "address",
    "category": "category_name",
    "phân loại khách hàng": "category_name",
    "分類": "category_name",
    "客戶分類": "category_name",
    "類型": "category_name",
}

EMPTY_MARKERS = {"", "N/A"}


def _get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found.", details={"customer_id": customer_id})
    return customer


def _check_fields(patch: dict, *, exclude_id: int | None = None) -> None:
    errors = FieldErrors()
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
        if "@" not in patch["email"]:
            errors.add("email", "must be a valid email address")
    if patch.get("customer_category_id") is not None:
        if not db.session.query(CustomerCategory).filter_by(id=patch["customer_category_id"]).first():
            errors.add("customer_category_id", "customer category not found")
    errors.raise_if_any()

    if patch.get("email"):
        query = db.session.query(Customer).filter(Customer.email == patch["email"])
        if exclude_id is not None:
            query = query.filter(Customer.id != exclude_id)
        if query.first():
            raise ConflictError("A customer with this email already exists.", details={"field": "email"})


def list_customers(*, filters: dict | None = None) -> dict:
    """Newest first; search matches name, email or phone."""
    filters = filters or {}
    query = db.session.query(Customer)
    search = clean_text(filters.get("search"))
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Customer.name.ilike(like), Customer.email.ilike(like), Customer.phone.ilike(like)))
    query = query.order_by(Customer.created_at.desc(), Customer.id.desc())
    return paginate(query, page=filters.get("page"), per_page=filters.get("limit"))


def get_customer(*, customer_id: int) -> dict:
    return _get_customer(customer_id).to_dict()


def create_customer(*, payload: dict, actor: User) -> dict:
    require_capability(actor, MANAGE_CUSTOMERS)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    _check_fields(patch)

    customer = Customer(**patch)
    db.session.add(customer)
    db.session.commit()
    return customer.to_dict()


def _apply_patch(customer: Customer, patch: dict) -> None:
    """Set the fields; a new name is copied onto the customer's orders."""
    renamed = "name" in patch and patch["name"] != customer.name
    for key, value in patch.items():
        setattr(customer, key, value)

    if renamed:
        updated = (
            db.session.query(Order)
            .filter(Order.customer_id == customer.id)
            .update({Order.customer_name: customer.name}, synchronize_session="fetch")
        )
        logger.info("Customer %s renamed; refreshed %d orders", customer.id, updated)


def update_customer(*, customer_id: int, payload: dict, actor: User) -> dict:
    require_capability(actor, MANAGE_CUSTOMERS)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    customer = _get_customer(customer_id)
    _check_fields(patch, exclude_id=customer.id)

    _apply_patch(customer, patch)
    db.session.commit()
    return customer.to_dict()


def delete_customer(*, customer_id: int, actor: User) -> dict:
    """Admin only; refused while any order (deleted or not) references the customer."""
    require_capability(actor, DELETE_CUSTOMERS)
    customer = _get_customer(customer_id)

    order_count = db.session.query(Order).filter(Order.customer_id == customer.id).count()
    if order_count:
        raise ConflictError(
            f"Cannot delete customer: {order_count} order(s) reference this customer.",
            details={"order_count": order_count},
        )

    db.session.delete(customer)
    db.session.commit()
    return {"id": customer_id, "deleted": True}


def get_customer_with_orders(*, customer_id: int) -> dict:
    """Customer page: the customer and their non-deleted orders, newest first."""
    customer = _get_customer(customer_id)
    orders = (
        db.session.query(Order)
        .filter(Order.customer_id == customer.id, Order.is_deleted.is_(False))
        .order_by(Order.order_date.desc(), Order.id.desc())
        .all()
    )
    return {"customer": customer.to_dict(), "orders": [o.to_dict() for o in orders]}


def map_import_rows(rows) -> list[dict]:
    """
    Turn a header row plus data rows into customer dicts.

    Unknown headers are ignored; "N/A" and blank cells count as empty; rows
    without a name are dropped.
    """
    rows = list(rows or [])
    if not rows:
        return []
    headers = [IMPORT_HEADER_ALIASES.get(str(h).strip().lower()) for h in rows[0]]

    records = []
    for row in rows[1:]:
        record: dict = {}
        for field_name, cell in zip(headers, row):
            if field_name is None or cell is None:
                continue
            value = str(cell).strip()
            if value.upper() in EMPTY_MARKERS:
                continue
            record[field_name] = value
        if record.get("name"):
            records.append(record)
    return records


def _find_duplicate(record: dict) -> Customer | None:
    conditions = [func.lower(Customer.name) == record["name"].lower()]
    if record.get("email"):
        conditions.append(Customer.email == record["email"].lower())
    if record.get("phone"):
        conditions.append(Customer.phone == record["phone"])
    return db.session.query(Customer).filter(or_(*conditions)).order_by(Customer.id.asc()).first()


def import_customers(*, rows, actor: User, skip_duplicates: bool = True, update_existing: bool = False) -> dict:
    """
    Bulk create customers from spreadsheet rows (first row = headers).

    Duplicates are matched on name, email or phone. They are updated when
    update_existing is set, skipped when skip_duplicates is set, and
    otherwise reported as row errors. Each row is validated on its own;
    valid rows are committed together.
    """
    require_capability(actor, IMPORT_CUSTOMERS)

    records = map_import_rows(rows)
    if not records:
        raise ValidationError(
            "No valid rows found. The file needs a header row and a customer name column.",
            field_errors={"rows": ["no rows with a customer name"]},
        )

    categories = {c.name.lower(): c.id for c in db.session.query(CustomerCategory).all()}
    result = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

    for index, record in enumerate(records, start=1):
        category_name = record.pop("category_name", None)
        if category_name and category_name.lower() in categories:
            record["customer_category_id"] = categories[category_name.lower()]

        try:
            patch = validate_payload(model=Customer, payload=record, policy=CUSTOMER_POLICY, partial=False)
        except ValidationError as exc:
            result["errors"].append({"row": index, "error": exc.message, "field_errors": exc.field_errors})
            continue

        existing = _find_duplicate(patch)
        if existing is not None:
            if update_existing:
                try:
                    _check_fields(patch, exclude_id=existing.id)
                except (ValidationError, ConflictError) as exc:
                    result["errors"].append({"row": index, "error": exc.message})
                    continue
                _apply_patch(existing, patch)
                result["updated"] += 1
            elif skip_duplicates:
                result["skipped"] += 1
            else:
                result["errors"].append({"row": index, "error": f'Customer "{patch["name"]}" already exists.'})
            continue

        try:
            _check_fields(patch)
        except (ValidationError, ConflictError) as exc:
            result["errors"].append({"row": index, "error": exc.message})
            continue

        db.session.add(Customer(**patch))
        db.session.flush()
        result["imported"] += 1

    db.session.commit()
    logger.info(
        "Customer import: %d imported, %d updated, %d skipped, %d errors",
        result["imported"], result["updated"], result["skipped"], len(result["errors"]),
    )
    return result
