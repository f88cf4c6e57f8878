from __future__ import annotations
from datetime import date, datetime
from stockpilot.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .services.pricing import DISCOUNT_TYPES, Discount


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
DISCOUNT_PLACES = Decimal("0.01")


class FieldErrors:
    """Collects messages per field path and raises them all at once."""

    def __init__(self):
        self.errors: dict[str, list[str]] = {}

    def add(self, field_name: str, message: str) -> None:
        self.errors.setdefault(field_name, []).append(message)

    def __bool__(self) -> bool:
        return bool(self.errors)

    def raise_if_any(self, message: str = "Validation failed") -> None:
        if self.errors:
            raise ValidationError(message, field_errors=self.errors)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


class _FieldProblem(Exception):
    pass


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any) -> int:
    """Strict integer: rejects floats, decimals in strings and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise _FieldProblem("must be an integer")
        if 'e' in stripped.lower():
            raise _FieldProblem("must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise _FieldProblem("must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise _FieldProblem("must be an integer")
    if isinstance(value, float):
        raise _FieldProblem("must be an integer, not a decimal")
    raise _FieldProblem("must be an integer")


def coerce_number(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise _FieldProblem("must be a number")
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str) and value.strip():
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise _FieldProblem("must be a number")
    raise _FieldProblem("must be a number")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    if isinstance(coltype, Numeric):
        return coerce_number(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise _FieldProblem("must be an ISO-8601 datetime")
            if dt is None:
                raise _FieldProblem("must be an ISO-8601 datetime")
            return dt
        raise _FieldProblem("must be a datetime")

    if isinstance(coltype, Date):
        return coerce_date(value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def coerce_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_date(value)
        except ValueError:
            raise _FieldProblem("must be an ISO-8601 date (YYYY-MM-DD)")
    raise _FieldProblem("must be a date")


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Every problem is collected; ValidationError.field_errors maps each field
    to its messages.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors = FieldErrors()

    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload:
                errors.add(f, "is required")

    cols = _columns_by_key(model)

    patch: dict = {}

    for k, raw in payload.items():
        # Reject unknown / non-writable fields
        if k not in policy.writable_fields or k not in cols:
            errors.add(k, "is not allowed")
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable or k in required:
                errors.add(k, "cannot be null")
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except _FieldProblem as exc:
            errors.add(k, str(exc))
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable or k in required:
                errors.add(k, "cannot be blank")
                continue
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.add(k, f"exceeds max length {col.type.length}")
                continue

        patch[k] = val

    errors.raise_if_any()
    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    errors = FieldErrors()
    for key in ("price_cents", "cost_cents"):
        if key in patch and patch[key] is not None:
            amount = patch[key]
            if amount < 0:
                errors.add(key, "must be >= 0")
            elif amount > MAX_PRICE_CENTS:
                errors.add(key, f"cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        errors.add("low_stock_threshold", "must be >= 0")
    errors.raise_if_any()


def clean_int(value: Any, field_name: str, errors: FieldErrors, *, required: bool = True, minimum: int | None = None) -> Optional[int]:
    """Coerce one integer input, recording a field error instead of raising."""
    if value is None or value == "":
        if required:
            errors.add(field_name, "is required")
        return None
    try:
        result = coerce_int(value)
    except _FieldProblem as exc:
        errors.add(field_name, str(exc))
        return None
    if minimum is not None and result < minimum:
        errors.add(field_name, f"must be at least {minimum}")
        return None
    return result


def clean_date(value: Any, field_name: str, errors: FieldErrors) -> Optional[date]:
    if value is None or value == "":
        return None
    try:
        return coerce_date(value)
    except _FieldProblem as exc:
        errors.add(field_name, str(exc))
        return None


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


# =============================================================================
# ORDER INPUT
# =============================================================================

@dataclass(frozen=True)
class LineInput:
    product_id: int
    quantity: int
    unit_price_cents: Optional[int] = None
    notes: Optional[str] = None


@dataclass
class OrderInput:
    """
    Parsed order payload.

    `provided` names the top-level keys present in the payload so partial
    updates can tell "not sent" from "sent as null".
    """
    customer_id: Optional[int] = None
    items: Optional[list[LineInput]] = None
    discount: Discount = field(default_factory=Discount)
    shipping_fee_cents: int = 0
    notes: Optional[str] = None
    order_date: Optional[datetime] = None
    provided: frozenset = frozenset()


ORDER_FIELDS = {
    "customer_id", "items", "discount_type", "discount_value",
    "shipping_fee_cents", "notes", "order_date",
}
LINE_FIELDS = {"product_id", "quantity", "unit_price_cents", "notes"}


def _parse_line(index: int, raw: Any, errors: FieldErrors) -> Optional[LineInput]:
    prefix = f"items.{index}"
    if not isinstance(raw, dict):
        errors.add(prefix, "must be an object")
        return None

    for k in raw.keys():
        if k not in LINE_FIELDS:
            errors.add(f"{prefix}.{k}", "is not allowed")

    product_id = clean_int(raw.get("product_id"), f"{prefix}.product_id", errors, minimum=1)
    quantity = clean_int(raw.get("quantity"), f"{prefix}.quantity", errors, minimum=1)
    unit_price = clean_int(
        raw.get("unit_price_cents"), f"{prefix}.unit_price_cents", errors, required=False, minimum=0
    )
    if unit_price is not None and unit_price > MAX_PRICE_CENTS:
        errors.add(f"{prefix}.unit_price_cents", f"cannot exceed {MAX_PRICE_CENTS}")
        unit_price = None

    notes = clean_text(raw.get("notes"))

    if product_id is None or quantity is None:
        return None
    return LineInput(product_id=product_id, quantity=quantity, unit_price_cents=unit_price, notes=notes)


def check_discount(discount: Discount, errors: FieldErrors) -> Discount:
    """A type needs a value; a value without a type is dropped."""
    if discount.discount_type is None:
        return Discount()
    if discount.value is None:
        if "discount_value" not in errors.errors:
            errors.add("discount_value", "is required when discount_type is set")
        return Discount()
    value = Decimal(str(discount.value))
    if discount.discount_type == "fixed" and value != value.to_integral_value():
        errors.add("discount_value", "must be a whole number of cents for a fixed discount")
    return Discount(discount.discount_type, value)


def merge_discount(stored: Discount, data: OrderInput) -> Discount:
    """
    Apply the discount part of a partial update on top of the stored one.

    Sending only discount_value keeps the stored type, sending only
    discount_type keeps the stored value. An explicit null discount_type
    clears the discount.
    """
    errors = FieldErrors()
    discount_type = data.discount.discount_type
    value = data.discount.value
    if "discount_type" not in data.provided:
        discount_type = stored.discount_type
    if "discount_value" not in data.provided:
        value = stored.value
    merged = check_discount(Discount(discount_type, value), errors)
    errors.raise_if_any()
    return merged


def parse_order_input(payload: Any, *, partial: bool) -> OrderInput:
    """
    Validate an order create (partial=False) or update (partial=True) payload.

    Field errors use dotted paths for lines, e.g. "items.0.quantity".
    On create, customer_id and a non-empty items list are required.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors = FieldErrors()

    for k in payload.keys():
        if k not in ORDER_FIELDS:
            errors.add(k, "is not allowed")

    provided = frozenset(k for k in payload.keys() if k in ORDER_FIELDS)
    result = OrderInput(provided=provided)

    if not partial or "customer_id" in payload:
        result.customer_id = clean_int(payload.get("customer_id"), "customer_id", errors, minimum=1)

    if not partial or "items" in payload:
        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            errors.add("items", "must contain at least one item")
        else:
            lines = [_parse_line(i, raw, errors) for i, raw in enumerate(raw_items)]
            result.items = [line for line in lines if line is not None]

    discount_type = payload.get("discount_type") or None
    discount_value = payload.get("discount_value")
    if discount_type is not None and discount_type not in DISCOUNT_TYPES:
        errors.add("discount_type", f"must be one of: {', '.join(DISCOUNT_TYPES)}")
        discount_type = None
    parsed_value = None
    if discount_value is not None and discount_value != "":
        try:
            parsed_value = coerce_number(discount_value)
            if parsed_value != parsed_value.quantize(DISCOUNT_PLACES):
                raise _FieldProblem("must have at most 2 decimal places")
        except InvalidOperation:
            errors.add("discount_value", "must have at most 2 decimal places")
            parsed_value = None
        except _FieldProblem as exc:
            errors.add("discount_value", str(exc))
            parsed_value = None
    if partial:
        # Checked against the stored discount by merge_discount
        result.discount = Discount(discount_type, parsed_value)
    else:
        result.discount = check_discount(Discount(discount_type, parsed_value), errors)

    shipping = clean_int(payload.get("shipping_fee_cents"), "shipping_fee_cents", errors, required=False)
    result.shipping_fee_cents = shipping or 0

    result.notes = clean_text(payload.get("notes"))

    if payload.get("order_date"):
        try:
            result.order_date = parse_iso_datetime(str(payload["order_date"]))
        except ValueError:
            errors.add("order_date", "must be an ISO-8601 datetime")

    errors.raise_if_any()
    return result
