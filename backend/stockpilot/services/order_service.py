# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Commit Procedure

create_order / update_order run as one database transaction each:
validation, batch allocation, pricing, the order rows, batch decrements,
aggregate stock changes and the sale movements either all land or none do.
Contention on stock rows retries the whole unit of work (run_with_retry).

Status machine:
    pending    -> processing | shipped | cancelled
    processing -> pending | shipped | cancelled
    shipped    -> processing | delivered | completed | cancelled
    delivered  -> completed
    completed, cancelled: terminal

Only pending and processing orders can be edited. Cancelling puts the
recorded batch usages back (sale-reversal). Soft delete is a separate flag
(admin only) and never touches stock.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from ..errors import (
    ConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
)
from ..extensions import db
from ..models import Customer, Order, OrderBatchUsage, OrderLine, User
from ..models.inventory import MOVEMENT_SALE
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_STATUSES,
)
from ..permissions import (
    CREATE_ORDERS,
    DELETE_ORDERS,
    EDIT_ORDERS,
    VIEW_DELETED_ORDERS,
    require_capability,
)
from ..validation import FieldErrors, LineInput, clean_int, clean_text, merge_discount, parse_order_input
from stockpilot.time_utils import end_of_day, parse_iso_date, utcnow
from . import inventory_service
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate
from .pricing import Discount, PricedLine, compute_profit, compute_totals

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ORDER_PENDING: {ORDER_PROCESSING, ORDER_SHIPPED, ORDER_CANCELLED},
    ORDER_PROCESSING: {ORDER_PENDING, ORDER_SHIPPED, ORDER_CANCELLED},
    ORDER_SHIPPED: {ORDER_PROCESSING, ORDER_DELIVERED, ORDER_COMPLETED, ORDER_CANCELLED},
    ORDER_DELIVERED: {ORDER_COMPLETED},
    ORDER_COMPLETED: set(),
    ORDER_CANCELLED: set(),
}

EDITABLE_STATUSES = (ORDER_PENDING, ORDER_PROCESSING)
ACTIVE_STATUSES = (ORDER_PENDING, ORDER_PROCESSING)


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def generate_order_number(order_date: datetime) -> str:
    """ORD-YYYYMMDD-NNNN, numbered per calendar day."""
    prefix = f"ORD-{order_date:%Y%m%d}-"
    latest = (
        db.session.query(Order.order_number)
        .filter(Order.order_number.like(f"{prefix}%"))
        .order_by(Order.order_number.desc())
        .first()
    )
    next_seq = 1
    if latest:
        try:
            next_seq = int(latest[0].rsplit("-", 1)[1]) + 1
        except (IndexError, ValueError):
            next_seq = db.session.query(Order).filter(Order.order_number.like(f"{prefix}%")).count() + 1
    return f"{prefix}{next_seq:04d}"


def _get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found.", details={"customer_id": customer_id})
    return customer


def _get_live_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter(Order.id == order_id, Order.is_deleted.is_(False))
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found.", details={"order_id": order_id})
    return order


def _check_aggregate_stock(items: list[LineInput]) -> dict:
    """
    Lock every product on the order and check its aggregate stock against
    the summed quantity of its lines. Returns {product_id: Product}.
    """
    requested: "OrderedDict[int, int]" = OrderedDict()
    for item in items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    products = {}
    for product_id, qty in requested.items():
        product = inventory_service.get_product_for_stock(product_id, lock=True, require_active=True)
        if (product.stock or 0) < qty:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                requested=qty,
                available=product.stock or 0,
            )
        products[product_id] = product
    return products


def _apply_lines(order: Order, items: list[LineInput], actor: User) -> None:
    """Allocate batches for each line and attach lines and usages to the order."""
    products = _check_aggregate_stock(items)

    for position, item in enumerate(items):
        product = products[item.product_id]
        plan = inventory_service.consume_stock(
            product=product,
            quantity=item.quantity,
            actor=actor,
            movement_type=MOVEMENT_SALE,
            related_order_id=order.id,
            notes=f"Order {order.order_number}",
        )
        line = OrderLine(
            position=position,
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents if item.unit_price_cents is not None else product.price_cents,
            unit_cost_cents=product.cost_cents or 0,
            notes=item.notes,
        )
        line.batches_used = [
            OrderBatchUsage(batch_id=a.batch_id, expiry_date=a.expiry_date, quantity_used=a.quantity)
            for a in plan.allocations
        ]
        order.lines.append(line)
    db.session.flush()


def _restore_lines(order: Order, actor: User, note: str) -> None:
    """Put every recorded batch usage of the order back into stock."""
    for line in order.lines:
        product = inventory_service.get_product_for_stock(line.product_id, lock=True)
        inventory_service.restore_usages(
            product=product,
            usages=line.batches_used,
            actor=actor,
            related_order_id=order.id,
            notes=note,
        )


def _recompute_totals(order: Order) -> None:
    priced = [
        PricedLine(
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            unit_cost_cents=line.unit_cost_cents or 0,
        )
        for line in order.lines
    ]
    totals = compute_totals(
        priced,
        Discount(order.discount_type, order.discount_value),
        order.shipping_fee_cents or 0,
    )
    cost_of_goods, profit = compute_profit(totals.total_cents, priced)

    order.subtotal_cents = totals.subtotal_cents
    order.discount_amount_cents = totals.discount_amount_cents
    order.shipping_fee_cents = totals.shipping_fee_cents
    order.total_cents = totals.total_cents
    order.cost_of_goods_cents = cost_of_goods
    order.profit_cents = profit


def _set_discount(order: Order, discount: Discount) -> None:
    order.discount_type = discount.discount_type
    order.discount_value = discount.value if discount.discount_type else None


def create_order(*, payload: dict, actor: User) -> dict:
    """
    Validate, allocate, price and persist a new pending order.

    Raises ValidationError (field errors), NotFoundError (customer/product)
    or InsufficientStockError; nothing is written in any of those cases.
    """
    require_capability(actor, CREATE_ORDERS)
    data = parse_order_input(payload, partial=False)

    def _op():
        customer = _get_customer(data.customer_id)
        order_date = data.order_date or utcnow()

        order = Order(
            order_number=generate_order_number(order_date),
            customer_id=customer.id,
            customer_name=customer.name,
            shipping_fee_cents=max(data.shipping_fee_cents, 0),
            status=ORDER_PENDING,
            order_date=order_date,
            notes=data.notes,
            created_by_user_id=actor.id,
            created_by_name=actor.name,
            is_deleted=False,
        )
        _set_discount(order, data.discount)
        db.session.add(order)
        db.session.flush()

        _apply_lines(order, data.items, actor)
        _recompute_totals(order)

        db.session.commit()
        logger.info("Created order %s (%d lines, total %d)", order.order_number, len(order.lines), order.total_cents)
        return order.to_dict()

    return run_with_retry(_op)


def update_order(*, order_id: int, payload: dict, actor: User) -> dict:
    """
    Edit a pending/processing order.

    With "items": the old consumption is restored first, then the new lines
    are allocated; a shortfall aborts everything and the original
    consumption stays in place. Without "items": customer, notes, discount
    and shipping are updated and totals recomputed from the stored lines.
    """
    require_capability(actor, EDIT_ORDERS)
    data = parse_order_input(payload, partial=True)

    def _op():
        order = _get_live_order(order_id, lock=True)
        if order.status not in EDITABLE_STATUSES:
            raise ConflictError(
                f"Only pending or processing orders can be edited (current status: {order.status}).",
                details={"status": order.status},
            )

        if "customer_id" in data.provided:
            customer = _get_customer(data.customer_id)
            order.customer_id = customer.id
            order.customer_name = customer.name
        if "notes" in data.provided:
            order.notes = data.notes
        if "discount_type" in data.provided or "discount_value" in data.provided:
            stored = Discount(order.discount_type, order.discount_value)
            _set_discount(order, merge_discount(stored, data))
        if "shipping_fee_cents" in data.provided:
            order.shipping_fee_cents = max(data.shipping_fee_cents, 0)
        if "order_date" in data.provided and data.order_date:
            order.order_date = data.order_date

        if data.items is not None:
            _restore_lines(order, actor, note=f"Order {order.order_number} edited")
            order.lines.clear()
            db.session.flush()
            _apply_lines(order, data.items, actor)

        _recompute_totals(order)
        db.session.commit()
        return order.to_dict()

    return run_with_retry(_op)


def update_order_status(*, order_id: int, status, actor: User) -> dict:
    require_capability(actor, EDIT_ORDERS)

    errors = FieldErrors()
    new_status = clean_text(status)
    if new_status not in ORDER_STATUSES:
        errors.add("status", f"must be one of: {', '.join(ORDER_STATUSES)}")
    errors.raise_if_any()

    def _op():
        order = _get_live_order(order_id, lock=True)
        current = order.status
        if not can_transition(current, new_status):
            raise InvalidTransitionError(
                f"Cannot change order status from {current} to {new_status}.",
                details={"from": current, "to": new_status},
            )

        if new_status == ORDER_CANCELLED:
            _restore_lines(order, actor, note=f"Order {order.order_number} cancelled")

        order.status = new_status
        db.session.commit()
        logger.info("Order %s: %s -> %s", order.order_number, current, new_status)
        return order.to_dict()

    return run_with_retry(_op)


def soft_delete_order(*, order_id: int, actor: User) -> dict:
    """Hide an order (admin only). Stock is not restored."""
    require_capability(actor, DELETE_ORDERS)

    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        raise NotFoundError("Order not found.", details={"order_id": order_id})
    if order.is_deleted:
        raise ConflictError("Order is already deleted.")

    order.is_deleted = True
    order.deleted_at = utcnow()
    order.deleted_by_user_id = actor.id
    order.deleted_by_name = actor.name
    db.session.commit()

    if order.status in EDITABLE_STATUSES:
        logger.warning(
            "Order %s soft-deleted while %s; its stock consumption was not reversed",
            order.order_number,
            order.status,
        )
    return {"id": order.id, "order_number": order.order_number, "is_deleted": True}


def get_order(*, order_id: int) -> dict:
    order = (
        db.session.query(Order)
        .options(selectinload(Order.lines).selectinload(OrderLine.batches_used))
        .filter(Order.id == order_id, Order.is_deleted.is_(False))
        .first()
    )
    if not order:
        raise NotFoundError("Order not found.", details={"order_id": order_id})
    return order.to_dict()


def _parse_list_filters(filters: dict) -> dict:
    errors = FieldErrors()
    parsed = {
        "search": clean_text(filters.get("search")),
        "customer_id": clean_int(filters.get("customer_id"), "customer_id", errors, required=False),
        "status": clean_text(filters.get("status")),
        "start_date": None,
        "end_date": None,
    }
    if parsed["status"] and parsed["status"] not in ORDER_STATUSES:
        errors.add("status", f"must be one of: {', '.join(ORDER_STATUSES)}")
    for key in ("start_date", "end_date"):
        raw = filters.get(key)
        if raw:
            try:
                parsed[key] = parse_iso_date(str(raw))
            except ValueError:
                errors.add(key, "must be an ISO-8601 date (YYYY-MM-DD)")
    errors.raise_if_any()
    return parsed


def orders_query(filters: dict | None = None):
    """Non-deleted orders matching the filters, newest first."""
    f = _parse_list_filters(filters or {})
    query = db.session.query(Order).filter(Order.is_deleted.is_(False))

    if f["search"]:
        like = f"%{f['search']}%"
        query = query.filter(or_(Order.order_number.ilike(like), Order.customer_name.ilike(like)))
    if f["customer_id"]:
        query = query.filter(Order.customer_id == f["customer_id"])
    if f["status"]:
        query = query.filter(Order.status == f["status"])
    if f["start_date"]:
        query = query.filter(Order.order_date >= datetime.combine(f["start_date"], datetime.min.time()))
    if f["end_date"]:
        # End day is inclusive
        query = query.filter(Order.order_date <= end_of_day(f["end_date"]))

    return query.order_by(Order.order_date.desc(), Order.id.desc())


def list_orders(*, filters: dict | None = None) -> dict:
    filters = filters or {}
    return paginate(
        orders_query(filters),
        page=filters.get("page"),
        per_page=filters.get("limit"),
    )


def list_deleted_orders(*, filters: dict | None = None, actor: User) -> dict:
    require_capability(actor, VIEW_DELETED_ORDERS)
    filters = filters or {}
    query = (
        db.session.query(Order)
        .filter(Order.is_deleted.is_(True))
        .order_by(Order.deleted_at.desc(), Order.id.desc())
    )
    return paginate(query, page=filters.get("page"), per_page=filters.get("limit"))
