# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

import logging
from datetime import date

from sqlalchemy import func

from ..errors import InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import InventoryMovement, Product, ProductBatch, User
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT_ADD,
    MOVEMENT_ADJUSTMENT_REMOVE,
    MOVEMENT_SALE_REVERSAL,
    MOVEMENT_STOCK_IN,
    MOVEMENT_TYPES,
)
from ..permissions import ADJUST_INVENTORY, RECEIVE_INVENTORY, require_capability
from ..validation import FieldErrors, clean_date, clean_int, clean_text
from stockpilot.time_utils import utcnow
from .batch_allocator import Allocation, BatchSnapshot, allocate, restore_plan
from .concurrency import decrement_batch, increment_batch, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

"""
StockPilot Inventory Invariants (authoritative)

Stock model:
- Each product's stock lives in ProductBatch rows; Product.stock is the
  aggregate of batch remaining quantities and is updated in the same
  transaction as the batches.
- Stock never goes negative: removals are planned by the batch allocator and
  any shortfall aborts the whole operation before anything is written.
- Removal order is first-expiry-first-out; undated batches go last.

Concurrency:
- The product row is locked (SELECT ... FOR UPDATE where supported) and
  carries an optimistic version_id.
- Batch decrements are conditional UPDATEs; losing a race raises
  StaleStockError and the unit of work is retried via run_with_retry.

Audit:
- Every stock change appends an InventoryMovement in the same transaction.
- Movements are append-only (no updates/deletes).
"""

MOVEMENT_LIST_LIMIT = 100


def get_product_for_stock(product_id: int, *, lock: bool = False, require_active: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found.", details={"product_id": product_id})
    if require_active and not product.is_active:
        raise NotFoundError("Product is not available.", details={"product_id": product_id})
    return product


def available_batches(product_id: int) -> list[BatchSnapshot]:
    batches = (
        db.session.query(ProductBatch)
        .filter(ProductBatch.product_id == product_id, ProductBatch.remaining_quantity > 0)
        .order_by(ProductBatch.id.asc())
        .all()
    )
    return [BatchSnapshot.from_model(b) for b in batches]


def record_movement(
    *,
    product: Product,
    movement_type: str,
    quantity: int,
    stock_before: int,
    actor: User | None,
    batch_id: int | None = None,
    batch_expiry_date: date | None = None,
    related_order_id: int | None = None,
    notes: str | None = None,
) -> InventoryMovement:
    movement = InventoryMovement(
        product_id=product.id,
        product_name=product.name,
        type=movement_type,
        quantity=quantity,
        stock_before=stock_before,
        stock_after=stock_before + quantity,
        movement_date=utcnow(),
        user_id=actor.id if actor else None,
        user_name=actor.name if actor else None,
        batch_id=batch_id,
        batch_expiry_date=batch_expiry_date,
        related_order_id=related_order_id,
        notes=notes,
    )
    db.session.add(movement)
    return movement


def add_batch(
    *,
    product: Product,
    quantity: int,
    expiry_date: date | None,
    actor: User | None,
    movement_type: str,
    unit_cost_cents: int | None = None,
    notes: str | None = None,
) -> ProductBatch:
    """
    Core stock-in logic without locking, retry, or commit.

    Creates the batch, raises the aggregate stock, moves the legacy
    single expiry date forward when the new batch expires later, and logs
    the movement.
    """
    batch = ProductBatch(
        product_id=product.id,
        expiry_date=expiry_date,
        initial_quantity=quantity,
        remaining_quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        received_at=utcnow(),
        created_by_user_id=actor.id if actor else None,
    )
    db.session.add(batch)
    db.session.flush()

    stock_before = product.stock or 0
    product.stock = stock_before + quantity
    if expiry_date is not None and (product.expiry_date is None or expiry_date > product.expiry_date):
        product.expiry_date = expiry_date

    record_movement(
        product=product,
        movement_type=movement_type,
        quantity=quantity,
        stock_before=stock_before,
        actor=actor,
        batch_id=batch.id,
        batch_expiry_date=expiry_date,
        notes=notes,
    )
    db.session.flush()
    return batch


def consume_stock(
    *,
    product: Product,
    quantity: int,
    actor: User | None,
    movement_type: str,
    related_order_id: int | None = None,
    notes: str | None = None,
) -> Allocation:
    """
    Take `quantity` out of a product's batches, earliest expiry first.

    Raises InsufficientStockError (nothing written) when the batches cannot
    cover the request. Otherwise decrements each chosen batch conditionally,
    lowers the aggregate stock and appends one movement. The caller owns the
    transaction.
    """
    batches = available_batches(product.id)
    plan = allocate(batches, quantity)
    if not plan.satisfied:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            requested=quantity,
            available=plan.allocated,
        )

    for item in plan.allocations:
        decrement_batch(item.batch_id, item.quantity)

    stock_before = product.stock or 0
    product.stock = stock_before - quantity

    single = plan.allocations[0] if len(plan.allocations) == 1 else None
    record_movement(
        product=product,
        movement_type=movement_type,
        quantity=-quantity,
        stock_before=stock_before,
        actor=actor,
        batch_id=single.batch_id if single else None,
        batch_expiry_date=single.expiry_date if single else None,
        related_order_id=related_order_id,
        notes=notes,
    )
    db.session.flush()
    return plan


def restore_usages(
    *,
    product: Product,
    usages,
    actor: User | None,
    related_order_id: int | None = None,
    notes: str | None = None,
) -> int:
    """
    Put recorded batch usages back into their batches.

    Returns the quantity restored. Appends one sale-reversal movement when
    anything was restored.
    """
    plan = restore_plan(usages)
    restored = sum(plan.values())
    if restored == 0:
        return 0

    for batch_id, qty in plan.items():
        increment_batch(batch_id, qty)

    stock_before = product.stock or 0
    product.stock = stock_before + restored

    record_movement(
        product=product,
        movement_type=MOVEMENT_SALE_REVERSAL,
        quantity=restored,
        stock_before=stock_before,
        actor=actor,
        batch_id=next(iter(plan)) if len(plan) == 1 else None,
        related_order_id=related_order_id,
        notes=notes,
    )
    db.session.flush()
    return restored


def record_stock_in(
    *,
    product_id: int,
    quantity,
    expiry_date=None,
    unit_cost_cents=None,
    notes: str | None = None,
    actor: User,
) -> dict:
    """Receive a dated batch of stock."""
    require_capability(actor, RECEIVE_INVENTORY)

    errors = FieldErrors()
    quantity = clean_int(quantity, "quantity", errors, minimum=1)
    expiry = clean_date(expiry_date, "expiry_date", errors)
    unit_cost = clean_int(unit_cost_cents, "unit_cost_cents", errors, required=False, minimum=0)
    errors.raise_if_any()

    def _op():
        product = get_product_for_stock(product_id, lock=True, require_active=True)
        batch = add_batch(
            product=product,
            quantity=quantity,
            expiry_date=expiry,
            actor=actor,
            movement_type=MOVEMENT_STOCK_IN,
            unit_cost_cents=unit_cost,
            notes=clean_text(notes),
        )
        db.session.commit()
        return {"product": product.to_dict(), "batch": batch.to_dict()}

    return run_with_retry(_op)


def record_stock_adjustment(
    *,
    product_id: int,
    quantity_change,
    reason: str | None,
    notes: str | None = None,
    expiry_date=None,
    actor: User,
) -> dict:
    """
    Manual correction of stock.

    Positive changes add a new batch (adjustment-add); negative changes
    consume batches earliest expiry first (adjustment-remove) and fail with
    InsufficientStockError rather than go below zero.
    """
    require_capability(actor, ADJUST_INVENTORY)

    errors = FieldErrors()
    change = clean_int(quantity_change, "quantity_change", errors)
    if change == 0:
        errors.add("quantity_change", "must not be zero")
    reason = clean_text(reason)
    if not reason:
        errors.add("reason", "is required")
    expiry = clean_date(expiry_date, "expiry_date", errors)
    errors.raise_if_any()

    note_text = f"{reason} - {clean_text(notes)}" if clean_text(notes) else reason

    def _op():
        product = get_product_for_stock(product_id, lock=True)
        if change > 0:
            add_batch(
                product=product,
                quantity=change,
                expiry_date=expiry,
                actor=actor,
                movement_type=MOVEMENT_ADJUSTMENT_ADD,
                notes=note_text,
            )
        else:
            consume_stock(
                product=product,
                quantity=-change,
                actor=actor,
                movement_type=MOVEMENT_ADJUSTMENT_REMOVE,
                notes=note_text,
            )
        db.session.commit()
        return product.to_dict()

    return run_with_retry(_op)


def list_movements(*, product_id=None, movement_type=None, limit: int = MOVEMENT_LIST_LIMIT) -> list[dict]:
    """Newest movements first, optionally filtered by product and type."""
    query = db.session.query(InventoryMovement)
    if product_id not in (None, ""):
        errors = FieldErrors()
        product_id = clean_int(product_id, "product_id", errors)
        errors.raise_if_any()
        query = query.filter(InventoryMovement.product_id == product_id)
    if movement_type:
        if movement_type not in MOVEMENT_TYPES:
            errors = FieldErrors()
            errors.add("type", f"must be one of: {', '.join(MOVEMENT_TYPES)}")
            errors.raise_if_any()
        query = query.filter(InventoryMovement.type == movement_type)

    movements = (
        query.order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
    return [m.to_dict() for m in movements]


def list_batches(*, product_id: int, include_empty: bool = False) -> list[dict]:
    """Batches in consumption order (earliest expiry first, undated last)."""
    get_product_for_stock(product_id)
    query = db.session.query(ProductBatch).filter(ProductBatch.product_id == product_id)
    if not include_empty:
        query = query.filter(ProductBatch.remaining_quantity > 0)
    batches = query.order_by(
        ProductBatch.expiry_date.is_(None),
        ProductBatch.expiry_date.asc(),
        ProductBatch.id.asc(),
    ).all()
    return [b.to_dict() for b in batches]


def stock_in_history(*, product_id: int) -> list[dict]:
    get_product_for_stock(product_id)
    movements = (
        db.session.query(InventoryMovement)
        .filter(
            InventoryMovement.product_id == product_id,
            InventoryMovement.type == MOVEMENT_STOCK_IN,
        )
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
        .all()
    )
    return [m.to_dict() for m in movements]


def batch_stock_total(product_id: int) -> int:
    """Sum of remaining batch quantities; equals Product.stock when consistent."""
    total = (
        db.session.query(func.coalesce(func.sum(ProductBatch.remaining_quantity), 0))
        .filter(ProductBatch.product_id == product_id)
        .scalar()
    )
    return int(total or 0)
