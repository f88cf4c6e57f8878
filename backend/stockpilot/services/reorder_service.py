# Overview: Service-layer operations for reorder suggestions; gathers product context and calls the advisor.

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func

from ..collaborators import ReorderAdvisor, ReorderContext
from ..errors import InfrastructureError, NotFoundError
from ..extensions import db
from ..models import InventoryMovement, Product, User
from ..models.inventory import MOVEMENT_SALE
from ..permissions import USE_REORDER_ADVISOR, require_capability
from ..validation import FieldErrors, clean_int
from stockpilot.time_utils import utcnow

logger = logging.getLogger(__name__)

SALES_WINDOW_DAYS = 30


def average_daily_sales(product_id: int, *, window_days: int = SALES_WINDOW_DAYS) -> float:
    """Units sold per day over the trailing window (sale movements are negative)."""
    since = utcnow() - timedelta(days=window_days)
    sold = (
        db.session.query(func.coalesce(func.sum(InventoryMovement.quantity), 0))
        .filter(
            InventoryMovement.product_id == product_id,
            InventoryMovement.type == MOVEMENT_SALE,
            InventoryMovement.movement_date >= since,
        )
        .scalar()
    )
    return round(-int(sold or 0) / window_days, 2)


def build_context(*, product_id, lead_time_days, safety_stock) -> ReorderContext:
    errors = FieldErrors()
    product_id = clean_int(product_id, "product_id", errors, minimum=1)
    lead_time_days = clean_int(lead_time_days, "lead_time_days", errors, minimum=0)
    safety_stock = clean_int(safety_stock, "safety_stock", errors, minimum=0)
    errors.raise_if_any()

    product = db.session.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if not product:
        raise NotFoundError("Product not found.", details={"product_id": product_id})

    return ReorderContext(
        product_id=product.id,
        product_name=product.name,
        average_daily_sales=average_daily_sales(product.id),
        current_stock_level=product.stock,
        lead_time_in_days=lead_time_days,
        desired_safety_stock_level=safety_stock,
    )


def suggest_reorder(
    *,
    product_id,
    lead_time_days,
    safety_stock,
    advisor: ReorderAdvisor | None,
    actor: User,
) -> dict:
    """
    Ask the advisor how much of a product to reorder.

    Returns the suggestion together with the context it was based on.
    """
    require_capability(actor, USE_REORDER_ADVISOR)
    context = build_context(product_id=product_id, lead_time_days=lead_time_days, safety_stock=safety_stock)

    if advisor is None:
        raise InfrastructureError("The reorder advisor is not configured.", status_code=503)

    suggestion = advisor.suggest_reorder_quantity(context)
    logger.info(
        "Reorder suggestion for product %s: %d units",
        context.product_id, suggestion.reorder_quantity,
    )
    return {
        "suggestion": suggestion.to_dict(),
        "context": {
            "product_id": context.product_id,
            "product_name": context.product_name,
            "average_daily_sales": context.average_daily_sales,
            "current_stock_level": context.current_stock_level,
            "lead_time_in_days": context.lead_time_in_days,
            "desired_safety_stock_level": context.desired_safety_stock_level,
        },
    }
