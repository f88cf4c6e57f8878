# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

"""
Dashboard and report aggregations.

Revenue figures exclude cancelled and soft-deleted orders. Low stock means
0 < stock < low_stock_threshold. "Expiring soon" looks at batches that
still hold stock (and the legacy single expiry date) within the next
EXPIRY_WINDOW_DAYS days, today included.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import and_, func

from ..extensions import db
from ..models import Customer, InventoryMovement, Order, Product, ProductBatch
from ..models.orders import ORDER_CANCELLED, ORDER_PENDING, ORDER_PROCESSING
from stockpilot.time_utils import start_of_month, to_iso_date, to_utc_z, today, utcnow

EXPIRY_WINDOW_DAYS = 30
DASHBOARD_ALERT_LIMIT = 5
REPORT_ALERT_LIMIT = 10
RECENT_ACTIVITY_LIMIT = 3


def _revenue_orders():
    return db.session.query(Order).filter(
        Order.is_deleted.is_(False),
        Order.status != ORDER_CANCELLED,
    )


def get_overview_stats() -> dict:
    now = utcnow()
    month_start = start_of_month(now)

    total_products = db.session.query(Product).filter(Product.is_active.is_(True)).count()
    active_orders = (
        db.session.query(Order)
        .filter(Order.is_deleted.is_(False), Order.status.in_((ORDER_PENDING, ORDER_PROCESSING)))
        .count()
    )
    total_customers = db.session.query(Customer).count()
    month_revenue = (
        _revenue_orders()
        .filter(Order.order_date >= month_start, Order.order_date <= now)
        .with_entities(func.coalesce(func.sum(Order.total_cents), 0))
        .scalar()
    )

    return {
        "total_products": total_products,
        "active_orders": active_orders,
        "total_customers": total_customers,
        "current_month_revenue_cents": int(month_revenue or 0),
    }


def get_recent_activity(limit: int = RECENT_ACTIVITY_LIMIT) -> dict:
    orders = (
        db.session.query(Order)
        .filter(Order.is_deleted.is_(False))
        .order_by(Order.order_date.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    movements = (
        db.session.query(InventoryMovement)
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "recent_orders": [
            {
                "id": o.id,
                "order_number": o.order_number,
                "customer_name": o.customer_name,
                "total_cents": o.total_cents,
                "order_date": to_utc_z(o.order_date),
            }
            for o in orders
        ],
        "recent_movements": [
            {
                "id": m.id,
                "product_name": m.product_name,
                "type": m.type,
                "quantity": m.quantity,
                "movement_date": to_utc_z(m.movement_date),
            }
            for m in movements
        ],
    }


def get_inventory_alerts(limit: int = DASHBOARD_ALERT_LIMIT) -> dict:
    low_stock = (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.stock > 0,
            Product.stock < Product.low_stock_threshold,
        )
        .order_by(Product.stock.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )

    start = today()
    end = start + timedelta(days=EXPIRY_WINDOW_DAYS)

    batch_rows = (
        db.session.query(
            ProductBatch.product_id,
            func.min(ProductBatch.expiry_date),
            func.sum(ProductBatch.remaining_quantity),
        )
        .join(Product, Product.id == ProductBatch.product_id)
        .filter(
            Product.is_active.is_(True),
            ProductBatch.remaining_quantity > 0,
            ProductBatch.expiry_date.isnot(None),
            and_(ProductBatch.expiry_date >= start, ProductBatch.expiry_date <= end),
        )
        .group_by(ProductBatch.product_id)
        .all()
    )
    expiring = {pid: {"expiry_date": exp, "quantity": int(qty or 0)} for pid, exp, qty in batch_rows}

    legacy = (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.stock > 0,
            Product.expiry_date.isnot(None),
            Product.expiry_date >= start,
            Product.expiry_date <= end,
        )
        .all()
    )
    for product in legacy:
        entry = expiring.get(product.id)
        if entry is None:
            expiring[product.id] = {"expiry_date": product.expiry_date, "quantity": None}
        elif product.expiry_date < entry["expiry_date"]:
            entry["expiry_date"] = product.expiry_date

    products = {}
    if expiring:
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(list(expiring))).all()}

    expiring_list = sorted(
        (
            {
                "id": pid,
                "name": products[pid].name,
                "expiry_date": to_iso_date(entry["expiry_date"]),
                "expiring_quantity": entry["quantity"],
            }
            for pid, entry in expiring.items()
            if pid in products
        ),
        key=lambda item: (item["expiry_date"], item["id"]),
    )[:limit]

    return {
        "low_stock_products": [
            {
                "id": p.id,
                "name": p.name,
                "stock": p.stock,
                "low_stock_threshold": p.low_stock_threshold,
            }
            for p in low_stock
        ],
        "expiring_soon_products": expiring_list,
    }


def get_sales_summary() -> dict:
    row = _revenue_orders().with_entities(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_cents), 0),
        func.coalesce(func.sum(Order.profit_cents), 0),
    ).one()
    return {
        "total_orders_all_time": int(row[0] or 0),
        "total_revenue_all_time_cents": int(row[1] or 0),
        "total_profit_all_time_cents": int(row[2] or 0),
    }


def get_dashboard() -> dict:
    return {
        "overview": get_overview_stats(),
        "recent_activity": get_recent_activity(),
        "alerts": get_inventory_alerts(DASHBOARD_ALERT_LIMIT),
    }


def get_reports() -> dict:
    return {
        "sales_summary": get_sales_summary(),
        "alerts": get_inventory_alerts(REPORT_ALERT_LIMIT),
    }
