from __future__ import annotations

from ..extensions import db
from stockpilot.time_utils import to_utc_z, to_iso_date

ORDER_PENDING = "pending"
ORDER_PROCESSING = "processing"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_COMPLETED = "completed"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_COMPLETED,
    ORDER_CANCELLED,
)


class Order(db.Model):
    """
    Customer order.

    LIFECYCLE:
    status follows the transition table in order_service. is_deleted is a
    separate soft-delete marker and never changes status or stock.

    TOTALS:
    subtotal/discount/total/cost/profit are computed at commit time by the
    pricing calculator and stored; reports read them as-is.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("shipping_fee_cents >= 0", name="ck_orders_shipping_non_negative"),
        db.Index("ix_orders_status_date", "status", "order_date"),
        db.Index("ix_orders_deleted_date", "is_deleted", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)

    # "percentage" | "fixed" | NULL; value is a percent or cents accordingly
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(12, 2), nullable=True)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_of_goods_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING, index=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_name = db.Column(db.String(128), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    deleted_by_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "items": [line.to_dict() for line in self.lines],
            "discount_type": self.discount_type,
            "discount_value": float(self.discount_value) if self.discount_value is not None else None,
            "shipping_fee_cents": self.shipping_fee_cents,
            "subtotal_cents": self.subtotal_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "total_cents": self.total_cents,
            "cost_of_goods_cents": self.cost_of_goods_cents,
            "profit_cents": self.profit_cents,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "deleted_by_user_id": self.deleted_by_user_id,
            "deleted_by_name": self.deleted_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Cost snapshot at commit time
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    order = db.relationship("Order", back_populates="lines")
    batches_used = db.relationship(
        "OrderBatchUsage",
        back_populates="line",
        order_by="OrderBatchUsage.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "notes": self.notes,
            "batches_used": [usage.to_dict() for usage in self.batches_used],
        }


class OrderBatchUsage(db.Model):
    """
    Immutable record of how much one batch supplied to one order line.

    Written at commit; restored and replaced (never edited) when the line
    is re-allocated or the order is cancelled.
    """
    __tablename__ = "order_batch_usages"
    __table_args__ = (
        db.CheckConstraint("quantity_used > 0", name="ck_batch_usage_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("product_batches.id"), nullable=False, index=True)
    expiry_date = db.Column(db.Date, nullable=True)
    quantity_used = db.Column(db.Integer, nullable=False)

    line = db.relationship("OrderLine", back_populates="batches_used")

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity_used": self.quantity_used,
        }
