from __future__ import annotations

from ..extensions import db
from stockpilot.time_utils import to_utc_z, to_iso_date

MOVEMENT_STOCK_IN = "stock-in"
MOVEMENT_STOCK_OUT = "stock-out"
MOVEMENT_ADJUSTMENT_ADD = "adjustment-add"
MOVEMENT_ADJUSTMENT_REMOVE = "adjustment-remove"
MOVEMENT_SALE = "sale"
MOVEMENT_SALE_REVERSAL = "sale-reversal"

MOVEMENT_TYPES = (
    MOVEMENT_STOCK_IN,
    MOVEMENT_STOCK_OUT,
    MOVEMENT_ADJUSTMENT_ADD,
    MOVEMENT_ADJUSTMENT_REMOVE,
    MOVEMENT_SALE,
    MOVEMENT_SALE_REVERSAL,
)


class InventoryMovement(db.Model):
    """
    Append-only audit record of one stock quantity change.

    quantity is signed: positive for stock coming in (stock-in,
    adjustment-add, sale-reversal), negative for stock going out.
    stock_before/stock_after are the product's aggregate stock around the
    change. Rows are never updated or deleted.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_movements_product_date", "product_id", "movement_date"),
        db.Index("ix_movements_type_date", "type", "movement_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    type = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    user_name = db.Column(db.String(128), nullable=True)

    batch_id = db.Column(db.Integer, db.ForeignKey("product_batches.id"), nullable=True)
    batch_expiry_date = db.Column(db.Date, nullable=True)
    related_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<InventoryMovement id={self.id} product_id={self.product_id} type={self.type} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "type": self.type,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "movement_date": to_utc_z(self.movement_date),
            "user_id": self.user_id,
            "user_name": self.user_name,
            "batch_id": self.batch_id,
            "batch_expiry_date": to_iso_date(self.batch_expiry_date),
            "related_order_id": self.related_order_id,
            "notes": self.notes,
        }
