from __future__ import annotations

from ..extensions import db
from stockpilot.time_utils import to_utc_z, to_iso_date


class Category(db.Model):
    """Product category. Names are unique; products keep a denormalized copy."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK INVARIANT:
    Product.stock is the aggregate of ProductBatch.remaining_quantity over all
    batches of the product. It is only changed by inventory operations and
    orders, always together with the batches, in the same DB transaction.

    DENORMALIZATION:
    category_name mirrors Category.name for list/filter screens and is
    refreshed by the category rename cascade.

    expiry_date is the legacy single-expiry field; batch expiry dates are
    authoritative for consumption order.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active_created", "is_active", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    # Optional, unique when present
    sku = db.Column(db.String(64), nullable=True, unique=True)
    description = db.Column(db.Text, nullable=True)
    unit_of_measure = db.Column(db.String(32), nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    category_name = db.Column(db.String(120), nullable=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)
    expiry_date = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    batches = db.relationship(
        "ProductBatch",
        back_populates="product",
        order_by="ProductBatch.id",
        lazy=True,
    )
    images = db.relationship(
        "ProductImage",
        back_populates="product",
        order_by="ProductImage.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    price_history = db.relationship(
        "PriceHistoryEntry",
        back_populates="product",
        order_by="PriceHistoryEntry.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self, *, include_batches: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "unit_of_measure": self.unit_of_measure,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "low_stock_threshold": self.low_stock_threshold,
            "expiry_date": to_iso_date(self.expiry_date),
            "is_active": self.is_active,
            "images": [img.to_dict() for img in self.images],
            "price_history": [entry.to_dict() for entry in self.price_history],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_batches:
            data["batches"] = [b.to_dict() for b in self.batches]
        return data


class ProductBatch(db.Model):
    """
    A dated sub-quantity of a product's stock.

    Batches are never deleted: they are drained to zero and kept for history.
    Consumption is first-expiry-first-out; batch id is the insertion order used
    to break expiry ties.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.CheckConstraint("initial_quantity > 0", name="ck_batches_initial_positive"),
        db.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= initial_quantity",
            name="ck_batches_remaining_range",
        ),
        db.Index("ix_batches_product_expiry", "product_id", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Undated stock is consumed after every dated batch
    expiry_date = db.Column(db.Date, nullable=True)
    initial_quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    product = db.relationship("Product", back_populates="batches")

    def __repr__(self) -> str:
        return (
            f"<ProductBatch id={self.id} product_id={self.product_id} "
            f"expiry={self.expiry_date} remaining={self.remaining_quantity}/{self.initial_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "expiry_date": to_iso_date(self.expiry_date),
            "initial_quantity": self.initial_quantity,
            "remaining_quantity": self.remaining_quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "received_at": to_utc_z(self.received_at),
            "created_by_user_id": self.created_by_user_id,
        }


class ProductImage(db.Model):
    __tablename__ = "product_images"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    url = db.Column(db.String(1024), nullable=False)
    public_id = db.Column(db.String(255), nullable=False, index=True)

    product = db.relationship("Product", back_populates="images")

    def to_dict(self) -> dict:
        return {"id": self.id, "url": self.url, "public_id": self.public_id}


class PriceHistoryEntry(db.Model):
    """Append-only record of a product's selling price over time."""
    __tablename__ = "product_price_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    product = db.relationship("Product", back_populates="price_history")

    def to_dict(self) -> dict:
        return {
            "price_cents": self.price_cents,
            "changed_at": to_utc_z(self.changed_at),
            "changed_by_user_id": self.changed_by_user_id,
        }
