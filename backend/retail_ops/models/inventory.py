from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import DEFAULT_LOW_STOCK_THRESHOLD
from .types import JSONText


class Product(db.Model):
    """
    Product master data with its on-hand stock.

    INVARIANTS (enforced by CHECK constraints, not only by application code):
    - price >= 0
    - stock >= 0
    - low_stock_threshold >= 0

    Stock is mutated only through the conditional update in the Local
    Operations module; a write that would take it below zero is rejected
    by the engine with a constraint violation.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_products_price"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock"),
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_products_threshold"),
        db.Index("idx_products_category", "category"),
        db.Index("idx_products_stock", "stock"),
    )

    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False)
    packaging = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Float, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    low_stock_threshold = db.Column(
        db.Integer,
        nullable=False,
        default=DEFAULT_LOW_STOCK_THRESHOLD,
        server_default=str(DEFAULT_LOW_STOCK_THRESHOLD),
    )
    expiry_date = db.Column(db.DateTime, nullable=True)
    image = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    created_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "packaging": self.packaging,
            "price": float(self.price),
            "stock": int(self.stock),
            "low_stock_threshold": int(self.low_stock_threshold),
            "expiry_date": to_utc_z(self.expiry_date),
            "image": self.image,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "created_by": self.created_by,
        }


class Wholesaler(db.Model):
    """
    Supplier record. `products` is a free-form ordered list of product names,
    not a foreign key; names may or may not match live Product rows.
    """
    __tablename__ = "wholesalers"
    __table_args__ = (
        db.CheckConstraint("capital_spent >= 0", name="ck_wholesalers_capital_spent"),
    )

    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=False, default="", server_default="")
    products = db.Column(JSONText(list), nullable=False, default=list, server_default="[]")
    expected_delivery = db.Column(db.DateTime, nullable=True)
    capital_spent = db.Column(db.Float, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    created_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)

    def __repr__(self) -> str:
        return f"<Wholesaler id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "phone": self.phone,
            "products": list(self.products or []),
            "expected_delivery": to_utc_z(self.expected_delivery),
            "capital_spent": float(self.capital_spent),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "created_by": self.created_by,
        }


class StockAdjustment(db.Model):
    """
    Append-only stock ledger entry.

    Recording an adjustment never changes Product.stock; callers apply the
    stock change first and record the entry afterwards, as two separate
    commits. The product name is snapshotted so the entry survives product
    deletion (product_id is then nulled).
    """
    __tablename__ = "stock_adjustments"

    id = db.Column(db.String(36), primary_key=True)
    product_id = db.Column(
        db.String(36),
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    created_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)

    def __repr__(self) -> str:
        return f"<StockAdjustment id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": int(self.quantity),
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }


db.Index("idx_stock_adjustments_product_id", StockAdjustment.product_id)
db.Index("idx_stock_adjustments_created_at", StockAdjustment.created_at.desc())
