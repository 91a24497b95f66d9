from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .types import JSONText


class Sale(db.Model):
    """
    Completed sale (receipt). Immutable once written.

    Line items are snapshots ({productId, name, price, quantity, category,
    packaging}) so receipts stay stable when products change later.

    INVARIANTS:
    - discount_amount == subtotal * discount / 100 (computed once, at creation)
    - total == subtotal - discount_amount
    - 0 <= discount <= 100, all money columns >= 0 (CHECK constraints)
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("subtotal >= 0", name="ck_sales_subtotal"),
        db.CheckConstraint("discount >= 0 AND discount <= 100", name="ck_sales_discount"),
        db.CheckConstraint("discount_amount >= 0", name="ck_sales_discount_amount"),
        db.CheckConstraint("total >= 0", name="ck_sales_total"),
        db.Index("idx_sales_user_id", "user_id"),
    )

    id = db.Column(db.String(36), primary_key=True)
    items = db.Column(JSONText(list), nullable=False)
    subtotal = db.Column(db.Float, nullable=False)
    discount = db.Column(db.Float, nullable=False, default=0, server_default="0")
    discount_amount = db.Column(db.Float, nullable=False, default=0, server_default="0")
    total = db.Column(db.Float, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    user_name = db.Column(db.String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} total={self.total} user_id={self.user_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": list(self.items or []),
            "subtotal": float(self.subtotal),
            "discount": float(self.discount),
            "discount_amount": float(self.discount_amount),
            "total": float(self.total),
            "created_at": to_utc_z(self.created_at),
            "user_id": self.user_id,
            "user_name": self.user_name,
        }


db.Index("idx_sales_created_at", Sale.created_at.desc())
