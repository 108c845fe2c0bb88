from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockRecord(db.Model):
    """
    Authoritative available quantity for one product.

    INVARIANTS:
    - At most one record per product (unique product_id).
    - quantity never negative. Enforced by the conditional UPDATE in
      stock_service.adjust_stock and backed by a CHECK constraint.

    Records are created by an explicit initialization and never deleted here.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_record", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
