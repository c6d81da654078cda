from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import id_column


class LocationStock(db.Model):
    """
    On-hand quantity of one product at one location.

    INVARIANT: quantity >= 0. Enforced twice: every decrement is a
    conditional UPDATE (... WHERE quantity >= :qty) and the table carries a
    CHECK constraint as the last line of defence.

    There is no version column on purpose: stock rows are only ever mutated
    through single-statement UPDATEs, never through ORM read-modify-write.
    """
    __tablename__ = "location_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_location_stock_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_location_stock_quantity_nonneg"),
        db.CheckConstraint("min_quantity >= 0", name="ck_location_stock_min_nonneg"),
    )

    id = id_column()
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_rows", lazy=True))
    location = db.relationship("Location", backref=db.backref("stock_rows", lazy=True))

    @property
    def is_low(self) -> bool:
        return self.quantity <= self.min_quantity

    def to_dict(self, include_names: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "min_quantity": self.min_quantity,
            "is_low": self.is_low,
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_names:
            data["product_name"] = self.product.name if self.product else None
            data["location_name"] = self.location.name if self.location else None
        return data
