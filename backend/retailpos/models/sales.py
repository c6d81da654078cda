from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import PaymentMethod, SaleStatus, enum_column, id_column


class Sale(db.Model):
    """
    Completed sale document.

    LOCATIONS:
    - seller_location_id: where the seller works (home location)
    - sale_location_id:   where the stock came from
    They only differ for remote sales (is_remote=True). Cancellation
    always returns stock to sale_location_id.

    PAYMENT (all amounts in cents):
    - cash_tendered_cents / other_tendered_cents: what the buyer handed over
    - cash_amount_cents: the cash leg that stays in the drawer; this is what
      the cash session reconciles against
    - change_cents: cash handed back

    LIFECYCLE: COMPLETED -> CANCELLED, once.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_seller_status_created", "seller_id", "status", "created_at"),
        db.Index("ix_sales_session_status", "cash_session_id", "status"),
        db.CheckConstraint("total_cents >= 0", name="ck_sales_total_nonneg"),
        db.CheckConstraint("change_cents >= 0", name="ck_sales_change_nonneg"),
    )

    id = id_column()

    seller_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    seller_location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False, index=True)
    sale_location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False, index=True)
    is_remote = db.Column(db.Boolean, nullable=False, default=False)

    cash_session_id = db.Column(db.String(36), db.ForeignKey("cash_sessions.id"), nullable=False, index=True)

    client_id = db.Column(db.String(36), db.ForeignKey("clients.id"), nullable=True, index=True)
    buyer_name = db.Column(db.String(255), nullable=True)

    payment_method = enum_column(PaymentMethod, nullable=False)
    cash_tendered_cents = db.Column(db.Integer, nullable=True)
    other_tendered_cents = db.Column(db.Integer, nullable=True)

    total_cents = db.Column(db.Integer, nullable=False)
    cash_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    status = enum_column(SaleStatus, nullable=False, default=SaleStatus.COMPLETED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # Cancel audit trail
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleLine.line_number",
    )
    cash_session = db.relationship("CashSession", backref=db.backref("sales", lazy=True))
    client = db.relationship("Client")

    def to_dict(self, include_lines: bool = True) -> dict:
        body = {
            "id": self.id,
            "seller_id": self.seller_id,
            "seller_location_id": self.seller_location_id,
            "sale_location_id": self.sale_location_id,
            "is_remote": self.is_remote,
            "cash_session_id": self.cash_session_id,
            "client_id": self.client_id,
            "buyer_name": self.buyer_name,
            "payment_method": self.payment_method.value,
            "cash_tendered_cents": self.cash_tendered_cents,
            "other_tendered_cents": self.other_tendered_cents,
            "total_cents": self.total_cents,
            "cash_amount_cents": self.cash_amount_cents,
            "change_cents": self.change_cents,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
        }
        if include_lines:
            body["lines"] = [line.to_dict() for line in self.lines]
        return body


class SaleLine(db.Model):
    """
    One product line of a sale.

    subtotal_cents is authoritative for the sale total (it may be a quantity
    tier's fixed price); unit_price_cents is the rounded display value.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line_number"),
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
    )

    id = id_column()
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    price_source = db.Column(db.String(16), nullable=False, default="BASE")

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "price_source": self.price_source,
        }
