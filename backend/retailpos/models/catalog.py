from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import EntityStatus, enum_column, id_column


class Location(db.Model):
    """
    A physical store/branch that holds stock and hosts sellers.

    Location CRUD is handled elsewhere; the core only reads the name and
    status (remote-sale candidates are limited to ACTIVE locations).
    """
    __tablename__ = "locations"

    id = id_column()
    name = db.Column(db.String(128), nullable=False, unique=True)
    status = enum_column(EntityStatus, nullable=False, default=EntityStatus.ACTIVE, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data and its general price.

    PRICING:
    - cost_cents, vat_bps and default_margin_bps feed the suggested price:
        round(cost * (1 + vat) * (1 + margin), 2)
    - base_price_cents is never NULL once the product exists. While
      price_approved is False it holds the suggested price; an admin can
      approve a different value, after which it is left alone.
    - Percentages are basis points: 2100 = 21.00 %.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_status_expires", "status", "expires_on"),
        db.CheckConstraint("cost_cents >= 0", name="ck_products_cost_nonneg"),
        db.CheckConstraint("base_price_cents >= 0", name="ck_products_price_nonneg"),
    )

    id = id_column()
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    cost_cents = db.Column(db.Integer, nullable=False)
    vat_bps = db.Column(db.Integer, nullable=False, default=2100)
    default_margin_bps = db.Column(db.Integer, nullable=False, default=3000)

    base_price_cents = db.Column(db.Integer, nullable=False)
    price_approved = db.Column(db.Boolean, nullable=False, default=False)

    # Perishables: drives the expiry alert job
    expires_on = db.Column(db.Date, nullable=True)

    status = enum_column(EntityStatus, nullable=False, default=EntityStatus.ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "cost_cents": self.cost_cents,
            "vat_bps": self.vat_bps,
            "default_margin_bps": self.default_margin_bps,
            "base_price_cents": self.base_price_cents,
            "price_approved": self.price_approved,
            "expires_on": self.expires_on.isoformat() if self.expires_on else None,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LocationPriceOverride(db.Model):
    """Location-specific price. Supersedes the base price only once approved."""
    __tablename__ = "location_price_overrides"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_price_override_product_location"),
        db.CheckConstraint("price_cents >= 0", name="ck_price_override_nonneg"),
    )

    id = id_column()
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)
    margin_bps = db.Column(db.Integer, nullable=True)
    approved = db.Column(db.Boolean, nullable=False, default=False)

    product = db.relationship("Product", backref=db.backref("price_overrides", lazy=True))
    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "price_cents": self.price_cents,
            "margin_bps": self.margin_bps,
            "approved": self.approved,
        }


class QuantityTierPrice(db.Model):
    """
    Fixed TOTAL price for buying at least min_qty units.

    min_qty is unique per product, so "largest min_qty <= quantity" always
    picks exactly one tier.
    """
    __tablename__ = "quantity_tier_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "min_qty", name="uq_quantity_tier_product_min_qty"),
        db.CheckConstraint("min_qty > 0", name="ck_quantity_tier_min_qty_positive"),
        db.CheckConstraint("price_cents >= 0", name="ck_quantity_tier_price_nonneg"),
    )

    id = id_column()
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    min_qty = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    product = db.relationship("Product", backref=db.backref("quantity_tiers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "min_qty": self.min_qty,
            "price_cents": self.price_cents,
            "active": self.active,
        }


class Client(db.Model):
    """Customer that accumulates loyalty points (1 per $10 of completed sales)."""
    __tablename__ = "clients"
    __table_args__ = (
        db.CheckConstraint("loyalty_points >= 0", name="ck_clients_points_nonneg"),
    )

    id = id_column()
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    status = enum_column(EntityStatus, nullable=False, default=EntityStatus.ACTIVE, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "loyalty_points": self.loyalty_points,
            "status": self.status.value,
        }
