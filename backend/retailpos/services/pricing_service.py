# Overview: Service-layer price resolution; base price, location override and quantity tiers.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ProductNotFound, ValidationError
from ..models import EntityStatus, LocationPriceOverride, NotificationKind, Product, QuantityTierPrice
from . import audit_service
from .notification_service import create_notification


BPS_SCALE = 10_000

# Price sources recorded on each sale line
SOURCE_OVERRIDE = "OVERRIDE"
SOURCE_BASE = "BASE"
SOURCE_SUGGESTED = "SUGGESTED"
SOURCE_TIER = "TIER"


@dataclass(frozen=True)
class PriceQuote:
    """
    Result of resolving one sale line.

    subtotal_cents is what gets charged. unit_price_cents is
    subtotal / quantity rounded half-up, kept for display and receipts.
    """
    unit_price_cents: int
    subtotal_cents: int
    source: str


def _round_half_up_div(numerator: int, denominator: int) -> int:
    return (numerator + denominator // 2) // denominator


def suggested_price_cents(cost_cents: int, vat_bps: int, margin_bps: int) -> int:
    """
    Suggested selling price: cost * (1 + vat) * (1 + margin), to the cent.

    Integer arithmetic only; half-up rounding on the final value.
    cost 1000, vat 2100, margin 3000 -> 1573
    """
    if cost_cents < 0:
        raise ValidationError("cost_cents cannot be negative")
    if vat_bps < 0 or margin_bps < 0:
        raise ValidationError("vat_bps and margin_bps cannot be negative")
    numerator = cost_cents * (BPS_SCALE + vat_bps) * (BPS_SCALE + margin_bps)
    return _round_half_up_div(numerator, BPS_SCALE * BPS_SCALE)


def _override_for(product_id: str, location_id: str) -> LocationPriceOverride | None:
    return db.session.query(LocationPriceOverride).filter_by(
        product_id=product_id,
        location_id=location_id,
    ).first()


def _candidate_unit_price(product: Product, location_id: str) -> tuple[int, str]:
    override = _override_for(product.id, location_id)
    if override is not None and override.approved:
        return override.price_cents, SOURCE_OVERRIDE

    if product.price_approved:
        return product.base_price_cents, SOURCE_BASE

    # Unapproved base price: suggested price, using the location margin if one was proposed
    if override is not None and override.margin_bps is not None:
        return (
            suggested_price_cents(product.cost_cents, product.vat_bps, override.margin_bps),
            SOURCE_SUGGESTED,
        )
    return product.base_price_cents, SOURCE_SUGGESTED


def _matching_tier(product_id: str, quantity: int) -> QuantityTierPrice | None:
    return (
        db.session.query(QuantityTierPrice)
        .filter(
            QuantityTierPrice.product_id == product_id,
            QuantityTierPrice.active.is_(True),
            QuantityTierPrice.min_qty <= quantity,
        )
        .order_by(QuantityTierPrice.min_qty.desc())
        .first()
    )


def resolve_price(product: Product, location_id: str, quantity: int) -> PriceQuote:
    """
    Resolve the charged subtotal for `quantity` units of `product` at a location.

    ORDER:
    1. Candidate unit price: approved location override, else base price
       (admin-approved, or the suggested price while unapproved)
    2. Quantity tier: the active tier with the largest min_qty <= quantity
       replaces the subtotal with its fixed total price
    3. Otherwise subtotal = unit price * quantity
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    unit_price, source = _candidate_unit_price(product, location_id)

    tier = _matching_tier(product.id, quantity)
    if tier is not None:
        subtotal = tier.price_cents
        source = SOURCE_TIER
    else:
        subtotal = unit_price * quantity

    return PriceQuote(
        unit_price_cents=_round_half_up_div(subtotal, quantity),
        subtotal_cents=subtotal,
        source=source,
    )


# =============================================================================
# Catalog price maintenance
# =============================================================================

def refresh_suggested_price(product: Product) -> bool:
    """
    Recompute base_price_cents from cost/vat/margin unless an admin approved it.

    Returns True when the stored price changed. Caller commits.
    """
    if product.price_approved:
        return False
    suggested = suggested_price_cents(product.cost_cents, product.vat_bps, product.default_margin_bps)
    if suggested == product.base_price_cents:
        return False
    product.base_price_cents = suggested
    return True


def create_product(
    *,
    name: str,
    cost_cents: int,
    vat_bps: int = 2100,
    margin_bps: int = 3000,
    price_cents: int | None = None,
    barcode: str | None = None,
    expires_on=None,
) -> Product:
    """
    Create a product. Without an explicit price_cents the base price is the
    suggested price and stays unapproved.
    """
    if not name or not name.strip():
        raise ValidationError("name is required")
    if price_cents is not None and price_cents < 0:
        raise ValidationError("price_cents cannot be negative")

    suggested = suggested_price_cents(cost_cents, vat_bps, margin_bps)
    product = Product(
        name=name.strip(),
        barcode=barcode,
        cost_cents=cost_cents,
        vat_bps=vat_bps,
        default_margin_bps=margin_bps,
        base_price_cents=price_cents if price_cents is not None else suggested,
        price_approved=price_cents is not None,
        expires_on=expires_on,
        status=EntityStatus.ACTIVE,
    )
    db.session.add(product)
    db.session.commit()
    return product


def add_quantity_tier(product_id: str, min_qty: int, price_cents: int) -> QuantityTierPrice:
    if min_qty <= 0:
        raise ValidationError("min_qty must be > 0")
    if price_cents < 0:
        raise ValidationError("price_cents cannot be negative")

    product = db.session.get(Product, product_id)
    if not product or product.status != EntityStatus.ACTIVE:
        raise ProductNotFound("Product not found", {"product_id": product_id})

    tier = QuantityTierPrice(product_id=product_id, min_qty=min_qty, price_cents=price_cents, active=True)
    db.session.add(tier)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(
            f"A quantity tier for min_qty={min_qty} already exists",
            {"product_id": product_id, "min_qty": min_qty},
        )
    return tier


def set_location_override(
    product_id: str,
    location_id: str,
    *,
    price_cents: int,
    margin_bps: int | None = None,
    approved: bool = False,
) -> LocationPriceOverride:
    """Create or replace the location override for a product. Caller-facing commit."""
    if price_cents < 0:
        raise ValidationError("price_cents cannot be negative")

    override = _override_for(product_id, location_id)
    if override is None:
        override = LocationPriceOverride(product_id=product_id, location_id=location_id)
        db.session.add(override)
    override.price_cents = price_cents
    override.margin_bps = margin_bps
    override.approved = approved
    db.session.commit()
    return override


def update_product_cost(product_id: str, cost_cents: int, *, user_id: str | None = None) -> Product:
    """
    Change a product's cost and re-derive its suggested price.

    An approved base price is left alone. When the suggested price moves,
    admins get a PRICE_CHANGE notification. Commits, then audits.
    """
    if cost_cents < 0:
        raise ValidationError("cost_cents cannot be negative")

    product = db.session.get(Product, product_id)
    if not product or product.status != EntityStatus.ACTIVE:
        raise ProductNotFound("Product not found", {"product_id": product_id})

    before = product.to_dict()
    old_price = product.base_price_cents
    product.cost_cents = cost_cents
    if refresh_suggested_price(product):
        create_notification(
            NotificationKind.PRICE_CHANGE,
            f"Price change: {product.name}",
            f'Suggested price for "{product.name}" moved from {old_price} to '
            f"{product.base_price_cents} cents after a cost update.",
            product_id=product.id,
            commit=False,
        )
    db.session.commit()

    audit_service.record(
        user_id, audit_service.ACTION_UPDATE, "Product", product.id,
        before=before, after=product.to_dict(),
    )
    return product
