# Overview: Service-layer stock ledger; per-location quantities with atomic reserve/release.

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update

from ..extensions import db
from ..errors import (
    Forbidden,
    InsufficientStock,
    ProductNotFound,
    RaceAbort,
    StockNotFound,
    ValidationError,
)
from ..models import EntityStatus, Location, LocationStock, Product, StockMovement
from . import audit_service
from .broadcast import ADMIN_CHANNEL, STOCK_LOW, STOCK_LOW_ADMIN, Broadcaster, location_channel, safe_emit
from .concurrency import StockRetryPolicy, begin_write_transaction, lock_for_update
from .session_service import Identity

logger = logging.getLogger(__name__)

"""
Stock invariants (authoritative)

- LocationStock.quantity is never negative. Decrements are a single
  conditional UPDATE (quantity = quantity - :qty WHERE quantity >= :qty);
  the CHECK constraint on the table backs it up.
- Nothing here reads a quantity and then writes it back. A read followed by
  a write would let two concurrent sales both pass the read.
- reserve() and release() never commit. They run inside the caller's
  transaction so a failed sale leaves no partial stock effect.
"""


@dataclass(frozen=True)
class LowStockAlert:
    """Side-signal from reserve(): the remaining quantity fell to min_quantity or below."""
    product_id: str
    location_id: str
    quantity: int
    min_quantity: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "min_quantity": self.min_quantity,
        }


@dataclass(frozen=True)
class StockCandidate:
    """Another location that can cover a line on its own."""
    location_id: str
    location_name: str
    quantity: int

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "location_name": self.location_name,
            "quantity": self.quantity,
        }


def _require_positive(qty: int) -> None:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValidationError("quantity must be a positive integer")


def available(product_id: str, location_id: str) -> int:
    """On-hand quantity at a location. A missing row means 0."""
    quantity = db.session.execute(
        select(LocationStock.quantity).where(
            LocationStock.product_id == product_id,
            LocationStock.location_id == location_id,
        )
    ).scalar_one_or_none()
    return int(quantity or 0)


def _conditional_decrement(product_id: str, location_id: str, qty: int) -> None:
    result = db.session.execute(
        update(LocationStock)
        .where(
            LocationStock.product_id == product_id,
            LocationStock.location_id == location_id,
            LocationStock.quantity >= qty,
        )
        .values(quantity=LocationStock.quantity - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise RaceAbort(product_id, location_id, qty)


def reserve(
    product_id: str,
    location_id: str,
    qty: int,
    retry: StockRetryPolicy | None = None,
) -> LowStockAlert | None:
    """
    Take `qty` units out of a location's stock.

    A conditional update that touches zero rows means another transaction
    got there first (or the stock was never there). It is retried up to
    retry.attempts times, then reported as InsufficientStock.

    Returns a LowStockAlert when the remaining quantity is at or below the
    row's min_quantity, otherwise None.
    """
    _require_positive(qty)
    policy = retry or StockRetryPolicy()

    for attempt in range(policy.attempts):
        try:
            _conditional_decrement(product_id, location_id, qty)
            break
        except RaceAbort as exc:
            if attempt >= policy.attempts - 1:
                raise InsufficientStock(
                    "Insufficient stock",
                    {
                        "product_id": product_id,
                        "location_id": location_id,
                        "requested": qty,
                        "available": available(product_id, location_id),
                    },
                ) from exc
            logger.warning(
                "Stock reserve raced (attempt %d/%d) for product %s at %s",
                attempt + 1, policy.attempts, product_id, location_id,
            )
            policy.sleep(attempt)

    return _low_stock_alert(product_id, location_id)


def _low_stock_alert(product_id: str, location_id: str) -> LowStockAlert | None:
    row = db.session.execute(
        select(LocationStock.quantity, LocationStock.min_quantity).where(
            LocationStock.product_id == product_id,
            LocationStock.location_id == location_id,
        )
    ).one_or_none()
    if row is not None and row.quantity <= row.min_quantity:
        return LowStockAlert(
            product_id=product_id,
            location_id=location_id,
            quantity=int(row.quantity),
            min_quantity=int(row.min_quantity),
        )
    return None


def release(product_id: str, location_id: str, qty: int) -> None:
    """Put `qty` units back (sale cancellation). Creates the row if it is missing."""
    _require_positive(qty)
    result = db.session.execute(
        update(LocationStock)
        .where(
            LocationStock.product_id == product_id,
            LocationStock.location_id == location_id,
        )
        .values(quantity=LocationStock.quantity + qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.add(LocationStock(
            product_id=product_id,
            location_id=location_id,
            quantity=qty,
            min_quantity=0,
        ))
        db.session.flush()


def availability_across_locations(
    product_id: str,
    exclude_location_id: str | None,
    min_qty: int,
) -> list[StockCandidate]:
    """
    ACTIVE locations other than `exclude_location_id` holding at least
    `min_qty` units, largest stock first.
    """
    query = (
        select(Location.id, Location.name, LocationStock.quantity)
        .join(LocationStock, LocationStock.location_id == Location.id)
        .where(
            LocationStock.product_id == product_id,
            LocationStock.quantity >= min_qty,
            Location.status == EntityStatus.ACTIVE,
        )
        .order_by(LocationStock.quantity.desc(), Location.name)
    )
    if exclude_location_id is not None:
        query = query.where(Location.id != exclude_location_id)

    return [
        StockCandidate(location_id=row.id, location_name=row.name, quantity=int(row.quantity))
        for row in db.session.execute(query)
    ]


def set_stock(product_id: str, location_id: str, quantity: int, min_quantity: int | None = None) -> LocationStock:
    """
    Overwrite the stock row for seeding from the CLI and tests. Commits.

    No alert, no audit. Manual movements go through adjust_stock().
    """
    if quantity < 0:
        raise ValidationError("quantity cannot be negative")
    if min_quantity is not None and min_quantity < 0:
        raise ValidationError("min_quantity cannot be negative")

    row = db.session.query(LocationStock).filter_by(
        product_id=product_id,
        location_id=location_id,
    ).first()
    if row is None:
        row = LocationStock(product_id=product_id, location_id=location_id, min_quantity=0)
        db.session.add(row)
    row.quantity = quantity
    if min_quantity is not None:
        row.min_quantity = min_quantity
    db.session.commit()
    return row


# =============================================================================
# STOCK MAINTENANCE (manual movements, minimums, listings)
# =============================================================================

def _check_location_access(identity: Identity, location_id: str) -> None:
    """Sellers only touch their home location; admins touch any."""
    if identity.is_admin:
        return
    if not identity.location_id or identity.location_id != location_id:
        raise Forbidden("No access to this location", {"location_id": location_id})


def _parse_movement(movement) -> StockMovement:
    if isinstance(movement, StockMovement):
        return movement
    try:
        return StockMovement(str(movement).upper())
    except ValueError:
        raise ValidationError(
            "movement must be one of IN, OUT, ADJUST",
            {"movement": movement},
        )


def _emit_low_stock(broadcaster: Broadcaster | None, alert: LowStockAlert) -> None:
    payload = alert.to_dict()
    safe_emit(broadcaster, location_channel(alert.location_id), STOCK_LOW, payload)
    safe_emit(broadcaster, ADMIN_CHANNEL, STOCK_LOW_ADMIN, payload)


def adjust_stock(
    identity: Identity,
    product_id: str,
    movement,
    quantity: int,
    *,
    reason: str | None = None,
    broadcaster: Broadcaster | None = None,
) -> LocationStock:
    """
    Apply a manual movement to the stock of the caller's home location.

    IN adds units, OUT removes them and ADJUST replaces the quantity with a
    counted value. OUT goes through the same conditional decrement as a
    sale, so it can never take the row below zero.

    After the commit: a stock.low event when the row ends at or below its
    minimum, and an UPDATE audit record.
    """
    if not identity.location_id:
        raise Forbidden("A home location is required to move stock")
    location_id = identity.location_id
    kind = _parse_movement(movement)

    if kind == StockMovement.ADJUST:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValidationError("quantity must be an integer >= 0")
    else:
        _require_positive(quantity)

    try:
        begin_write_transaction()
        if db.session.get(Product, product_id) is None:
            raise ProductNotFound("Product not found", {"product_id": product_id})

        existing = lock_for_update(
            db.session.query(LocationStock).filter_by(product_id=product_id, location_id=location_id)
        ).first()
        before = existing.to_dict() if existing else None

        if kind == StockMovement.IN:
            release(product_id, location_id, quantity)
        elif kind == StockMovement.OUT:
            try:
                _conditional_decrement(product_id, location_id, quantity)
            except RaceAbort as exc:
                raise InsufficientStock(
                    "Insufficient stock",
                    {
                        "product_id": product_id,
                        "location_id": location_id,
                        "requested": quantity,
                        "available": existing.quantity if existing else 0,
                    },
                ) from exc
        elif existing is None:
            db.session.add(LocationStock(
                product_id=product_id,
                location_id=location_id,
                quantity=quantity,
                min_quantity=0,
            ))
        else:
            db.session.execute(
                update(LocationStock)
                .where(LocationStock.id == existing.id)
                .values(quantity=quantity)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    row = db.session.query(LocationStock).filter_by(product_id=product_id, location_id=location_id).one()
    logger.info(
        "Stock %s of %d for product %s at %s by %s (now %d)",
        kind.value, quantity, product_id, location_id, identity.user_id, row.quantity,
    )

    alert = _low_stock_alert(product_id, location_id)
    if alert is not None:
        _emit_low_stock(broadcaster, alert)

    after = row.to_dict()
    after.update({"movement": kind.value, "moved_quantity": quantity, "reason": reason})
    audit_service.record(
        identity.user_id,
        audit_service.ACTION_UPDATE,
        "LocationStock",
        row.id,
        before=before,
        after=after,
    )
    return row


def set_min_quantity(identity: Identity, product_id: str, location_id: str, min_quantity: int) -> LocationStock:
    """Change the low-stock threshold of an existing stock row. Audited."""
    _check_location_access(identity, location_id)
    if isinstance(min_quantity, bool) or not isinstance(min_quantity, int) or min_quantity < 0:
        raise ValidationError("min_quantity must be an integer >= 0")

    try:
        begin_write_transaction()
        row = lock_for_update(
            db.session.query(LocationStock).filter_by(product_id=product_id, location_id=location_id)
        ).first()
        if row is None:
            raise StockNotFound(
                "Stock not found",
                {"product_id": product_id, "location_id": location_id},
            )
        before = row.to_dict()
        row.min_quantity = min_quantity
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    audit_service.record(
        identity.user_id,
        audit_service.ACTION_UPDATE,
        "LocationStock",
        row.id,
        before=before,
        after=row.to_dict(),
    )
    return row


def get_stock(identity: Identity, product_id: str, location_id: str) -> LocationStock:
    _check_location_access(identity, location_id)
    row = db.session.query(LocationStock).filter_by(product_id=product_id, location_id=location_id).first()
    if row is None:
        raise StockNotFound("Stock not found", {"product_id": product_id, "location_id": location_id})
    return row


def list_stock(
    identity: Identity,
    *,
    location_id: str | None = None,
    product_id: str | None = None,
    low_only: bool = False,
) -> list[LocationStock]:
    """
    Stock rows ordered by product name.

    Sellers always get their home location; the location_id filter only
    applies to admins.
    """
    if not identity.is_admin:
        if not identity.location_id:
            raise Forbidden("Seller has no home location")
        location_id = identity.location_id

    query = db.session.query(LocationStock).join(Product, Product.id == LocationStock.product_id)
    if location_id:
        query = query.filter(LocationStock.location_id == location_id)
    if product_id:
        query = query.filter(LocationStock.product_id == product_id)
    if low_only:
        query = query.filter(LocationStock.quantity <= LocationStock.min_quantity)
    return query.order_by(Product.name.asc(), LocationStock.location_id.asc()).all()
