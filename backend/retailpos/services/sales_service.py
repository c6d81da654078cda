# Overview: Sale transaction engine; atomic sale commit, cancellation and sale reads.

"""
Sales Service

WHY: A sale touches stock, money and loyalty at once. Either all of it is
persisted or none of it is; a half-applied sale (stock gone, no sale row)
is the failure this module exists to prevent.

COMMIT SEQUENCE (one DB transaction):
1. Seller must have an OPEN cash session at their home location
2. Resolve the stock location (home, or origin_location_id for remote sales)
3. Per line: product ACTIVE, stock available (else suggest other locations),
   price via pricing_service
4. Validate the tender against the total
5. Persist sale + lines, reserve stock, credit loyalty points
6. Commit

Only after the commit: broadcast events, the REMOTE_SALE notification and
the audit record. None of those can undo or fail a committed sale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import (
    AlreadyCancelled,
    ClientNotFound,
    Forbidden,
    InsufficientStock,
    InsufficientStockSuggestRemote,
    LocationNotFound,
    NoOpenSession,
    ProductNotFound,
    SaleNotFound,
    ValidationError,
)
from ..models import (
    Client,
    EntityStatus,
    Location,
    NotificationKind,
    Product,
    Sale,
    SaleLine,
    SaleStatus,
)
from ..time_utils import utcnow
from ..validation import coerce_int, get_amount_cents, get_str, require_payload
from . import audit_service, pricing_service, stock_service
from .broadcast import (
    ADMIN_CHANNEL,
    SALE_COMPLETED,
    STOCK_LOW,
    STOCK_LOW_ADMIN,
    Broadcaster,
    LoggingBroadcaster,
    location_channel,
    safe_emit,
)
from .cash_session_service import find_open_session
from .concurrency import StockRetryPolicy, begin_write_transaction, lock_for_update, run_with_retry
from .notification_service import create_notification
from .payment_service import PAYMENT_TOLERANCE_CENTS, parse_tender, settle, validate_tender
from .session_service import Identity

logger = logging.getLogger(__name__)

MAX_LINES_PER_SALE = 200
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


# =============================================================================
# REQUEST PARSING
# =============================================================================

@dataclass(frozen=True)
class SaleLineRequest:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class SaleRequest:
    lines: list[SaleLineRequest]
    payment_method: str
    cash_tendered_cents: int | None = None
    other_tendered_cents: int | None = None
    client_id: str | None = None
    buyer_name: str | None = None
    origin_location_id: str | None = None


def _merge_lines(lines: list[SaleLineRequest]) -> list[SaleLineRequest]:
    """Collapse repeated products into one line, keeping first-seen order."""
    totals: dict[str, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return [SaleLineRequest(product_id=pid, quantity=qty) for pid, qty in totals.items()]


def parse_sale_request(payload) -> SaleRequest:
    """Validate the JSON body of POST /api/sales."""
    data = require_payload(payload)

    raw_lines = data.get("lines")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")
    if len(raw_lines) > MAX_LINES_PER_SALE:
        raise ValidationError(f"A sale cannot have more than {MAX_LINES_PER_SALE} lines")

    lines = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        product_id = get_str(raw, "product_id", required=True, max_length=36)
        quantity = coerce_int(f"lines[{index}].quantity", raw.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"lines[{index}].quantity must be > 0")
        lines.append(SaleLineRequest(product_id=product_id, quantity=quantity))

    return SaleRequest(
        lines=_merge_lines(lines),
        payment_method=get_str(data, "payment_method", required=True, max_length=16),
        cash_tendered_cents=get_amount_cents(data, "cash_tendered_cents"),
        other_tendered_cents=get_amount_cents(data, "other_tendered_cents"),
        client_id=get_str(data, "client_id", max_length=36),
        buyer_name=get_str(data, "buyer_name", max_length=255),
        origin_location_id=get_str(data, "origin_location_id", max_length=36),
    )


@dataclass
class SaleOutcome:
    sale: Sale
    low_stock: list[stock_service.LowStockAlert] = field(default_factory=list)


# =============================================================================
# ENGINE
# =============================================================================

class SaleTransactionEngine:
    """
    Orchestrates sale commits and cancellations.

    Built once per app (see create_app) with its collaborators passed in:
    the broadcaster, the audit sink and the retry policies. Routes reach it
    through current_app.extensions["sale_engine"].
    """

    def __init__(
        self,
        *,
        broadcaster: Broadcaster | None = None,
        audit_sink: audit_service.AuditSink | None = None,
        stock_retry: StockRetryPolicy | None = None,
        transaction_attempts: int = 3,
        transaction_backoff_seconds: float = 0.1,
        payment_tolerance_cents: int = PAYMENT_TOLERANCE_CENTS,
        loyalty_point_value_cents: int = 1000,
    ):
        self.broadcaster = broadcaster or LoggingBroadcaster()
        self.audit_sink = audit_sink or audit_service.AuditSink()
        self.stock_retry = stock_retry or StockRetryPolicy()
        self.transaction_attempts = max(1, transaction_attempts)
        self.transaction_backoff_seconds = transaction_backoff_seconds
        self.payment_tolerance_cents = payment_tolerance_cents
        self.loyalty_point_value_cents = loyalty_point_value_cents

    @classmethod
    def from_config(cls, config, *, broadcaster=None, audit_sink=None) -> "SaleTransactionEngine":
        return cls(
            broadcaster=broadcaster,
            audit_sink=audit_sink,
            stock_retry=StockRetryPolicy.from_config(config),
            transaction_attempts=int(config.get("TRANSACTION_RETRY_ATTEMPTS", 3)),
            transaction_backoff_seconds=float(config.get("TRANSACTION_RETRY_BACKOFF_SECONDS", 0.1)),
            payment_tolerance_cents=int(config.get("PAYMENT_TOLERANCE_CENTS", PAYMENT_TOLERANCE_CENTS)),
            loyalty_point_value_cents=int(config.get("LOYALTY_POINT_VALUE_CENTS", 1000)),
        )

    def loyalty_points_for(self, total_cents: int) -> int:
        if self.loyalty_point_value_cents <= 0:
            return 0
        return total_cents // self.loyalty_point_value_cents

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def commit_sale(self, identity: Identity, request: SaleRequest) -> Sale:
        if not identity.is_seller:
            raise Forbidden("Only sellers can register sales")
        if not identity.location_id:
            raise Forbidden("Seller has no home location")

        def _op():
            try:
                begin_write_transaction()
                outcome = self._commit_locked(identity, request)
                db.session.commit()
                return outcome
            except Exception:
                db.session.rollback()
                raise

        outcome = run_with_retry(
            _op,
            attempts=self.transaction_attempts,
            backoff_base=self.transaction_backoff_seconds,
        )
        self._after_commit(identity, outcome)
        return outcome.sale

    def _resolve_sale_location(self, identity: Identity, origin_location_id: str | None) -> tuple[str, bool]:
        if not origin_location_id or origin_location_id == identity.location_id:
            return identity.location_id, False

        location = db.session.get(Location, origin_location_id)
        if location is None or location.status != EntityStatus.ACTIVE:
            raise LocationNotFound("Origin location not found", {"location_id": origin_location_id})
        return location.id, True

    def _load_client(self, client_id: str | None) -> Client | None:
        if client_id is None:
            return None
        client = db.session.get(Client, client_id)
        if client is None or client.status != EntityStatus.ACTIVE:
            raise ClientNotFound("Client not found", {"client_id": client_id})
        return client

    def _check_availability(
        self,
        product: Product,
        sale_location_id: str,
        quantity: int,
        is_remote: bool,
    ) -> None:
        on_hand = stock_service.available(product.id, sale_location_id)
        if on_hand >= quantity:
            return

        details = {
            "product_id": product.id,
            "product_name": product.name,
            "location_id": sale_location_id,
            "requested": quantity,
            "available": on_hand,
        }
        if not is_remote:
            candidates = stock_service.availability_across_locations(product.id, sale_location_id, quantity)
            if candidates:
                raise InsufficientStockSuggestRemote(
                    f"Insufficient stock for {product.name}; available at other locations",
                    [c.to_dict() for c in candidates],
                    details,
                )
        raise InsufficientStock(f"Insufficient stock for {product.name}", details)

    def _commit_locked(self, identity: Identity, request: SaleRequest) -> SaleOutcome:
        cash_session = find_open_session(identity.user_id, identity.location_id, lock=True)
        if cash_session is None:
            raise NoOpenSession("Open a cash session before registering sales")

        sale_location_id, is_remote = self._resolve_sale_location(identity, request.origin_location_id)
        client = self._load_client(request.client_id)

        priced = []
        for line in request.lines:
            product = db.session.get(Product, line.product_id)
            if product is None or product.status != EntityStatus.ACTIVE:
                raise ProductNotFound("Product not found", {"product_id": line.product_id})

            self._check_availability(product, sale_location_id, line.quantity, is_remote)
            quote = pricing_service.resolve_price(product, sale_location_id, line.quantity)
            priced.append((line, quote))

        total_cents = sum(quote.subtotal_cents for _, quote in priced)

        # Product and stock errors take precedence over payment errors
        tender = parse_tender(
            request.payment_method,
            request.cash_tendered_cents,
            request.other_tendered_cents,
        )
        validate_tender(tender, total_cents, self.payment_tolerance_cents)
        settlement = settle(tender, total_cents)

        sale = Sale(
            seller_id=identity.user_id,
            seller_location_id=identity.location_id,
            sale_location_id=sale_location_id,
            is_remote=is_remote,
            cash_session_id=cash_session.id,
            client_id=client.id if client else None,
            buyer_name=request.buyer_name,
            payment_method=tender.method,
            cash_tendered_cents=request.cash_tendered_cents,
            other_tendered_cents=request.other_tendered_cents,
            total_cents=total_cents,
            cash_amount_cents=settlement.cash_amount_cents,
            change_cents=settlement.change_cents,
            status=SaleStatus.COMPLETED,
            created_at=utcnow(),
        )
        db.session.add(sale)

        for number, (line, quote) in enumerate(priced, start=1):
            sale.lines.append(SaleLine(
                line_number=number,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=quote.unit_price_cents,
                subtotal_cents=quote.subtotal_cents,
                price_source=quote.source,
            ))
        db.session.flush()

        low_stock = []
        for line, _ in priced:
            alert = stock_service.reserve(line.product_id, sale_location_id, line.quantity, retry=self.stock_retry)
            if alert is not None:
                low_stock.append(alert)

        points = self.loyalty_points_for(total_cents)
        if client is not None and points > 0:
            db.session.execute(
                update(Client)
                .where(Client.id == client.id)
                .values(loyalty_points=Client.loyalty_points + points)
                .execution_options(synchronize_session=False)
            )

        return SaleOutcome(sale=sale, low_stock=low_stock)

    def _after_commit(self, identity: Identity, outcome: SaleOutcome) -> None:
        sale = outcome.sale
        sale_payload = sale.to_dict()

        safe_emit(self.broadcaster, location_channel(sale.sale_location_id), SALE_COMPLETED, {"sale": sale_payload})
        safe_emit(self.broadcaster, ADMIN_CHANNEL, SALE_COMPLETED, {"sale": sale_payload})

        for alert in outcome.low_stock:
            payload = alert.to_dict()
            safe_emit(self.broadcaster, location_channel(alert.location_id), STOCK_LOW, payload)
            safe_emit(self.broadcaster, ADMIN_CHANNEL, STOCK_LOW_ADMIN, payload)

        if sale.is_remote:
            self._notify_remote_sale(sale)

        self._audit(identity.user_id, audit_service.ACTION_CREATE, sale, before=None, after=sale_payload)

    def _notify_remote_sale(self, sale: Sale) -> None:
        try:
            seller_location = db.session.get(Location, sale.seller_location_id)
            origin_name = seller_location.name if seller_location else sale.seller_location_id
            units = sum(line.quantity for line in sale.lines)
            create_notification(
                NotificationKind.REMOTE_SALE,
                "Remote sale",
                f"{units} unit(s) of your stock were sold from {origin_name} (sale {sale.id}).",
                location_id=sale.sale_location_id,
                sale_id=sale.id,
            )
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create remote sale notification for sale %s", sale.id)

    def _audit(self, user_id: str, action: str, sale: Sale, *, before, after) -> None:
        try:
            self.audit_sink.record(user_id, action, "Sale", sale.id, before=before, after=after)
        except Exception:
            logger.exception("Audit sink failed for sale %s", sale.id)

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    def cancel_sale(self, identity: Identity, sale_id: str) -> Sale:
        """
        Cancel a COMPLETED sale and reverse its stock and loyalty effects.

        The sale row is locked for the whole unit, so two concurrent cancels
        serialize and the second one sees CANCELLED.
        """
        def _op():
            try:
                begin_write_transaction()
                sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
                if sale is None or not _can_see(identity, sale):
                    raise SaleNotFound("Sale not found", {"sale_id": sale_id})
                if sale.status == SaleStatus.CANCELLED:
                    raise AlreadyCancelled("Sale is already cancelled", {"sale_id": sale_id})

                before = sale.to_dict()
                for line in sale.lines:
                    stock_service.release(line.product_id, sale.sale_location_id, line.quantity)

                points = self.loyalty_points_for(sale.total_cents)
                if sale.client_id and points > 0:
                    client = lock_for_update(db.session.query(Client).filter_by(id=sale.client_id)).first()
                    if client is not None:
                        client.loyalty_points = max(0, client.loyalty_points - points)

                sale.status = SaleStatus.CANCELLED
                sale.cancelled_at = utcnow()
                sale.cancelled_by_user_id = identity.user_id
                db.session.commit()
                return sale, before
            except Exception:
                db.session.rollback()
                raise

        sale, before = run_with_retry(
            _op,
            attempts=self.transaction_attempts,
            backoff_base=self.transaction_backoff_seconds,
        )
        logger.info("Sale %s cancelled by %s", sale.id, identity.user_id)
        self._audit(identity.user_id, audit_service.ACTION_CANCEL, sale, before=before, after=sale.to_dict())
        return sale


# =============================================================================
# READS
# =============================================================================

def _can_see(identity: Identity, sale: Sale) -> bool:
    return identity.is_admin or sale.seller_id == identity.user_id


def get_sale(identity: Identity, sale_id: str) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None or not _can_see(identity, sale):
        raise SaleNotFound("Sale not found", {"sale_id": sale_id})
    return sale


def list_sales(
    identity: Identity,
    *,
    status: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    location_id: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[Sale], int]:
    """
    Sales visible to the caller, newest first.

    Sellers see their own sales. Admins see all and may filter by the
    stock location. Returns (page items, total matching).
    """
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    query = db.session.query(Sale)
    if not identity.is_admin:
        query = query.filter(Sale.seller_id == identity.user_id)
    elif location_id:
        query = query.filter(Sale.sale_location_id == location_id)

    if status:
        try:
            query = query.filter(Sale.status == SaleStatus(status.upper()))
        except ValueError:
            raise ValidationError(f"Invalid status '{status}'", {"allowed": [s.value for s in SaleStatus]})
    if date_from is not None:
        query = query.filter(Sale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.created_at <= date_to)

    total = query.count()
    items = (
        query.order_by(Sale.created_at.desc(), Sale.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
