"""
Error taxonomy for the POS core.

Every service raises a PosError subclass; routes render it with
``jsonify(e.to_dict()), e.status_code``. Anything else reaching a route is an
internal error: it is logged and answered with a generic 500 body.

    PosError
    ├── ValidationError            400  malformed input
    ├── BusinessRuleViolation      400  rule broken by well-formed input
    │   ├── InsufficientStock
    │   │   └── InsufficientStockSuggestRemote  (details.candidates)
    │   ├── PaymentMismatch
    │   ├── SessionAlreadyOpen
    │   ├── SessionAlreadyClosed
    │   ├── AlreadyCancelled
    │   ├── NoOpenSession          403
    │   └── Forbidden              403
    └── NotFound                   404
        └── ProductNotFound, SaleNotFound, CashSessionNotFound, ...

RaceAbort never leaves the stock service: a conditional update that touched
zero rows is retried under the configured policy and then re-raised as
InsufficientStock.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(PosError):
    status_code = 400
    code = "VALIDATION_ERROR"


class BusinessRuleViolation(PosError):
    status_code = 400
    code = "BUSINESS_RULE_VIOLATION"


class NotFound(PosError):
    status_code = 404
    code = "NOT_FOUND"


# Business rules

class InsufficientStock(BusinessRuleViolation):
    code = "INSUFFICIENT_STOCK"


class InsufficientStockSuggestRemote(InsufficientStock):
    """Stock is short locally but other locations can cover the line."""

    code = "INSUFFICIENT_STOCK_SUGGEST_REMOTE"

    def __init__(self, message: str, candidates: list[dict], details: dict | None = None):
        merged = dict(details or {})
        merged["candidates"] = candidates
        merged.setdefault("suggestion", "Retry as a remote sale by setting origin_location_id")
        super().__init__(message, merged)
        self.candidates = candidates


class PaymentMismatch(BusinessRuleViolation):
    code = "PAYMENT_MISMATCH"


class SessionAlreadyOpen(BusinessRuleViolation):
    code = "SESSION_ALREADY_OPEN"


class SessionAlreadyClosed(BusinessRuleViolation):
    code = "SESSION_ALREADY_CLOSED"


class AlreadyCancelled(BusinessRuleViolation):
    code = "ALREADY_CANCELLED"


class NoOpenSession(BusinessRuleViolation):
    status_code = 403
    code = "NO_OPEN_SESSION"


class Forbidden(BusinessRuleViolation):
    status_code = 403
    code = "FORBIDDEN"


# Lookups

class ProductNotFound(NotFound):
    code = "PRODUCT_NOT_FOUND"


class SaleNotFound(NotFound):
    code = "SALE_NOT_FOUND"


class CashSessionNotFound(NotFound):
    code = "CASH_SESSION_NOT_FOUND"


class LocationNotFound(NotFound):
    code = "LOCATION_NOT_FOUND"


class ClientNotFound(NotFound):
    code = "CLIENT_NOT_FOUND"


class NotificationNotFound(NotFound):
    code = "NOTIFICATION_NOT_FOUND"


class StockNotFound(NotFound):
    code = "STOCK_NOT_FOUND"


class RaceAbort(Exception):
    """A conditional stock update affected zero rows."""

    def __init__(self, product_id: str, location_id: str, quantity: int):
        super().__init__(
            f"Conditional stock update for product {product_id} at location {location_id} "
            f"(quantity {quantity}) affected no rows"
        )
        self.product_id = product_id
        self.location_id = location_id
        self.quantity = quantity
