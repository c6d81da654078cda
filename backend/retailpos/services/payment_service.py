# Overview: Service-layer payment validation; tender variants, tolerance checks and cash-leg settlement.

"""
Payment validation for a single sale.

WHY: A sale is paid in one go at commit time. The drawer only cares about
the cash that physically stays in it, so every sale records its cash leg
and the change handed back; the cash session reconciles against those.

DESIGN PRINCIPLES:
- The raw method string is parsed once into a Tender variant; everything
  downstream dispatches on the variant type, never on the string
- Amounts are integer cents; "enough" means >= total - tolerance
  (tolerance defaults to 1 cent)
- OTHER methods (cards, QR, transfer) never carry a cash amount
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..errors import PaymentMismatch, ValidationError
from ..models import PaymentMethod


PAYMENT_TOLERANCE_CENTS = 1

OTHER_METHODS = frozenset({
    PaymentMethod.DEBIT,
    PaymentMethod.CREDIT,
    PaymentMethod.CREDIT_CARD,
    PaymentMethod.QR,
    PaymentMethod.TRANSFER,
})


# =============================================================================
# TENDER VARIANTS
# =============================================================================

@dataclass(frozen=True)
class CashTender:
    cash_cents: int | None

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.CASH


@dataclass(frozen=True)
class MixedTender:
    cash_cents: int | None
    other_cents: int | None

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.MIXED


@dataclass(frozen=True)
class OtherTender:
    method: PaymentMethod
    cash_cents: int | None
    other_cents: int | None


Tender = Union[CashTender, MixedTender, OtherTender]


@dataclass(frozen=True)
class Settlement:
    """What the drawer keeps (cash_amount_cents) and what goes back (change_cents)."""
    cash_amount_cents: int
    change_cents: int


def parse_tender(method: str | None, cash_cents: int | None, other_cents: int | None) -> Tender:
    """Build the Tender variant for a raw payment method string."""
    if not method or not isinstance(method, str):
        raise ValidationError("payment_method is required")
    try:
        parsed = PaymentMethod(method.strip().upper())
    except ValueError:
        raise ValidationError(
            f"Invalid payment_method '{method}'",
            {"allowed": [m.value for m in PaymentMethod]},
        )

    if parsed == PaymentMethod.CASH:
        return CashTender(cash_cents=cash_cents)
    if parsed == PaymentMethod.MIXED:
        return MixedTender(cash_cents=cash_cents, other_cents=other_cents)
    return OtherTender(method=parsed, cash_cents=cash_cents, other_cents=other_cents)


# =============================================================================
# VALIDATION
# =============================================================================

def _short(amount: int, total_cents: int, tolerance_cents: int) -> bool:
    return amount < total_cents - tolerance_cents


def validate_tender(tender: Tender, total_cents: int, tolerance_cents: int = PAYMENT_TOLERANCE_CENTS) -> None:
    """
    Check the tendered amounts against the sale total.

    CASH:  cash > 0 and cash >= total - tolerance
    MIXED: cash > 0, other > 0 and cash + other >= total - tolerance
    OTHER: no cash; other >= total - tolerance
    """
    if isinstance(tender, CashTender):
        if tender.cash_cents is None:
            raise PaymentMismatch("cash_tendered_cents is required for CASH payments")
        if tender.cash_cents <= 0:
            raise PaymentMismatch("cash_tendered_cents must be > 0")
        if _short(tender.cash_cents, total_cents, tolerance_cents):
            raise PaymentMismatch(
                "Cash tendered is less than the sale total",
                {"total_cents": total_cents, "cash_tendered_cents": tender.cash_cents},
            )
    elif isinstance(tender, MixedTender):
        if tender.cash_cents is None or tender.other_cents is None:
            raise PaymentMismatch("MIXED payments require cash_tendered_cents and other_tendered_cents")
        if tender.cash_cents <= 0 or tender.other_cents <= 0:
            raise PaymentMismatch("Both MIXED amounts must be > 0")
        if _short(tender.cash_cents + tender.other_cents, total_cents, tolerance_cents):
            raise PaymentMismatch(
                "Cash plus other tendered is less than the sale total",
                {
                    "total_cents": total_cents,
                    "cash_tendered_cents": tender.cash_cents,
                    "other_tendered_cents": tender.other_cents,
                },
            )
    elif isinstance(tender, OtherTender):
        if tender.cash_cents is not None:
            raise PaymentMismatch(f"{tender.method.value} payments cannot include cash_tendered_cents")
        if tender.other_cents is None:
            raise PaymentMismatch(f"other_tendered_cents is required for {tender.method.value} payments")
        if _short(tender.other_cents, total_cents, tolerance_cents):
            raise PaymentMismatch(
                "Amount tendered is less than the sale total",
                {"total_cents": total_cents, "other_tendered_cents": tender.other_cents},
            )
    else:
        raise TypeError(f"Unhandled tender variant: {type(tender).__name__}")


def settle(tender: Tender, total_cents: int) -> Settlement:
    """
    Split a validated tender into the cash leg and the change.

    MIXED: the card/other part is applied first; cash covers the rest and
    anything above that is change.
    """
    if isinstance(tender, CashTender):
        return Settlement(
            cash_amount_cents=min(tender.cash_cents, total_cents),
            change_cents=max(0, tender.cash_cents - total_cents),
        )
    if isinstance(tender, MixedTender):
        cash_leg = min(tender.cash_cents, max(0, total_cents - tender.other_cents))
        return Settlement(cash_amount_cents=cash_leg, change_cents=tender.cash_cents - cash_leg)
    if isinstance(tender, OtherTender):
        return Settlement(cash_amount_cents=0, change_cents=0)
    raise TypeError(f"Unhandled tender variant: {type(tender).__name__}")
