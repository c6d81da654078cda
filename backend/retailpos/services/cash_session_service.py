# Overview: Service-layer cash drawer sessions (caja); open, live status, close with variance, history.

"""
Cash Session Service

WHY: Cash accountability per seller and location. A seller can only sell
while their drawer session is OPEN, and closing it compares the counted
cash with what the drawer should hold.

DESIGN PRINCIPLES:
- One OPEN session per (seller, location), backed by a partial unique index
- Sessions are immutable once CLOSED
- Totals are computed from the sales on every read, never stored or cached
- expected = opening float + cash legs of COMPLETED sales
- variance = counted closing amount - expected
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    CashSessionNotFound,
    Forbidden,
    SessionAlreadyClosed,
    SessionAlreadyOpen,
    ValidationError,
)
from ..models import CashSession, CashSessionStatus, Sale, SaleStatus
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update
from .session_service import Identity

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


def _require_location(identity: Identity) -> str:
    if not identity.location_id:
        raise Forbidden("A home location is required to operate a cash session")
    return identity.location_id


def find_open_session(seller_id: str, location_id: str, *, lock: bool = False) -> CashSession | None:
    query = db.session.query(CashSession).filter_by(
        seller_id=seller_id,
        location_id=location_id,
        status=CashSessionStatus.OPEN,
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


# =============================================================================
# OPEN
# =============================================================================

def open_session(identity: Identity, opening_float_cents: int, notes: str | None = None) -> CashSession:
    """
    Open the seller's drawer at their home location.

    The existence check and the insert share one write transaction; a
    concurrent open that slips past the check still trips the partial
    unique index and is reported the same way.
    """
    location_id = _require_location(identity)
    if opening_float_cents is None or opening_float_cents < 0:
        raise ValidationError("opening_float_cents must be >= 0")

    try:
        begin_write_transaction()
        existing = find_open_session(identity.user_id, location_id, lock=True)
        if existing is not None:
            raise SessionAlreadyOpen(
                "A cash session is already open for this seller and location",
                {"cash_session_id": existing.id},
            )

        session = CashSession(
            seller_id=identity.user_id,
            location_id=location_id,
            status=CashSessionStatus.OPEN,
            opening_float_cents=opening_float_cents,
            opening_notes=notes,
            opened_at=utcnow(),
        )
        db.session.add(session)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise SessionAlreadyOpen("A cash session is already open for this seller and location")
    except Exception:
        db.session.rollback()
        raise

    logger.info("Cash session %s opened by %s at %s", session.id, identity.user_id, location_id)
    return session


# =============================================================================
# TOTALS
# =============================================================================

def session_totals(session_id: str) -> dict:
    """
    Aggregate the COMPLETED sales of a session.

    Returns:
        {
          "by_method": {"cash": 1573, "debit": 0, ...},   # sale totals per method
          "total_cents": ...,                             # all methods
          "cash_amount_cents": ...,                       # cash legs only
          "sales_count": ...,
        }
    """
    rows = (
        db.session.query(
            Sale.payment_method,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.coalesce(func.sum(Sale.cash_amount_cents), 0),
        )
        .filter(Sale.cash_session_id == session_id, Sale.status == SaleStatus.COMPLETED)
        .group_by(Sale.payment_method)
        .all()
    )

    by_method = {}
    total = 0
    cash_amount = 0
    count = 0
    for method, method_count, method_total, method_cash in rows:
        by_method[method.value.lower()] = int(method_total)
        total += int(method_total)
        cash_amount += int(method_cash)
        count += int(method_count)

    return {
        "by_method": by_method,
        "total_cents": total,
        "cash_amount_cents": cash_amount,
        "sales_count": count,
    }


def current_status(identity: Identity) -> dict:
    """Live view of the caller's open session, or {"open": False}."""
    location_id = _require_location(identity)
    session = find_open_session(identity.user_id, location_id)
    if session is None:
        return {"open": False, "session": None, "totals": None}

    totals = session_totals(session.id)
    totals["expected_amount_cents"] = session.opening_float_cents + totals["cash_amount_cents"]
    return {"open": True, "session": session.to_dict(), "totals": totals}


# =============================================================================
# CLOSE
# =============================================================================

def close_session(
    identity: Identity,
    session_id: str,
    closing_amount_cents: int,
    notes: str | None = None,
) -> tuple[CashSession, dict]:
    """
    Close a session and calculate the cash variance.

    Only the owning seller may close. Returns (session, summary) where the
    summary carries the same totals as current_status().
    """
    if closing_amount_cents is None or closing_amount_cents < 0:
        raise ValidationError("closing_amount_cents must be >= 0")

    try:
        begin_write_transaction()
        session = lock_for_update(db.session.query(CashSession).filter_by(id=session_id)).first()
        if session is None:
            raise CashSessionNotFound("Cash session not found", {"cash_session_id": session_id})
        if session.seller_id != identity.user_id:
            raise Forbidden("Only the seller who opened this cash session can close it")
        if session.status == CashSessionStatus.CLOSED:
            raise SessionAlreadyClosed("Cash session is already closed", {"cash_session_id": session_id})

        totals = session_totals(session.id)
        expected = session.opening_float_cents + totals["cash_amount_cents"]

        session.status = CashSessionStatus.CLOSED
        session.closed_at = utcnow()
        session.closing_amount_cents = closing_amount_cents
        session.expected_amount_cents = expected
        session.variance_cents = closing_amount_cents - expected
        session.closing_notes = notes
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Cash session %s closed by %s: expected=%d counted=%d variance=%d",
        session.id, identity.user_id, expected, closing_amount_cents, session.variance_cents,
    )
    summary = dict(totals)
    summary.update({
        "opening_float_cents": session.opening_float_cents,
        "expected_amount_cents": expected,
        "closing_amount_cents": closing_amount_cents,
        "variance_cents": session.variance_cents,
    })
    return session, summary


# =============================================================================
# HISTORY
# =============================================================================

def history(
    identity: Identity,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = HISTORY_LIMIT,
) -> list[CashSession]:
    """The caller's sessions at their home location, newest first."""
    location_id = _require_location(identity)
    query = db.session.query(CashSession).filter(
        CashSession.seller_id == identity.user_id,
        CashSession.location_id == location_id,
    )
    if date_from is not None:
        query = query.filter(CashSession.opened_at >= date_from)
    if date_to is not None:
        query = query.filter(CashSession.opened_at <= date_to)
    return query.order_by(CashSession.opened_at.desc()).limit(min(limit, HISTORY_LIMIT)).all()
