from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import CashSessionStatus, enum_column, id_column


class CashSession(db.Model):
    """
    Cash drawer session (caja) for one seller at one location.

    WHY: Cash accountability. Each seller counts a float into the drawer when
    the session opens and counts the drawer again when it closes; the
    difference against the cash taken in sales is the variance.

    LIFECYCLE: OPEN -> CLOSED. CLOSED is terminal and the row is never
    modified again.

    CONSTRAINT: at most one OPEN session per (seller_id, location_id),
    enforced by a partial unique index so concurrent opens cannot both win.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_one_open_per_seller_location",
            "seller_id",
            "location_id",
            unique=True,
            sqlite_where=text("status = 'OPEN'"),
            postgresql_where=text("status = 'OPEN'"),
        ),
        db.Index("ix_cash_sessions_seller_location_opened", "seller_id", "location_id", "opened_at"),
        db.CheckConstraint("opening_float_cents >= 0", name="ck_cash_sessions_float_nonneg"),
    )

    id = id_column()
    seller_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False, index=True)

    status = enum_column(CashSessionStatus, nullable=False, default=CashSessionStatus.OPEN, index=True)

    # Cash counts (all amounts in cents)
    opening_float_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_amount_cents = db.Column(db.Integer, nullable=True)   # Counted by the seller
    expected_amount_cents = db.Column(db.Integer, nullable=True)  # opening + cash legs
    variance_cents = db.Column(db.Integer, nullable=True)         # closing - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_notes = db.Column(db.Text, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)

    seller = db.relationship("User", backref=db.backref("cash_sessions", lazy=True))
    location = db.relationship("Location")

    @property
    def is_open(self) -> bool:
        return self.status == CashSessionStatus.OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "location_id": self.location_id,
            "status": self.status.value,
            "opening_float_cents": self.opening_float_cents,
            "closing_amount_cents": self.closing_amount_cents,
            "expected_amount_cents": self.expected_amount_cents,
            "variance_cents": self.variance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "opening_notes": self.opening_notes,
            "closing_notes": self.closing_notes,
        }
