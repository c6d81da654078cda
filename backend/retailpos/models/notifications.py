from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import NotificationKind, NotificationStatus, enum_column, id_column


class Notification(db.Model):
    """
    Operational notice for a location (or for admins when location_id is NULL).

    Created by the sale engine (REMOTE_SALE) and by the alert jobs (EXPIRY,
    LOW_ROTATION). Status moves PENDING -> READ -> ARCHIVED.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        # Dedup lookups by the alert jobs
        db.Index("ix_notifications_kind_product_location", "kind", "product_id", "location_id", "created_at"),
        db.Index("ix_notifications_location_status", "location_id", "status"),
    )

    id = id_column()
    kind = enum_column(NotificationKind, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)

    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=True)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=True)

    status = enum_column(NotificationStatus, nullable=False, default=NotificationStatus.PENDING)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "sale_id": self.sale_id,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
            "read_at": to_utc_z(self.read_at),
        }


class AuditLog(db.Model):
    """
    Append-only record of who changed what.

    before_json / after_json hold JSON snapshots (usually to_dict() output).
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
    )

    id = id_column()
    user_id = db.Column(db.String(36), nullable=True, index=True)
    action = db.Column(db.String(32), nullable=False)
    entity = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(36), nullable=True)
    before_json = db.Column(db.Text, nullable=True)
    after_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "before": json.loads(self.before_json) if self.before_json else None,
            "after": json.loads(self.after_json) if self.after_json else None,
            "created_at": to_utc_z(self.created_at),
        }
