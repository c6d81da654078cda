# Overview: Service-layer operations for notifications; creation, visibility-scoped listing and status changes.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import NotificationNotFound, ValidationError
from ..models import Notification, NotificationKind, NotificationStatus
from ..time_utils import utcnow
from .session_service import Identity

LIST_LIMIT = 100
PENDING_LIMIT = 50


def create_notification(
    kind: NotificationKind,
    title: str,
    message: str,
    *,
    location_id: str | None = None,
    product_id: str | None = None,
    sale_id: str | None = None,
    commit: bool = True,
) -> Notification:
    notification = Notification(
        kind=NotificationKind(kind),
        title=title[:255],
        message=message,
        location_id=location_id,
        product_id=product_id,
        sale_id=sale_id,
        status=NotificationStatus.PENDING,
        created_at=utcnow(),
    )
    db.session.add(notification)
    if commit:
        db.session.commit()
    return notification


def _visible_query(identity: Identity):
    """Sellers only see their own location; admins see everything."""
    query = db.session.query(Notification)
    if not identity.is_admin:
        query = query.filter(Notification.location_id == identity.location_id)
    return query


def _parse_enum(enum_cls, value, field):
    if value is None:
        return None
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise ValidationError(f"Invalid {field} '{value}'", {"allowed": [m.value for m in enum_cls]})


def list_notifications(
    identity: Identity,
    *,
    status: str | None = None,
    kind: str | None = None,
    location_id: str | None = None,
) -> list[Notification]:
    query = _visible_query(identity)
    if identity.is_admin and location_id:
        query = query.filter(Notification.location_id == location_id)

    parsed_status = _parse_enum(NotificationStatus, status, "status")
    if parsed_status is not None:
        query = query.filter(Notification.status == parsed_status)
    parsed_kind = _parse_enum(NotificationKind, kind, "kind")
    if parsed_kind is not None:
        query = query.filter(Notification.kind == parsed_kind)

    return query.order_by(Notification.created_at.desc()).limit(LIST_LIMIT).all()


def pending_notifications(identity: Identity) -> list[Notification]:
    return (
        _visible_query(identity)
        .filter(Notification.status == NotificationStatus.PENDING)
        .order_by(Notification.created_at.desc())
        .limit(PENDING_LIMIT)
        .all()
    )


def _get_visible(identity: Identity, notification_id: str) -> Notification:
    notification = _visible_query(identity).filter(Notification.id == notification_id).first()
    if notification is None:
        raise NotificationNotFound("Notification not found", {"notification_id": notification_id})
    return notification


def mark_read(identity: Identity, notification_id: str) -> Notification:
    notification = _get_visible(identity, notification_id)
    notification.status = NotificationStatus.READ
    notification.read_at = utcnow()
    db.session.commit()
    return notification


def archive(identity: Identity, notification_id: str) -> Notification:
    notification = _get_visible(identity, notification_id)
    notification.status = NotificationStatus.ARCHIVED
    db.session.commit()
    return notification


def recent_notification_exists(
    kind: NotificationKind,
    product_id: str | None,
    location_id: str | None,
    since: datetime,
) -> bool:
    """True when a PENDING notification of this kind was raised for the pair since `since`."""
    return db.session.query(
        db.session.query(Notification.id).filter(
            Notification.kind == kind,
            Notification.product_id == product_id,
            Notification.location_id == location_id,
            Notification.status == NotificationStatus.PENDING,
            Notification.created_at >= since,
        ).exists()
    ).scalar()
