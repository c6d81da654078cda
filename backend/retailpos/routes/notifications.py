# Overview: Flask API routes for notifications; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import PosError
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@notifications_bp.get("/")
@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    Query params: status, kind, location_id (admins only).

    Sellers only ever see notifications for their own location.
    """
    try:
        notifications = notification_service.list_notifications(
            g.identity,
            status=request.args.get("status"),
            kind=request.args.get("kind"),
            location_id=request.args.get("location_id"),
        )
        return jsonify({"notifications": [n.to_dict() for n in notifications]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _internal_error("Failed to list notifications")


@notifications_bp.get("/pending")
@require_auth
def pending_notifications_route():
    try:
        notifications = notification_service.pending_notifications(g.identity)
        return jsonify({"notifications": [n.to_dict() for n in notifications]}), 200
    except Exception:
        return _internal_error("Failed to list pending notifications")


@notifications_bp.put("/<notification_id>/read")
@require_auth
def mark_read_route(notification_id: str):
    try:
        notification = notification_service.mark_read(g.identity, notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _internal_error("Failed to mark notification read")


@notifications_bp.put("/<notification_id>/archive")
@require_auth
def archive_route(notification_id: str):
    try:
        notification = notification_service.archive(g.identity, notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _internal_error("Failed to archive notification")
