# Overview: Flask API routes for cash sessions (caja); parses input and returns JSON responses.

"""
Cash Session API Routes

DESIGN:
- Lifecycle: open -> close (immutable once closed)
- One open session per seller and home location
- /current recomputes totals from the sales on every call

SECURITY:
- SELLER role only; a seller can only close their own session
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PosError, ValidationError
from ..models import Role
from ..services import cash_session_service
from ..time_utils import parse_filter_datetime
from ..validation import get_amount_cents, get_str, require_payload


cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


@cash_sessions_bp.post("/")
@cash_sessions_bp.post("")
@require_auth
@require_role(Role.SELLER)
def open_session_route():
    """
    Open a cash session at the seller's home location.

    Request body:
    {
        "opening_float_cents": 10000,
        "notes": "optional"
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        opening_float = get_amount_cents(data, "opening_float_cents", required=True)
        notes = get_str(data, "notes", max_length=1000)

        session = cash_session_service.open_session(g.identity, opening_float, notes)
        return jsonify({"session": session.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open cash session")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@cash_sessions_bp.get("/current")
@require_auth
@require_role(Role.SELLER)
def current_session_route():
    """Open session with live totals, or {"open": false}."""
    try:
        return jsonify(cash_session_service.current_status(g.identity)), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read current cash session")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@cash_sessions_bp.post("/<session_id>/close")
@require_auth
@require_role(Role.SELLER)
def close_session_route(session_id: str):
    """
    Close a cash session and calculate the variance.

    Request body:
    {
        "closing_amount_cents": 11573,
        "notes": "optional"
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        closing_amount = get_amount_cents(data, "closing_amount_cents", required=True)
        notes = get_str(data, "notes", max_length=1000)

        session, summary = cash_session_service.close_session(g.identity, session_id, closing_amount, notes)
        return jsonify({"session": session.to_dict(), "summary": summary}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close cash session")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@cash_sessions_bp.get("/history")
@require_auth
@require_role(Role.SELLER)
def session_history_route():
    """Query params: date_from, date_to (ISO-8601)."""
    try:
        try:
            date_from = parse_filter_datetime(request.args.get("date_from"))
            date_to = parse_filter_datetime(request.args.get("date_to"))
        except ValueError:
            raise ValidationError("date_from/date_to must be ISO-8601 dates or datetimes")

        sessions = cash_session_service.history(g.identity, date_from, date_to)
        return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list cash session history")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
