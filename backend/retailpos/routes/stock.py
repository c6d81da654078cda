# Overview: Flask API routes for stock levels and manual stock movements; parses input and returns JSON responses.

"""
Stock API Routes

DESIGN:
- PUT /movements applies IN / OUT / ADJUST at the caller's home location
- OUT never drives a row below zero (400 INSUFFICIENT_STOCK instead)
- Every movement and minimum change is audited

SECURITY:
- Sellers read and change only their home location
- Admins read every location and can change any minimum
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import PosError
from ..services import stock_service
from ..validation import get_int, get_str, require_payload


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _broadcaster():
    return current_app.extensions["sale_engine"].broadcaster


@stock_bp.get("/")
@stock_bp.get("")
@require_auth
def list_stock_route():
    """Query params: location_id (admins only), product_id, low=true."""
    try:
        rows = stock_service.list_stock(
            g.identity,
            location_id=request.args.get("location_id"),
            product_id=request.args.get("product_id"),
            low_only=request.args.get("low", "").lower() == "true",
        )
        return jsonify({"stock": [r.to_dict(include_names=True) for r in rows]}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@stock_bp.get("/<product_id>/<location_id>")
@require_auth
def get_stock_route(product_id: str, location_id: str):
    try:
        row = stock_service.get_stock(g.identity, product_id, location_id)
        return jsonify({"stock": row.to_dict(include_names=True)}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read stock")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@stock_bp.put("/movements")
@require_auth
def adjust_stock_route():
    """
    Apply a manual stock movement at the caller's home location.

    Request body:
    {
        "product_id": "...",
        "movement": "IN",          IN | OUT | ADJUST
        "quantity": 12,            ADJUST sets the counted quantity
        "reason": "optional"
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        product_id = get_str(data, "product_id", required=True, max_length=36)
        movement = get_str(data, "movement", required=True, max_length=16)
        quantity = get_int(data, "quantity", required=True)
        reason = get_str(data, "reason", max_length=255)

        row = stock_service.adjust_stock(
            g.identity,
            product_id,
            movement,
            quantity,
            reason=reason,
            broadcaster=_broadcaster(),
        )
        return jsonify({"stock": row.to_dict(include_names=True)}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to move stock")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@stock_bp.put("/<product_id>/<location_id>/minimum")
@require_auth
def set_min_quantity_route(product_id: str, location_id: str):
    """Request body: {"min_quantity": 5}"""
    try:
        data = require_payload(request.get_json(silent=True))
        min_quantity = get_int(data, "min_quantity", required=True, minimum=0)

        row = stock_service.set_min_quantity(g.identity, product_id, location_id, min_quantity)
        return jsonify({"stock": row.to_dict(include_names=True)}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set minimum stock")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
