# Overview: Flask API routes for sales; parses input and returns JSON responses.

"""
Sales API Routes

DESIGN:
- POST creates and commits a sale in one call (no draft state)
- PUT /<id>/cancel reverses a COMPLETED sale once
- Sellers see their own sales; admins see every sale

SECURITY:
- Creating sales requires the SELLER role and an OPEN cash session
- Cancelling is limited to the sale's seller or an ADMIN
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PosError, ValidationError
from ..models import Role
from ..services import sales_service
from ..time_utils import parse_filter_datetime
from ..validation import coerce_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _engine() -> sales_service.SaleTransactionEngine:
    return current_app.extensions["sale_engine"]


def _query_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return coerce_int(name, raw)


def _query_datetime(name: str):
    try:
        return parse_filter_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


@sales_bp.post("/")
@sales_bp.post("")
@require_auth
@require_role(Role.SELLER)
def create_sale_route():
    """
    Register a sale.

    Request body:
    {
        "lines": [{"product_id": "...", "quantity": 2}],
        "payment_method": "CASH",            CASH | MIXED | DEBIT | CREDIT | CREDIT_CARD | QR | TRANSFER
        "cash_tendered_cents": 2000,         CASH and MIXED
        "other_tendered_cents": null,        MIXED and non-cash methods
        "client_id": null,
        "buyer_name": null,
        "origin_location_id": null           set to sell another location's stock
    }

    A 400 with code INSUFFICIENT_STOCK_SUGGEST_REMOTE lists candidate
    locations in details.candidates.
    """
    try:
        sale_request = sales_service.parse_sale_request(request.get_json(silent=True))
        sale = _engine().commit_sale(g.identity, sale_request)
        return jsonify({"sale": sale.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@sales_bp.get("/")
@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params: status, date_from, date_to, location_id (admins), page, limit
    """
    try:
        page = _query_int("page", 1)
        limit = _query_int("limit", sales_service.DEFAULT_PAGE_SIZE)
        sales, total = sales_service.list_sales(
            g.identity,
            status=request.args.get("status"),
            date_from=_query_datetime("date_from"),
            date_to=_query_datetime("date_to"),
            location_id=request.args.get("location_id"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "sales": [s.to_dict(include_lines=False) for s in sales],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@sales_bp.get("/<sale_id>")
@require_auth
def get_sale_route(sale_id: str):
    try:
        sale = sales_service.get_sale(g.identity, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read sale")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@sales_bp.put("/<sale_id>/cancel")
@require_auth
def cancel_sale_route(sale_id: str):
    """
    Cancel a COMPLETED sale: stock goes back to the sale location and
    loyalty points are reversed. A second cancel returns ALREADY_CANCELLED.
    """
    try:
        sale = _engine().cancel_sale(g.identity, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
