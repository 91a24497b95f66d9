# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import datastore
from ..decorators import require_auth
from ..services.sales_service import SaleError, complete_sale
from ..validation import ValidationError, NotAuthenticatedError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales():
    return jsonify({"sales": datastore.get_sales()}), 200


@sales_bp.get("/<sale_id>")
@require_auth
def get_sale(sale_id: str):
    """Receipt lookup."""
    for sale in datastore.get_sales():
        if sale["id"] == sale_id:
            return jsonify({"sale": sale}), 200
    return jsonify({"error": "Sale not found"}), 404


@sales_bp.post("")
@require_auth
def complete_sale_route():
    """
    Complete a sale.

    Body: {"items": [{"productId", "name", "price", "quantity", ...}],
           "discount": 0-100, "user_name": "optional cashier name"}

    201 with the outcome. `is_consistent` is false when a stock line was
    rejected after the sale was recorded (the sale is kept).
    """
    payload = request.get_json(silent=True) or {}
    try:
        outcome = complete_sale(
            payload.get("items"),
            discount=payload.get("discount", 0),
            cashier_name=payload.get("user_name") or payload.get("userName"),
        )
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotAuthenticatedError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(outcome.to_dict()), 201
