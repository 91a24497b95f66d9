# Overview: Flask API routes for stock adjustments, batch adjustments and product import.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import datastore
from ..decorators import require_auth
from ..services.inventory_service import (
    ProductNotFoundError,
    adjust_stock,
    batch_adjust_stock,
    import_products,
)
from ..validation import ValidationError, NotAuthenticatedError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/adjustments")
@require_auth
def list_adjustments():
    return jsonify({"adjustments": datastore.get_stock_adjustments()}), 200


@inventory_bp.post("/adjust")
@require_auth
def adjust_route():
    """
    Signed manual adjustment.

    Body: {"product_id": "...", "quantity": -3, "reason": "Damaged"}
    409 when the change would take stock below zero.
    """
    payload = request.get_json(silent=True) or {}
    product_id = payload.get("product_id") or payload.get("productId")
    if not product_id:
        return jsonify({"error": "product_id is required"}), 400

    try:
        adjustment = adjust_stock(product_id, payload.get("quantity"), payload.get("reason"))
    except ProductNotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotAuthenticatedError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    if adjustment is None:
        return jsonify({"error": "Insufficient stock"}), 409
    return jsonify({"adjustment": adjustment}), 201


@inventory_bp.post("/batch-adjust")
@require_auth
def batch_adjust_route():
    """
    Body: {"product_ids": [...], "mode": "add|subtract|set", "quantity": 10, "reason": "..."}
    Continues past failures; reports success_count and failed_ids.
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = batch_adjust_stock(
            payload.get("product_ids"),
            payload.get("mode"),
            payload.get("quantity"),
            payload.get("reason"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotAuthenticatedError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to batch adjust stock")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result.to_dict()), 200


@inventory_bp.post("/import")
@require_auth
def import_route():
    """Create products from already-parsed CSV rows: {"rows": [{...}, ...]}."""
    payload = request.get_json(silent=True) or {}
    try:
        result = import_products(payload.get("rows"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotAuthenticatedError as e:
        return jsonify({"error": str(e)}), 401
    return jsonify(result.to_dict()), 200
