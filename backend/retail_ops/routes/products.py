# Overview: Flask API routes for products; parses input and returns JSON responses.

"""
Product management routes.

Reads and creates/edits need an authenticated actor; deletes are admin-only.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import datastore
from ..decorators import require_auth, require_admin
from ..services.inventory_service import (
    ProductNotFoundError,
    add_product,
    batch_delete_products,
    edit_product,
)
from ..validation import ValidationError, NotAuthenticatedError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    return jsonify({"products": datastore.get_products()}), 200


@products_bp.get("/<product_id>")
@require_auth
def get_product(product_id: str):
    product = datastore.get_product_by_id(product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product}), 200


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Create a product. Missing category/packaging/threshold/image get the
    standard defaults; `expiryDate` is accepted as an alias of `expiry_date`.
    """
    payload = request.get_json(silent=True) or {}
    try:
        created = add_product(payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotAuthenticatedError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"product": created}), 201


@products_bp.route("/<product_id>", methods=["PATCH", "PUT"])
@require_auth
def update_product_route(product_id: str):
    """Partial update: only supplied fields change."""
    payload = request.get_json(silent=True) or {}
    try:
        updated = edit_product(product_id, payload)
    except ProductNotFoundError:
        return jsonify({"error": "Product not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"product": updated}), 200


@products_bp.delete("/<product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: str):
    try:
        deleted = datastore.delete_product(product_id)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
    if not deleted:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"deleted": product_id}), 200


@products_bp.post("/batch-delete")
@require_auth
@require_admin
def batch_delete_route():
    payload = request.get_json(silent=True) or {}
    try:
        result = batch_delete_products(payload.get("product_ids"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result.to_dict()), 200
