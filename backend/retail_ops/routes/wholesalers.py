# Overview: Flask API routes for wholesalers (admin-only CRUD).

from flask import Blueprint, request, jsonify, current_app

from ..extensions import datastore
from ..decorators import require_auth, require_admin
from ..validation import ValidationError, NotAuthenticatedError


wholesalers_bp = Blueprint("wholesalers", __name__, url_prefix="/api/wholesalers")


@wholesalers_bp.get("")
@require_auth
@require_admin
def list_wholesalers():
    return jsonify({"wholesalers": datastore.get_wholesalers()}), 200


@wholesalers_bp.post("")
@require_auth
@require_admin
def create_wholesaler_route():
    """`expectedDelivery` / `capitalSpent` are accepted as aliases."""
    payload = request.get_json(silent=True) or {}
    try:
        created = datastore.create_wholesaler(payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotAuthenticatedError as e:
        return jsonify({"error": str(e)}), 401
    except Exception:
        current_app.logger.exception("Failed to create wholesaler")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"wholesaler": created}), 201


@wholesalers_bp.route("/<wholesaler_id>", methods=["PATCH", "PUT"])
@require_auth
@require_admin
def update_wholesaler_route(wholesaler_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        updated = datastore.update_wholesaler(wholesaler_id, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update wholesaler")
        return jsonify({"error": "Internal server error"}), 500
    if updated is None:
        return jsonify({"error": "Wholesaler not found"}), 404
    return jsonify({"wholesaler": updated}), 200


@wholesalers_bp.delete("/<wholesaler_id>")
@require_auth
@require_admin
def delete_wholesaler_route(wholesaler_id: str):
    try:
        deleted = datastore.delete_wholesaler(wholesaler_id)
    except Exception:
        current_app.logger.exception("Failed to delete wholesaler")
        return jsonify({"error": "Internal server error"}), 500
    if not deleted:
        return jsonify({"error": "Wholesaler not found"}), 404
    return jsonify({"deleted": wholesaler_id}), 200
