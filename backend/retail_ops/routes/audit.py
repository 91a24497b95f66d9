# Overview: Flask API route for reading the audit trail (admin-only).

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_admin
from ..services.audit_service import get_audit_trail


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
@require_admin
def list_audit_trail():
    """Newest first; never more than AUDIT_TRAIL_LIMIT entries."""
    limit = request.args.get("limit", type=int)
    action = request.args.get("action")
    entries = get_audit_trail(limit)
    if action:
        entries = [e for e in entries if e.get("action") == action]
    return jsonify({"entries": entries}), 200
