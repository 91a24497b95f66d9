# backend/retail_ops/routes/system.py
"""
System health and backend-selection endpoints.

/health reports which backend answers this request and, when the Local
Store is in use, whether it responds.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db, datastore
from ..services.local_store import get_local_store
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_local_store_health() -> dict:
    """Ping the Local Store. Only meaningful when it has been opened."""
    store = get_local_store(current_app)
    if not store.is_open:
        return {"status": "not_open"}

    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "path": store.path}
    except Exception:
        current_app.logger.exception("Local Store health check failed")
        return {"status": "unhealthy", "error": "Database error"}


@system_bp.get("/health")
def health():
    return jsonify({
        "status": "ok",
        "time": to_utc_z(utcnow()),
        "backend": datastore.backend_name,
        "local_store": check_local_store_health(),
    }), 200


@system_bp.get("/api/system/backend")
def backend_info():
    state = datastore.state()
    return jsonify({
        "backend": datastore.backend_name,
        "runtime_mode": current_app.config.get("RUNTIME_MODE"),
        "desktop_runtime": state.is_desktop_runtime(),
        "local_fallback": state.local_failed,
    }), 200
