# Overview: Coerce hosted-backend rows into the same dict shapes the Local Store returns.

"""
PostgREST returns numerics as numbers or strings depending on column type,
timestamps with offsets, and nullable JSON columns. These helpers make a
remote row indistinguishable from `Model.to_dict()` output.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from ..time_utils import parse_iso_datetime, to_utc_z

logger = logging.getLogger(__name__)


def _float(value, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Non-numeric value %r in remote row", value)
        return default


def _int(value, default: int = 0) -> int:
    return int(_float(value, default))


def _timestamp(value):
    if value is None or value == "":
        return None
    try:
        return to_utc_z(parse_iso_datetime(str(value)))
    except ValueError:
        logger.warning("Unparseable timestamp %r in remote row", value)
        return None


def _list(value) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def profile_record(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "username": row.get("username") or "",
        "name": row.get("name") or row.get("username") or "",
        "role": row.get("role") or "staff",
        "created_at": _timestamp(row.get("created_at")),
        "updated_at": _timestamp(row.get("updated_at")),
    }


def product_record(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "category": row.get("category"),
        "packaging": row.get("packaging"),
        "price": _float(row.get("price")),
        "stock": _int(row.get("stock")),
        "low_stock_threshold": _int(row.get("low_stock_threshold")),
        "expiry_date": _timestamp(row.get("expiry_date")),
        "image": row.get("image"),
        "created_at": _timestamp(row.get("created_at")),
        "updated_at": _timestamp(row.get("updated_at")),
        "created_by": row.get("created_by"),
    }


def wholesaler_record(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "contact": row.get("contact"),
        "phone": row.get("phone") or "",
        "products": [str(p) for p in _list(row.get("products"))],
        "expected_delivery": _timestamp(row.get("expected_delivery")),
        "capital_spent": _float(row.get("capital_spent")),
        "created_at": _timestamp(row.get("created_at")),
        "updated_at": _timestamp(row.get("updated_at")),
        "created_by": row.get("created_by"),
    }


def sale_record(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "items": _list(row.get("items")),
        "subtotal": _float(row.get("subtotal")),
        "discount": _float(row.get("discount")),
        "discount_amount": _float(row.get("discount_amount")),
        "total": _float(row.get("total")),
        "created_at": _timestamp(row.get("created_at")),
        "user_id": row.get("user_id"),
        "user_name": row.get("user_name") or "Unknown",
    }


def adjustment_record(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "product_id": row.get("product_id"),
        "product_name": row.get("product_name"),
        "quantity": _int(row.get("quantity")),
        "reason": row.get("reason"),
        "created_at": _timestamp(row.get("created_at")),
        "created_by": row.get("created_by"),
    }


def audit_record(row: dict) -> dict:
    details = row.get("details")
    return {
        "id": row.get("id"),
        "timestamp": _timestamp(row.get("timestamp")),
        "user_id": row.get("user_id"),
        "user_name": row.get("user_name"),
        "user_role": row.get("user_role"),
        "action": row.get("action"),
        "details": details if isinstance(details, dict) else {},
        "ip_address": row.get("ip_address"),
        "created_at": _timestamp(row.get("created_at")),
    }


def to_remote_payload(patch: dict) -> dict:
    """Serialize datetimes for the wire; everything else is JSON-native already."""
    out = {}
    for key, value in patch.items():
        if isinstance(value, datetime):
            out[key] = to_utc_z(value)
        elif isinstance(value, date):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out
