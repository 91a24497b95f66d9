# Overview: Audit logger; shapes per-action detail payloads and writes them through the adapter.

"""
Audit trail writes are best-effort: a failure is logged and the calling
business flow carries on. Entries snapshot the acting user's id, display
name and role at the time of the event.
"""

from __future__ import annotations

import logging

from flask import has_request_context, request

from ..extensions import datastore
from .records import to_remote_payload

logger = logging.getLogger(__name__)


def _client_ip() -> str | None:
    if not has_request_context():
        return None
    return request.remote_addr


def log_audit_event(action: str, details: dict, user: dict | None = None) -> dict | None:
    """
    Record one audit entry for `user` (default: the current actor).

    Returns the stored entry, or None when there is no actor or the write
    failed.
    """
    try:
        actor = user or datastore.get_current_user()
        if not actor:
            logger.info("Skipping %s audit entry: no authenticated user", action)
            return None
        return datastore.create_audit_entry({
            "user_id": actor.get("id"),
            "user_name": actor.get("name") or actor.get("username") or "Unknown",
            "user_role": actor.get("role") or "staff",
            "action": action,
            "details": details,
            "ip_address": _client_ip(),
        })
    except Exception:
        logger.exception("Failed to write %s audit entry", action)
        return None


def log_login(user: dict) -> dict | None:
    user_agent = request.headers.get("User-Agent", "Unknown") if has_request_context() else "Unknown"
    return log_audit_event("login", {"ipAddress": _client_ip(), "userAgent": user_agent}, user)


def log_sale(sale: dict) -> dict | None:
    items = sale.get("items") if isinstance(sale.get("items"), list) else []
    return log_audit_event("sale", {
        "saleId": sale.get("id"),
        "total": sale.get("total"),
        "itemCount": len(items),
        "items": [
            {
                "productId": item.get("productId"),
                "name": item.get("name"),
                "quantity": item.get("quantity"),
                "price": item.get("price"),
            }
            for item in items
        ],
    })


def log_inventory_add(product: dict) -> dict | None:
    return log_audit_event("inventory_add", {
        "productId": product.get("id"),
        "productName": product.get("name"),
        "category": product.get("category"),
        "price": product.get("price"),
        "stock": product.get("stock"),
    })


def log_inventory_edit(product: dict, changes: dict) -> dict | None:
    return log_audit_event("inventory_edit", {
        "productId": product.get("id"),
        "productName": product.get("name"),
        "changes": to_remote_payload(changes),
    })


def log_stock_adjustment(adjustment: dict) -> dict | None:
    return log_audit_event("stock_adjustment", {
        "productId": adjustment.get("product_id"),
        "productName": adjustment.get("product_name"),
        "quantity": adjustment.get("quantity"),
        "reason": adjustment.get("reason"),
    })


def get_audit_trail(limit: int | None = None) -> list[dict]:
    return datastore.get_audit_trail(limit)
