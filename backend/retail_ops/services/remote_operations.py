# Overview: Domain operations against the hosted backend (web deployment).

"""
Remote Operations.

Same DataStore contract as the Local backend, implemented with PostgREST
calls through RemoteClient. Row-level security on the hosted side scopes
every call to the caller's access token, so authorization failures arrive
as RemoteStoreError alongside network failures.

Audit-trail methods are deliberately absent: audit writes on the hosted
backend go through the adapter's minimal insert/query path.
"""

from __future__ import annotations

import logging

from ..time_utils import local_day_bounds_utc, to_utc_z, utcnow
from ..validation import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    ValidationError,
    normalize_adjustment,
    normalize_discount,
    normalize_product,
    normalize_sale_items,
    normalize_wholesaler,
)
from .data_store import DataStore, degrade_on_failure
from .keys import new_id
from .pricing import compute_sale_totals
from .records import (
    adjustment_record,
    product_record,
    sale_record,
    to_remote_payload,
    wholesaler_record,
)
from .remote_client import RemoteClient, RemoteStoreError

logger = logging.getLogger(__name__)

NEWEST_FIRST = "created_at.desc"


class RemoteOperations(DataStore):
    backend_name = "remote"

    # Compare-and-swap retries for a stock update that lost a race
    stock_update_attempts = 5

    def __init__(self, client: RemoteClient, identity, *, default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD):
        self.client = client
        self.identity = identity
        self.default_threshold = default_threshold

    def get_current_user(self) -> dict | None:
        return self.identity.get_current_user_profile()

    def _stamped(self, fields: dict, actor: dict | None = None) -> dict:
        now = to_utc_z(utcnow())
        row = {"id": new_id(), **to_remote_payload(fields), "created_at": now}
        if actor is not None:
            row["created_by"] = actor["id"]
        return row

    # Products

    @degrade_on_failure(RemoteStoreError)
    def get_products(self) -> list[dict]:
        return [product_record(r) for r in self.client.select("products", order=NEWEST_FIRST)]

    @degrade_on_failure(RemoteStoreError, empty=None)
    def get_product_by_id(self, product_id: str) -> dict | None:
        rows = self.client.select("products", filters=[("id", "eq", product_id)], limit=1)
        return product_record(rows[0]) if rows else None

    def create_product(self, data: dict) -> dict:
        actor = self.require_actor()
        fields = normalize_product(data, partial=False, default_threshold=self.default_threshold)
        row = self._stamped(fields, actor)
        row["updated_at"] = row["created_at"]
        return product_record(self.client.insert("products", row))

    def update_product(self, product_id: str, changes: dict) -> dict | None:
        patch = to_remote_payload(normalize_product(changes, partial=True))
        patch["updated_at"] = to_utc_z(utcnow())
        rows = self.client.update("products", filters=[("id", "eq", product_id)], patch=patch)
        return product_record(rows[0]) if rows else None

    def delete_product(self, product_id: str) -> bool:
        return self.client.delete("products", filters=[("id", "eq", product_id)]) > 0

    # Wholesalers

    @degrade_on_failure(RemoteStoreError)
    def get_wholesalers(self) -> list[dict]:
        return [wholesaler_record(r) for r in self.client.select("wholesalers", order=NEWEST_FIRST)]

    def create_wholesaler(self, data: dict) -> dict:
        actor = self.require_actor()
        row = self._stamped(normalize_wholesaler(data, partial=False), actor)
        row["updated_at"] = row["created_at"]
        return wholesaler_record(self.client.insert("wholesalers", row))

    def update_wholesaler(self, wholesaler_id: str, changes: dict) -> dict | None:
        patch = to_remote_payload(normalize_wholesaler(changes, partial=True))
        patch["updated_at"] = to_utc_z(utcnow())
        rows = self.client.update("wholesalers", filters=[("id", "eq", wholesaler_id)], patch=patch)
        return wholesaler_record(rows[0]) if rows else None

    def delete_wholesaler(self, wholesaler_id: str) -> bool:
        return self.client.delete("wholesalers", filters=[("id", "eq", wholesaler_id)]) > 0

    # Sales

    @degrade_on_failure(RemoteStoreError)
    def get_sales(self) -> list[dict]:
        return [sale_record(r) for r in self.client.select("sales", order=NEWEST_FIRST)]

    def create_sale(self, data: dict) -> dict:
        actor = self.require_actor()
        if not isinstance(data, dict):
            raise ValidationError("Invalid payload")
        items = normalize_sale_items(data.get("items"))
        totals = compute_sale_totals(items, normalize_discount(data.get("discount")))
        cashier = str(data.get("user_name") or data.get("userName") or "").strip()
        row = self._stamped({"items": items, **totals})
        row["user_id"] = actor["id"]
        row["user_name"] = cashier or actor.get("name") or "Unknown"
        return sale_record(self.client.insert("sales", row))

    # Stock

    @degrade_on_failure(RemoteStoreError)
    def get_stock_adjustments(self) -> list[dict]:
        return [adjustment_record(r) for r in self.client.select("stock_adjustments", order=NEWEST_FIRST)]

    def create_stock_adjustment(self, data: dict) -> dict:
        actor = self.require_actor()
        row = self._stamped(normalize_adjustment(data), actor)
        return adjustment_record(self.client.insert("stock_adjustments", row))

    def update_product_stock(self, product_id: str, delta: int) -> bool:
        """
        Compare-and-swap on the observed stock value: the PATCH only matches
        while stock still equals what was read, so a concurrent writer makes
        it match nothing and the read is retried.
        """
        try:
            delta = int(delta)
        except (TypeError, ValueError):
            raise ValidationError("delta must be an integer")

        try:
            for _ in range(self.stock_update_attempts):
                rows = self.client.select("products", filters=[("id", "eq", product_id)], columns="id,stock", limit=1)
                if not rows:
                    logger.info("Stock change for unknown product %s", product_id)
                    return False
                current = int(rows[0].get("stock") or 0)
                new_stock = current + delta
                if new_stock < 0:
                    logger.info("Rejected stock change %+d for product %s (stock %d)", delta, product_id, current)
                    return False
                updated = self.client.update(
                    "products",
                    filters=[("id", "eq", product_id), ("stock", "eq", current)],
                    patch={"stock": new_stock, "updated_at": to_utc_z(utcnow())},
                )
                if updated:
                    return True
        except RemoteStoreError:
            logger.exception("Stock update failed for product %s", product_id)
            return False

        logger.warning("Stock change for product %s kept losing races; giving up", product_id)
        return False

    # Reporting

    @degrade_on_failure(RemoteStoreError, empty=float)
    def get_todays_revenue(self) -> float:
        start, end = local_day_bounds_utc()
        rows = self.client.select(
            "sales",
            columns="total",
            filters=[("created_at", "gte", to_utc_z(start)), ("created_at", "lte", to_utc_z(end))],
        )
        return float(sum(float(r.get("total") or 0) for r in rows))
