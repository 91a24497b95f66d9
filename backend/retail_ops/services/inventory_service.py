# Overview: Inventory flows built on the adapter: manual/batch stock adjustments, product edits, import.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..extensions import datastore
from ..validation import (
    ADJUSTMENT_MODES,
    NotAuthenticatedError,
    ValidationError,
    coerce_int,
    coerce_text,
)
from .audit_service import log_inventory_add, log_inventory_edit, log_stock_adjustment

logger = logging.getLogger(__name__)


class ProductNotFoundError(LookupError):
    """Raised when an inventory flow references a missing product."""


@dataclass
class BatchResult:
    """Continue-and-report result: earlier successes are never rolled back."""
    success_count: int = 0
    failed_ids: list = field(default_factory=list)
    results: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + len(self.failed_ids)

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "failed_ids": list(self.failed_ids),
            "results": list(self.results),
        }


def _require_actor() -> dict:
    actor = datastore.get_current_user()
    if actor is None:
        raise NotAuthenticatedError()
    return actor


def _apply_adjustment(product: dict, delta: int, reason: str) -> dict | None:
    """Stock update, then ledger entry, then audit. Two separate commits."""
    if not datastore.update_product_stock(product["id"], delta):
        return None
    adjustment = datastore.create_stock_adjustment({
        "product_id": product["id"],
        "product_name": product["name"],
        "quantity": delta,
        "reason": reason,
    })
    log_stock_adjustment(adjustment)
    return adjustment


def adjust_stock(product_id: str, quantity, reason) -> dict | None:
    """
    Manual signed adjustment of one product.

    Returns the ledger entry, or None when the change was rejected
    (insufficient stock).
    """
    _require_actor()
    delta = coerce_int("quantity", quantity, minimum=None)
    reason = coerce_text("reason", reason, required=True)

    product = datastore.get_product_by_id(product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return _apply_adjustment(product, delta, reason)


def _target_stock(mode: str, current: int, quantity: int) -> int:
    if mode == "add":
        return current + quantity
    if mode == "subtract":
        return max(0, current - quantity)
    return quantity


def batch_adjust_stock(product_ids, mode: str, quantity, reason) -> BatchResult:
    """
    Apply one adjustment to many products.

    add: stock + quantity; subtract: max(0, stock - quantity); set: quantity.
    The ledger records the delta actually applied (subtract 10 from 4 is -4).
    """
    _require_actor()
    if mode not in ADJUSTMENT_MODES:
        raise ValidationError(f"mode must be one of {', '.join(ADJUSTMENT_MODES)}")
    quantity = coerce_int("quantity", quantity)
    reason = coerce_text("reason", reason, required=True)
    if not isinstance(product_ids, (list, tuple)):
        raise ValidationError("product_ids must be a list")

    result = BatchResult()
    for product_id in product_ids:
        product = datastore.get_product_by_id(product_id)
        if product is None:
            result.failed_ids.append(product_id)
            continue
        current = int(product["stock"])
        delta = _target_stock(mode, current, quantity) - current
        try:
            adjustment = _apply_adjustment(product, delta, reason)
        except Exception:
            logger.exception("Batch adjustment failed for product %s", product_id)
            adjustment = None
        if adjustment is None:
            result.failed_ids.append(product_id)
        else:
            result.success_count += 1
            result.results.append(adjustment)
    return result


def add_product(data: dict) -> dict:
    product = datastore.create_product(data)
    log_inventory_add(product)
    return product


def edit_product(product_id: str, changes: dict) -> dict:
    product = datastore.update_product(product_id, changes)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found")
    log_inventory_edit(product, changes if isinstance(changes, dict) else {})
    return product


def import_products(rows) -> BatchResult:
    """
    Create products from already-parsed CSV rows. Rows without a threshold
    get the standard default; a bad row is reported and skipped.
    """
    if not isinstance(rows, (list, tuple)):
        raise ValidationError("rows must be a list")
    _require_actor()

    result = BatchResult()
    for index, row in enumerate(rows):
        try:
            product = add_product(row)
        except (ValidationError, NotAuthenticatedError) as exc:
            logger.info("Skipping import row %d: %s", index, exc)
            result.failed_ids.append(index)
            continue
        except Exception:
            logger.exception("Import row %d failed", index)
            result.failed_ids.append(index)
            continue
        result.success_count += 1
        result.results.append(product)
    return result


def batch_delete_products(product_ids) -> BatchResult:
    if not isinstance(product_ids, (list, tuple)):
        raise ValidationError("product_ids must be a list")

    result = BatchResult()
    for product_id in product_ids:
        try:
            deleted = datastore.delete_product(product_id)
        except Exception:
            logger.exception("Delete failed for product %s", product_id)
            deleted = False
        if deleted:
            result.success_count += 1
            result.results.append(product_id)
        else:
            result.failed_ids.append(product_id)
    return result
