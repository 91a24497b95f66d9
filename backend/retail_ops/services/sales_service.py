"""
Sale completion flow.

A sale completes in independently committed steps:

1. record the sale (receipt snapshot, money fields fixed)
2. decrement stock once per line, in order, through the atomic stock update
3. write the `sale` audit entry, only when every decrement applied

Nothing is rolled back. A failure part-way leaves explicit, inspectable
state: the returned SaleOutcome lists applied and rejected lines, and
find_unreconciled_sales() lists sales that never got their audit entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..extensions import datastore
from ..validation import NotAuthenticatedError, normalize_sale_items
from .audit_service import log_sale

logger = logging.getLogger(__name__)


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class SaleOutcome:
    sale: dict
    applied: list[dict] = field(default_factory=list)
    rejected: list[dict] = field(default_factory=list)
    audit_entry: dict | None = None

    @property
    def is_consistent(self) -> bool:
        return not self.rejected

    def to_dict(self) -> dict:
        return {
            "sale": self.sale,
            "stock_applied": self.applied,
            "stock_rejected": self.rejected,
            "is_consistent": self.is_consistent,
            "audited": self.audit_entry is not None,
        }


def _validate_on_hand(items: list[dict]) -> None:
    requested: dict[str, int] = {}
    for line in items:
        requested[line["productId"]] = requested.get(line["productId"], 0) + line["quantity"]

    insufficient = []
    for product_id, qty in requested.items():
        product = datastore.get_product_by_id(product_id)
        if product is None:
            insufficient.append({"product_id": product_id, "requested_quantity": qty, "on_hand": None})
        elif product["stock"] < qty:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "on_hand": product["stock"],
            })

    if insufficient:
        raise SaleError("Insufficient stock to complete sale", details={"items": insufficient})


def complete_sale(items, discount=0, cashier_name: str | None = None) -> SaleOutcome:
    """
    Record a sale and apply its stock decrements.

    Raises NotAuthenticatedError without an actor, ValidationError for bad
    input and SaleError when stock is already short before anything is
    written. A decrement that loses a race after the sale was recorded is
    reported in SaleOutcome.rejected instead of raising.
    """
    if datastore.get_current_user() is None:
        raise NotAuthenticatedError()

    lines = normalize_sale_items(items)
    _validate_on_hand(lines)

    sale = datastore.create_sale({"items": lines, "discount": discount, "user_name": cashier_name})
    outcome = SaleOutcome(sale=sale)

    for line in sale["items"]:
        entry = {"productId": line["productId"], "quantity": line["quantity"]}
        if datastore.update_product_stock(line["productId"], -int(line["quantity"])):
            outcome.applied.append(entry)
        else:
            outcome.rejected.append(entry)

    if outcome.is_consistent:
        outcome.audit_entry = log_sale(sale)
    else:
        logger.warning(
            "Sale %s recorded but %d stock line(s) were rejected: %s",
            sale["id"], len(outcome.rejected), outcome.rejected,
        )
    return outcome


def find_unreconciled_sales() -> list[dict]:
    """
    Sales without a matching `sale` audit entry: the trace of a completion
    flow that stopped after recording the sale.

    Only sales inside the window the (capped) audit trail covers are judged.
    """
    trail = datastore.get_audit_trail()
    audited_ids = {
        entry["details"].get("saleId")
        for entry in trail
        if entry.get("action") == "sale" and isinstance(entry.get("details"), dict)
    }

    window_start = None
    if trail and len(trail) >= datastore.state().audit_limit:
        window_start = trail[-1].get("timestamp")

    unreconciled = []
    for sale in datastore.get_sales():
        if sale["id"] in audited_ids:
            continue
        if window_start and (sale.get("created_at") or "") < window_start:
            continue
        unreconciled.append(sale)
    return unreconciled
