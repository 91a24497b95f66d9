# Overview: Sale money arithmetic shared by both backends.

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value))


def compute_sale_totals(items: list[dict], discount: float) -> dict:
    """
    Derive the three money fields of a sale from its line items.

    discount_amount = subtotal * discount / 100, rounded half-up to cents;
    total = subtotal - discount_amount. The values are fixed at creation
    and never recomputed.
    """
    subtotal = sum((_money(line["price"]) * int(line["quantity"]) for line in items), Decimal("0"))
    subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)
    discount_amount = (subtotal * _money(discount) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    total = subtotal - discount_amount
    return {
        "subtotal": float(subtotal),
        "discount": float(discount),
        "discount_amount": float(discount_amount),
        "total": float(total),
    }
