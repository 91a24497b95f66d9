# Overview: Dashboard reporting computed from adapter reads (works on either backend).

from __future__ import annotations

from datetime import timedelta

from ..extensions import datastore
from ..time_utils import days_until, local_date_of, local_day_bounds_utc, parse_iso_datetime, utcnow


class ReportError(Exception):
    """Raised for invalid report parameters."""


def _in_today(sale: dict, start, end) -> bool:
    created = parse_iso_datetime(sale.get("created_at"))
    return created is not None and start <= created <= end


def dashboard_stats(*, include_revenue: bool = True) -> dict:
    """
    Headline numbers. Revenue figures are only included for callers allowed
    to see them (admin).
    """
    products = datastore.get_products()
    sales = datastore.get_sales()
    start, end = local_day_bounds_utc()
    todays_sales = [s for s in sales if _in_today(s, start, end)]

    stats = {
        "product_count": len(products),
        "transaction_count": len(sales),
        "todays_transactions": len(todays_sales),
        "todays_items_sold": sum(
            int(item.get("quantity") or 0) for s in todays_sales for item in s.get("items", [])
        ),
        "low_stock_count": len(low_stock_products(products)),
        "out_of_stock_count": len(out_of_stock_products(products)),
    }
    if include_revenue:
        stats["total_sales"] = round(sum(float(s.get("total") or 0) for s in sales), 2)
        stats["todays_revenue"] = round(datastore.get_todays_revenue(), 2)
        stats["inventory_value"] = round(
            sum(float(p.get("price") or 0) * int(p.get("stock") or 0) for p in products), 2
        )
    return stats


def low_stock_products(products: list[dict] | None = None) -> list[dict]:
    """In stock, but at or below the product's own threshold."""
    products = datastore.get_products() if products is None else products
    return [p for p in products if 0 < p["stock"] <= p["low_stock_threshold"]]


def out_of_stock_products(products: list[dict] | None = None) -> list[dict]:
    products = datastore.get_products() if products is None else products
    return [p for p in products if p["stock"] <= 0]


def expiring_products(days: int = 30, products: list[dict] | None = None) -> list[dict]:
    """Products whose expiry falls within `days` from now, already-expired ones included."""
    if days < 0:
        raise ReportError("days must be >= 0")
    products = datastore.get_products() if products is None else products
    horizon = utcnow() + timedelta(days=days)

    expiring = []
    for product in products:
        expiry = parse_iso_datetime(product.get("expiry_date"))
        if expiry is None or expiry > horizon:
            continue
        days_left = days_until(expiry)
        expiring.append({**product, "days_left": days_left, "expired": days_left < 0})
    expiring.sort(key=lambda p: p["expiry_date"])
    return expiring


def top_selling_products(limit: int = 5, sales: list[dict] | None = None) -> list[dict]:
    sales = datastore.get_sales() if sales is None else sales
    names = {p["id"]: p["name"] for p in datastore.get_products()}

    totals: dict[str, dict] = {}
    for sale in sales:
        for item in sale.get("items", []):
            product_id = str(item.get("productId"))
            row = totals.setdefault(product_id, {
                "id": product_id,
                "name": names.get(product_id) or item.get("name") or f"Product #{product_id}",
                "quantity": 0,
                "total": 0.0,
            })
            quantity = int(item.get("quantity") or 0)
            row["quantity"] += quantity
            row["total"] += float(item.get("price") or 0) * quantity

    ranked = sorted(totals.values(), key=lambda r: r["quantity"], reverse=True)
    for row in ranked:
        row["total"] = round(row["total"], 2)
    return ranked[:limit]


def daily_revenue(days: int = 30, sales: list[dict] | None = None) -> list[dict]:
    """Revenue and transaction count per local calendar day, oldest first, zero-filled."""
    if days < 1 or days > 366:
        raise ReportError("days must be between 1 and 366")
    sales = datastore.get_sales() if sales is None else sales
    today = local_date_of(utcnow())
    first = today - timedelta(days=days - 1)

    buckets = {first + timedelta(days=i): {"revenue": 0.0, "transactions": 0} for i in range(days)}
    for sale in sales:
        created = parse_iso_datetime(sale.get("created_at"))
        if created is None:
            continue
        bucket = buckets.get(local_date_of(created))
        if bucket is None:
            continue
        bucket["revenue"] += float(sale.get("total") or 0)
        bucket["transactions"] += 1

    return [
        {"date": day.isoformat(), "revenue": round(b["revenue"], 2), "transactions": b["transactions"]}
        for day, b in sorted(buckets.items())
    ]
