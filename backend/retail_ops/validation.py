from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from .time_utils import coerce_datetime


# Placeholder image used by the product form when no image is supplied
DEFAULT_PRODUCT_IMAGE = "/placeholder.svg?height=100&width=100"
DEFAULT_LOW_STOCK_THRESHOLD = 5

USER_ROLES = ("admin", "staff")
AUDIT_ACTIONS = ("login", "sale", "inventory_add", "inventory_edit", "stock_adjustment")
ADJUSTMENT_MODES = ("add", "subtract", "set")


class ValidationError(ValueError):
    """400-level input problem."""


class ConstraintViolationError(ValidationError):
    """A write rejected by the storage engine (check / unique / foreign key)."""


class ConflictError(ValueError):
    """409-level business rule conflict."""


class NotAuthenticatedError(Exception):
    """A write that needs an acting user was attempted without one."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class PermissionDeniedError(Exception):
    """Raised when the acting user's role does not allow the operation."""


@dataclass(frozen=True)
class FieldPolicy:
    """
    Per-entity boundary policy:
    - writable_fields: keys copied from caller input (everything else is ignored)
    - required_on_create: keys that must be present and non-empty on create
    - aliases: alternate external key -> canonical key (legacy camelCase names)
    """
    writable_fields: frozenset
    required_on_create: frozenset = frozenset()
    aliases: tuple = ()


PRODUCT_POLICY = FieldPolicy(
    writable_fields=frozenset({
        "name", "category", "packaging", "price", "stock",
        "low_stock_threshold", "expiry_date", "image",
    }),
    required_on_create=frozenset({"name", "price"}),
    aliases=(("expiryDate", "expiry_date"), ("lowStockThreshold", "low_stock_threshold")),
)

WHOLESALER_POLICY = FieldPolicy(
    writable_fields=frozenset({
        "name", "contact", "phone", "products", "expected_delivery", "capital_spent",
    }),
    required_on_create=frozenset({"name", "contact"}),
    aliases=(("expectedDelivery", "expected_delivery"), ("capitalSpent", "capital_spent")),
)

ADJUSTMENT_POLICY = FieldPolicy(
    writable_fields=frozenset({"product_id", "product_name", "quantity", "reason"}),
    required_on_create=frozenset({"product_name", "quantity", "reason"}),
    aliases=(("productId", "product_id"), ("productName", "product_name")),
)


def _apply_aliases(payload: dict, policy: FieldPolicy) -> dict:
    """
    Fold legacy key names onto canonical ones. When both are present the
    canonical key wins unless it is empty.
    """
    out = dict(payload)
    for alias, canonical in policy.aliases:
        if alias not in out:
            continue
        value = out.pop(alias)
        if out.get(canonical) in (None, ""):
            out[canonical] = value
    return out


def _as_number(key: str, value: Any, *, minimum: float | None = 0) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if number != number:  # NaN
        raise ValidationError(f"{key} must be a number")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{key} must be >= {minimum:g}")
    return number


def coerce_int(key: str, value: Any, *, minimum: int | None = 0) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{key} must be an integer, not a decimal")
        value = int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "." in stripped or "e" in stripped.lower():
            raise ValidationError(f"{key} must be an integer")
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return value


def _as_datetime(key: str, value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, (str, date, datetime)):
        raise ValidationError(f"{key} must be an ISO-8601 date")
    try:
        return coerce_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date")


def coerce_text(key: str, value: Any, *, required: bool) -> str:
    text = "" if value is None else str(value).strip()
    if required and not text:
        raise ValidationError(f"{key} cannot be blank")
    return text


def _require(payload: dict, policy: FieldPolicy) -> None:
    missing = sorted(
        f for f in policy.required_on_create
        if payload.get(f) is None or (isinstance(payload.get(f), str) and not payload[f].strip())
    )
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _writable(payload: dict | None, policy: FieldPolicy) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")
    payload = _apply_aliases(payload, policy)
    return {k: v for k, v in payload.items() if k in policy.writable_fields}


def normalize_product(
    payload: dict | None,
    *,
    partial: bool,
    default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
) -> dict:
    """
    Clean product input for either backend.

    partial=False: create semantics (defaults filled in, required fields enforced)
    partial=True: patch semantics (only supplied keys are returned)
    """
    data = _writable(payload, PRODUCT_POLICY)
    if not partial:
        _require(data, PRODUCT_POLICY)

    patch: dict = {}
    for key, value in data.items():
        if key == "name":
            patch[key] = coerce_text(key, value, required=True)
        elif key in ("category", "packaging", "image"):
            patch[key] = coerce_text(key, value, required=False) or None
        elif key == "price":
            patch[key] = _as_number(key, value)
        elif key in ("stock", "low_stock_threshold"):
            if value in (None, "") and not partial:
                continue
            patch[key] = coerce_int(key, value)
        elif key == "expiry_date":
            patch[key] = _as_datetime(key, value)

    if partial:
        # None means "clear" only for the nullable columns
        for key in ("category", "packaging"):
            if key in patch and patch[key] is None:
                raise ValidationError(f"{key} cannot be blank")
        return patch

    patch.setdefault("stock", 0)
    if patch.get("low_stock_threshold") is None:
        patch["low_stock_threshold"] = default_threshold
    patch["category"] = patch.get("category") or "General"
    patch["packaging"] = patch.get("packaging") or "Unit"
    patch["image"] = patch.get("image") or DEFAULT_PRODUCT_IMAGE
    patch.setdefault("expiry_date", None)
    return patch


def normalize_wholesaler(payload: dict | None, *, partial: bool) -> dict:
    data = _writable(payload, WHOLESALER_POLICY)
    if not partial:
        _require(data, WHOLESALER_POLICY)

    patch: dict = {}
    for key, value in data.items():
        if key in ("name", "contact"):
            patch[key] = coerce_text(key, value, required=True)
        elif key == "phone":
            patch[key] = coerce_text(key, value, required=False)
        elif key == "products":
            if value is None:
                value = []
            if not isinstance(value, (list, tuple)):
                raise ValidationError("products must be a list of names")
            patch[key] = [str(v) for v in value]
        elif key == "expected_delivery":
            patch[key] = _as_datetime(key, value)
        elif key == "capital_spent":
            patch[key] = _as_number(key, value)

    if partial:
        return patch

    patch.setdefault("phone", "")
    patch.setdefault("products", [])
    patch.setdefault("expected_delivery", None)
    patch.setdefault("capital_spent", 0.0)
    return patch


def normalize_adjustment(payload: dict | None) -> dict:
    data = _writable(payload, ADJUSTMENT_POLICY)
    _require(data, ADJUSTMENT_POLICY)
    return {
        "product_id": data.get("product_id") or None,
        "product_name": coerce_text("product_name", data["product_name"], required=True),
        "quantity": coerce_int("quantity", data["quantity"], minimum=None),
        "reason": coerce_text("reason", data["reason"], required=True),
    }


def normalize_sale_items(items: Any) -> list[dict]:
    """
    Validate sale line items and return snapshot dicts
    ({productId, name, price, quantity, category?, packaging?}).
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("A sale needs at least one item")

    lines: list[dict] = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("productId", raw.get("product_id"))
        if product_id in (None, ""):
            raise ValidationError(f"items[{index}].productId is required")
        line = {
            "productId": str(product_id),
            "name": coerce_text(f"items[{index}].name", raw.get("name"), required=True),
            "price": _as_number(f"items[{index}].price", raw.get("price")),
            "quantity": coerce_int(f"items[{index}].quantity", raw.get("quantity"), minimum=1),
        }
        for snapshot in ("category", "packaging"):
            if raw.get(snapshot) is not None:
                line[snapshot] = str(raw[snapshot])
        lines.append(line)
    return lines


def normalize_stock_updates(updates: Any) -> list[tuple[str, int]]:
    """
    Validate bulk stock entries ({productId, delta} or the legacy
    {productId, quantityChange}) into (product_id, delta) pairs.

    The whole batch is checked before any entry is applied.
    """
    if not isinstance(updates, (list, tuple)):
        raise ValidationError("Stock updates must be a list")

    pairs: list[tuple[str, int]] = []
    for index, raw in enumerate(updates):
        if not isinstance(raw, dict):
            raise ValidationError(f"updates[{index}] must be an object")
        product_id = raw.get("productId", raw.get("product_id"))
        if product_id in (None, ""):
            raise ValidationError(f"updates[{index}].productId is required")
        delta = raw.get("delta", raw.get("quantityChange"))
        if delta is None:
            raise ValidationError(f"updates[{index}].delta is required")
        pairs.append((str(product_id), coerce_int(f"updates[{index}].delta", delta, minimum=None)))
    return pairs


def normalize_discount(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    discount = _as_number("discount", value)
    if discount > 100:
        raise ValidationError("discount must be <= 100")
    return discount


def normalize_audit_entry(entry: dict | None) -> dict:
    if not isinstance(entry, dict):
        raise ValidationError("Invalid audit entry")
    action = entry.get("action")
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown audit action: {action}")
    return {
        "user_id": entry.get("user_id") or None,
        "user_name": coerce_text("user_name", entry.get("user_name"), required=True),
        "user_role": coerce_text("user_role", entry.get("user_role"), required=True),
        "action": action,
        "details": entry.get("details") if entry.get("details") is not None else {},
        "ip_address": entry.get("ip_address") or None,
    }
