# Overview: The DataStore contract both backends implement, plus shared helpers.

"""
DataStore is the strategy interface behind the data-store adapter. The
Local and Remote implementations expose the same method names with the
same argument and return shapes (plain dicts in `Model.to_dict()` form),
so callers never know which backend answered.

Return-shape rules shared by both backends:
- list reads return [] on backend failure (logged), never raise
- get_product_by_id returns None when missing or on failure
- update_product_stock / update_product_stocks return booleans;
  insufficient stock is False, not an exception
- writes raise ValidationError / ConstraintViolationError /
  NotAuthenticatedError
"""

from __future__ import annotations

import abc
import logging
from functools import wraps

from ..validation import NotAuthenticatedError, normalize_stock_updates

logger = logging.getLogger(__name__)


def degrade_on_failure(errors, empty=list):
    """
    Read-side policy: a backend failure degrades to an empty result.

    `empty` is a factory for the fallback value (None returns None).
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except errors:
                logger.exception(
                    "%s.%s failed; returning empty result",
                    type(self).__name__, func.__name__,
                )
                self.after_read_failure()
                return empty() if empty is not None else None
        return wrapper
    return decorator


class DataStore(abc.ABC):
    backend_name = "abstract"

    def after_read_failure(self) -> None:
        """Hook for backends that must reset state after a failed read."""

    def require_actor(self) -> dict:
        actor = self.get_current_user()
        if actor is None:
            raise NotAuthenticatedError()
        return actor

    # Products
    @abc.abstractmethod
    def get_products(self) -> list[dict]: ...

    @abc.abstractmethod
    def get_product_by_id(self, product_id: str) -> dict | None: ...

    @abc.abstractmethod
    def create_product(self, data: dict) -> dict: ...

    @abc.abstractmethod
    def update_product(self, product_id: str, changes: dict) -> dict | None: ...

    @abc.abstractmethod
    def delete_product(self, product_id: str) -> bool: ...

    # Wholesalers
    @abc.abstractmethod
    def get_wholesalers(self) -> list[dict]: ...

    @abc.abstractmethod
    def create_wholesaler(self, data: dict) -> dict: ...

    @abc.abstractmethod
    def update_wholesaler(self, wholesaler_id: str, changes: dict) -> dict | None: ...

    @abc.abstractmethod
    def delete_wholesaler(self, wholesaler_id: str) -> bool: ...

    # Sales
    @abc.abstractmethod
    def get_sales(self) -> list[dict]: ...

    @abc.abstractmethod
    def create_sale(self, data: dict) -> dict: ...

    # Stock
    @abc.abstractmethod
    def get_stock_adjustments(self) -> list[dict]: ...

    @abc.abstractmethod
    def create_stock_adjustment(self, data: dict) -> dict: ...

    @abc.abstractmethod
    def update_product_stock(self, product_id: str, delta: int) -> bool: ...

    def update_product_stocks(self, updates) -> bool:
        """
        Apply each {productId, delta} independently, in order.

        A malformed batch (missing delta, non-integer) raises ValidationError
        before anything is applied. Otherwise continues past failures and
        never rolls back: True only when every entry applied.
        """
        all_applied = True
        for product_id, delta in normalize_stock_updates(updates):
            if not self.update_product_stock(product_id, delta):
                all_applied = False
        return all_applied

    # Identity
    @abc.abstractmethod
    def get_current_user(self) -> dict | None: ...

    def is_admin(self) -> bool:
        user = self.get_current_user()
        return bool(user and user.get("role") == "admin")

    # Reporting
    @abc.abstractmethod
    def get_todays_revenue(self) -> float: ...
