"""
Sale completion flow: record, decrement, audit.
"""

import pytest

from retail_ops.extensions import datastore
from retail_ops.services.database_adapter import DatabaseAdapter
from retail_ops.services.sales_service import SaleError, complete_sale, find_unreconciled_sales
from retail_ops.validation import NotAuthenticatedError, ValidationError


def _product(stock=10, price=2.5, name="Soap"):
    return datastore.create_product({"name": name, "price": price, "stock": stock})


def _line(product, quantity):
    return {"productId": product["id"], "name": product["name"], "price": product["price"], "quantity": quantity}


@pytest.mark.usefixtures("as_admin")
class TestCompleteSale:
    def test_records_decrements_and_audits(self):
        product = _product(stock=10)
        outcome = complete_sale([_line(product, 3)])

        assert outcome.is_consistent
        assert outcome.applied == [{"productId": product["id"], "quantity": 3}]
        assert datastore.get_product_by_id(product["id"])["stock"] == 7
        assert outcome.sale["total"] == 7.5

        entry = outcome.audit_entry
        assert entry["action"] == "sale"
        assert entry["details"]["saleId"] == outcome.sale["id"]
        assert entry["details"]["itemCount"] == 1
        assert entry["user_role"] == "admin"

    def test_second_oversized_sale_rejected_before_writing(self):
        product = _product(stock=10)
        complete_sale([_line(product, 6)])

        with pytest.raises(SaleError) as excinfo:
            complete_sale([_line(product, 6)])

        assert excinfo.value.details["items"] == [
            {"product_id": product["id"], "requested_quantity": 6, "on_hand": 4}
        ]
        assert len(datastore.get_sales()) == 1
        assert datastore.get_product_by_id(product["id"])["stock"] == 4

    def test_repeated_lines_are_summed_for_the_check(self):
        product = _product(stock=5)
        with pytest.raises(SaleError):
            complete_sale([_line(product, 3), _line(product, 3)])

    def test_unknown_product_rejected(self):
        with pytest.raises(SaleError):
            complete_sale([{"productId": "missing", "name": "Ghost", "price": 1, "quantity": 1}])

    def test_discount_and_cashier(self):
        product = _product(price=33.33)
        outcome = complete_sale([_line(product, 3)], discount=15, cashier_name="Till 1")
        assert outcome.sale["total"] == 84.99
        assert outcome.sale["user_name"] == "Till 1"

    def test_bad_items_rejected(self):
        with pytest.raises(ValidationError):
            complete_sale([])

    def test_lost_decrement_reported_and_not_audited(self, monkeypatch):
        product = _product(stock=10)
        monkeypatch.setattr(DatabaseAdapter, "update_product_stock", lambda self, pid, delta: False)

        outcome = complete_sale([_line(product, 2)])

        assert not outcome.is_consistent
        assert outcome.rejected == [{"productId": product["id"], "quantity": 2}]
        assert outcome.audit_entry is None
        assert outcome.to_dict()["audited"] is False
        assert [s["id"] for s in find_unreconciled_sales()] == [outcome.sale["id"]]


class TestReconciliation:
    def test_completed_sales_are_reconciled(self, as_admin):
        product = _product()
        complete_sale([_line(product, 1)])
        assert find_unreconciled_sales() == []

    def test_requires_actor(self, acting_as):
        with acting_as(None):
            with pytest.raises(NotAuthenticatedError):
                complete_sale([{"productId": "x", "name": "X", "price": 1, "quantity": 1}])
