"""
Local Operations behaviour, called through the adapter from a desktop
request context (so every call is answered by the Local Store).
"""

from datetime import timedelta

import pytest

from retail_ops.extensions import datastore, db
from retail_ops.models import AuditEntry, Product, Sale, User
from retail_ops.time_utils import utcnow
from retail_ops.validation import ConstraintViolationError, NotAuthenticatedError, ValidationError

from conftest import ADMIN_ID, ADMIN_TOKEN, STAFF_TOKEN, _build_app, auth_headers


def make_product(**overrides):
    data = {"name": "Rice 5kg", "category": "Grains", "packaging": "Bag", "price": 12.5, "stock": 10}
    data.update(overrides)
    return datastore.create_product(data)


@pytest.mark.usefixtures("as_admin")
class TestProducts:
    def test_backend_is_local(self):
        assert datastore.backend_name == "local"

    def test_create_fills_defaults(self):
        product = datastore.create_product({"name": "Salt", "price": 1})
        assert product["stock"] == 0
        assert product["low_stock_threshold"] == 5
        assert product["category"] == "General"
        assert product["packaging"] == "Unit"
        assert product["image"]
        assert product["created_by"] == ADMIN_ID

    def test_explicit_threshold_kept(self):
        assert make_product(low_stock_threshold=2)["low_stock_threshold"] == 2

    def test_create_then_read_back(self):
        product = make_product()
        fetched = datastore.get_product_by_id(product["id"])
        assert fetched == product

    def test_missing_product_is_none(self):
        assert datastore.get_product_by_id("no-such-id") is None

    def test_newest_first(self):
        older = make_product(name="Older")
        db.session.get(Product, older["id"]).created_at = utcnow() - timedelta(hours=1)
        db.session.commit()
        newer = make_product(name="Newer")
        ids = [p["id"] for p in datastore.get_products()]
        assert ids.index(newer["id"]) < ids.index(older["id"])

    def test_partial_update_touches_only_given_fields(self):
        product = make_product()
        updated = datastore.update_product(product["id"], {"price": 15})
        assert updated["price"] == 15.0
        assert updated["name"] == product["name"]
        assert updated["stock"] == product["stock"]

    def test_camelcase_date_alias_accepted(self):
        product = make_product(expiryDate="2030-06-01")
        assert product["expiry_date"] == "2030-06-01T00:00:00Z"

    def test_update_missing_returns_none(self):
        assert datastore.update_product("no-such-id", {"price": 1}) is None

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            make_product(price=-1)

    def test_missing_name_rejected(self):
        with pytest.raises(ValidationError):
            datastore.create_product({"price": 1})

    def test_delete(self):
        product = make_product()
        assert datastore.delete_product(product["id"]) is True
        assert datastore.get_product_by_id(product["id"]) is None
        assert datastore.delete_product(product["id"]) is False


@pytest.mark.usefixtures("as_admin")
class TestStockUpdates:
    def test_delta_applied(self):
        product = make_product(stock=10)
        assert datastore.update_product_stock(product["id"], -3) is True
        assert datastore.get_product_by_id(product["id"])["stock"] == 7

    def test_overdraw_rejected_and_stock_unchanged(self):
        product = make_product(stock=2)
        assert datastore.update_product_stock(product["id"], -3) is False
        assert datastore.get_product_by_id(product["id"])["stock"] == 2

    def test_unknown_product_rejected(self):
        assert datastore.update_product_stock("no-such-id", 1) is False

    def test_draw_to_exactly_zero(self):
        product = make_product(stock=4)
        assert datastore.update_product_stock(product["id"], -4) is True
        assert datastore.get_product_by_id(product["id"])["stock"] == 0

    def test_bulk_continues_past_failures(self):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=1)
        c = make_product(name="C", stock=5)
        ok = datastore.update_product_stocks([
            {"productId": a["id"], "delta": -2},
            {"productId": b["id"], "delta": -3},
            {"product_id": c["id"], "delta": -1},
        ])
        assert ok is False
        assert datastore.get_product_by_id(a["id"])["stock"] == 3
        assert datastore.get_product_by_id(b["id"])["stock"] == 1
        assert datastore.get_product_by_id(c["id"])["stock"] == 4

    def test_bulk_all_applied(self):
        a = make_product(name="A", stock=5)
        assert datastore.update_product_stocks([{"productId": a["id"], "delta": 2}]) is True

    def test_bulk_accepts_quantity_change_alias(self):
        a = make_product(name="A", stock=5)
        assert datastore.update_product_stocks([{"productId": a["id"], "quantityChange": -3}]) is True
        assert datastore.get_product_by_id(a["id"])["stock"] == 2

    def test_bulk_missing_delta_rejected_before_applying(self):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=5)
        with pytest.raises(ValidationError, match="delta is required"):
            datastore.update_product_stocks([
                {"productId": a["id"], "delta": -1},
                {"productId": b["id"]},
            ])
        assert datastore.get_product_by_id(a["id"])["stock"] == 5
        assert datastore.get_product_by_id(b["id"])["stock"] == 5

    def test_bulk_non_integer_delta_rejected(self):
        a = make_product(name="A", stock=5)
        with pytest.raises(ValidationError):
            datastore.update_product_stocks([{"productId": a["id"], "delta": 1.5}])
        assert datastore.get_product_by_id(a["id"])["stock"] == 5


@pytest.mark.usefixtures("as_admin")
class TestSales:
    def test_totals_derived_and_rounded(self):
        product = make_product(price=33.33)
        sale = datastore.create_sale({
            "items": [{"productId": product["id"], "name": "Rice 5kg", "price": 33.33, "quantity": 3}],
            "discount": 15,
        })
        assert sale["subtotal"] == 99.99
        assert sale["discount_amount"] == 15.0
        assert sale["total"] == 84.99
        assert sale["user_id"] == ADMIN_ID
        assert sale["user_name"] == "Admin User"

    def test_cashier_name_override(self):
        product = make_product()
        sale = datastore.create_sale({
            "items": [{"productId": product["id"], "name": "Rice", "price": 1, "quantity": 1}],
            "user_name": "Till 2",
        })
        assert sale["user_name"] == "Till 2"

    def test_sale_snapshot_survives_product_changes(self):
        product = make_product(price=10)
        sale = datastore.create_sale({
            "items": [{"productId": product["id"], "name": "Rice 5kg", "price": 10, "quantity": 2}],
        })
        datastore.update_product(product["id"], {"price": 99, "name": "Renamed"})
        stored = datastore.get_sales()[0]
        assert stored["id"] == sale["id"]
        assert stored["items"][0]["price"] == 10
        assert stored["items"][0]["name"] == "Rice 5kg"
        assert stored["total"] == 20.0

    def test_recording_a_sale_does_not_move_stock(self):
        product = make_product(stock=10)
        datastore.create_sale({
            "items": [{"productId": product["id"], "name": "Rice", "price": 1, "quantity": 3}],
        })
        assert datastore.get_product_by_id(product["id"])["stock"] == 10

    @pytest.mark.parametrize("discount", [-1, 101, "abc"])
    def test_bad_discount_rejected(self, discount):
        product = make_product()
        with pytest.raises(ValidationError):
            datastore.create_sale({
                "items": [{"productId": product["id"], "name": "Rice", "price": 1, "quantity": 1}],
                "discount": discount,
            })

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError):
            datastore.create_sale({"items": []})


@pytest.mark.usefixtures("as_admin")
class TestWholesalersAndLedger:
    def test_wholesaler_products_round_trip(self):
        wholesaler = datastore.create_wholesaler({"name": "Acme", "contact": "acme@x.test", "products": ["A", "B"]})
        assert datastore.get_wholesalers()[0]["products"] == ["A", "B"]
        assert wholesaler["capital_spent"] == 0.0

    def test_wholesaler_partial_update(self):
        wholesaler = datastore.create_wholesaler({"name": "Acme", "contact": "acme@x.test"})
        updated = datastore.update_wholesaler(wholesaler["id"], {"capitalSpent": 250})
        assert updated["capital_spent"] == 250.0
        assert updated["contact"] == "acme@x.test"

    def test_wholesaler_delete(self):
        wholesaler = datastore.create_wholesaler({"name": "Acme", "contact": "acme@x.test"})
        assert datastore.delete_wholesaler(wholesaler["id"]) is True
        assert datastore.get_wholesalers() == []

    def test_adjustment_does_not_change_stock(self):
        product = make_product(stock=10)
        entry = datastore.create_stock_adjustment({
            "productId": product["id"], "productName": product["name"], "quantity": -2, "reason": "Damaged",
        })
        assert entry["quantity"] == -2
        assert datastore.get_product_by_id(product["id"])["stock"] == 10
        assert datastore.get_stock_adjustments()[0]["id"] == entry["id"]

    def test_adjustment_survives_product_delete(self):
        product = make_product()
        datastore.create_stock_adjustment({
            "product_id": product["id"], "product_name": product["name"], "quantity": 1, "reason": "Count",
        })
        datastore.delete_product(product["id"])
        entry = datastore.get_stock_adjustments()[0]
        assert entry["product_id"] is None
        assert entry["product_name"] == product["name"]


@pytest.mark.usefixtures("as_admin")
class TestRevenueAndIdentity:
    def test_todays_revenue_sums_today_only(self):
        product = make_product()
        sale = datastore.create_sale({
            "items": [{"productId": product["id"], "name": "Rice", "price": 4, "quantity": 2}],
        })
        old = datastore.create_sale({
            "items": [{"productId": product["id"], "name": "Rice", "price": 100, "quantity": 1}],
        })
        db.session.get(Sale, old["id"]).created_at = utcnow() - timedelta(days=3)
        db.session.commit()
        assert sale["total"] == 8.0
        assert datastore.get_todays_revenue() == 8.0

    def test_profile_synced_into_local_store(self):
        user = datastore.get_current_user()
        assert user["id"] == ADMIN_ID
        assert user["role"] == "admin"
        assert db.session.get(User, ADMIN_ID) is not None

    def test_is_admin(self):
        assert datastore.is_admin() is True


class TestAuditTrail:
    def test_newest_first_and_capped(self, tmp_path, fake_remote):
        app = _build_app(tmp_path, fake_remote, AUDIT_TRAIL_LIMIT=3)
        with app.test_request_context(headers=auth_headers(ADMIN_TOKEN)):
            datastore.get_current_user()
            base = utcnow()
            for i in range(5):
                datastore.create_audit_entry({
                    "user_id": ADMIN_ID, "user_name": "Admin User", "user_role": "admin",
                    "action": "login", "details": {"n": i},
                })
            for entry in db.session.query(AuditEntry).all():
                entry.timestamp = base + timedelta(seconds=entry.details["n"])
            db.session.commit()

            trail = datastore.get_audit_trail()
            assert [e["details"]["n"] for e in trail] == [4, 3, 2]
            assert len(datastore.get_audit_trail(limit=50)) == 3
            assert len(datastore.get_audit_trail(limit=1)) == 1

    def test_unknown_action_rejected(self, as_admin):
        with pytest.raises(ValidationError):
            datastore.create_audit_entry({"user_name": "x", "user_role": "admin", "action": "logout"})


class TestWithoutSession:
    def test_writes_need_an_actor(self, acting_as):
        with acting_as(None):
            with pytest.raises(NotAuthenticatedError, match="User not authenticated"):
                datastore.create_product({"name": "Salt", "price": 1})

    def test_invalid_token_is_anonymous(self, acting_as):
        with acting_as("bogus"):
            assert datastore.get_current_user() is None
            assert datastore.is_admin() is False

    def test_staff_is_not_admin(self, acting_as):
        with acting_as(STAFF_TOKEN):
            assert datastore.get_current_user()["role"] == "staff"
            assert datastore.is_admin() is False

    def test_unique_username_surfaces_as_constraint_violation(self, as_admin):
        from retail_ops.services.local_operations import LocalProfileRepository

        datastore.get_current_user()
        with pytest.raises(ConstraintViolationError):
            LocalProfileRepository().upsert({"id": "u-1", "username": "admin", "name": "Clash", "role": "staff"})
        assert datastore.get_products() == []
