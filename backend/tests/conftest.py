"""
Pytest fixtures for retail-ops backend tests.

Provides an application per test backed by a temporary Local Store file, and
an in-memory fake of the hosted backend (auth under /auth/v1, tables under
/rest/v1) served through httpx.MockTransport, so the Remote module, the
Identity Bridge and the adapter all run their real HTTP code.
"""

import json
import uuid
from collections import defaultdict
from contextlib import contextmanager

import httpx
import pytest

from retail_ops import create_app
from retail_ops.extensions import db
from retail_ops.services.local_store import get_local_store


ADMIN_ID = "11111111-1111-4111-8111-111111111111"
STAFF_ID = "22222222-2222-4222-8222-222222222222"
ADMIN_TOKEN = "tok-admin"
STAFF_TOKEN = "tok-staff"

# Postgres error codes the fake returns
CHECK_VIOLATION = "23514"
RLS_VIOLATION = "42501"

NON_NEGATIVE = {
    "products": ("price", "stock", "low_stock_threshold"),
    "wholesalers": ("capital_spent",),
    "sales": ("subtotal", "discount_amount", "total"),
}


def _matches(row: dict, column: str, expression: str) -> bool:
    op, _, raw = expression.partition(".")
    value = row.get(column)
    if op == "eq":
        if raw == "null":
            return value is None
        return str(value) == raw
    if op in ("gte", "lte", "gt", "lt"):
        if value is None:
            return False
        try:
            left, right = float(value), float(raw)
        except (TypeError, ValueError):
            left, right = str(value), raw
        return {
            "gte": left >= right,
            "lte": left <= right,
            "gt": left > right,
            "lt": left < right,
        }[op]
    raise AssertionError(f"fake backend does not support operator {op!r}")


class FakeSupabase:
    """Just enough of the hosted auth + table API for the tests."""

    def __init__(self):
        self.tables = defaultdict(list)
        self.tokens = {}
        self.accounts = {}
        self.requests = []
        self.rest_down = False
        self.auth_down = False
        self.lose_stock_races = 0

    # -- seeding -----------------------------------------------------------

    def add_user(self, *, user_id, email, username, name, role, token, password="Password123!", profile=True):
        user = {"id": user_id, "email": email}
        self.tokens[token] = user
        self.accounts[email] = (password, token)
        if profile:
            self.add_profile(user_id=user_id, username=username, name=name, role=role)
        return user

    def add_profile(self, *, user_id, username, name, role):
        self.tables["users"].append({
            "id": user_id,
            "username": username,
            "name": name,
            "role": role,
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": "2024-01-01T00:00:00Z",
        })

    # -- transport -----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/auth/v1"):
            if self.auth_down:
                raise httpx.ConnectError("auth down", request=request)
            return self._auth(request, path[len("/auth/v1"):])
        if path.startswith("/rest/v1/"):
            if self.rest_down:
                raise httpx.ConnectError("rest down", request=request)
            return self._rest(request, path[len("/rest/v1/"):])
        return httpx.Response(404, json={"message": "not found"})

    def _bearer(self, request):
        header = request.headers.get("Authorization", "")
        token = header.split(" ", 1)[1] if header.startswith("Bearer ") else None
        return self.tokens.get(token)

    def _auth(self, request, path):
        body = json.loads(request.content) if request.content else {}
        if path == "/token" and request.method == "POST":
            account = self.accounts.get(body.get("email"))
            if not account or account[0] != body.get("password"):
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})
            token = account[1]
            return httpx.Response(200, json={
                "access_token": token,
                "refresh_token": f"refresh-{token}",
                "user": self.tokens[token],
            })
        if path == "/user" and request.method == "GET":
            user = self._bearer(request)
            if user is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json=user)
        if path == "/user" and request.method == "PUT":
            user = self._bearer(request)
            if user is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json=user)
        if path == "/signup" and request.method == "POST":
            if body.get("email") in self.accounts:
                return httpx.Response(422, json={"msg": "User already registered"})
            user_id = str(uuid.uuid4())
            token = f"tok-{user_id}"
            self.tokens[token] = {"id": user_id, "email": body["email"], "user_metadata": body.get("data", {})}
            self.accounts[body["email"]] = (body["password"], token)
            return httpx.Response(200, json={"id": user_id, "email": body["email"]})
        if path == "/recover" and request.method == "POST":
            return httpx.Response(200, json={})
        if path == "/logout" and request.method == "POST":
            return httpx.Response(204)
        return httpx.Response(404, json={"msg": "not found"})

    def _rest(self, request, table):
        params = request.url.params
        filters = [
            (key, value) for key, value in params.multi_items()
            if key not in ("select", "order", "limit")
        ]
        rows = [r for r in self.tables[table] if all(_matches(r, c, e) for c, e in filters)]

        if request.method == "GET":
            order = params.get("order")
            if order:
                column, _, direction = order.partition(".")
                rows = sorted(rows, key=lambda r: str(r.get(column) or ""), reverse=direction == "desc")
            if params.get("limit"):
                rows = rows[: int(params["limit"])]
            select = params.get("select", "*")
            if select != "*":
                columns = select.split(",")
                rows = [{c: r.get(c) for c in columns} for r in rows]
            return httpx.Response(200, json=[dict(r) for r in rows])

        if self._bearer(request) is None:
            return httpx.Response(401, json={"code": RLS_VIOLATION, "message": "permission denied"})

        if request.method == "POST":
            row = json.loads(request.content)
            violation = self._check(table, row)
            if violation:
                return violation
            self.tables[table].append(dict(row))
            return httpx.Response(201, json=[dict(row)])

        if request.method == "PATCH":
            patch = json.loads(request.content)
            if table == "products" and "stock" in patch and self.lose_stock_races:
                # Someone else changed stock between our read and write
                self.lose_stock_races -= 1
                return httpx.Response(200, json=[])
            updated = []
            for row in rows:
                candidate = {**row, **patch}
                violation = self._check(table, candidate)
                if violation:
                    return violation
                row.update(patch)
                updated.append(dict(row))
            return httpx.Response(200, json=updated)

        if request.method == "DELETE":
            for row in rows:
                self.tables[table].remove(row)
            return httpx.Response(200, json=[dict(r) for r in rows])

        return httpx.Response(405, json={"message": "method not allowed"})

    @staticmethod
    def _check(table, row):
        for column in NON_NEGATIVE.get(table, ()):
            if row.get(column) is not None and float(row[column]) < 0:
                return httpx.Response(400, json={
                    "code": CHECK_VIOLATION,
                    "message": f'new row for relation "{table}" violates check constraint "{table}_{column}_check"',
                })
        return None


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _build_app(tmp_path, fake_remote, **overrides):
    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "RUNTIME_MODE": "desktop",
        "LOCAL_DB_PATH": str(tmp_path / "retail-operations.db"),
        "SUPABASE_URL": "http://supabase.test",
        "SUPABASE_ANON_KEY": "anon-key",
        "REMOTE_HTTP_TRANSPORT": httpx.MockTransport(fake_remote.handler),
    }
    config.update(overrides)
    return create_app(config)


@pytest.fixture
def fake_remote():
    remote = FakeSupabase()
    remote.add_user(
        user_id=ADMIN_ID, email="admin@shop.test", username="admin",
        name="Admin User", role="admin", token=ADMIN_TOKEN,
    )
    remote.add_user(
        user_id=STAFF_ID, email="staff@shop.test", username="staff",
        name="Staff User", role="staff", token=STAFF_TOKEN,
    )
    return remote


@pytest.fixture
def app(tmp_path, fake_remote):
    """Desktop runtime: request-bound calls go to the Local Store."""
    app = _build_app(tmp_path, fake_remote)
    yield app
    with app.app_context():
        get_local_store(app).close()


@pytest.fixture
def web_app(tmp_path, fake_remote):
    """Web runtime: every call goes to the hosted backend."""
    return _build_app(tmp_path, fake_remote, RUNTIME_MODE="web")


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def web_client(web_app):
    return web_app.test_client()


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_TOKEN)


@pytest.fixture
def staff_headers():
    return auth_headers(STAFF_TOKEN)


@pytest.fixture
def acting_as(app):
    """Context manager factory: a request context carrying the given token."""
    @contextmanager
    def _acting_as(token=ADMIN_TOKEN, target=None):
        headers = auth_headers(token) if token else {}
        with (target or app).test_request_context(headers=headers):
            yield
    return _acting_as


@pytest.fixture
def as_admin(acting_as):
    with acting_as(ADMIN_TOKEN):
        yield


@pytest.fixture
def as_staff(acting_as):
    with acting_as(STAFF_TOKEN):
        yield


@pytest.fixture
def web_as_admin(web_app):
    with web_app.test_request_context(headers=auth_headers(ADMIN_TOKEN)):
        yield


@pytest.fixture
def db_session(app):
    """Open Local Store session for direct row inspection."""
    with app.app_context():
        get_local_store(app).open()
        yield db.session
        db.session.rollback()
