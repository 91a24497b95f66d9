"""
Backend selection rules of the data-store adapter.
"""

import sys

import pytest

from retail_ops.extensions import datastore
from retail_ops.services import local_operations
from retail_ops.services.database_adapter import DatabaseAdapter

from conftest import ADMIN_TOKEN, _build_app, auth_headers


class TestSelection:
    def test_no_request_context_uses_remote(self, app):
        with app.app_context():
            assert datastore.backend_name == "remote"

    def test_desktop_request_uses_local(self, as_admin):
        assert datastore.backend_name == "local"

    def test_web_request_uses_remote(self, web_as_admin):
        assert datastore.backend_name == "remote"

    def test_auto_outside_frozen_build_is_web(self, tmp_path, fake_remote):
        app = _build_app(tmp_path, fake_remote, RUNTIME_MODE="auto")
        with app.test_request_context():
            assert datastore.backend_name == "remote"

    def test_auto_inside_frozen_build_is_desktop(self, tmp_path, fake_remote, monkeypatch):
        monkeypatch.setattr(sys, "frozen", True, raising=False)
        app = _build_app(tmp_path, fake_remote, RUNTIME_MODE="auto")
        with app.test_request_context():
            assert datastore.backend_name == "local"

    def test_local_backend_memoized(self, app, monkeypatch):
        calls = []
        original = local_operations.build_local_operations

        def counting(*args, **kwargs):
            calls.append(1)
            return original(*args, **kwargs)

        monkeypatch.setattr(local_operations, "build_local_operations", counting)
        for _ in range(3):
            with app.test_request_context():
                assert datastore.backend_name == "local"
        assert len(calls) == 1

    def test_using_pins_backend(self, as_admin):
        with datastore.using("remote"):
            assert datastore.backend_name == "remote"
            with datastore.using("local"):
                assert datastore.backend_name == "local"
            assert datastore.backend_name == "remote"
        assert datastore.backend_name == "local"

    def test_uninitialised_app_is_an_error(self):
        from flask import Flask

        app = Flask("bare")
        with app.app_context():
            with pytest.raises(RuntimeError):
                DatabaseAdapter().backend()


class TestLocalLoadFailure:
    def test_failure_falls_back_to_remote_permanently(self, app, monkeypatch):
        calls = []

        def broken(*args, **kwargs):
            calls.append(1)
            raise ImportError("embedded engine missing")

        monkeypatch.setattr(local_operations, "build_local_operations", broken)

        for _ in range(3):
            with app.test_request_context(headers=auth_headers(ADMIN_TOKEN)):
                assert datastore.backend_name == "remote"
                assert datastore.get_current_user()["role"] == "admin"

        assert len(calls) == 1
        with app.app_context():
            assert datastore.state().local_failed is True

    def test_failure_reported_by_system_endpoint(self, app, monkeypatch):
        monkeypatch.setattr(
            local_operations, "build_local_operations",
            lambda *a, **k: (_ for _ in ()).throw(OSError("disk gone")),
        )
        client = app.test_client()
        client.get("/health")
        body = client.get("/api/system/backend").get_json()
        assert body["backend"] == "remote"
        assert body["desktop_runtime"] is True
        assert body["local_fallback"] is True

    def test_unopenable_store_falls_back(self, tmp_path, fake_remote):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        app = _build_app(tmp_path, fake_remote, LOCAL_DB_PATH=str(blocker / "shop.db"))
        with app.test_request_context():
            assert datastore.backend_name == "remote"

    def test_pinning_local_after_failure_is_an_error(self, app, monkeypatch):
        monkeypatch.setattr(
            local_operations, "build_local_operations",
            lambda *a, **k: (_ for _ in ()).throw(ImportError("nope")),
        )
        with app.app_context():
            with pytest.raises(RuntimeError, match="unavailable"):
                with datastore.using("local"):
                    pass


class TestAuditRouting:
    def test_local_backend_keeps_audit_locally(self, as_admin, fake_remote):
        datastore.get_current_user()
        datastore.create_audit_entry({
            "user_id": None, "user_name": "Admin User", "user_role": "admin",
            "action": "login", "details": {},
        })
        assert fake_remote.tables["audit_trail"] == []
        assert len(datastore.get_audit_trail()) == 1

    def test_remote_backend_falls_back_to_minimal_audit_path(self, web_as_admin, fake_remote):
        entry = datastore.create_audit_entry({
            "user_id": None, "user_name": "Admin User", "user_role": "admin",
            "action": "sale", "details": {"saleId": "s-1"},
        })
        assert entry["action"] == "sale"
        assert len(fake_remote.tables["audit_trail"]) == 1
        trail = datastore.get_audit_trail()
        assert trail[0]["details"] == {"saleId": "s-1"}

    def test_remote_audit_query_degrades(self, web_as_admin, fake_remote):
        fake_remote.rest_down = True
        assert datastore.get_audit_trail() == []
