# Overview: The single data-access entry point; picks the Local or Remote backend per call.

"""
Database Adapter.

`datastore` (see extensions.py) is the only object the rest of the app uses
for data access. On every call it decides which DataStore answers:

1. no request context (CLI, background work) -> Remote
2. desktop runtime (RUNTIME_MODE=desktop, or auto inside a frozen executable)
   -> Local, loaded lazily exactly once
3. anything else (browser clients of the web deployment) -> Remote

If loading Local fails for any reason the failure is logged once and the
process stays on Remote for the rest of its lifetime.

Per-app state (the HTTP clients, the memoized Local backend) lives in
`app.extensions["retail_ops.datastore"]`, so tests get a fresh adapter per app.
"""

from __future__ import annotations

import importlib
import logging
import sys
import threading
from contextlib import contextmanager

from flask import current_app, g, has_app_context, has_request_context

from ..time_utils import to_utc_z, utcnow
from ..validation import normalize_audit_entry
from .auth_provider import AuthProvider
from .data_store import DataStore
from .identity_bridge import IdentityBridge, RemoteProfileSource, current_access_token
from .keys import new_id
from .records import audit_record
from .remote_client import RemoteClient, RemoteStoreError
from .remote_operations import RemoteOperations

logger = logging.getLogger(__name__)

EXTENSION_KEY = "retail_ops.datastore"
_OVERRIDE_ATTR = "retail_ops_backend_override"


class AdapterState:
    """Backends and clients for one Flask app."""

    def __init__(self, app):
        self.app = app
        config = app.config
        transport = config.get("REMOTE_HTTP_TRANSPORT")
        timeout = config.get("REMOTE_TIMEOUT_SECONDS", 10.0)

        self.auth_provider = AuthProvider(
            config["SUPABASE_URL"], config["SUPABASE_ANON_KEY"],
            timeout=timeout, transport=transport,
        )
        self.remote_client = RemoteClient(
            config["SUPABASE_URL"], config["SUPABASE_ANON_KEY"],
            timeout=timeout, transport=transport, token_getter=current_access_token,
        )
        self.remote_profiles = RemoteProfileSource(self.remote_client)
        self.remote = RemoteOperations(
            self.remote_client,
            IdentityBridge(
                self.auth_provider,
                self.remote_profiles,
                max_age_seconds=config.get("PROFILE_SYNC_MAX_AGE_SECONDS", 86400),
                name="remote",
            ),
            default_threshold=config.get("DEFAULT_LOW_STOCK_THRESHOLD", 5),
        )
        self.audit_limit = config.get("AUDIT_TRAIL_LIMIT", 1000)

        self._local: DataStore | None = None
        self._local_failed = False
        self._lock = threading.Lock()

    @property
    def local_failed(self) -> bool:
        return self._local_failed

    def is_desktop_runtime(self) -> bool:
        mode = str(self.app.config.get("RUNTIME_MODE") or "auto").lower()
        if mode == "desktop":
            return True
        if mode == "web":
            return False
        return bool(getattr(sys, "frozen", False))

    def load_local(self) -> DataStore | None:
        if self._local is not None or self._local_failed:
            return self._local
        with self._lock:
            if self._local is None and not self._local_failed:
                try:
                    module = importlib.import_module(".local_operations", __package__)
                    self._local = module.build_local_operations(
                        self.app,
                        auth_provider=self.auth_provider,
                        remote_profiles=self.remote_profiles,
                    )
                except Exception:
                    logger.exception("Local Store unavailable; using the hosted backend for this process")
                    self._local_failed = True
        return self._local

    def select(self) -> DataStore:
        if not has_request_context():
            return self.remote
        if not self.is_desktop_runtime():
            return self.remote
        local = self.load_local()
        return local if local is not None else self.remote

    def named(self, name: str) -> DataStore:
        """Explicit backend choice for CLI commands ("local" / "remote" / "auto")."""
        if name == "remote":
            return self.remote
        if name == "local":
            local = self.load_local()
            if local is None:
                raise RuntimeError("Local Store is unavailable")
            return local
        return self.select()

    def close(self) -> None:
        self.auth_provider.close()
        self.remote_client.close()


class DatabaseAdapter:
    """Flask extension facade over the selected DataStore."""

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions[EXTENSION_KEY] = AdapterState(app)

    def state(self) -> AdapterState:
        try:
            return current_app.extensions[EXTENSION_KEY]
        except KeyError:
            raise RuntimeError("DatabaseAdapter.init_app() was not called for this app")

    def backend(self) -> DataStore:
        if has_app_context():
            pinned = g.get(_OVERRIDE_ATTR)
            if pinned is not None:
                return pinned
        return self.state().select()

    @contextmanager
    def using(self, name: str):
        """Pin every call inside the block to one backend ("local" or "remote")."""
        backend = self.state().named(name)
        previous = g.get(_OVERRIDE_ATTR)
        setattr(g, _OVERRIDE_ATTR, backend)
        try:
            yield backend
        finally:
            setattr(g, _OVERRIDE_ATTR, previous)

    @property
    def backend_name(self) -> str:
        return self.backend().backend_name

    @property
    def auth_provider(self) -> AuthProvider:
        return self.state().auth_provider

    @property
    def remote_profiles(self) -> RemoteProfileSource:
        return self.state().remote_profiles

    def forget_identity(self) -> None:
        """Clear identity cached for the current request (after sign-in/out)."""
        state = self.state()
        state.remote.identity.forget()

    # Products

    def get_products(self) -> list[dict]:
        return self.backend().get_products()

    def get_product_by_id(self, product_id: str) -> dict | None:
        return self.backend().get_product_by_id(product_id)

    def create_product(self, data: dict) -> dict:
        return self.backend().create_product(data)

    def update_product(self, product_id: str, changes: dict) -> dict | None:
        return self.backend().update_product(product_id, changes)

    def delete_product(self, product_id: str) -> bool:
        return self.backend().delete_product(product_id)

    # Wholesalers

    def get_wholesalers(self) -> list[dict]:
        return self.backend().get_wholesalers()

    def create_wholesaler(self, data: dict) -> dict:
        return self.backend().create_wholesaler(data)

    def update_wholesaler(self, wholesaler_id: str, changes: dict) -> dict | None:
        return self.backend().update_wholesaler(wholesaler_id, changes)

    def delete_wholesaler(self, wholesaler_id: str) -> bool:
        return self.backend().delete_wholesaler(wholesaler_id)

    # Sales

    def get_sales(self) -> list[dict]:
        return self.backend().get_sales()

    def create_sale(self, data: dict) -> dict:
        return self.backend().create_sale(data)

    # Stock

    def get_stock_adjustments(self) -> list[dict]:
        return self.backend().get_stock_adjustments()

    def create_stock_adjustment(self, data: dict) -> dict:
        return self.backend().create_stock_adjustment(data)

    def update_product_stock(self, product_id: str, delta: int) -> bool:
        return self.backend().update_product_stock(product_id, delta)

    def update_product_stocks(self, updates) -> bool:
        return self.backend().update_product_stocks(updates)

    # Identity

    def is_admin(self) -> bool:
        return self.backend().is_admin()

    def get_current_user(self) -> dict | None:
        return self.backend().get_current_user()

    # Reporting

    def get_todays_revenue(self) -> float:
        return self.backend().get_todays_revenue()

    # Audit trail

    def create_audit_entry(self, entry: dict) -> dict:
        ops = self.backend()
        if hasattr(ops, "create_audit_entry"):
            return ops.create_audit_entry(entry)
        return self._remote_audit_insert(entry)

    def get_audit_trail(self, limit: int | None = None) -> list[dict]:
        ops = self.backend()
        if hasattr(ops, "get_audit_trail"):
            return ops.get_audit_trail(limit)
        return self._remote_audit_query(limit)

    def _remote_audit_insert(self, entry: dict) -> dict:
        fields = normalize_audit_entry(entry)
        now = to_utc_z(utcnow())
        row = {"id": new_id(), "timestamp": now, "created_at": now, **fields}
        return audit_record(self.state().remote_client.insert("audit_trail", row))

    def _remote_audit_query(self, limit: int | None) -> list[dict]:
        state = self.state()
        cap = state.audit_limit if limit is None else max(0, min(int(limit), state.audit_limit))
        try:
            rows = state.remote_client.select("audit_trail", order="timestamp.desc", limit=cap)
        except RemoteStoreError:
            logger.exception("Audit trail query failed; returning empty result")
            return []
        return [audit_record(r) for r in rows]
