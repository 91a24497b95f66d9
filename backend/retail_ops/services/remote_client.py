# Overview: Minimal PostgREST client for the hosted backend (tables under /rest/v1).

"""
Thin httpx wrapper around the hosted backend's table API.

Every request carries the public API key plus the caller's access token, so
row-level security on the hosted side sees the acting user. Without a token
the anon key doubles as the bearer, which RLS treats as anonymous.

Filters are (column, operator, value) triples rendered as PostgREST query
params, e.g. ("stock", "eq", 4) -> stock=eq.4. A column may appear more than
once (created_at=gte.X&created_at=lte.Y).
"""

from __future__ import annotations

import logging
import threading

import httpx

from ..validation import ConstraintViolationError

logger = logging.getLogger(__name__)


class RemoteStoreError(RuntimeError):
    """Network, HTTP or row-level-security failure from the hosted backend."""

    def __init__(self, message: str, *, status_code: int | None = None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


def _render(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class RemoteClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        token_getter=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or ""
        self.timeout = timeout
        self.transport = transport
        self.token_getter = token_getter
        self._http: httpx.Client | None = None
        self._http_lock = threading.Lock()

    def _client(self) -> httpx.Client:
        # Shared by request threads; build exactly one.
        if self._http is None:
            with self._http_lock:
                if self._http is None:
                    self._http = httpx.Client(
                        base_url=f"{self.base_url}/rest/v1",
                        timeout=self.timeout,
                        transport=self.transport,
                    )
        return self._http

    def close(self) -> None:
        with self._http_lock:
            if self._http is not None:
                self._http.close()
                self._http = None

    def _headers(self, *, representation: bool = False) -> dict:
        token = self.token_getter() if self.token_getter else None
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
        }
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    @staticmethod
    def _params(filters=None, *, columns: str | None = None, order: str | None = None, limit: int | None = None):
        params: list[tuple[str, str]] = []
        if columns:
            params.append(("select", columns))
        for column, op, value in filters or ():
            params.append((column, f"{op}.{_render(value)}"))
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        return params

    def _send(self, method: str, table: str, *, params=None, json=None, representation=False):
        try:
            response = self._client().request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=self._headers(representation=representation),
            )
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            self._raise_for_error(method, table, response)

        if not response.content:
            return []
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(
                f"{method} {table} returned invalid JSON", status_code=response.status_code
            ) from exc

    @staticmethod
    def _raise_for_error(method: str, table: str, response: httpx.Response):
        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}
        if not isinstance(payload, dict):
            payload = {"message": str(payload)}
        message = payload.get("message") or f"{method} {table} returned HTTP {response.status_code}"
        code = str(payload.get("code") or "")
        # Postgres integrity_constraint_violation class
        if code.startswith("23"):
            raise ConstraintViolationError(message)
        raise RemoteStoreError(message, status_code=response.status_code, payload=payload)

    def select(self, table: str, *, filters=None, columns: str = "*", order: str | None = None, limit: int | None = None) -> list[dict]:
        rows = self._send("GET", table, params=self._params(filters, columns=columns, order=order, limit=limit))
        return rows if isinstance(rows, list) else [rows]

    def insert(self, table: str, row: dict) -> dict:
        rows = self._send("POST", table, json=row, representation=True)
        if isinstance(rows, list):
            if not rows:
                raise RemoteStoreError(f"Insert into {table} returned no row (blocked by row-level security?)")
            return rows[0]
        return rows

    def update(self, table: str, *, filters, patch: dict) -> list[dict]:
        rows = self._send("PATCH", table, params=self._params(filters), json=patch, representation=True)
        return rows if isinstance(rows, list) else [rows]

    def delete(self, table: str, *, filters) -> int:
        rows = self._send("DELETE", table, params=self._params(filters), representation=True)
        return len(rows) if isinstance(rows, list) else 1
