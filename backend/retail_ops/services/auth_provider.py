# Overview: Client for the hosted Auth Provider (GoTrue-style endpoints under /auth/v1).

from __future__ import annotations

import logging
import threading

import httpx

logger = logging.getLogger(__name__)


class AuthProviderError(RuntimeError):
    """Raised when the Auth Provider rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthProvider:
    """
    Sign-in, sign-up, session lookup and password recovery.

    Identity and credentials live with the provider; the core only ever
    sees the user id it returns and the access token it issues.
    """

    def __init__(self, base_url: str, api_key: str, *, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or ""
        self.timeout = timeout
        self.transport = transport
        self._http: httpx.Client | None = None
        self._http_lock = threading.Lock()

    def _client(self) -> httpx.Client:
        # Shared by request threads; build exactly one.
        if self._http is None:
            with self._http_lock:
                if self._http is None:
                    self._http = httpx.Client(
                        base_url=f"{self.base_url}/auth/v1",
                        timeout=self.timeout,
                        transport=self.transport,
                    )
        return self._http

    def close(self) -> None:
        with self._http_lock:
            if self._http is not None:
                self._http.close()
                self._http = None

    def _request(self, method: str, path: str, *, token: str | None = None, json=None, params=None) -> dict:
        headers = {"apikey": self.api_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = self._client().request(method, path, headers=headers, json=json, params=params)
        except httpx.HTTPError as exc:
            raise AuthProviderError(f"Auth provider unreachable: {exc}") from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = (
                payload.get("error_description")
                or payload.get("msg")
                or payload.get("message")
                or payload.get("error")
                or f"Auth provider returned HTTP {response.status_code}"
            ) if isinstance(payload, dict) else str(payload)
            raise AuthProviderError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise AuthProviderError("Auth provider returned invalid JSON") from exc
        return body if isinstance(body, dict) else {}

    def sign_in(self, email: str, password: str) -> dict:
        """Password grant. Returns the session: access_token, refresh_token, user."""
        return self._request(
            "POST", "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    def sign_up(self, email: str, password: str, *, metadata: dict | None = None, redirect_to: str | None = None) -> dict:
        params = {"redirect_to": redirect_to} if redirect_to else None
        return self._request(
            "POST", "/signup",
            params=params,
            json={"email": email, "password": password, "data": metadata or {}},
        )

    def get_user(self, access_token: str) -> dict | None:
        """The user owning access_token, or None when the token is not valid."""
        if not access_token:
            return None
        try:
            user = self._request("GET", "/user", token=access_token)
        except AuthProviderError as exc:
            if exc.status_code in (401, 403):
                return None
            raise
        return user if user.get("id") else None

    def reset_password(self, email: str, *, redirect_to: str | None = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        self._request("POST", "/recover", params=params, json={"email": email})

    def update_password(self, access_token: str, new_password: str) -> dict:
        """Completes the recovery flow with the token from the reset link."""
        return self._request("PUT", "/user", token=access_token, json={"password": new_password})

    def sign_out(self, access_token: str) -> None:
        if not access_token:
            return
        self._request("POST", "/logout", token=access_token)
