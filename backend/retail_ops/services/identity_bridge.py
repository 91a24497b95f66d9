# Overview: Resolves "who is acting" for both backends, with lazy local profile sync.

"""
Identity Bridge.

The session identity always comes from the Auth Provider (token from the
Authorization header, else the Flask session). The profile behind it comes
from:
- the hosted `users` table, for the Remote backend;
- the Local Store `users` table, for the Local backend. A missing or stale
  local row is refreshed from the hosted table and upserted. If the hosted
  side cannot be reached a stale local row is still used.

Lookups never raise: any failure resolves to None. Write operations that
need an actor turn None into NotAuthenticatedError themselves.
Results are cached per request on `flask.g`.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import g, has_app_context, has_request_context, request, session

from ..time_utils import parse_iso_datetime, utcnow
from .records import profile_record
from .remote_client import RemoteStoreError

logger = logging.getLogger(__name__)

_CACHE_ATTR = "retail_ops_identity"


def current_access_token() -> str | None:
    if not has_request_context():
        return None
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        token = header.split(" ", 1)[1].strip()
        if token:
            return token
    return session.get("access_token")


def _request_cache() -> dict | None:
    if not has_app_context():
        return None
    cache = getattr(g, _CACHE_ATTR, None)
    if cache is None:
        cache = {}
        setattr(g, _CACHE_ATTR, cache)
    return cache


class RemoteProfileSource:
    """Profile rows in the hosted `users` table."""

    def __init__(self, client):
        self.client = client

    def fetch(self, user_id: str) -> dict | None:
        rows = self.client.select("users", filters=[("id", "eq", user_id)])
        if not rows:
            logger.warning("No profile row for user %s", user_id)
            return None
        if len(rows) > 1:
            logger.warning("Multiple profile rows for user %s; using the first", user_id)
        return profile_record(rows[0])

    def find_by_username(self, username: str) -> list[dict]:
        return self.client.select("users", filters=[("username", "eq", username)], columns="id,username")

    def insert(self, profile: dict) -> dict:
        return profile_record(self.client.insert("users", profile))


class IdentityBridge:
    def __init__(self, auth_provider, remote_profiles: RemoteProfileSource, local_profiles=None, *, max_age_seconds: int = 86400, name: str = "remote"):
        self.auth_provider = auth_provider
        self.remote_profiles = remote_profiles
        self.local_profiles = local_profiles
        self.max_age = timedelta(seconds=max_age_seconds)
        self.name = name

    def get_current_session_identity(self) -> str | None:
        token = current_access_token()
        if not token:
            return None

        cache = _request_cache()
        key = ("session", token)
        if cache is not None and key in cache:
            return cache[key]

        try:
            user = self.auth_provider.get_user(token)
        except Exception:
            logger.exception("Session lookup failed")
            user = None
        user_id = user.get("id") if user else None

        if cache is not None:
            cache[key] = user_id
        return user_id

    def get_current_user_profile(self) -> dict | None:
        user_id = self.get_current_session_identity()
        if not user_id:
            return None

        cache = _request_cache()
        key = ("profile", self.name, user_id)
        if cache is not None and key in cache:
            return cache[key]

        try:
            profile = self._resolve_profile(user_id)
        except Exception:
            logger.exception("Profile lookup failed for user %s", user_id)
            profile = None

        if cache is not None:
            cache[key] = profile
        return profile

    def forget(self) -> None:
        """Drop request-cached identity (after sign-in/sign-out within a request)."""
        cache = _request_cache()
        if cache is not None:
            cache.clear()

    def _fetch_remote(self, user_id: str) -> dict | None:
        try:
            return self.remote_profiles.fetch(user_id)
        except RemoteStoreError as exc:
            logger.warning("Remote profile source unavailable for %s: %s", user_id, exc)
            return None

    def _is_stale(self, profile: dict) -> bool:
        updated_at = profile.get("updated_at")
        if not updated_at:
            return True
        return utcnow() - parse_iso_datetime(updated_at) > self.max_age

    def _resolve_profile(self, user_id: str) -> dict | None:
        if self.local_profiles is None:
            return self._fetch_remote(user_id)

        local = self.local_profiles.get(user_id)
        if local is not None and not self._is_stale(local):
            return local

        remote = self._fetch_remote(user_id)
        if remote is None:
            return local
        synced = self.local_profiles.upsert(remote)
        logger.info("Synced profile %s into the Local Store", user_id)
        return synced
