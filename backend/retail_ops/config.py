# backend/retail_ops/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # auto | desktop | web
    # auto treats a frozen (packaged) executable as the desktop runtime.
    RUNTIME_MODE = os.environ.get("RETAIL_OPS_RUNTIME", "auto")

    # Local Store file. When unset the path is resolved at startup
    # (path broker for desktop child processes, user data dir otherwise).
    LOCAL_DB_PATH = os.environ.get("RETAIL_OPS_DB_PATH")
    LOCAL_DB_DIR = os.environ.get("RETAIL_OPS_DATA_DIR")
    DB_PATH_BROKER = os.environ.get("RETAIL_OPS_PATH_BROKER")
    DB_PATH_BROKER_AUTHKEY = os.environ.get("RETAIL_OPS_PATH_BROKER_KEY")

    # Filled in by create_app() from the resolved Local Store path
    SQLALCHEMY_DATABASE_URI = None
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Hosted backend (PostgREST under /rest/v1, auth under /auth/v1)
    SUPABASE_URL = os.environ.get("SUPABASE_URL", "http://localhost:54321")
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
    REMOTE_TIMEOUT_SECONDS = float(os.environ.get("RETAIL_OPS_REMOTE_TIMEOUT", "10"))
    REMOTE_HTTP_TRANSPORT = None

    # Local profile rows older than this are refreshed from the remote profile source
    PROFILE_SYNC_MAX_AGE_SECONDS = _env_int("RETAIL_OPS_PROFILE_MAX_AGE", 24 * 60 * 60)

    DEFAULT_LOW_STOCK_THRESHOLD = 5
    EXPIRY_ALERT_DAYS = 30
    AUDIT_TRAIL_LIMIT = 1000
