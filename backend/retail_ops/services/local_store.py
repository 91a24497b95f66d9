# Overview: Local Store engine; file location, schema creation on open, connection lifecycle.

"""
Local Store Engine.

The embedded store is a single SQLite file bound to Flask-SQLAlchemy's `db`.
`LocalStore.open()` is idempotent: the first call creates the parent
directory, switches on foreign-key enforcement for every pooled connection
and creates the six tables plus their indexes (CREATE TABLE IF NOT EXISTS
semantics, so it is safe against an existing populated file). Later calls
return the cached engine.

Any failure to load or open the engine is raised as EngineUnavailableError
so the data-store adapter can fall back to the hosted backend.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.exc import DatabaseError, NoSuchModuleError

from ..extensions import db
from .keys import new_id  # noqa: F401

logger = logging.getLogger(__name__)

DEFAULT_DB_FILENAME = "retail-operations.db"
APP_DIR_NAME = "retail-ops"


class EngineUnavailableError(RuntimeError):
    """The embedded database engine cannot be loaded or opened."""


def default_data_dir() -> Path:
    """Per-user application data directory for the current OS."""
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share"
    return Path(base) / APP_DIR_NAME


def resolve_database_path(base_dir=None, *, config=None) -> str:
    """
    Deterministic location of the Local Store file.

    Order: explicit base_dir argument, LOCAL_DB_PATH, the desktop path broker
    (child processes never guess the path), LOCAL_DB_DIR, the per-user data
    directory.
    """
    config = config or {}
    if base_dir:
        return str(Path(base_dir) / DEFAULT_DB_FILENAME)
    if config.get("LOCAL_DB_PATH"):
        return str(Path(config["LOCAL_DB_PATH"]))
    if config.get("DB_PATH_BROKER"):
        from ..desktop import request_database_path
        return request_database_path(
            config["DB_PATH_BROKER"],
            authkey=config.get("DB_PATH_BROKER_AUTHKEY"),
        )
    directory = config.get("LOCAL_DB_DIR") or default_data_dir()
    return str(Path(directory) / DEFAULT_DB_FILENAME)


def _enable_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
    finally:
        cursor.close()


class LocalStore:
    """Connection lifecycle for the embedded store of one Flask app."""

    def __init__(self):
        self._engine = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def path(self) -> str | None:
        if self._engine is None:
            return None
        return self._engine.url.database

    def open(self):
        """Return the live engine, creating the schema on first use. Needs an app context."""
        if self._engine is not None:
            return self._engine
        with self._lock:
            if self._engine is not None:
                return self._engine
            self._engine = self._open_engine()
        return self._engine

    def _open_engine(self):
        try:
            engine = db.engine
            if engine.dialect.name != "sqlite":
                raise EngineUnavailableError(f"Local Store needs sqlite, got {engine.dialect.name}")

            database = engine.url.database
            if database and database != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)

            if not event.contains(engine, "connect", _enable_sqlite_pragmas):
                event.listen(engine, "connect", _enable_sqlite_pragmas)
                # Connections pooled before the listener existed lack the pragmas
                engine.dispose()

            from .. import models  # noqa: F401
            db.create_all()
        except EngineUnavailableError:
            raise
        except (ImportError, NoSuchModuleError, OSError, DatabaseError) as exc:
            logger.error("Local Store engine unavailable: %s", exc)
            raise EngineUnavailableError(str(exc)) from exc

        logger.info("Local Store opened at %s", engine.url.database)
        return engine

    def close(self) -> None:
        """Release pooled connections. No-op when already closed."""
        with self._lock:
            if self._engine is None:
                return
            db.session.remove()
            self._engine.dispose()
            self._engine = None


def get_local_store(app) -> LocalStore:
    """The LocalStore registered on `app`, created on first use."""
    return app.extensions.setdefault("retail_ops.local_store", LocalStore())
