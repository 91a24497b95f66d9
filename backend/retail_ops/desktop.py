# Overview: Database-path broker for the packaged desktop runtime.

"""
The privileged desktop process owns the Local Store file. Child processes
(the UI shell, the embedded Flask server) do not guess its location; they
ask the owner over a local authenticated channel.

Owner side:
    broker = DatabasePathBroker(resolve_database_path(), authkey=b"...")
    broker.start()            # hand broker.address to children as RETAIL_OPS_PATH_BROKER

Child side:
    path = request_database_path("127.0.0.1:53211", authkey=b"...")
"""

from __future__ import annotations

import logging
import threading
from multiprocessing.connection import Client, Listener

logger = logging.getLogger(__name__)

PATH_REQUEST = "get-database-path"


class PathBrokerError(RuntimeError):
    """The path broker could not be reached or refused the request."""


def _as_authkey(authkey) -> bytes | None:
    if authkey is None or authkey == "":
        return None
    if isinstance(authkey, str):
        return authkey.encode("utf-8")
    return bytes(authkey)


def parse_address(address: str) -> tuple[str, int]:
    host, sep, port = str(address).rpartition(":")
    if not sep or not host or not port.isdigit():
        raise PathBrokerError(f"Invalid path broker address: {address!r}")
    return host, int(port)


class DatabasePathBroker:
    """Answers "get-database-path" requests from child processes."""

    def __init__(self, database_path: str, *, host: str = "127.0.0.1", port: int = 0, authkey=None):
        self.database_path = str(database_path)
        self._bind = (host, port)
        self._authkey = _as_authkey(authkey)
        self._listener: Listener | None = None
        self._thread: threading.Thread | None = None
        self._stopping = threading.Event()

    @property
    def address(self) -> str | None:
        if self._listener is None:
            return None
        host, port = self._listener.address
        return f"{host}:{port}"

    def start(self) -> str:
        if self._listener is not None:
            return self.address
        self._listener = Listener(self._bind, authkey=self._authkey)
        self._stopping.clear()
        self._thread = threading.Thread(target=self._serve, name="db-path-broker", daemon=True)
        self._thread.start()
        logger.info("Database path broker listening on %s", self.address)
        return self.address

    def stop(self) -> None:
        if self._listener is None:
            return
        self._stopping.set()
        address = self._listener.address
        # Unblock accept() with a throwaway connection
        try:
            with Client(address, authkey=self._authkey):
                pass
        except (OSError, EOFError):
            pass
        self._listener.close()
        if self._thread is not None:
            self._thread.join(timeout=2)
        self._listener = None
        self._thread = None

    def _serve(self) -> None:
        while not self._stopping.is_set():
            try:
                conn = self._listener.accept()
            except OSError:
                if self._stopping.is_set():
                    return
                logger.exception("Path broker accept failed")
                continue
            except Exception:
                # Authentication failures surface here; keep serving
                logger.warning("Rejected path broker connection", exc_info=True)
                continue
            with conn:
                if self._stopping.is_set():
                    return
                self._answer(conn)

    def _answer(self, conn) -> None:
        try:
            message = conn.recv()
        except EOFError:
            return
        if message == PATH_REQUEST:
            conn.send({"path": self.database_path})
        else:
            conn.send({"error": f"Unknown request: {message!r}"})


def request_database_path(address: str, *, authkey=None) -> str:
    """Ask the owning desktop process for the Local Store path."""
    try:
        with Client(parse_address(address), authkey=_as_authkey(authkey)) as conn:
            conn.send(PATH_REQUEST)
            reply = conn.recv()
    except (OSError, EOFError) as exc:
        raise PathBrokerError(f"Path broker at {address} unreachable: {exc}") from exc
    if not isinstance(reply, dict) or not reply.get("path"):
        raise PathBrokerError(f"Path broker refused request: {reply!r}")
    return reply["path"]
