"""
Persistence backends for the sealed wallet envelope.

The core only needs a tiny key/value contract (``store`` / ``load`` /
``remove``) holding base64 text under one well-known key.  Three
implementations are provided:

  - MemoryStore  — dict-backed, for tests and ephemeral sessions
  - FileStore    — one file per key inside a directory, atomic writes
  - SQLiteStore  — single ``kv`` table, WAL mode

Usage:
    store = open_store(cfg.storage)
    store.store("bitguard_wallet", envelope)
    store.load("bitguard_wallet")
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger("bitguard.storage")

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def _check_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_RE.match(key) or key in (".", ".."):
        raise ValueError(f"Invalid storage key: {key!r}")
    return key


@runtime_checkable
class Persistence(Protocol):
    """What WalletManager needs from a backing store."""

    def store(self, key: str, value: str) -> None: ...

    def load(self, key: str) -> str | None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; contents vanish with the object."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def store(self, key: str, value: str) -> None:
        with self._lock:
            self._data[_check_key(key)] = value

    def load(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(_check_key(key))

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(_check_key(key), None)

    def __len__(self) -> int:
        return len(self._data)


class FileStore:
    """
    One UTF-8 text file per key under *directory*.

    Writes go to a temporary file in the same directory and are moved
    into place with ``os.replace`` so a reader never sees a torn value.
    """

    def __init__(self, directory: str | os.PathLike[str] = "data/wallet"):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_check_key(key)}.vault"

    def store(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=str(self.directory), prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            if os.name == "posix":
                os.chmod(tmp, 0o600)
            os.replace(tmp, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise
        logger.debug("Stored %s", path)

    def load(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        logger.info("Removed %s", path)


class SQLiteStore:
    """Thin SQLite wrapper exposing the Persistence contract."""

    def __init__(self, db_path: str = "data/bitguard.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._create_tables()
        logger.info("Storage opened: %s", db_path)

    def _create_tables(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def store(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (_check_key(key), value),
            )
            self._conn.commit()

    def load(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key = ?", (_check_key(key),)
            ).fetchone()
        return row["value"] if row else None

    def remove(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (_check_key(key),))
            self._conn.commit()

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def open_store(storage_cfg: Any) -> Persistence:
    """Build the backend named by a ``StorageConfig``."""
    backend = storage_cfg.backend.lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        return FileStore(storage_cfg.path)
    if backend == "sqlite":
        return SQLiteStore(storage_cfg.path)
    raise ValueError(f"Unknown storage backend: {storage_cfg.backend!r}")
