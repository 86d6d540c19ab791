"""File-based backend on the standard library ``sqlite3`` module.

The connection runs in autocommit mode and transactions are opened
explicitly with ``BEGIN IMMEDIATE``, which takes the database write lock up
front.  That lock is the serialization point for version-sequence
allocation, so ``lock_item()`` has nothing left to do.

A single connection may be shared with a background sync thread; an
``RLock`` keeps one thread's transaction from interleaving with another's.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from ..errors import BackendUnavailable
from .base import Row, check_identifier

logger = logging.getLogger(__name__)


class SQLiteBackend:
    """``Backend`` implementation for a local SQLite database file.

    Args:
        path: Database file path, or ``":memory:"``.
        timeout: Seconds to wait for a competing writer's lock.
    """

    def __init__(self, path: str | Path, timeout: float = 30.0) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(
                self.path,
                timeout=timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            raise BackendUnavailable(
                f"Cannot open SQLite database {self.path}: {exc}"
            ) from exc
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._last_rowid = 0
        logger.debug("Opened SQLite backend at %s", self.path)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._lock:
            cur = self._run(sql, params)
            self._last_rowid = cur.lastrowid or 0
            return cur.rowcount

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        with self._lock:
            cur = self._run(sql, params)
            try:
                return [dict(row) for row in cur.fetchall()]
            except sqlite3.Error as exc:
                raise BackendUnavailable(str(exc)) from exc

    def query_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> Row | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def last_insert_id(self) -> int:
        return self._last_rowid

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            depth = self._depth
            savepoint = f"vh_sp_{depth}"
            self._run("BEGIN IMMEDIATE" if depth == 0 else f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if depth == 0:
                    self._rollback()
                else:
                    self._run(f"ROLLBACK TO {savepoint}")
                    self._run(f"RELEASE {savepoint}")
                raise
            self._depth -= 1
            if depth > 0:
                self._run(f"RELEASE {savepoint}")
                return
            try:
                self._run("COMMIT")
            except BackendUnavailable:
                self._rollback()
                raise

    def lock_item(self, item_id: int) -> None:
        if self._depth == 0:
            logger.warning(
                "lock_item(%s) called outside a transaction", item_id
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def has_column(self, table: str, column: str) -> bool:
        rows = self.query(f"PRAGMA table_info({check_identifier(table)})")
        return any(row["name"] == column for row in rows)

    def table_exists(self, table: str) -> bool:
        row = self.query_one(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        )
        return row is not None

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise BackendUnavailable(f"{exc} [{sql.strip()[:80]}]") from exc

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as exc:
            logger.error("SQLite rollback failed: %s", exc)
