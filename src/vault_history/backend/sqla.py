"""Network-engine backend built on SQLAlchemy Core.

Used for MySQL / MariaDB / PostgreSQL vaults (any URL SQLAlchemy accepts).
Statements written with positional ``?`` placeholders are rewritten to
numbered bound parameters, so the same SQL runs on every dialect.  The SQL
issued by this package never contains a literal ``?`` inside a string.

Per-item serialization uses ``SELECT ... FOR UPDATE`` on the item row.
Identifiers are unquoted, so engines that fold them (PostgreSQL) hand back
lower-cased names; row keys and introspection are matched regardless of
case.

SQLite URLs are accepted too (handy for tests); for those the pysqlite
driver is switched to explicit ``BEGIN IMMEDIATE`` so savepoints and write
locking behave like ``SQLiteBackend``.
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import BackendUnavailable
from .base import Row

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\?")
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _bind_positional(
    sql: str, params: Sequence[Any]
) -> tuple[Any, dict[str, Any]]:
    """Rewrite ``?`` placeholders to ``:p0, :p1, ...`` and build the bind dict."""
    counter = itertools.count()
    named = _PLACEHOLDER.sub(lambda _m: f":p{next(counter)}", sql)
    return text(named), {f"p{i}": value for i, value in enumerate(params)}


def _spelling_map(sql: str) -> dict[str, str]:
    """Lower-cased identifier -> spelling used in *sql*."""
    return {word.lower(): word for word in _IDENTIFIER.findall(sql)}


def _canonical_row(mapping: Any, spelling: dict[str, str]) -> Row:
    """Restore the statement's spelling of case-folded result keys.

    PostgreSQL folds unquoted identifiers to lower case, so
    ``SELECT HeadRevision`` comes back keyed ``headrevision``.
    """
    return {spelling.get(key.lower(), key): value for key, value in mapping.items()}


class SQLAlchemyBackend:
    """``Backend`` implementation over a SQLAlchemy engine.

    Args:
        url: SQLAlchemy database URL.
        **engine_kwargs: Passed through to ``create_engine()``.
    """

    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.url = url
        try:
            self._engine = create_engine(url, **engine_kwargs)
            if self._engine.dialect.name == "sqlite":
                _use_explicit_sqlite_transactions(self._engine)
            self._conn = self._engine.connect()
        except SQLAlchemyError as exc:
            raise BackendUnavailable(
                f"Cannot connect to {self._engine_label()}: {exc}"
            ) from exc
        self._lock = threading.RLock()
        self._stack: list[Any] = []
        self._last_id = 0
        logger.debug(
            "Opened SQLAlchemy backend (%s)", self._engine.dialect.name
        )

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        stmt, binds = _bind_positional(sql, params)
        with self._lock:
            try:
                result = self._conn.execute(stmt, binds)
                try:
                    self._last_id = result.lastrowid or 0
                except (AttributeError, SQLAlchemyError):
                    self._last_id = 0
                count = result.rowcount
                self._autocommit()
                return count
            except SQLAlchemyError as exc:
                self._abort_implicit()
                raise BackendUnavailable(str(exc)) from exc

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        stmt, binds = _bind_positional(sql, params)
        with self._lock:
            try:
                result = self._conn.execute(stmt, binds)
                spelling = _spelling_map(sql)
                rows = [_canonical_row(row._mapping, spelling) for row in result]
                self._autocommit()
                return rows
            except SQLAlchemyError as exc:
                self._abort_implicit()
                raise BackendUnavailable(str(exc)) from exc

    def query_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> Row | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def last_insert_id(self) -> int:
        return self._last_id

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return bool(self._stack)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            try:
                trans = (
                    self._conn.begin_nested()
                    if self._stack
                    else self._conn.begin()
                )
            except SQLAlchemyError as exc:
                raise BackendUnavailable(str(exc)) from exc
            self._stack.append(trans)
            try:
                yield
            except BaseException:
                self._stack.pop()
                try:
                    trans.rollback()
                except SQLAlchemyError as exc:
                    logger.error("Rollback failed: %s", exc)
                raise
            self._stack.pop()
            try:
                trans.commit()
            except SQLAlchemyError as exc:
                raise BackendUnavailable(str(exc)) from exc

    def lock_item(self, item_id: int) -> None:
        if self.dialect == "sqlite":
            # BEGIN IMMEDIATE already holds the database write lock.
            return
        self.query(
            "SELECT ID FROM VaultItems WHERE ID = ? FOR UPDATE", (item_id,)
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def has_column(self, table: str, column: str) -> bool:
        with self._lock:
            try:
                inspector = inspect(self._conn)
                actual = _match_name(table, inspector.get_table_names())
                if actual is None:
                    return False
                columns = inspector.get_columns(actual)
            except SQLAlchemyError as exc:
                raise BackendUnavailable(str(exc)) from exc
            finally:
                self._autocommit()
        return _match_name(column, [col["name"] for col in columns]) is not None

    def table_exists(self, table: str) -> bool:
        with self._lock:
            try:
                names = inspect(self._conn).get_table_names()
            except SQLAlchemyError as exc:
                raise BackendUnavailable(str(exc)) from exc
            finally:
                self._autocommit()
        return _match_name(table, names) is not None

    def close(self) -> None:
        with self._lock:
            self._conn.close()
            self._engine.dispose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _autocommit(self) -> None:
        """End the implicit transaction SQLAlchemy opens outside ``transaction()``."""
        if not self._stack and self._conn.in_transaction():
            self._conn.commit()

    def _abort_implicit(self) -> None:
        if not self._stack and self._conn.in_transaction():
            self._conn.rollback()

    def _engine_label(self) -> str:
        return self.url.split("@")[-1]


def _use_explicit_sqlite_transactions(engine: Any) -> None:
    """Make pysqlite honour SAVEPOINT by emitting BEGIN ourselves."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _match_name(name: str, names: Sequence[str]) -> str | None:
    """Find *name* among *names* regardless of case folding."""
    wanted = name.lower()
    for candidate in names:
        if candidate.lower() == wanted:
            return candidate
    return None
