"""Storage backend protocol.

The revision engine is written once against ``Backend``; each concrete
engine (file-based SQLite, network engines through SQLAlchemy) provides one
conforming implementation.  SQL is expressed with positional ``?``
placeholders and rows come back as plain dicts keyed by column name.
"""

from __future__ import annotations

import re
from contextlib import AbstractContextManager
from typing import Any, Protocol, Sequence

Row = dict[str, Any]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Backend(Protocol):
    """Protocol every storage backend must satisfy."""

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a mutating statement and return the affected row count."""
        ...  # pragma: no cover

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Run a SELECT and return every row."""
        ...  # pragma: no cover

    def query_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> Row | None:
        """Run a SELECT and return the first row, or ``None``."""
        ...  # pragma: no cover

    def last_insert_id(self) -> int:
        """Return the row id generated by the most recent INSERT."""
        ...  # pragma: no cover

    def transaction(self) -> AbstractContextManager[None]:
        """Open a unit of work.

        The outermost call begins a transaction and commits on clean exit
        or rolls back on any exception.  Nested calls open a savepoint
        with the same commit/rollback semantics.
        """
        ...  # pragma: no cover

    def lock_item(self, item_id: int) -> None:
        """Serialize writers of *item_id* for the current transaction."""
        ...  # pragma: no cover

    def has_column(self, table: str, column: str) -> bool:
        """Return ``True`` if *table* has a column named *column*."""
        ...  # pragma: no cover

    def table_exists(self, table: str) -> bool:
        """Return ``True`` if *table* exists."""
        ...  # pragma: no cover

    def close(self) -> None:
        """Release the underlying connection."""
        ...  # pragma: no cover


def check_identifier(name: str) -> str:
    """Return *name* if it is a safe SQL identifier.

    Raises:
        ValueError: If *name* contains anything but letters, digits and
            underscores.
    """
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name
