"""Storage backends for the revision engine.

- ``SQLiteBackend`` -- local vault files through the ``sqlite3`` module.
- ``SQLAlchemyBackend`` -- network engines (MySQL, MariaDB, PostgreSQL)
  through SQLAlchemy Core.

``open_backend()`` picks the implementation from a database URL.
"""

from __future__ import annotations

from .base import Backend, Row, check_identifier
from .sqlite import SQLiteBackend

_SQLITE_PREFIX = "sqlite:///"


def open_backend(url: str) -> Backend:
    """Open a backend for *url*.

    ``sqlite:///path/to/vault.db`` and bare filesystem paths open a
    ``SQLiteBackend``; every other URL is handed to SQLAlchemy.

    Raises:
        ValueError: If *url* is empty.
        BackendUnavailable: If the database cannot be opened.
    """
    url = url.strip()
    if not url:
        raise ValueError("Database URL cannot be empty")
    if url.startswith(_SQLITE_PREFIX):
        return SQLiteBackend(url[len(_SQLITE_PREFIX):] or ":memory:")
    if "://" not in url:
        return SQLiteBackend(url)

    from .sqla import SQLAlchemyBackend

    return SQLAlchemyBackend(url)


__all__ = [
    "Backend",
    "Row",
    "SQLiteBackend",
    "check_identifier",
    "open_backend",
]
