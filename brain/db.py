"""Async database connection abstraction over libsql.

Provides a thin async wrapper around the synchronous ``libsql`` driver using
``asyncio.to_thread()``.  Connection target is determined by the storage
location:

- **Remote-backed**: ``STORAGE_URL`` is a libSQL/Turso URL → local embedded
  replica at ``replica_path`` that can be synced to the remote primary
- **Local**: plain path or ``file://`` URL → local SQLite file
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import libsql

if TYPE_CHECKING:
    from pathlib import Path

    from brain.config import StorageLocation

from brain.config import settings


class _AsyncCursor:
    """Thin async wrapper around a synchronous libsql cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Thin async wrapper around a synchronous libsql connection."""

    def __init__(self, conn: Any, *, replica: bool = False) -> None:
        self._conn = conn
        self._replica = replica

    @property
    def is_replica(self) -> bool:
        return self._replica

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def sync(self) -> None:
        """Push/pull the embedded replica against its remote primary."""
        if self._replica:
            await asyncio.to_thread(self._conn.sync)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_local(path: str) -> Any:
    """Open a local libsql connection with WAL mode and busy timeout."""
    conn = libsql.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


def _open_replica(path: str, sync_url: str, auth_token: str) -> Any:
    return libsql.connect(path, sync_url=sync_url, auth_token=auth_token)


async def get_connection(
    location: StorageLocation | None = None,
    local_path_override: Path | None = None,
) -> _AsyncConnection:
    """Return an async-wrapped libsql connection.

    If *local_path_override* is given (test isolation), it takes priority.
    Otherwise *location* (default: parsed from settings) decides between an
    embedded replica of a remote database and a plain local file.
    """
    if local_path_override:
        local_path_override.parent.mkdir(parents=True, exist_ok=True)
        conn = await asyncio.to_thread(_open_local, str(local_path_override))
        return _AsyncConnection(conn)

    location = location or settings.get_storage_location()
    location.local_path.parent.mkdir(parents=True, exist_ok=True)

    if location.is_remote:
        conn = await asyncio.to_thread(
            _open_replica,
            str(location.local_path),
            location.sync_url,
            location.auth_token,
        )
        return _AsyncConnection(conn, replica=True)

    conn = await asyncio.to_thread(_open_local, str(location.local_path))
    return _AsyncConnection(conn)
