"""RecordStore — libsql persistence for short-term messages and long-term memories."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from brain.config import settings
from brain.db import get_connection
from brain.errors import StoreUnavailable
from brain.memory.clock import now_ms
from brain.memory.models import LongTermEntry, MessageEntry
from brain.memory.replication import Replicator

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from brain.config import StorageLocation
    from brain.db import _AsyncConnection

logger = logging.getLogger(__name__)

# *_folded and folded columns hold str.casefold() of their source text. SQLite's
# LOWER() only folds ASCII, so searches match against these instead.
_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        seq            INTEGER PRIMARY KEY AUTOINCREMENT,
        id             TEXT NOT NULL UNIQUE,
        timestamp      INTEGER NOT NULL,
        role           TEXT NOT NULL,
        content        TEXT NOT NULL,
        content_folded TEXT NOT NULL,
        session_id     TEXT NOT NULL,
        consolidated   INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_messages_session_timestamp
    ON messages (session_id, timestamp)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_messages_timestamp
    ON messages (timestamp)
    """,
    """
    CREATE TABLE IF NOT EXISTS long_term_memory (
        seq               INTEGER PRIMARY KEY AUTOINCREMENT,
        id                TEXT NOT NULL UNIQUE,
        timestamp         INTEGER NOT NULL,
        summary           TEXT NOT NULL,
        summary_folded    TEXT NOT NULL,
        consolidated_from TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_long_term_timestamp
    ON long_term_memory (timestamp)
    """,
    """
    CREATE TABLE IF NOT EXISTS long_term_topics (
        entry_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        topic    TEXT NOT NULL,
        folded   TEXT NOT NULL,
        PRIMARY KEY (entry_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS long_term_insights (
        entry_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        insight  TEXT NOT NULL,
        folded   TEXT NOT NULL,
        PRIMARY KEY (entry_id, position)
    )
    """,
)

MESSAGE_COLUMNS = "seq, id, timestamp, role, content, session_id, consolidated"
LONG_TERM_COLUMNS = "seq, id, timestamp, summary, consolidated_from"


def _row_to_message(row: tuple) -> MessageEntry:
    return MessageEntry(
        seq=row[0],
        id=row[1],
        timestamp=row[2],
        role=row[3],
        content=row[4],
        session_id=row[5],
        consolidated=bool(row[6]),
    )


def _placeholders(count: int) -> str:
    return ", ".join("?" * count)


class RecordStore:
    """Persists both memory tiers in SQLite / libSQL.

    Singleton accessed via ``RecordStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``); that also disables
    remote sync.  *clock* returns epoch milliseconds and is injectable for
    tests.
    """

    _instance: RecordStore | None = None

    def __init__(
        self,
        db_path: Path | None = None,
        *,
        location: StorageLocation | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._db_path = db_path
        self._location = None if db_path else (location or settings.get_storage_location())
        self._clock = clock or now_ms
        self._initialised = False
        self._last_timestamp = 0
        self._replicator: Replicator | None = None
        if self._location is not None and self._location.is_remote:
            self._replicator = Replicator(self._sync_once)

    @classmethod
    def get(cls) -> RecordStore:
        """Return the shared RecordStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def replicator(self) -> Replicator | None:
        return self._replicator

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> _AsyncConnection:
        try:
            db = await get_connection(self._location, local_path_override=self._db_path)
        except Exception as exc:
            msg = f"Record store unavailable: {exc}"
            raise StoreUnavailable(msg) from exc
        if not self._initialised:
            try:
                if db.is_replica:
                    await self._pull(db)
                for statement in _SCHEMA:
                    await db.execute(statement)
                await db.commit()
            except Exception:
                await db.close()
                raise
            self._initialised = True
        return db

    @staticmethod
    async def _pull(db: _AsyncConnection) -> None:
        """Bring the replica up to date before first use."""
        try:
            await db.sync()
        except Exception:
            logger.warning("Initial sync from remote failed; starting from local replica",
                           exc_info=True)

    async def _sync_once(self) -> None:
        db = await get_connection(self._location)
        try:
            await db.sync()
        finally:
            await db.close()

    def _changed(self) -> None:
        if self._replicator is not None:
            self._replicator.request()

    def _next_timestamp(self) -> int:
        """Wall-clock milliseconds, never earlier than the previous write."""
        timestamp = max(self._clock(), self._last_timestamp)
        self._last_timestamp = timestamp
        return timestamp

    @staticmethod
    async def _write_lists(
        db: _AsyncConnection, entry_id: str, topics: list[str], key_insights: list[str]
    ) -> None:
        for position, topic in enumerate(topics):
            await db.execute(
                "INSERT INTO long_term_topics (entry_id, position, topic, folded) "
                "VALUES (?, ?, ?, ?)",
                (entry_id, position, topic, topic.casefold()),
            )
        for position, insight in enumerate(key_insights):
            await db.execute(
                "INSERT INTO long_term_insights (entry_id, position, insight, folded) "
                "VALUES (?, ?, ?, ?)",
                (entry_id, position, insight, insight.casefold()),
            )

    @staticmethod
    async def _hydrate(db: _AsyncConnection, rows: list[tuple]) -> list[LongTermEntry]:
        """Attach topic and insight lists to long-term rows, preserving row order."""
        if not rows:
            return []
        ids = tuple(row[1] for row in rows)
        topics: dict[str, list[str]] = {entry_id: [] for entry_id in ids}
        insights: dict[str, list[str]] = {entry_id: [] for entry_id in ids}

        cursor = await db.execute(
            f"SELECT entry_id, topic FROM long_term_topics "  # noqa: S608
            f"WHERE entry_id IN ({_placeholders(len(ids))}) ORDER BY entry_id, position",
            ids,
        )
        for entry_id, topic in await cursor.fetchall():
            topics[entry_id].append(topic)

        cursor = await db.execute(
            f"SELECT entry_id, insight FROM long_term_insights "  # noqa: S608
            f"WHERE entry_id IN ({_placeholders(len(ids))}) ORDER BY entry_id, position",
            ids,
        )
        for entry_id, insight in await cursor.fetchall():
            insights[entry_id].append(insight)

        return [
            LongTermEntry(
                id=row[1],
                timestamp=row[2],
                summary=row[3],
                consolidated_from=row[4],
                topics=topics[row[1]],
                key_insights=insights[row[1]],
            )
            for row in rows
        ]

    # -- Short-term ------------------------------------------------------------

    async def append(self, session_id: str, role: str, content: str) -> MessageEntry:
        """Store one message. The role is not validated here."""
        entry_id = uuid.uuid4().hex
        timestamp = self._next_timestamp()
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO messages
                    (id, timestamp, role, content, content_folded, session_id, consolidated)
                VALUES (?, ?, ?, ?, ?, ?, 0)
                """,
                (entry_id, timestamp, role, content, content.casefold(), session_id),
            )
            cursor = await db.execute("SELECT seq FROM messages WHERE id = ?", (entry_id,))
            row = await cursor.fetchone()
            await db.commit()
        finally:
            await db.close()

        self._changed()
        logger.debug("Stored %s message in session %s", role, session_id)
        return MessageEntry(
            id=entry_id,
            seq=row[0] if row else 0,
            timestamp=timestamp,
            role=role,
            content=content,
            session_id=session_id,
        )

    async def recent_sessions(self, n: int) -> list[MessageEntry]:
        """Messages of the *n* most recently active sessions.

        Sessions come most recent first; messages within a session are in
        append order.
        """
        if n <= 0:
            return []
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT session_id FROM messages
                GROUP BY session_id
                ORDER BY MAX(timestamp) DESC, MAX(seq) DESC
                LIMIT ?
                """,
                (n,),
            )
            session_ids = [row[0] for row in await cursor.fetchall()]
            if not session_ids:
                return []

            cursor = await db.execute(
                f"SELECT {MESSAGE_COLUMNS} FROM messages "  # noqa: S608
                f"WHERE session_id IN ({_placeholders(len(session_ids))}) "
                f"ORDER BY timestamp ASC, seq ASC",
                tuple(session_ids),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()

        rank = {session_id: i for i, session_id in enumerate(session_ids)}
        entries = [_row_to_message(row) for row in rows]
        entries.sort(key=lambda e: rank[e.session_id])
        return entries

    async def unconsolidated_since(self, start_of_day: int) -> list[MessageEntry]:
        """Unconsolidated messages at or after *start_of_day*, oldest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {MESSAGE_COLUMNS} FROM messages "  # noqa: S608
                "WHERE timestamp >= ? AND consolidated = 0 "
                "ORDER BY timestamp ASC, seq ASC",
                (start_of_day,),
            )
            rows = await cursor.fetchall()
            return [_row_to_message(row) for row in rows]
        finally:
            await db.close()

    async def mark_consolidated(self, start_of_day: int, through_seq: int | None = None) -> int:
        """Flag unconsolidated messages since *start_of_day* as consumed.

        When *through_seq* is given, only messages inserted up to that
        sequence number are flagged. Returns the number of rows flipped.
        """
        sql = "UPDATE messages SET consolidated = 1 WHERE timestamp >= ? AND consolidated = 0"
        params: tuple[Any, ...] = (start_of_day,)
        if through_seq is not None:
            sql += " AND seq <= ?"
            params += (through_seq,)

        db = await self._connect()
        try:
            cursor = await db.execute(sql, params)
            count = cursor.rowcount
            await db.commit()
        finally:
            await db.close()

        if count:
            self._changed()
        logger.info("Marked %d message(s) as consolidated", count)
        return count

    async def clear_all(self) -> int:
        """Delete every message regardless of state. Returns the prior count."""
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT COUNT(*) FROM messages")
            row = await cursor.fetchone()
            count = row[0] if row else 0
            await db.execute("DELETE FROM messages")
            await db.commit()
        finally:
            await db.close()

        self._changed()
        logger.info("Cleared %d short-term message(s)", count)
        return count

    async def select_messages(
        self, where: str, params: tuple, limit: int
    ) -> list[MessageEntry]:
        """Run a filtered message query, most recent first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {MESSAGE_COLUMNS} FROM messages WHERE {where} "  # noqa: S608
                "ORDER BY timestamp DESC, seq DESC LIMIT ?",
                (*params, limit),
            )
            rows = await cursor.fetchall()
            return [_row_to_message(row) for row in rows]
        finally:
            await db.close()

    # -- Long-term -------------------------------------------------------------

    async def put_long_term(
        self,
        summary: str,
        topics: list[str],
        key_insights: list[str],
        provenance: str,
    ) -> str:
        """Insert a long-term memory. Returns its ID."""
        entry_id = uuid.uuid4().hex
        timestamp = self._next_timestamp()
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO long_term_memory
                    (id, timestamp, summary, summary_folded, consolidated_from)
                VALUES (?, ?, ?, ?, ?)
                """,
                (entry_id, timestamp, summary, summary.casefold(), provenance),
            )
            await self._write_lists(db, entry_id, topics, key_insights)
            await db.commit()
        finally:
            await db.close()

        self._changed()
        logger.info("Stored long-term memory %s (%s)", entry_id, provenance)
        return entry_id

    async def update_long_term(
        self,
        entry_id: str,
        summary: str,
        topics: list[str],
        key_insights: list[str],
        provenance: str,
    ) -> bool:
        """Replace a long-term memory's content in place. Returns False if not found."""
        timestamp = self._next_timestamp()
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                UPDATE long_term_memory
                SET timestamp = ?, summary = ?, summary_folded = ?, consolidated_from = ?
                WHERE id = ?
                """,
                (timestamp, summary, summary.casefold(), provenance, entry_id),
            )
            if cursor.rowcount == 0:
                return False
            await db.execute("DELETE FROM long_term_topics WHERE entry_id = ?", (entry_id,))
            await db.execute("DELETE FROM long_term_insights WHERE entry_id = ?", (entry_id,))
            await self._write_lists(db, entry_id, topics, key_insights)
            await db.commit()
        finally:
            await db.close()

        self._changed()
        logger.info("Updated long-term memory %s", entry_id)
        return True

    async def get_long_term(self, entry_id: str) -> LongTermEntry | None:
        """Fetch one long-term memory by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {LONG_TERM_COLUMNS} FROM long_term_memory WHERE id = ?",  # noqa: S608
                (entry_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            entries = await self._hydrate(db, [row])
            return entries[0]
        finally:
            await db.close()

    async def recent_long_term(self, limit: int) -> list[LongTermEntry]:
        """The *limit* newest long-term memories, newest first."""
        return await self.select_long_term("1 = 1", (), limit)

    async def select_long_term(
        self, where: str, params: tuple, limit: int
    ) -> list[LongTermEntry]:
        """Run a filtered long-term query, most recent first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {LONG_TERM_COLUMNS} FROM long_term_memory WHERE {where} "  # noqa: S608
                "ORDER BY timestamp DESC, seq DESC LIMIT ?",
                (*params, limit),
            )
            rows = await cursor.fetchall()
            return await self._hydrate(db, rows)
        finally:
            await db.close()

    # -- Stats / lifecycle -----------------------------------------------------

    async def stats(self) -> dict[str, int]:
        """Row counts for both tiers."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT COUNT(*),
                       COALESCE(SUM(consolidated), 0),
                       COUNT(DISTINCT session_id)
                FROM messages
                """
            )
            total, consolidated, sessions = await cursor.fetchone()
            cursor = await db.execute("SELECT COUNT(*) FROM long_term_memory")
            (long_term,) = await cursor.fetchone()
        finally:
            await db.close()

        return {
            "messages": total,
            "consolidated": consolidated,
            "unconsolidated": total - consolidated,
            "sessions": sessions,
            "long_term": long_term,
        }

    async def close(self) -> None:
        """Flush any pending remote sync."""
        if self._replicator is not None:
            await self._replicator.flush()
