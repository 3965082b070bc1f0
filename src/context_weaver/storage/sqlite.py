"""SQLite storage collaborator — requires aiosqlite (guarded import).

Messages are stored as relational rows, one per message, ordered by an
autoincrement row id so insertion order survives a round trip.  Summaries
live in a second table keyed by session id.

Classes
-------
- SQLiteStorage  — aiosqlite-backed async storage
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from context_weaver.session.state import Message, MessageRole
from context_weaver.storage.base import AsyncStorageAdapter, apply_updates, check_updates

logger = logging.getLogger(__name__)

_AIOSQLITE_IMPORT_ERROR = (
    "SQLiteStorage requires the 'aiosqlite' package. "
    "Install it with: pip install aiosqlite  or  pip install 'context-weaver[sqlite]'"
)

_DEFAULT_DB_PATH: Path = Path.home() / ".context-weaver" / "messages.db"

_CREATE_MESSAGES_SQL = """
CREATE TABLE IF NOT EXISTS messages (
    row_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    role       TEXT NOT NULL,
    content    TEXT NOT NULL,
    timestamp  INTEGER NOT NULL,
    pinned     INTEGER NOT NULL DEFAULT 0,
    importance REAL,
    metadata   TEXT NOT NULL DEFAULT '{}',
    UNIQUE (session_id, message_id)
)
"""

_CREATE_SUMMARIES_SQL = """
CREATE TABLE IF NOT EXISTS summaries (
    session_id TEXT PRIMARY KEY,
    summary    TEXT NOT NULL
)
"""

_INSERT_MESSAGE_SQL = """
INSERT INTO messages
    (session_id, message_id, role, content, timestamp, pinned, importance, metadata)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""

_UPSERT_SUMMARY_SQL = """
INSERT INTO summaries (session_id, summary) VALUES (?, ?)
ON CONFLICT(session_id) DO UPDATE SET summary = excluded.summary
"""

_UPDATE_MESSAGE_SQL = """
UPDATE messages
SET role = ?, content = ?, timestamp = ?, pinned = ?, importance = ?, metadata = ?
WHERE session_id = ? AND message_id = ?
"""


def _row_to_message(row: Any) -> Message:
    return Message(
        id=row["message_id"],
        role=MessageRole(row["role"]),
        content=row["content"],
        timestamp=int(row["timestamp"]),
        pinned=bool(row["pinned"]),
        importance=row["importance"],
        metadata=json.loads(row["metadata"] or "{}"),
    )


class SQLiteStorage(AsyncStorageAdapter):
    """Persists messages in a local SQLite database using aiosqlite.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Defaults to
        ``~/.context-weaver/messages.db``.  The parent directory and
        tables are created automatically on first use.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        try:
            import aiosqlite as _aiosqlite  # noqa: F401
        except ImportError as exc:
            raise ImportError(_AIOSQLITE_IMPORT_ERROR) from exc

        self._db_path: Path = Path(db_path) if db_path is not None else _DEFAULT_DB_PATH
        self._schema_initialised = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_schema(self) -> None:
        """Create the tables on first use."""
        if self._schema_initialised:
            return
        import aiosqlite

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(_CREATE_MESSAGES_SQL)
            await conn.execute(_CREATE_SUMMARIES_SQL)
            await conn.commit()
        self._schema_initialised = True
        logger.debug("SQLiteStorage: schema ready at %s", self._db_path)

    async def _write(self, sql: str, params: tuple[Any, ...]) -> int:
        """Run one write statement and return the affected row count."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            cursor = await conn.execute(sql, params)
            await conn.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # AsyncStorageAdapter interface
    # ------------------------------------------------------------------

    async def get_messages(self, session_id: str) -> list[Message]:
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            conn.row_factory = aiosqlite.Row
            async with conn.execute(
                "SELECT * FROM messages WHERE session_id = ? ORDER BY row_id", (session_id,)
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_message(row) for row in rows]

    async def add_message(self, session_id: str, message: Message) -> None:
        await self._write(
            _INSERT_MESSAGE_SQL,
            (
                session_id,
                message.id,
                message.role.value,
                message.content,
                message.timestamp,
                int(message.pinned),
                message.importance,
                json.dumps(message.metadata),
            ),
        )

    async def update_message(
        self, session_id: str, message_id: str, updates: dict[str, Any]
    ) -> bool:
        import aiosqlite

        check_updates(updates)
        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            conn.row_factory = aiosqlite.Row
            async with conn.execute(
                "SELECT * FROM messages WHERE session_id = ? AND message_id = ?",
                (session_id, message_id),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return False
            updated = apply_updates(_row_to_message(row), updates)
            await conn.execute(
                _UPDATE_MESSAGE_SQL,
                (
                    updated.role.value,
                    updated.content,
                    updated.timestamp,
                    int(updated.pinned),
                    updated.importance,
                    json.dumps(updated.metadata),
                    session_id,
                    message_id,
                ),
            )
            await conn.commit()
        return True

    async def delete_message(self, session_id: str, message_id: str) -> bool:
        count = await self._write(
            "DELETE FROM messages WHERE session_id = ? AND message_id = ?",
            (session_id, message_id),
        )
        return count > 0

    async def get_summary(self, session_id: str) -> str | None:
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            async with conn.execute(
                "SELECT summary FROM summaries WHERE session_id = ?", (session_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return str(row[0]) if row is not None else None

    async def set_summary(self, session_id: str, summary: str) -> None:
        await self._write(_UPSERT_SUMMARY_SQL, (session_id, summary))

    async def clear_session(self, session_id: str) -> None:
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            await conn.execute("DELETE FROM summaries WHERE session_id = ?", (session_id,))
            await conn.commit()

    async def has_session(self, session_id: str) -> bool:
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            async with conn.execute(
                "SELECT 1 FROM messages WHERE session_id = ? "
                "UNION SELECT 1 FROM summaries WHERE session_id = ? LIMIT 1",
                (session_id, session_id),
            ) as cursor:
                row = await cursor.fetchone()
        return row is not None

    async def list_sessions(self) -> list[str]:
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            async with conn.execute(
                "SELECT session_id FROM messages GROUP BY session_id "
                "UNION SELECT session_id FROM summaries"
            ) as cursor:
                rows = await cursor.fetchall()
        return sorted(str(row[0]) for row in rows)

    def __repr__(self) -> str:
        return f"SQLiteStorage(db_path={str(self._db_path)!r})"


__all__ = ["SQLiteStorage"]
