"""Thread and message persistence.

``ThreadPersistence`` is the interface the title pipeline and chat session
depend on. ``SQLiteThreadStore`` is the local implementation. The title
in-flight marker is a column on the thread row, so a crash mid-request
leaves a marker behind; the CLI's ``recover`` command clears such
markers through ``reset_in_flight``.
"""

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from .config import get_threads_db_path
from .core import Message, MessageSummary, Thread, utcnow
from .errors import PersistenceFailure

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS threads (
    id TEXT PRIMARY KEY,
    title TEXT,
    title_in_flight INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    thread_id TEXT NOT NULL REFERENCES threads(id),
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS message_summaries (
    id TEXT PRIMARY KEY,
    thread_id TEXT NOT NULL REFERENCES threads(id),
    message_id TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id, created_at);
CREATE INDEX IF NOT EXISTS idx_summaries_thread ON message_summaries(thread_id);
"""


class ThreadPersistence(Protocol):
    async def create_thread(self, thread_id: str, title: Optional[str] = None) -> Thread: ...

    async def get_thread(self, thread_id: str) -> Optional[Thread]: ...

    async def create_message(self, thread_id: str, message: Message) -> None: ...

    async def count_user_messages(self, thread_id: str) -> int: ...

    async def create_message_summary(self, thread_id: str, message_id: str, title: str) -> None: ...

    async def update_thread(self, thread_id: str, title: str) -> None: ...

    async def mark_title_in_flight(self, thread_id: str) -> bool: ...

    async def clear_title_in_flight(self, thread_id: str) -> None: ...

    async def is_title_in_flight(self, thread_id: str) -> bool: ...

    async def reset_in_flight(self) -> int: ...


class SQLiteThreadStore:
    """SQLite-backed ``ThreadPersistence``.

    Each operation opens its own connection on a worker thread so the event
    loop never blocks on disk I/O.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or get_threads_db_path())
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._run_sync(lambda conn: conn.executescript(_SCHEMA))

    async def create_thread(self, thread_id: str, title: Optional[str] = None) -> Thread:
        now = utcnow()

        def op(conn):
            _ensure_thread(conn, thread_id, now)
            if title is not None:
                conn.execute("UPDATE threads SET title = ? WHERE id = ?", (title, thread_id))

        await self._run(op)
        return await self.get_thread(thread_id)

    async def get_thread(self, thread_id: str) -> Optional[Thread]:
        def op(conn):
            row = conn.execute(
                "SELECT id, title, created_at, updated_at FROM threads WHERE id = ?", (thread_id,)
            ).fetchone()
            if row is None:
                return None
            msg_rows = conn.execute(
                "SELECT id, role, content, created_at FROM messages "
                "WHERE thread_id = ? ORDER BY created_at, rowid",
                (thread_id,),
            ).fetchall()
            return row, msg_rows

        result = await self._run(op)
        if result is None:
            return None
        row, msg_rows = result
        messages = [
            Message(
                id=m[0],
                thread_id=thread_id,
                role=m[1],
                content=m[2],
                created_at=datetime.fromisoformat(m[3]),
            )
            for m in msg_rows
        ]
        return Thread(
            id=row[0],
            title=row[1],
            messages=messages,
            created_at=datetime.fromisoformat(row[2]),
            updated_at=datetime.fromisoformat(row[3]),
        )

    async def create_message(self, thread_id: str, message: Message) -> None:
        def op(conn):
            _ensure_thread(conn, thread_id, message.created_at)
            conn.execute(
                "INSERT INTO messages (id, thread_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (message.id, thread_id, message.role, message.content, message.created_at.isoformat()),
            )
            conn.execute(
                "UPDATE threads SET updated_at = ? WHERE id = ?",
                (message.created_at.isoformat(), thread_id),
            )

        await self._run(op)

    async def count_user_messages(self, thread_id: str) -> int:
        def op(conn):
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE thread_id = ? AND role = 'user'", (thread_id,)
            ).fetchone()
            return row[0]

        return await self._run(op)

    async def create_message_summary(self, thread_id: str, message_id: str, title: str) -> None:
        summary = MessageSummary(thread_id=thread_id, message_id=message_id, content=title)

        def op(conn):
            conn.execute(
                "INSERT INTO message_summaries (id, thread_id, message_id, content, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (summary.id, thread_id, message_id, title, summary.created_at.isoformat()),
            )

        await self._run(op)

    async def list_message_summaries(self, thread_id: str) -> list[MessageSummary]:
        def op(conn):
            return conn.execute(
                "SELECT id, message_id, content, created_at FROM message_summaries "
                "WHERE thread_id = ? ORDER BY created_at, rowid",
                (thread_id,),
            ).fetchall()

        rows = await self._run(op)
        return [
            MessageSummary(
                id=r[0],
                thread_id=thread_id,
                message_id=r[1],
                content=r[2],
                created_at=datetime.fromisoformat(r[3]),
            )
            for r in rows
        ]

    async def update_thread(self, thread_id: str, title: str) -> None:
        now = utcnow()

        def op(conn):
            _ensure_thread(conn, thread_id, now)
            conn.execute(
                "UPDATE threads SET title = ?, updated_at = ? WHERE id = ?",
                (title, now.isoformat(), thread_id),
            )

        await self._run(op)

    async def mark_title_in_flight(self, thread_id: str) -> bool:
        """Claim the thread's single title slot. False if already claimed."""
        now = utcnow()

        def op(conn):
            _ensure_thread(conn, thread_id, now)
            cur = conn.execute(
                "UPDATE threads SET title_in_flight = 1 WHERE id = ? AND title_in_flight = 0",
                (thread_id,),
            )
            return cur.rowcount == 1

        return await self._run(op)

    async def clear_title_in_flight(self, thread_id: str) -> None:
        await self._run(
            lambda conn: conn.execute("UPDATE threads SET title_in_flight = 0 WHERE id = ?", (thread_id,))
        )

    async def is_title_in_flight(self, thread_id: str) -> bool:
        def op(conn):
            row = conn.execute("SELECT title_in_flight FROM threads WHERE id = ?", (thread_id,)).fetchone()
            return bool(row and row[0])

        return await self._run(op)

    async def reset_in_flight(self) -> int:
        """Clear every in-flight marker. Call once at startup."""
        count = await self._run(
            lambda conn: conn.execute("UPDATE threads SET title_in_flight = 0 WHERE title_in_flight = 1").rowcount
        )
        if count:
            logger.info("Reset %d stale title marker(s)", count)
        return count

    # ── Private helpers ──────────────────────────────────────────────

    async def _run(self, op):
        return await asyncio.to_thread(self._run_sync, op)

    def _run_sync(self, op):
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10)
        except sqlite3.Error as e:
            raise PersistenceFailure() from e
        try:
            with conn:
                return op(conn)
        except sqlite3.Error as e:
            logger.error("Database error on %s: %s", self.db_path, e)
            raise PersistenceFailure() from e
        finally:
            conn.close()


def _ensure_thread(conn: sqlite3.Connection, thread_id: str, now: datetime) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO threads (id, title, title_in_flight, created_at, updated_at) "
        "VALUES (?, NULL, 0, ?, ?)",
        (thread_id, now.isoformat(), now.isoformat()),
    )
