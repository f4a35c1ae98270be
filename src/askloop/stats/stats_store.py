# src/askloop/stats/stats_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from ..core.errors import StorageError
from .stats_models import CommandKind, StatEvent

logger = logging.getLogger(__name__)


class StatsStore:
    """
    Append-only SQLite log of StatEvents.

    Writers never share a connection: each record() is one INSERT in its own
    short transaction, and SQLite serializes concurrent writers (busy timeout 30s).
    Rows are never updated or deleted.
    """

    def __init__(self, db_path: str | Path = "stats.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("StatsStore ready db=%s total=%s", self._db_path, self.count_events())

    def close(self) -> None:
        return

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageError(f"cannot open {self._db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS stat_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    command TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    duration_ms INTEGER NOT NULL,
                    success INTEGER NOT NULL,
                    error_kind TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_stat_user_ts ON stat_events(user_id, timestamp)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_stat_command_ts ON stat_events(command, timestamp)")
            conn.commit()

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> StatEvent:
        return StatEvent(
            id=int(row["id"]),
            command=CommandKind(row["command"]),
            user_id=str(row["user_id"]),
            timestamp=float(row["timestamp"]),
            duration_ms=int(row["duration_ms"]),
            success=bool(row["success"]),
            error_kind=row["error_kind"],
        )

    # ---- writes ----

    def record(self, event: StatEvent) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO stat_events(command, user_id, timestamp, duration_ms, success, error_kind)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.command.value,
                    event.user_id,
                    float(event.timestamp),
                    max(0, int(event.duration_ms)),
                    1 if event.success else 0,
                    event.error_kind,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
        if rowid is None:
            raise StorageError("SQLite did not return lastrowid for stat_events insert")
        return int(rowid)

    # ---- reads ----

    def count_events(self) -> int:
        with self._connect() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM stat_events").fetchone()
            return int(n)

    def list_events(self, user_id: str, limit: int = 50) -> list[StatEvent]:
        """Most recent events of one user, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM stat_events
                WHERE user_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                (user_id, int(limit)),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def user_totals(self, user_id: str) -> tuple[int, int, float, int]:
        """(total, distinct UTC dates, mean duration ms, failed) for one user."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COUNT(DISTINCT date(timestamp, 'unixepoch')) AS active_days,
                    AVG(duration_ms) AS avg_duration,
                    SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END) AS failed
                FROM stat_events
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        return (
            int(row["total"] or 0),
            int(row["active_days"] or 0),
            float(row["avg_duration"] or 0.0),
            int(row["failed"] or 0),
        )

    def command_totals(self) -> list[tuple[str, int, int, float, int]]:
        """
        (command, count, distinct UTC dates, mean duration ms, failed) per command
        kind, most used first.
        """
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    command,
                    COUNT(*) AS usage_count,
                    COUNT(DISTINCT date(timestamp, 'unixepoch')) AS active_days,
                    AVG(duration_ms) AS avg_duration,
                    SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END) AS failed
                FROM stat_events
                GROUP BY command
                ORDER BY usage_count DESC, command ASC
                """
            ).fetchall()
        return [
            (
                str(r["command"]),
                int(r["usage_count"]),
                int(r["active_days"] or 0),
                float(r["avg_duration"] or 0.0),
                int(r["failed"] or 0),
            )
            for r in rows
        ]
