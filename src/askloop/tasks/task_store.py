# src/askloop/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Iterator
from pathlib import Path

from ..core.errors import (
    AlreadyRunning,
    DuplicateName,
    InvalidInterval,
    InvalidName,
    InvalidQuestion,
    StorageError,
    TaskNotFound,
)
from .task_models import MAX_INTERVAL_SECONDS, MIN_INTERVAL_SECONDS, Task

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite store for recurring tasks.

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Concurrency:
    - each method opens its own SQLite connection (WAL, 30s busy timeout)
    - every mutation is a single transaction on one row
    - the in-flight flag is claimed with a compare-and-set UPDATE, which is the only
      thing preventing two executions of the same task from overlapping
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, max_consecutive_failures: int = 0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_consecutive_failures = max(0, int(max_consecutive_failures))
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except StorageError:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

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
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    interval_seconds REAL NOT NULL,
                    question TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    next_run_at REAL NOT NULL,
                    last_run_at REAL,
                    consecutive_failures INTEGER NOT NULL DEFAULT 0,
                    in_flight INTEGER NOT NULL DEFAULT 0,
                    UNIQUE(owner_id, name)
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("active", "INTEGER NOT NULL DEFAULT 1")
            add_col("room_id", "TEXT")
            add_col("last_error", "TEXT")
            add_col("last_duration_ms", "INTEGER")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(active, next_run_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id, created_at)")
            conn.commit()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            name=str(row["name"]),
            interval_seconds=float(row["interval_seconds"]),
            question=str(row["question"]),
            created_at=float(row["created_at"]),
            next_run_at=float(row["next_run_at"]),
            last_run_at=float(row["last_run_at"]) if row["last_run_at"] is not None else None,
            consecutive_failures=int(row["consecutive_failures"] or 0),
            in_flight=bool(row["in_flight"]),
            active=bool(row["active"]),
            room_id=row["room_id"],
            last_error=row["last_error"],
            last_duration_ms=int(row["last_duration_ms"]) if row["last_duration_ms"] is not None else None,
        )

    # ---- lifecycle ----

    def count_tasks(self) -> int:
        with self._connect() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def create(
        self,
        owner_id: str,
        name: str,
        interval_seconds: float,
        question: str,
        *,
        room_id: str | None = None,
        now: float | None = None,
    ) -> Task:
        name = (name or "").strip()
        question = (question or "").strip()
        if not name:
            raise InvalidName()
        # NaN and oversized values fail this check too.
        if not (MIN_INTERVAL_SECONDS <= interval_seconds <= MAX_INTERVAL_SECONDS):
            raise InvalidInterval()
        if not question:
            raise InvalidQuestion()

        if now is None:
            now = time.time()

        with self._connect() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO tasks(
                        owner_id, name, interval_seconds, question,
                        created_at, next_run_at, room_id
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        owner_id,
                        name,
                        float(interval_seconds),
                        question,
                        float(now),
                        float(now) + float(interval_seconds),
                        room_id,
                    ),
                )
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateName() from e
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise StorageError("SQLite did not return lastrowid for tasks insert")
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (rowid,)).fetchone()

        task = self._row_to_task(row)
        logger.debug("Task created id=%s owner=%s name=%s interval=%ss", task.id, owner_id, name, interval_seconds)
        return task

    def delete(self, owner_id: str, name: str) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE owner_id = ? AND name = ?",
                (owner_id, (name or "").strip()),
            )
            conn.commit()
            if cur.rowcount == 0:
                raise TaskNotFound()
        logger.debug("Task deleted owner=%s name=%s", owner_id, name)

    def get(self, owner_id: str, name: str) -> Task:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE owner_id = ? AND name = ?",
                (owner_id, (name or "").strip()),
            ).fetchone()
        if row is None:
            raise TaskNotFound()
        return self._row_to_task(row)

    def list_tasks(self, owner_id: str) -> list[Task]:
        """That owner's tasks, in creation order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE owner_id = ? ORDER BY created_at ASC, id ASC",
                (owner_id,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def resume(self, owner_id: str, name: str, *, now: float | None = None) -> Task:
        """Re-activate a task disabled by the failure policy."""
        if now is None:
            now = time.time()
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE tasks
                SET active = 1,
                    consecutive_failures = 0,
                    next_run_at = MAX(next_run_at, ?)
                WHERE owner_id = ? AND name = ?
                """,
                (float(now), owner_id, (name or "").strip()),
            )
            if cur.rowcount == 0:
                conn.rollback()
                raise TaskNotFound()
            row = conn.execute(
                "SELECT * FROM tasks WHERE owner_id = ? AND name = ?",
                (owner_id, (name or "").strip()),
            ).fetchone()
            conn.commit()
        return self._row_to_task(row)

    # ---- scheduler API ----

    def fetch_due(self, now: float) -> list[Task]:
        """
        Snapshot of every active task (all owners) whose next_run_at <= now.

        Tasks that are currently in flight are included; the scheduler finds out
        through mark_running().
        """
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE active = 1 AND next_run_at <= ?
                ORDER BY next_run_at ASC, id ASC
                """,
                (float(now),),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def mark_running(self, task_id: int) -> None:
        """
        Atomically set the in-flight flag.

        Raises AlreadyRunning if another execution holds it, TaskNotFound if the row is gone.
        """
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE tasks SET in_flight = 1 WHERE id = ? AND in_flight = 0",
                (int(task_id),),
            )
            if cur.rowcount == 1:
                conn.commit()
                return
            exists = conn.execute("SELECT 1 FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
            conn.rollback()
        if exists is None:
            raise TaskNotFound()
        raise AlreadyRunning()

    def complete(
        self,
        task_id: int,
        *,
        success: bool,
        duration_ms: int,
        now: float | None = None,
        error_kind: str | None = None,
    ) -> Task:
        """
        Finish an execution:
          in_flight            -> 0
          last_run_at          -> now
          next_run_at          -> max(next_run_at, now + interval)
          consecutive_failures -> 0 on success, +1 on failure
          active               -> 0 once failures reach max_consecutive_failures (if > 0)

        Raises TaskNotFound if the task was deleted while it was running; the row is
        never re-created.
        """
        if now is None:
            now = time.time()

        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE tasks
                SET in_flight = 0,
                    last_run_at = :now,
                    next_run_at = MAX(next_run_at, :now + interval_seconds),
                    consecutive_failures = CASE WHEN :success THEN 0 ELSE consecutive_failures + 1 END,
                    last_error = CASE WHEN :success THEN NULL ELSE :error_kind END,
                    last_duration_ms = :duration_ms,
                    active = CASE
                        WHEN NOT :success AND :limit > 0 AND consecutive_failures + 1 >= :limit THEN 0
                        ELSE active
                    END
                WHERE id = :id
                """,
                {
                    "now": float(now),
                    "success": 1 if success else 0,
                    "error_kind": error_kind,
                    "duration_ms": int(duration_ms),
                    "limit": self.max_consecutive_failures,
                    "id": int(task_id),
                },
            )
            if cur.rowcount == 0:
                conn.rollback()
                raise TaskNotFound()
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
            conn.commit()

        return self._row_to_task(row)

    def release(self, task_id: int) -> bool:
        """
        Clear the in-flight flag without touching the schedule.

        Used when an execution could not be completed normally. Returns False if
        the row is gone.
        """
        with self._connect() as conn:
            cur = conn.execute("UPDATE tasks SET in_flight = 0 WHERE id = ?", (int(task_id),))
            conn.commit()
            released = cur.rowcount == 1
        if released:
            logger.info("Released in-flight claim task_id=%s", task_id)
        return released

    def release_stale_claims(self) -> int:
        """
        Clear in-flight flags left behind by a process that died mid-execution.

        Only valid at startup, before the scheduler runs (single instance).
        """
        with self._connect() as conn:
            cur = conn.execute("UPDATE tasks SET in_flight = 0 WHERE in_flight = 1")
            conn.commit()
            n = int(cur.rowcount)
        if n:
            logger.warning("Released %d stale in-flight claim(s).", n)
        return n
