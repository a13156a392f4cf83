from __future__ import annotations

import contextlib
import logging
import os
import sqlite3
import uuid
from typing import Iterator, List, Optional, Sequence

from .errors import InvalidIdentity, MissingTask, TaskCycle
from .migrations import apply_pending
from .models import Task, format_ts, parse_ts, utcnow

logger = logging.getLogger(__name__)

TASK_COLUMNS = "tasks.id, tasks.title, tasks.description, tasks.completed_at, tasks.deleted_at"

# Every active task reachable from :root by following active parent -> child
# edges. UNION (not UNION ALL) deduplicates, which also keeps the recursion
# finite should a cycle ever reach the table.
REACHABLE_CTE = """
WITH RECURSIVE reachable(id) AS (
  SELECT active_links.child_id
  FROM active_links
  WHERE active_links.parent_id = :root

  UNION

  SELECT active_links.child_id
  FROM reachable
  INNER JOIN active_links
    ON active_links.parent_id = reachable.id
)
"""


def _task_key(value: object) -> str:
    """Normalise a task identifier into its stored text form."""
    if isinstance(value, str) and value.strip():
        try:
            value = uuid.UUID(value.strip())
        except ValueError:
            raise InvalidIdentity(value) from None
    if isinstance(value, uuid.UUID) and value.int != 0:
        return str(value)
    raise InvalidIdentity(value)


class TaskDB:
    """Task graph store over a single SQLite file.

    Tasks are never removed: completion and deletion only stamp a
    timestamp. Links are directed ``parent -> child`` edges meaning the
    parent depends on the child. Graph queries only follow edges whose
    endpoints are both active (the ``active_links`` view); rows for inert
    edges are kept as history.
    """

    def __init__(self, path: str, include_deleted: bool = False):
        self.path = path
        self.include_deleted = include_deleted
        if path != ":memory:":
            directory = os.path.dirname(os.path.abspath(path))
            if directory and not os.path.isdir(directory):
                os.makedirs(directory, exist_ok=True)
        self.conn = sqlite3.connect(path)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.migrate()

    def migrate(self) -> int:
        applied = apply_pending(self.conn)
        if applied:
            logger.info("Migrated %s (%d migrations applied)", self.path, applied)
        return applied

    def close(self) -> None:
        self.conn.close()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        cur = self.conn.cursor()
        cur.execute("BEGIN")
        try:
            yield cur
            cur.execute("COMMIT")
        except Exception:
            try:
                cur.execute("ROLLBACK")
            except sqlite3.Error:
                logger.warning("Rollback failed", exc_info=True)
            raise

    @staticmethod
    def _row_to_task(row: Sequence) -> Task:
        return Task(
            id=uuid.UUID(row[0]),
            title=row[1],
            description=row[2],
            completed_at=parse_ts(row[3]),
            deleted_at=parse_ts(row[4]),
        )

    def _query(self, sql: str, params=()) -> List[Task]:
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return [self._row_to_task(r) for r in cur.fetchall()]

    # --- mutations ---

    def upsert(self, task: Task) -> None:
        """Insert ``task`` or replace every column of the row with its id.

        Fields left unset on ``task`` are cleared in the stored row.
        """
        key = _task_key(getattr(task, "id", None))
        if not (task.title or "").strip():
            raise ValueError("title is required")
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT OR REPLACE INTO tasks (
                  id,
                  title,
                  description,
                  completed_at,
                  deleted_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    key,
                    task.title,
                    task.description,
                    format_ts(task.completed_at),
                    format_ts(task.deleted_at),
                ),
            )
        logger.info("Upserted task %s", key)

    def _stamp(self, column: str, task_id: uuid.UUID) -> None:
        key = _task_key(task_id)
        with self._transaction() as cur:
            cur.execute(
                f"UPDATE tasks SET {column} = ? WHERE id = ?",
                (format_ts(utcnow()), key),
            )
            if cur.rowcount == 0:
                raise MissingTask(task_id)
        logger.info("Set %s on task %s", column, key)

    def complete(self, task_id: uuid.UUID) -> None:
        self._stamp("completed_at", task_id)

    def delete(self, task_id: uuid.UUID) -> None:
        self._stamp("deleted_at", task_id)

    def link(self, parent_id: uuid.UUID, child_id: uuid.UUID) -> None:
        """Mark the parent task as depending on the child task.

        Raises TaskCycle when the parent is already reachable from the
        child through active edges (a self link included).
        """
        parent_key = _task_key(parent_id)
        child_key = _task_key(child_id)
        if parent_key == child_key:
            raise TaskCycle(parent_id, child_id)
        with self._transaction() as cur:
            for key, ident in ((parent_key, parent_id), (child_key, child_id)):
                cur.execute("SELECT 1 FROM tasks WHERE id = ?", (key,))
                if cur.fetchone() is None:
                    raise MissingTask(ident)
            cur.execute(
                REACHABLE_CTE + "SELECT 1 FROM reachable WHERE id = :target LIMIT 1",
                {"root": child_key, "target": parent_key},
            )
            if cur.fetchone() is not None:
                raise TaskCycle(parent_id, child_id)
            cur.execute(
                """
                INSERT OR REPLACE INTO task_links (
                  parent_id,
                  child_id
                ) VALUES (?, ?)
                """,
                (parent_key, child_key),
            )
        logger.info("Linked task parent %s -> %s child", parent_key, child_key)

    def unlink(self, parent_id: uuid.UUID, child_id: uuid.UUID) -> bool:
        with self._transaction() as cur:
            cur.execute(
                "DELETE FROM task_links WHERE parent_id = ? AND child_id = ?",
                (_task_key(parent_id), _task_key(child_id)),
            )
            removed = cur.rowcount > 0
        if removed:
            logger.info("Unlinked task parent %s -> %s child", parent_id, child_id)
        return removed

    # --- lookups ---

    def get(self, task_id: uuid.UUID, include_deleted: Optional[bool] = None) -> Task:
        """Return the task with ``task_id``.

        Soft-deleted tasks count as missing unless ``include_deleted`` is
        true; when it is None the store-wide default applies. Completed
        tasks are always returned.
        """
        if include_deleted is None:
            include_deleted = self.include_deleted
        sql = f"SELECT {TASK_COLUMNS} FROM tasks WHERE tasks.id = ?"
        if not include_deleted:
            sql += " AND tasks.deleted_at IS NULL"
        found = self._query(sql, (_task_key(task_id),))
        if not found:
            raise MissingTask(task_id)
        return found[0]

    def get_all(self) -> List[Task]:
        """Active tasks in no particular order."""
        return self._query(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            WHERE tasks.completed_at IS NULL
              AND tasks.deleted_at IS NULL
            """
        )

    # --- graph views ---

    def children(self, task_id: uuid.UUID) -> List[Task]:
        """Active tasks transitively reachable from ``task_id``, excluding it."""
        return self._query(
            REACHABLE_CTE
            + f"""
            SELECT DISTINCT {TASK_COLUMNS}
            FROM tasks
            INNER JOIN reachable
              ON tasks.id = reachable.id
            WHERE tasks.id <> :root
            """,
            {"root": _task_key(task_id)},
        )

    def todo(self, task_id: uuid.UUID) -> List[Task]:
        """Leaf descendants of ``task_id``: the immediately actionable tasks."""
        return self._query(
            REACHABLE_CTE
            + f"""
            SELECT DISTINCT {TASK_COLUMNS}
            FROM tasks
            INNER JOIN reachable
              ON tasks.id = reachable.id
            WHERE tasks.id <> :root
              AND NOT EXISTS (
                SELECT 1
                FROM active_links
                WHERE active_links.parent_id = tasks.id
              )
            """,
            {"root": _task_key(task_id)},
        )

    def parents(self, task_id: uuid.UUID) -> List[Task]:
        """Active tasks with an active edge pointing at ``task_id``."""
        return self._query(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            INNER JOIN active_links
              ON tasks.id = active_links.parent_id
            WHERE active_links.child_id = ?
            """,
            (_task_key(task_id),),
        )

    def goals(self) -> List[Task]:
        return self._query(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            WHERE tasks.completed_at IS NULL
              AND tasks.deleted_at IS NULL
              AND tasks.id IN (SELECT parent_id FROM active_links)
              AND tasks.id NOT IN (SELECT child_id FROM active_links)
            """
        )

    def inbox(self) -> List[Task]:
        return self._query(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            WHERE tasks.completed_at IS NULL
              AND tasks.deleted_at IS NULL
              AND tasks.id NOT IN (
                SELECT parent_id
                FROM task_links

                UNION

                SELECT child_id
                FROM task_links
              )
            """
        )
