from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, List, Sequence, Union

logger = logging.getLogger(__name__)

Step = Union[str, Callable[[sqlite3.Cursor], None]]


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    steps: Sequence[Step]


def _table_columns(cur: sqlite3.Cursor, table: str) -> List[str]:
    cur.execute(f"PRAGMA table_info({table})")
    return [r[1] for r in cur.fetchall()]


def _add_description(cur: sqlite3.Cursor) -> None:
    if "description" not in _table_columns(cur, "tasks"):
        cur.execute("ALTER TABLE tasks ADD COLUMN description TEXT")


MIGRATIONS: List[Migration] = [
    Migration(1, "create_tasks", (
        """
        CREATE TABLE IF NOT EXISTS tasks (
          id TEXT PRIMARY KEY,
          title TEXT NOT NULL,
          completed_at TEXT,
          deleted_at TEXT
        )
        """,
    )),
    Migration(2, "create_task_links", (
        """
        CREATE TABLE IF NOT EXISTS task_links (
          parent_id TEXT NOT NULL,
          child_id TEXT NOT NULL,
          PRIMARY KEY (parent_id, child_id)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_task_links_child ON task_links(child_id)",
    )),
    Migration(3, "add_task_description", (_add_description,)),
    Migration(4, "create_active_links", (
        """
        CREATE VIEW IF NOT EXISTS active_links AS
        SELECT
          task_links.parent_id,
          task_links.child_id
        FROM task_links
        INNER JOIN tasks AS parent
          ON parent.id = task_links.parent_id
        INNER JOIN tasks AS child
          ON child.id = task_links.child_id
        WHERE parent.completed_at IS NULL
          AND parent.deleted_at IS NULL
          AND child.completed_at IS NULL
          AND child.deleted_at IS NULL
        """,
        "CREATE INDEX IF NOT EXISTS idx_tasks_active ON tasks(completed_at, deleted_at)",
    )),
]


def current_version(conn: sqlite3.Connection) -> int:
    try:
        row = conn.execute("SELECT current_version FROM migrations WHERE id = 0").fetchone()
    except sqlite3.OperationalError as exc:
        if "no such table" in str(exc):
            return 0
        raise
    return int(row[0]) if row else 0


def _apply(conn: sqlite3.Connection, migration: Migration) -> None:
    cur = conn.cursor()
    cur.execute("BEGIN")
    try:
        for step in migration.steps:
            if callable(step):
                step(cur)
            else:
                cur.execute(step)
        cur.execute(
            "INSERT OR REPLACE INTO migrations (id, current_version) VALUES (0, ?)",
            (migration.version,),
        )
        cur.execute("COMMIT")
    except Exception:
        cur.execute("ROLLBACK")
        raise


def apply_pending(conn: sqlite3.Connection, migrations: Sequence[Migration] = MIGRATIONS) -> int:
    """Apply every migration newer than the recorded schema version.

    Returns the number of migrations applied. A database that is already
    current sees no writes at all.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS migrations (
          id INTEGER PRIMARY KEY CHECK (id = 0),
          current_version INTEGER NOT NULL
        )
        """
    )
    version = current_version(conn)
    applied = 0
    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version <= version:
            continue
        logger.info("Applying migration %03d_%s", migration.version, migration.name)
        _apply(conn, migration)
        version = migration.version
        applied += 1
    return applied
