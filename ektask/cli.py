from __future__ import annotations

import argparse
import logging
import sqlite3
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, TextIO

from . import __version__
from .config import Config, load_config
from .db import TaskDB
from .editor import edit_text
from .errors import Cancelled, EkError
from .logsetup import setup_logging
from .models import Task, new_task, render_task
from .selector import read_line, select
from .terminal import TerminalSession

logger = logging.getLogger(__name__)


@dataclass
class App:
    db: TaskDB
    cfg: Config
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def _terminal(self) -> TerminalSession:
        return TerminalSession(reply_timeout=self.cfg.cursor_timeout)

    def pick(self, tasks: Sequence[Task], prompt: Optional[str] = None) -> Task:
        return select(tasks, render_task, prompt=prompt or self.cfg.prompt, terminal=self._terminal())

    def ask(self, prompt: str) -> str:
        return read_line(prompt, terminal=self._terminal())

    def echo(self, *parts: object) -> None:
        print(*parts, file=self.out)


def _by_id(tasks: List[Task]) -> List[Task]:
    # ids are time-ordered, so this is creation order
    return sorted(tasks, key=lambda t: t.id.int)


def _print_tasks(app: App, tasks: List[Task], show_ids: bool = False) -> None:
    for task in _by_id(tasks):
        if show_ids:
            app.echo(f"{task.id}  {task.title}")
        else:
            app.echo(task.title)


def _require(app: App, tasks: List[Task]) -> bool:
    if not tasks:
        app.echo("Nothing to select.")
        return False
    return True


def cmd_list(app: App, args: argparse.Namespace) -> int:
    _print_tasks(app, app.db.get_all(), show_ids=args.ids)
    return 0


def cmd_new(app: App, args: argparse.Namespace) -> int:
    title = " ".join(args.title).strip()
    if not title:
        title = app.ask("title: ").strip()
    if not title:
        app.echo("Task title cannot be empty.")
        return 1
    task = new_task(title)
    parent: Optional[Task] = None
    if args.under:
        candidates = app.db.get_all()
        if not _require(app, candidates):
            return 0
        parent = app.pick(_by_id(candidates), prompt="under> ")
    app.db.upsert(task)
    if parent is not None:
        app.db.link(parent.id, task.id)
        app.echo(f"Created task {task.title!r} under {parent.title!r}")
    else:
        app.echo(f"Created task {task.title!r}")
    return 0


def cmd_search(app: App, args: argparse.Namespace) -> int:
    tasks = app.db.get_all()
    if not _require(app, tasks):
        return 0
    task = app.pick(_by_id(tasks))
    app.echo(f"{task.id}  {task.title}")
    return 0


def cmd_show(app: App, args: argparse.Namespace) -> int:
    tasks = app.db.get_all()
    if not _require(app, tasks):
        return 0
    task = app.pick(_by_id(tasks))
    app.echo(task.title)
    app.echo(f"  id: {task.id}")
    if task.description:
        app.echo("")
        for line in task.description.splitlines():
            app.echo(f"  {line}")
    parents = app.db.parents(task.id)
    if parents:
        app.echo("")
        app.echo("Needed by:")
        for p in _by_id(parents):
            app.echo(f"  - {p.title}")
    children = app.db.children(task.id)
    if children:
        app.echo("")
        app.echo("Depends on:")
        for c in _by_id(children):
            app.echo(f"  - {c.title}")
    return 0


def cmd_done(app: App, args: argparse.Namespace) -> int:
    tasks = app.db.get_all()
    if not _require(app, tasks):
        return 0
    task = app.pick(_by_id(tasks))
    app.db.complete(task.id)
    app.echo(f"Completed {task.title!r}")
    return 0


def cmd_delete(app: App, args: argparse.Namespace) -> int:
    tasks = app.db.get_all()
    if not _require(app, tasks):
        return 0
    task = app.pick(_by_id(tasks))
    app.db.delete(task.id)
    app.echo(f"Deleted {task.title!r}")
    return 0


def cmd_link(app: App, args: argparse.Namespace) -> int:
    tasks = _by_id(app.db.get_all())
    if len(tasks) < 2:
        app.echo("Need at least two tasks to link.")
        return 0
    parent = app.pick(tasks, prompt="parent> ")
    child = app.pick([t for t in tasks if t.id != parent.id], prompt="child> ")
    app.db.link(parent.id, child.id)
    app.echo(f"{parent.title!r} now depends on {child.title!r}")
    return 0


def cmd_unlink(app: App, args: argparse.Namespace) -> int:
    tasks = app.db.get_all()
    if not _require(app, tasks):
        return 0
    child = app.pick(_by_id(tasks), prompt="child> ")
    parents = app.db.parents(child.id)
    if not parents:
        app.echo(f"{child.title!r} has no parents.")
        return 0
    parent = app.pick(_by_id(parents), prompt="parent> ")
    app.db.unlink(parent.id, child.id)
    app.echo(f"{parent.title!r} no longer depends on {child.title!r}")
    return 0


def cmd_todo(app: App, args: argparse.Namespace) -> int:
    candidates = app.db.goals() if args.goals_only else app.db.get_all()
    if not _require(app, candidates):
        return 0
    root = app.pick(_by_id(candidates))
    todo = app.db.todo(root.id)
    if not todo:
        app.echo(f"Nothing left under {root.title!r}.")
        return 0
    _print_tasks(app, todo)
    return 0


def cmd_goals(app: App, args: argparse.Namespace) -> int:
    _print_tasks(app, app.db.goals(), show_ids=args.ids)
    return 0


def cmd_inbox(app: App, args: argparse.Namespace) -> int:
    _print_tasks(app, app.db.inbox(), show_ids=args.ids)
    return 0


def cmd_edit(app: App, args: argparse.Namespace) -> int:
    tasks = app.db.get_all()
    if not _require(app, tasks):
        return 0
    task = app.pick(_by_id(tasks))
    try:
        text = edit_text(task.description, app.cfg.editor)
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.error("Editor failed: %s", exc)
        app.echo(f"Editor failed: {exc}")
        return 1
    task.description = text.strip() or None
    app.db.upsert(task)
    app.echo(f"Updated description of {task.title!r}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ek", description="Dependency-graph task tracker")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--config", help="Path to YAML config (default ~/.config/ek/config.yml)")
    ap.add_argument("--db", help="Path to sqlite DB")
    ap.add_argument("--log-level", help="File log level (DEBUG, INFO, WARNING, ERROR)")
    sub = ap.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    def add(name: str, func: Callable[[App, argparse.Namespace], int], help_text: str,
            aliases: Sequence[str] = ()) -> argparse.ArgumentParser:
        p = sub.add_parser(name, aliases=list(aliases), help=help_text)
        p.set_defaults(func=func)
        return p

    p = add("list", cmd_list, "List all active tasks", ["l"])
    p.add_argument("--ids", action="store_true", help="Print task ids")
    p = add("new", cmd_new, "Create a new task", ["n"])
    p.add_argument("title", nargs="*", help="Task title (prompted for when omitted)")
    p.add_argument("--under", action="store_true", help="Select a parent task to depend on the new one")
    add("search", cmd_search, "Search for an existing task by its title", ["s"])
    add("show", cmd_show, "Show a task with its parents and children")
    add("done", cmd_done, "Mark a task as completed", ["complete"])
    add("delete", cmd_delete, "Delete a task", ["rm"])
    add("link", cmd_link, "Make one task depend on another")
    add("unlink", cmd_unlink, "Remove a dependency between two tasks")
    p = add("todo", cmd_todo, "List the actionable tasks beneath a task", ["t"])
    p.add_argument("--goals-only", action="store_true", help="Only offer goals to pick from")
    p = add("goals", cmd_goals, "List top-level goals", ["g"])
    p.add_argument("--ids", action="store_true", help="Print task ids")
    p = add("inbox", cmd_inbox, "List tasks without any links", ["i"])
    p.add_argument("--ids", action="store_true", help="Print task ids")
    add("edit", cmd_edit, "Edit a task description in $EDITOR", ["e"])
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = load_config(args.config)
    except EkError as exc:
        print(f"ek: {exc}", file=sys.stderr)
        return 1
    if args.db:
        cfg.db = args.db
    if args.log_level:
        cfg.log_level = args.log_level
    setup_logging(cfg.log_file, cfg.log_level)

    try:
        db = TaskDB(cfg.db, include_deleted=cfg.include_deleted)
    except (sqlite3.Error, OSError) as exc:
        logger.error("Cannot open database %s: %s", cfg.db, exc)
        print(f"ek: cannot open database {cfg.db}: {exc}", file=sys.stderr)
        return 1
    app = App(db=db, cfg=cfg)
    try:
        return args.func(app, args)
    except Cancelled:
        return 0
    except EkError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"ek: {exc}", file=sys.stderr)
        return 1
    except sqlite3.Error as exc:
        logger.exception("%s failed", args.command)
        print(f"ek: database error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"ek: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
