import io
import os
import sys

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from ektask import db as ekdb  # noqa: E402
from ektask import models  # noqa: E402
from ektask.terminal import CursorPos, TerminalSession  # noqa: E402


class FakeTerminal(TerminalSession):
    """TerminalSession fed from a key script instead of a tty.

    Cursor reports echo the last position the code under test moved to,
    which is all the selection overlay relies on.
    """

    def __init__(self, keys, rows=24, columns=80, origin=CursorPos(5, 1)):
        super().__init__(stdin_fd=-1, stdout=io.StringIO())
        self._chunks = [k.encode("utf-8") if isinstance(k, str) else k for k in keys]
        self.rows = rows
        self.columns = columns
        self.position = origin
        self.entered = 0
        self.restored = 0
        self.queries = 0

    def enter(self):
        self.entered += 1
        self._active = True
        return self

    def restore(self):
        if self._active:
            self._active = False
            self.restored += 1

    @property
    def active(self):
        return self._active

    def _read(self, n):
        if not self._chunks:
            return b""
        return self._chunks.pop(0)

    def size(self):
        return self.rows, self.columns

    def set_cursor_position(self, pos):
        self.position = pos
        super().set_cursor_position(pos)

    def query_cursor_position(self):
        self.queries += 1
        return self.position

    @property
    def output(self):
        return self.out.getvalue()


@pytest.fixture
def fake_terminal():
    return FakeTerminal


@pytest.fixture
def temp_db_path(tmp_path):
    """Return a unique SQLite path per test to avoid cross-test contamination."""
    return tmp_path / "test_tasks.db"


@pytest.fixture
def db(temp_db_path):
    store = ekdb.TaskDB(str(temp_db_path))
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def add_task(db):
    def _add(title, **fields):
        task = models.new_task(title)
        for key, value in fields.items():
            setattr(task, key, value)
        db.upsert(task)
        return task
    return _add
