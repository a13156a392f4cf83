from __future__ import annotations

import uuid
from typing import Optional


class EkError(Exception):
    """Base class for every error ektask reports to its caller."""


class InvalidIdentity(EkError):
    def __init__(self, value: object = None):
        super().__init__(f"Task has an invalid ID: {value!r}")
        self.value = value


class MissingTask(EkError):
    def __init__(self, task_id: Optional[uuid.UUID] = None):
        msg = "No such task" if task_id is None else f"No such task: {task_id}"
        super().__init__(msg)
        self.task_id = task_id


class TaskCycle(EkError):
    def __init__(self, parent_id: uuid.UUID, child_id: uuid.UUID):
        super().__init__(f"Linking {parent_id} -> {child_id} would create a cycle")
        self.parent_id = parent_id
        self.child_id = child_id


class TerminalUnavailable(EkError):
    pass


class CursorProtocolError(EkError):
    pass


class Cancelled(EkError):
    """The user backed out of a selection. Not a failure."""


class ConfigError(EkError):
    pass
