from __future__ import annotations

import datetime as dt
import os
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Optional


@dataclass
class Task:
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    completed_at: Optional[dt.datetime] = None
    deleted_at: Optional[dt.datetime] = None

    @property
    def is_active(self) -> bool:
        return self.completed_at is None and self.deleted_at is None


_id_lock = threading.Lock()
_last_id_ms = 0
_last_id_seq = 0


def new_task_id() -> uuid.UUID:
    """Return a version 7 UUID.

    The first 48 bits are the unix time in milliseconds, so ids sort in
    creation order. Ids minted within the same millisecond bump a 12-bit
    sequence in place of the random ``rand_a`` field to stay monotonic.
    """
    global _last_id_ms, _last_id_seq
    with _id_lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms <= _last_id_ms:
            now_ms = _last_id_ms
            _last_id_seq += 1
            if _last_id_seq > 0xFFF:
                now_ms += 1
                _last_id_seq = 0
        else:
            _last_id_seq = int.from_bytes(os.urandom(2), "big") & 0x3FF
        _last_id_ms = now_ms
        seq = _last_id_seq
    rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
    value = (now_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= seq << 64
    value |= 0b10 << 62
    value |= rand_b
    return uuid.UUID(int=value)


def new_task(title: str, description: Optional[str] = None) -> Task:
    title = (title or "").strip()
    if not title:
        raise ValueError("title is required")
    return Task(id=new_task_id(), title=title, description=description or None)


def render_task(task: Task) -> str:
    return task.title


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def format_ts(value: Optional[dt.datetime]) -> Optional[str]:
    """ISO-8601 text; naive values stay naive so they read back unchanged."""
    if value is None:
        return None
    return value.isoformat()


def parse_ts(raw: Optional[str]) -> Optional[dt.datetime]:
    if not raw:
        return None
    return dt.datetime.fromisoformat(raw)
