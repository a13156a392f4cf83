from __future__ import annotations

import contextlib
import logging
import os
import re
import select
import shutil
import signal
import sys
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, TextIO, Tuple, TypeVar

from prompt_toolkit.input.vt100 import raw_mode

from .errors import CursorProtocolError, TerminalUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

ESC = "\x1b"
CSI = ESC + "["

CLEAR_LINE = CSI + "2K"
BOLD_ON = CSI + "1m"
BOLD_OFF = CSI + "22m"

ARROW_UP = b"\x1b[A"
ARROW_DOWN = b"\x1b[B"
ARROW_RIGHT = b"\x1b[C"
ARROW_LEFT = b"\x1b[D"

CURSOR_POS_RE = re.compile(rb"\x1b\[(\d+);(\d+)R")
# Longest reply we wait for before declaring the terminal confused.
MAX_REPLY_BYTES = 64

CLEANUP_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP") if hasattr(signal, name)
)


@dataclass(frozen=True)
class CursorPos:
    row: int
    col: int


def parse_cursor_pos(buf: bytes) -> CursorPos:
    """Parse a complete ``ESC [ row ; col R`` cursor position report."""
    m = CURSOR_POS_RE.fullmatch(buf)
    if m is None:
        raise CursorProtocolError(f"Invalid cursor pos: failed to match {buf!r}")
    return CursorPos(row=int(m.group(1)), col=int(m.group(2)))


def cursor_to(pos: CursorPos) -> str:
    return f"{CSI}{pos.row};{pos.col}H"


def cursor_column(col: int) -> str:
    return f"{CSI}{col}G"


def _utf8_length(lead: int) -> int:
    if lead < 0x80:
        return 1
    if 0xC0 <= lead < 0xE0:
        return 2
    if 0xE0 <= lead < 0xF0:
        return 3
    if 0xF0 <= lead < 0xF8:
        return 4
    return 1


class TerminalSession:
    """Raw-mode terminal plus cursor geometry for one interactive command.

    Keystrokes and cursor position replies share the same input stream, so
    every read goes through this object: bytes that arrive while waiting
    for a cursor report are parked and handed out by ``read_key`` later.
    """

    def __init__(self, stdin_fd: Optional[int] = None, stdout: Optional[TextIO] = None,
                 reply_timeout: float = 1.0):
        self.fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
        self.out = sys.stdout if stdout is None else stdout
        self.reply_timeout = reply_timeout
        self._pending = b""
        self._raw: Optional[raw_mode] = None
        self._previous_handlers: Dict[int, object] = {}
        self._active = False

    # --- mode ---

    def enter(self) -> "TerminalSession":
        if self._active:
            return self
        if not os.isatty(self.fd):
            raise TerminalUnavailable("stdin is not a terminal")
        self._raw = raw_mode(self.fd)
        self._raw.__enter__()
        self._active = True
        self._install_signal_handlers()
        logger.debug("Entered raw mode on fd %d", self.fd)
        return self

    def restore(self) -> None:
        """Put the terminal back the way ``enter`` found it. Safe to repeat."""
        if not self._active:
            return
        self._active = False
        if self._raw is not None:
            self._raw.__exit__(None, None, None)
        self._restore_signal_handlers()
        logger.debug("Restored terminal mode on fd %d", self.fd)

    def __enter__(self) -> "TerminalSession":
        return self.enter()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()

    def _install_signal_handlers(self) -> None:
        for signum in CLEANUP_SIGNALS:
            try:
                self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
            except ValueError:
                # signal.signal only works from the main thread
                logger.debug("Could not install handler for signal %d", signum)

    def _restore_signal_handlers(self) -> None:
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    def _on_signal(self, signum, frame) -> None:
        logger.info("Received signal %d, restoring terminal", signum)
        self.restore()
        # The previous handlers are back in place; let them decide what
        # the signal means (KeyboardInterrupt, exit, ...).
        signal.raise_signal(signum)

    # --- output ---

    def write(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()

    def size(self) -> Tuple[int, int]:
        """Return ``(rows, columns)``."""
        try:
            sz = os.get_terminal_size(self.fd)
        except OSError:
            sz = shutil.get_terminal_size((80, 24))
        return sz.lines, sz.columns

    def set_cursor_position(self, pos: CursorPos) -> None:
        self.write(cursor_to(pos))

    # --- input ---

    def _read(self, n: int) -> bytes:
        return os.read(self.fd, n)

    def _fill(self, need: int) -> None:
        while len(self._pending) < need:
            more = self._read(need - len(self._pending))
            if not more:
                return
            self._pending += more

    def _escape_length(self) -> int:
        """Length of the escape sequence at the head of the pending bytes.

        Covers ``ESC [ params final`` (CSI) and ``ESC O x`` (SS3). Anything
        else is a lone ESC.
        """
        buf = self._pending
        if len(buf) < 2 or buf[1:2] not in (b"[", b"O"):
            return 1
        if buf[1:2] == b"O":
            self._fill(3)
            return min(3, len(self._pending))
        i = 2
        while i < MAX_REPLY_BYTES:
            self._fill(i + 1)
            if len(self._pending) <= i:
                return len(self._pending)
            b = self._pending[i]
            if 0x40 <= b <= 0x7E:
                return i + 1
            if not 0x20 <= b <= 0x3F:
                # malformed; stop before the stray byte
                return i
            i += 1
        return i

    def read_key(self) -> bytes:
        """Block until one key event is available and return its bytes.

        An event is one UTF-8 code point, a lone ESC, or a whole escape
        sequence. Returns ``b""`` once the input stream is exhausted.
        """
        if not self._pending:
            chunk = self._read(32)
            if not chunk:
                return b""
            self._pending += chunk
        if self._pending[0] == 0x1B:
            need = self._escape_length()
        else:
            need = _utf8_length(self._pending[0])
            self._fill(need)
        key, self._pending = self._pending[:need], self._pending[need:]
        return key

    def query_cursor_position(self) -> CursorPos:
        """Ask the terminal where the cursor is and wait for the reply."""
        self.write(CSI + "6n")
        buf = b""
        deadline = time.monotonic() + self.reply_timeout
        while True:
            m = CURSOR_POS_RE.search(buf)
            if m is not None:
                self._pending += buf[:m.start()] + buf[m.end():]
                return parse_cursor_pos(m.group(0))
            if len(buf) > MAX_REPLY_BYTES:
                raise CursorProtocolError(f"Invalid cursor pos: no report in {buf!r}")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CursorProtocolError("Invalid cursor pos: terminal did not reply")
            ready, _, _ = select.select([self.fd], [], [], remaining)
            if not ready:
                raise CursorProtocolError("Invalid cursor pos: terminal did not reply")
            chunk = self._read(32)
            if not chunk:
                raise CursorProtocolError("Invalid cursor pos: input closed")
            buf += chunk

    @contextlib.contextmanager
    def excursion(self) -> Iterator[CursorPos]:
        pos = self.query_cursor_position()
        try:
            yield pos
        finally:
            self.set_cursor_position(pos)

    def with_excursion(self, action: Callable[[], T]) -> T:
        with self.excursion():
            return action()
