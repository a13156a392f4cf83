from __future__ import annotations

import enum
import signal
from typing import List, Optional, Tuple

from .terminal import ARROW_DOWN, ARROW_LEFT, ARROW_RIGHT, ARROW_UP, CLEAR_LINE, cursor_column
from .textwidth import display_width, sanitize, truncate

BACKSPACE = "\x7f"
CTRL_A = "\x01"
CTRL_C = "\x03"
CTRL_D = "\x04"
CTRL_E = "\x05"


class Command(enum.Enum):
    NONE = "none"
    COMMIT = "commit"
    UP = "up"
    DOWN = "down"


class LineEditor:
    """Single-line edit buffer fed with raw key bytes.

    The cursor offset counts code points, not bytes. Decoding never
    touches the terminal; ``render`` produces the escape sequences that
    draw the prompt line.
    """

    def __init__(self, prompt: str = "> ", text: str = ""):
        self.prompt = prompt
        self.input: List[str] = list(text)
        self.cursor_pos = len(self.input)

    @property
    def text(self) -> str:
        return "".join(self.input)

    def feed(self, chunk: bytes) -> Tuple[str, Command]:
        """Apply one key event and return the buffer plus a command tag.

        Ctrl-D raises EOFError. Ctrl-C raises SIGINT in this process.
        """
        if chunk == ARROW_UP:
            return self.text, Command.UP
        if chunk == ARROW_DOWN:
            return self.text, Command.DOWN
        if chunk == ARROW_RIGHT:
            if self.cursor_pos < len(self.input):
                self.cursor_pos += 1
            return self.text, Command.NONE
        if chunk == ARROW_LEFT:
            if self.cursor_pos > 0:
                self.cursor_pos -= 1
            return self.text, Command.NONE
        if chunk[:1] == b"\x1b":
            # other escape sequences do not edit the buffer
            return self.text, Command.NONE

        for ch in chunk.decode("utf-8", errors="ignore"):
            if ch == BACKSPACE:
                if self.cursor_pos > 0:
                    del self.input[self.cursor_pos - 1]
                    self.cursor_pos -= 1
            elif ch == CTRL_A:
                self.cursor_pos = 0
            elif ch == CTRL_E:
                self.cursor_pos = len(self.input)
            elif ch == CTRL_C:
                signal.raise_signal(signal.SIGINT)
            elif ch == CTRL_D:
                raise EOFError
            elif ch in ("\r", "\n"):
                return self.text, Command.COMMIT
            elif ch < "\x20":
                # other control characters carry no meaning here
                continue
            else:
                self.input.insert(self.cursor_pos, ch)
                self.cursor_pos += 1
        return self.text, Command.NONE

    def cursor_column(self) -> int:
        """1-based screen column of the visible cursor."""
        return display_width(self.prompt) + display_width("".join(self.input[:self.cursor_pos])) + 1

    def render(self, columns: Optional[int] = None) -> str:
        """Escape sequences that redraw the prompt line.

        Given ``columns``, the line stays narrower than the terminal and
        the buffer scrolls horizontally to keep the cursor in view.
        """
        start = 0
        text = self.text
        if columns:
            room = max(1, columns - 1 - display_width(self.prompt))
            while start < self.cursor_pos and display_width("".join(self.input[start:self.cursor_pos])) >= room:
                start += 1
            text = truncate("".join(self.input[start:]), room)
        col = display_width(self.prompt) + display_width("".join(self.input[start:self.cursor_pos])) + 1
        return f"{CLEAR_LINE}\r{self.prompt}{sanitize(text)}{cursor_column(col)}"
