from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from .errors import Cancelled
from .line_editor import Command, LineEditor
from .matcher import Rank, rank_find
from .models import render_task
from .terminal import BOLD_OFF, BOLD_ON, CLEAR_LINE, CursorPos, TerminalSession
from .textwidth import truncate

logger = logging.getLogger(__name__)

T = TypeVar("T")

Matcher = Callable[[str, Sequence[str]], List[Rank]]


def _make_room(term: TerminalSession, origin: CursorPos, wanted: int) -> Tuple[CursorPos, int]:
    """Scroll the screen so ``wanted`` rows fit below ``origin``.

    Returns the (possibly moved) origin and how many rows will be shown,
    which is capped to what the terminal can hold below one prompt row.
    """
    rows, _ = term.size()
    visible = max(0, min(wanted, rows - 1))
    below = rows - origin.row
    if below < visible:
        deficit = visible - below
        term.write("\n" * visible)
        origin = CursorPos(max(1, origin.row - deficit), origin.col)
        term.set_cursor_position(origin)
        logger.debug("Scrolled %d rows to fit %d candidates", deficit, visible)
    return origin, visible


def _window_start(highlighted: int, visible: int) -> int:
    if visible <= 0:
        return 0
    return max(0, highlighted - visible + 1)


def _blank_rows(term: TerminalSession, visible: int) -> None:
    term.write(("\n" + CLEAR_LINE) * visible)


def _draw_rows(term: TerminalSession, ranks: List[Rank], highlighted: int, visible: int, columns: int) -> None:
    start = _window_start(highlighted, visible)
    for i in range(start, min(len(ranks), start + visible)):
        line = truncate(ranks[i].target, columns - 1)
        if i == highlighted:
            line = f"{BOLD_ON}{line}{BOLD_OFF}"
        term.write("\n\r" + line)


def _clear_overlay(term: TerminalSession, origin: CursorPos, visible: int) -> None:
    term.set_cursor_position(origin)
    term.write(CLEAR_LINE)
    _blank_rows(term, visible)
    term.set_cursor_position(origin)


def select(
    candidates: Sequence[T],
    render: Callable[[T], str] = render_task,
    *,
    prompt: str = "> ",
    terminal: Optional[TerminalSession] = None,
    matcher: Matcher = rank_find,
) -> T:
    """Let the user pick one of ``candidates`` by typing to filter.

    Raises Cancelled when the user ends input (Ctrl-D) without choosing.
    ``candidates`` must not be empty.
    """
    if not candidates:
        raise ValueError("select() needs at least one candidate")
    targets = [render(c) for c in candidates]
    term = terminal if terminal is not None else TerminalSession()
    editor = LineEditor(prompt)
    chosen: Optional[Rank] = None

    with term:
        origin = term.query_cursor_position()
        origin, visible = _make_room(term, origin, len(targets))
        _, columns = term.size()
        ranks = matcher("", targets)
        highlighted = 0
        query = ""
        try:
            while True:
                term.write(editor.render(columns))
                with term.excursion():
                    _blank_rows(term, visible)
                with term.excursion():
                    _draw_rows(term, ranks, highlighted, visible, columns)

                key = term.read_key()
                if not key:
                    break
                try:
                    text, cmd = editor.feed(key)
                except EOFError:
                    break

                if cmd is Command.COMMIT:
                    if ranks:
                        chosen = ranks[highlighted]
                        break
                elif cmd is Command.UP:
                    if highlighted > 0:
                        highlighted -= 1
                elif cmd is Command.DOWN:
                    if highlighted < len(ranks) - 1:
                        highlighted += 1
                elif text != query:
                    query = text
                    ranks = matcher(query, targets)
                    if ranks:
                        highlighted = min(highlighted, len(ranks) - 1)
        finally:
            _clear_overlay(term, origin, visible)

    if chosen is None:
        raise Cancelled("selection cancelled")
    logger.debug("Selected %r", chosen.target)
    return candidates[chosen.original_index]


def read_line(prompt: str, *, initial: str = "", terminal: Optional[TerminalSession] = None) -> str:
    """Prompt for one line of text in raw mode and return it once committed."""
    term = terminal if terminal is not None else TerminalSession()
    editor = LineEditor(prompt, initial)
    with term:
        origin = term.query_cursor_position()
        _, columns = term.size()
        try:
            while True:
                term.write(editor.render(columns))
                key = term.read_key()
                if not key:
                    raise Cancelled("input closed")
                try:
                    text, cmd = editor.feed(key)
                except EOFError:
                    raise Cancelled("input closed") from None
                if cmd is Command.COMMIT:
                    return text
        finally:
            term.set_cursor_position(origin)
            term.write(CLEAR_LINE)
            term.set_cursor_position(origin)
