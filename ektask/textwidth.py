from __future__ import annotations

import unicodedata
from typing import List, Optional

from prompt_toolkit.utils import get_cwidth


def char_width(ch: str) -> int:
    """Return printable cell width for a single character."""
    if unicodedata.combining(ch) or unicodedata.category(ch) == "Cf":
        return 0
    fallback = 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1
    width = get_cwidth(ch)
    if width <= 0:
        return fallback
    return width if width > fallback else fallback


def display_width(text: str) -> int:
    return sum(char_width(ch) for ch in text)


def sanitize(s: Optional[str]) -> str:
    return (s or "").replace("\n", " ").replace("\r", " ").replace("\x1b", "")


def truncate(s: str, maxlen: int) -> str:
    """Truncate string to a maximum display width, preserving whole glyphs."""
    s = sanitize(s)
    if maxlen <= 0:
        return ""
    if display_width(s) <= maxlen:
        return s
    ellipsis = "…"
    ell_w = display_width(ellipsis)
    out: List[str] = []
    width = 0
    for ch in s:
        ch_w = char_width(ch)
        if width + ch_w + ell_w > maxlen:
            break
        out.append(ch)
        width += ch_w
    if out:
        return "".join(out) + ellipsis
    return ellipsis if maxlen >= ell_w else ""
