from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class Rank:
    source: str
    target: str
    distance: int
    original_index: int


def fold(text: str) -> str:
    """Case- and diacritic-insensitive form of ``text``."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def is_subsequence(needle: str, haystack: str) -> bool:
    it = iter(haystack)
    return all(ch in it for ch in needle)


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def rank_find(source: str, targets: Sequence[str]) -> List[Rank]:
    """Targets containing ``source`` as a folded subsequence, best first.

    Closer matches (smaller edit distance) sort first; ties keep the
    original order. An empty ``source`` matches everything in order.
    """
    if not source:
        return [Rank(source, t, 0, i) for i, t in enumerate(targets)]
    needle = fold(source)
    ranks: List[Rank] = []
    for i, target in enumerate(targets):
        folded = fold(target)
        if is_subsequence(needle, folded):
            ranks.append(Rank(source, target, levenshtein(needle, folded), i))
    ranks.sort(key=lambda r: (r.distance, r.original_index))
    return ranks
