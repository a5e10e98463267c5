"""String similarity scorers used for fuzzy header matching.

Every scorer takes two strings and returns a float in [0, 1]. Scorers know
nothing about the field catalogue; the matcher picks one by name and owns
the acceptance threshold.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Callable

from rapidfuzz import fuzz

Scorer = Callable[[str, str], float]

_WHITESPACE_RE = re.compile(r"\s+")


def _bigrams(text: str) -> Counter:
    return Counter(text[i : i + 2] for i in range(len(text) - 1))


def dice_coefficient(first: str, second: str) -> float:
    """Sørensen-Dice similarity over character bigrams, whitespace ignored."""
    first = _WHITESPACE_RE.sub("", first)
    second = _WHITESPACE_RE.sub("", second)
    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    remaining = _bigrams(first)
    overlap = 0
    for index in range(len(second) - 1):
        bigram = second[index : index + 2]
        if remaining[bigram] > 0:
            remaining[bigram] -= 1
            overlap += 1
    return (2.0 * overlap) / (len(first) + len(second) - 2)


def levenshtein_ratio(first: str, second: str) -> float:
    return fuzz.ratio(first, second) / 100.0


def token_set_ratio(first: str, second: str) -> float:
    return fuzz.token_set_ratio(first, second) / 100.0


SCORERS: dict[str, Scorer] = {
    "dice": dice_coefficient,
    "ratio": levenshtein_ratio,
    "token_set": token_set_ratio,
}


def get_scorer(name: str) -> Scorer:
    try:
        return SCORERS[name]
    except KeyError as exc:
        raise ValueError(
            f"Unknown similarity scorer {name!r}. Choose one of: {', '.join(sorted(SCORERS))}"
        ) from exc
