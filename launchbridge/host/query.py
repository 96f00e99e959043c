"""Query context and the string matcher exposed to extensions."""

from __future__ import annotations

import re
import threading
import unicodedata
from dataclasses import dataclass, field

DEFAULT_SEPARATOR_REGEX = r"[\s\\/\-\[\](){}#!?<>\"'=+*.:,;_]+"


class Query:
    """A running query as seen by query handlers."""

    def __init__(self, string: str = "", trigger: str = ""):
        self._string = string
        self._trigger = trigger
        self._valid = threading.Event()
        self._valid.set()

    @property
    def string(self) -> str:
        return self._string

    @property
    def query(self) -> str:
        return self._string

    @property
    def trigger(self) -> str:
        return self._trigger

    @property
    def isValid(self) -> bool:  # noqa: N802 - extension-facing name
        return self._valid.is_set()

    def cancel(self) -> None:
        """Invalidate the query; handlers should stop producing results."""
        self._valid.clear()

    def __str__(self) -> str:
        return self._string

    def __repr__(self) -> str:
        return f"Query(string={self._string!r}, trigger={self._trigger!r})"


@dataclass(slots=True)
class MatchConfig:
    """Matcher options."""

    fuzzy: bool = False
    ignore_case: bool = True
    ignore_word_order: bool = True
    ignore_diacritics: bool = True
    separator_regex: str = field(default=DEFAULT_SEPARATOR_REGEX)


@dataclass(frozen=True, slots=True)
class Match:
    """Match result. Negative score: no match, 0: empty match, 1: exact match."""

    score: float

    def __bool__(self) -> bool:
        return self.isMatch()

    def __float__(self) -> float:
        return self.score

    def isMatch(self) -> bool:  # noqa: N802
        return self.score >= 0

    def isEmptyMatch(self) -> bool:  # noqa: N802
        return self.score == 0

    def isExactMatch(self) -> bool:  # noqa: N802
        return self.score == 1


def _prefix_distance(needle: str, haystack: str) -> int:
    """Levenshtein distance between needle and the best-matching prefix of haystack."""
    previous = list(range(len(haystack) + 1))
    for i, a in enumerate(needle, start=1):
        current = [i]
        for j, b in enumerate(haystack, start=1):
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (a != b)))
        previous = current
    return min(previous)


class Matcher:
    """Word-prefix matcher with optional fuzziness."""

    def __init__(self, string: str, config: MatchConfig | None = None):
        self.config = config or MatchConfig()
        self._separator = re.compile(self.config.separator_regex)
        self._tokens = self._tokenize(string)

    def _normalize(self, text: str) -> str:
        if self.config.ignore_diacritics:
            text = "".join(c for c in unicodedata.normalize("NFKD", text) if not unicodedata.combining(c))
        if self.config.ignore_case:
            text = text.casefold()
        return text

    def _tokenize(self, text: str) -> list[str]:
        return [t for t in self._separator.split(self._normalize(text)) if t]

    def _token_matches(self, needle: str, word: str) -> bool:
        if word.startswith(needle):
            return True
        if not self.config.fuzzy:
            return False
        return _prefix_distance(needle, word) <= len(needle) // 4

    def match(self, *strings: str) -> Match:
        """Best match over the given strings."""
        best = Match(-1.0)
        for string in strings:
            if isinstance(string, (list, tuple)):
                candidate = self.match(*string)
            else:
                candidate = self._match_one(string)
            if candidate.score > best.score:
                best = candidate
        return best

    def _match_one(self, string: str) -> Match:
        words = self._tokenize(string)
        if not self._tokens:
            return Match(0.0)
        if not words:
            return Match(-1.0)
        used: set[int] = set()
        start = 0
        matched_len = 0
        for needle in self._tokens:
            hit = None
            candidates = range(len(words)) if self.config.ignore_word_order else range(start, len(words))
            for idx in candidates:
                if idx not in used and self._token_matches(needle, words[idx]):
                    hit = idx
                    break
            if hit is None:
                return Match(-1.0)
            used.add(hit)
            start = hit + 1
            matched_len += min(len(needle), len(words[hit]))
        total = sum(len(w) for w in words)
        return Match(min(1.0, matched_len / total))
