"""Message pattern parsing and a most-specific-match pattern index."""

from __future__ import annotations

import json
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Generic, Iterator, Mapping, TypeVar, Union

T = TypeVar("T")

PatternLike = Union[str, Mapping[str, Any]]


def pattern_value(value: Any) -> str:
    """Normalize a message field value to the string form used in patterns."""

    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _split_top_level(text: str) -> Iterator[str]:
    quote: str | None = None
    start = 0
    for index, char in enumerate(text):
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == ",":
            yield text[start:index]
            start = index + 1
    yield text[start:]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_pattern(pattern: PatternLike) -> dict[str, str]:
    """Parse ``"role:azure,cmd:get-secret"`` or a mapping into a pattern dict.

    Values may be quoted. Surrounding braces are tolerated so that patterns
    written as ``{role:azure}`` parse the same way.
    """

    if isinstance(pattern, Mapping):
        return {str(key): pattern_value(value) for key, value in pattern.items()}

    text = pattern.strip()
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1].strip()
    if not text:
        return {}

    parsed: dict[str, str] = {}
    for part in _split_top_level(text):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition(":")
        if not sep:
            raise ValueError(f"Invalid pattern element {part!r} in {pattern!r}")
        parsed[_unquote(key.strip())] = _unquote(value.strip())
    return parsed


def canonical(pattern: Mapping[str, str]) -> str:
    """Return the stable ``key:value`` string for a parsed pattern."""

    return ",".join(f"{key}:{pattern[key]}" for key in sorted(pattern))


def _is_glob(value: str) -> bool:
    return "*" in value or "?" in value


@dataclass(slots=True)
class PatternEntry(Generic[T]):
    pattern: dict[str, str]
    data: T

    @property
    def canon(self) -> str:
        return canonical(self.pattern)


class PatternIndex(Generic[T]):
    """Store data against patterns and look up the most specific match.

    A pattern matches an object when every pattern key is present in the
    object with an equal value. With ``gex`` enabled pattern values containing
    ``*`` or ``?`` are matched as globs. The pattern with the most keys wins;
    ties go to the lexically smallest key list.
    """

    def __init__(self, *, gex: bool = False) -> None:
        self._gex = gex
        self._entries: dict[str, PatternEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PatternEntry[T]]:
        return iter(self._entries.values())

    def add(self, pattern: PatternLike, data: T) -> PatternEntry[T]:
        entry = PatternEntry(parse_pattern(pattern), data)
        self._entries[entry.canon] = entry
        return entry

    def get(self, pattern: PatternLike) -> PatternEntry[T] | None:
        return self._entries.get(canonical(parse_pattern(pattern)))

    def _value_matches(self, expected: str, actual: str) -> bool:
        if self._gex and _is_glob(expected):
            return fnmatchcase(actual, expected)
        return expected == actual

    def matches(self, pattern: Mapping[str, str], obj: Mapping[str, Any], *, exact: bool = False) -> bool:
        if exact and set(pattern) != set(obj):
            return False
        for key, expected in pattern.items():
            if key not in obj:
                return False
            if not self._value_matches(expected, pattern_value(obj[key])):
                return False
        return True

    def find_entry(self, obj: Mapping[str, Any], *, exact: bool = False) -> PatternEntry[T] | None:
        candidates = [entry for entry in self._entries.values() if self.matches(entry.pattern, obj, exact=exact)]
        if not candidates:
            return None
        candidates.sort(key=lambda entry: (-len(entry.pattern), sorted(entry.pattern)))
        return candidates[0]

    def find(self, obj: Mapping[str, Any], *, exact: bool = False) -> T | None:
        entry = self.find_entry(obj, exact=exact)
        return entry.data if entry is not None else None


__all__ = [
    "PatternEntry",
    "PatternIndex",
    "PatternLike",
    "canonical",
    "parse_pattern",
    "pattern_value",
]
