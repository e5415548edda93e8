"""In-memory secret cache with a single shared refresh timestamp."""
from __future__ import annotations

import time
from typing import Callable, Mapping


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class SecretCache:
    """Cache of secret values that expires as a whole.

    All entries share one ``last_refreshed`` timestamp: refreshing any single
    name extends the lifetime of every cached entry. Nothing is persisted and
    no lock is taken; concurrent refreshes simply overwrite each other.
    """

    def __init__(self, timeout_ms: int, *, clock: Callable[[], float] = monotonic_ms) -> None:
        self._timeout_ms = timeout_ms
        self._clock = clock
        self._values: dict[str, str] = {}
        self.last_refreshed: float | None = None

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    def now(self) -> float:
        return self._clock()

    def is_fresh(self, now: float | None = None) -> bool:
        if self.last_refreshed is None:
            return False
        now = self._clock() if now is None else now
        return now - self.last_refreshed < self._timeout_ms

    def get(self, name: str) -> str | None:
        """Return the cached value for ``name`` when present and fresh."""

        value = self._values.get(name)
        if value is None or not self.is_fresh():
            return None
        return value

    def snapshot(self) -> dict[str, str] | None:
        """Return a copy of every entry when the cache is fresh and non-empty."""

        if not self._values or not self.is_fresh():
            return None
        return dict(self._values)

    def put(self, name: str, value: str, *, now: float | None = None) -> None:
        self._values[name] = value
        self.last_refreshed = self._clock() if now is None else now

    def replace(self, values: Mapping[str, str], *, now: float | None = None) -> None:
        self._values = dict(values)
        self.last_refreshed = self._clock() if now is None else now


__all__ = ["SecretCache", "monotonic_ms"]
