from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

FEATURED_GAMES_TTL = 5 * 60
TRENDING_GAMES_TTL = 10 * 60
SETTINGS_TTL = 60


def featured_games_key(limit: int) -> str:
    return f"featured-games-{limit}"


def trending_games_key(limit: int, days: int) -> str:
    return f"trending-games-{limit}-{days}"


GAME_KEY_PREFIXES = ("featured-games-", "trending-games-")


class ApiCache:
    """Per-process TTL cache for public, read-heavy responses."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            hit = self._data.get(key)
            if hit is None:
                return None
            value, expires_at = hit
            if self._clock() > expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def delete_prefix(self, *prefixes: str) -> None:
        with self._lock:
            for key in [k for k in self._data if k.startswith(prefixes)]:
                del self._data[key]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def clear_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._data.items() if now > exp]
            for k in expired:
                del self._data[k]
            return len(expired)

    def __len__(self) -> int:
        return len(self._data)


def get_cache() -> ApiCache:
    from flask import current_app

    return current_app.extensions["api_cache"]


def invalidate_game_caches() -> None:
    get_cache().delete_prefix(*GAME_KEY_PREFIXES)
