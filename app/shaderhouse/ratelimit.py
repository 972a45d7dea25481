"""
In-memory rate limiting.

Single-process and best effort: counters live in this worker's memory and are
lost on restart. Good enough for login throttling and anti-spam on content.
"""
from __future__ import annotations

import base64
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

CLEANUP_INTERVAL_SECONDS = 5 * 60


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    def __init__(self, max_requests: int = 5, window_seconds: int = 15 * 60, *, clock: Callable[[], float] = time.time) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._store: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            if now - self._last_cleanup >= CLEANUP_INTERVAL_SECONDS:
                self._cleanup_locked(now)

            entry = self._store.get(identifier)
            if entry is None or entry.reset_at < now:
                reset_at = now + self.window_seconds
                self._store[identifier] = _Window(count=1, reset_at=reset_at)
                return RateLimitResult(allowed=True, remaining=self.max_requests - 1, reset_at=reset_at)

            entry.count += 1
            return RateLimitResult(
                allowed=entry.count <= self.max_requests,
                remaining=max(0, self.max_requests - entry.count),
                reset_at=entry.reset_at,
            )

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._store.pop(identifier, None)

    def cleanup(self) -> int:
        with self._lock:
            return self._cleanup_locked(self._clock())

    def _cleanup_locked(self, now: float) -> int:
        expired = [k for k, v in self._store.items() if v.reset_at < now]
        for k in expired:
            del self._store[k]
        self._last_cleanup = now
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)


def client_identifier(ip: str | None, user_agent: str | None, email: str | None = None) -> str:
    parts = [
        ip or "unknown-ip",
        base64.b64encode(user_agent.encode("utf-8")).decode("ascii")[:20] if user_agent else "unknown-ua",
    ]
    if email:
        parts.append(email)
    return ":".join(parts)


HOUR = 60 * 60
DAY = 24 * HOUR

# content type -> [(window name, max posts, window seconds)]
CONTENT_RATE_LIMITS: dict[str, list[tuple[str, int, int]]] = {
    "thread": [("hourly", 3, HOUR), ("daily", 10, DAY)],
    "post": [("short_term", 10, 15 * 60), ("hourly", 50, HOUR)],
    "review": [("daily", 5, DAY)],
    "devlog_comment": [("hourly", 15, HOUR)],
    "report": [("daily", 10, DAY)],
    "tip": [("daily", 20, DAY)],
    "beta_feedback": [("daily", 20, DAY)],
}


@dataclass(frozen=True)
class ContentLimitResult:
    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    limit_type: str


@dataclass
class _ContentWindow:
    count: int
    window_start: float


class ContentRateLimiter:
    """
    Multi-window limits on user generated content.
    `check` never counts; call `record` once the content is actually created.
    """

    def __init__(self, limits: dict[str, list[tuple[str, int, int]]] | None = None, *, clock: Callable[[], float] = time.time) -> None:
        self.limits = limits or CONTENT_RATE_LIMITS
        self._clock = clock
        self._store: dict[str, _ContentWindow] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def _windows(self, content_type: str) -> list[tuple[str, int, int]]:
        try:
            return self.limits[content_type]
        except KeyError:
            raise ValueError(f"Unknown content type: {content_type}") from None

    def check(self, user_id: int | str, content_type: str) -> ContentLimitResult:
        now = self._clock()
        windows = self._windows(content_type)
        with self._lock:
            self._maybe_cleanup_locked(now)
            for limit_type, max_posts, seconds in windows:
                entry = self._store.get(f"{content_type}:{limit_type}:{user_id}")
                if entry is None or now - entry.window_start >= seconds:
                    continue
                if entry.count >= max_posts:
                    return ContentLimitResult(
                        allowed=False,
                        remaining=0,
                        reset_at=entry.window_start + seconds,
                        limit=max_posts,
                        limit_type=limit_type,
                    )

            limit_type, max_posts, seconds = windows[0]
            entry = self._store.get(f"{content_type}:{limit_type}:{user_id}")
            active = entry is not None and now - entry.window_start < seconds
            used = entry.count if active else 0
            start = entry.window_start if active else now
            return ContentLimitResult(
                allowed=True,
                remaining=max(0, max_posts - used - 1),
                reset_at=start + seconds,
                limit=max_posts,
                limit_type=limit_type,
            )

    def record(self, user_id: int | str, content_type: str) -> None:
        now = self._clock()
        with self._lock:
            self._maybe_cleanup_locked(now)
            for limit_type, _max_posts, seconds in self._windows(content_type):
                key = f"{content_type}:{limit_type}:{user_id}"
                entry = self._store.get(key)
                if entry is None or now - entry.window_start >= seconds:
                    self._store[key] = _ContentWindow(count=1, window_start=now)
                else:
                    entry.count += 1

    def cleanup(self) -> int:
        with self._lock:
            return self._cleanup_locked(self._clock())

    def _maybe_cleanup_locked(self, now: float) -> None:
        if now - self._last_cleanup >= CLEANUP_INTERVAL_SECONDS:
            self._cleanup_locked(now)

    def _cleanup_locked(self, now: float) -> int:
        # the longest window is a day
        expired = [k for k, v in self._store.items() if now - v.window_start > DAY]
        for k in expired:
            del self._store[k]
        self._last_cleanup = now
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)


def _content_limiter() -> ContentRateLimiter:
    from flask import current_app

    return current_app.extensions["content_limiter"]


def enforce_content_limit(user_id: int, content_type: str) -> None:
    """Raise RateLimited when the user already hit a window for this content type."""
    from app.shaderhouse.errors import RateLimited

    result = _content_limiter().check(user_id, content_type)
    if not result.allowed:
        raise RateLimited(
            f"You're posting too fast. Limit: {result.limit} per {result.limit_type.replace('_', ' ')} window.",
            reset_at=int(result.reset_at),
            limit_type=result.limit_type,
        )


def record_content(user_id: int, content_type: str) -> None:
    _content_limiter().record(user_id, content_type)
