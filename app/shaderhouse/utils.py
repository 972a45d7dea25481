from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlparse

from sqlalchemy.orm import Query

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_DASHES = re.compile(r"-+")


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns are stored without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def month_start(when: datetime | date | None = None) -> date:
    when = when or utcnow()
    return date(when.year, when.month, 1)


def slugify(text: str, max_length: int = 100) -> str:
    slug = _SLUG_STRIP.sub("", (text or "").lower())
    slug = _SLUG_SPACES.sub("-", slug.strip())
    slug = _SLUG_DASHES.sub("-", slug).strip("-")
    return slug[:max_length] or "item"


def is_http_url(value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_int(value: Any, default: int, *, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        n = default
    if minimum is not None and n < minimum:
        n = minimum
    if maximum is not None and n > maximum:
        n = maximum
    return n


def parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    s = str(value).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return None


def clean_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def paginate(q: Query, page: int, page_size: int) -> tuple[list, int]:
    total = q.order_by(None).count()
    items = q.offset((page - 1) * page_size).limit(page_size).all()
    return items, total


def page_meta(total: int, page: int, page_size: int) -> dict[str, int]:
    total_pages = (total + page_size - 1) // page_size if page_size else 0
    return {"total": total, "page": page, "page_size": page_size, "total_pages": total_pages}
