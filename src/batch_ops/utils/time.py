"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
