"""Helpers de tiempo compartidos."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps sin zona se interpretan como UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def local_date_string(tz_name: str, now: Optional[datetime] = None) -> str:
    """Fecha YYYY-MM-DD en la zona horaria indicada."""
    current = ensure_aware(now) if now is not None else utc_now()
    return current.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d")
