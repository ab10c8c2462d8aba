"""Timestamp helpers shared by the models and services."""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(value: Optional[datetime]) -> int:
    """Milliseconds since the epoch; naive values are read as UTC."""

    if value is None:
        return 0
    return calendar.timegm(value.utctimetuple()) * 1000 + value.microsecond // 1000
