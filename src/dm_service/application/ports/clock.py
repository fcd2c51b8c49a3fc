"""Server clock. Message and push timestamps are always taken from here."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Default wall-clock implementation (UTC, timezone-aware)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()
