"""Clocks and validation horizons."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fusion_oracle.core.types import utc_now


def timeframe_to_minutes(timeframe: str) -> int:
    """Convert a timeframe string (e.g. '15m', '1h') into minutes."""
    if not timeframe:
        raise ValueError("timeframe is empty")
    tf = timeframe.strip().lower()
    if tf.endswith("min"):
        return int(tf[:-3])
    if tf.endswith("m"):
        return int(tf[:-1])
    if tf.endswith("h"):
        return int(tf[:-1]) * 60
    if tf.endswith("d"):
        return int(tf[:-1]) * 1440
    if tf.isdigit():
        return int(tf)
    raise ValueError(f"Unsupported timeframe: {timeframe}")


def horizon_for(timeframe: str, override_seconds: Optional[float] = None) -> timedelta:
    """Validation horizon for a declared timeframe."""
    if override_seconds is not None:
        if override_seconds < 0:
            raise ValueError("horizon override must be non-negative")
        return timedelta(seconds=override_seconds)
    return timedelta(minutes=timeframe_to_minutes(timeframe))


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return utc_now()


class ManualClock:
    """Clock that only moves when told to. Used by simulations and tests."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, 9, 15, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0.0, minutes: float = 0.0) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, minutes=minutes)
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment
