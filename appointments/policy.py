"""
Booking policy thresholds.

A single immutable object carries every rule constant so services can be
built with non-default values in tests. Production values come from
``settings.BOOKING_POLICY``.
"""

from dataclasses import dataclass, fields
from datetime import timedelta
from functools import cached_property
from zoneinfo import ZoneInfo

from django.conf import settings


@dataclass(frozen=True)
class BookingPolicy:
    time_zone: str = "America/Mexico_City"
    buffer_minutes: int = 10
    min_advance_minutes: int = 30
    min_cancel_hours: int = 2
    slot_lock_minutes: int = 5
    penalty_window_days: int = 30
    penalty_cancellation_count: int = 3
    penalty_block_days: int = 14
    reminder_window_start_hours: int = 23
    reminder_window_end_hours: int = 25
    lock_sweep_interval_seconds: int = 60
    reminder_interval_minutes: int = 60

    @classmethod
    def from_settings(cls) -> "BookingPolicy":
        """Build from settings.BOOKING_POLICY; unknown keys are ignored."""
        overrides = getattr(settings, "BOOKING_POLICY", {}) or {}
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in overrides.items():
            name = key.lower()
            if name in known:
                values[name] = value
        return cls(**values)

    @cached_property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    @property
    def slot_lock_ttl(self) -> timedelta:
        return timedelta(minutes=self.slot_lock_minutes)

    @property
    def min_advance(self) -> timedelta:
        return timedelta(minutes=self.min_advance_minutes)

    @property
    def min_cancel_notice(self) -> timedelta:
        return timedelta(hours=self.min_cancel_hours)
