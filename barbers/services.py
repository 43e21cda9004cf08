"""
Availability engine for barber schedules.

Builds the slot grid of one barber for one service on one date from:
1. The barber's weekly WorkSchedule (split into periods around the break)
2. Shop-wide or barber-specific HOLIDAY/CLOSED exceptions
3. Existing live appointments, each blocking its duration plus the buffer
4. Live slot locks held by other clients

Every slot carries the single highest-priority reason explaining its
state, so the grid doubles as an explanation for the client.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional

from django.db import models
from django.utils import timezone

from appointments.exceptions import InvalidInputError, NotFoundError
from appointments.models import Appointment, SlotLock
from appointments.policy import BookingPolicy
from .models import Barber, ScheduleException, Service, WorkSchedule
from .timegrid import (
    day_bounds,
    local_today,
    minutes_of_day,
    minutes_to_time,
    ranges_overlap,
    time_to_minutes,
)


class SlotReason(models.TextChoices):
    AVAILABLE = "AVAILABLE", "Available"
    OUT_OF_WORKING_HOURS = "OUT_OF_WORKING_HOURS", "Out of working hours"
    BARBER_BREAK = "BARBER_BREAK", "Barber break"
    OCCUPIED_BY_APPOINTMENT = "OCCUPIED_BY_APPOINTMENT", "Occupied by appointment"
    TEMPORARILY_LOCKED = "TEMPORARILY_LOCKED", "Temporarily locked"


@dataclass(frozen=True)
class Slot:
    time: str
    start_minutes: int
    reason: str

    @property
    def is_available(self) -> bool:
        return self.reason == SlotReason.AVAILABLE


@dataclass
class DayAvailability:
    date: date
    barber_id: int
    service_id: int
    duration_minutes: int
    slots: list[Slot] = field(default_factory=list)

    @property
    def available(self) -> list[str]:
        return [slot.time for slot in self.slots if slot.is_available]

    @property
    def occupied(self) -> list[str]:
        return [slot.time for slot in self.slots if not slot.is_available]

    def reason_for(self, clock_time: str) -> Optional[str]:
        """Reason of the slot starting at clock_time, or None if it is not on the grid."""
        for slot in self.slots:
            if slot.time == clock_time:
                return slot.reason
        return None


def parse_target_date(value) -> date:
    if isinstance(value, datetime):
        raise InvalidInputError("Expected a calendar date, not a timestamp.")
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidInputError("Invalid date format. Use YYYY-MM-DD.", code="invalid_date")


def get_schedule_for_date(barber_id: int, target_date: date) -> Optional[WorkSchedule]:
    """Active weekly schedule row for target_date's weekday, if any."""
    return WorkSchedule.objects.filter(
        barber_id=barber_id,
        day_of_week=target_date.weekday(),  # 0=Monday, 6=Sunday
        is_active=True,
    ).first()


def working_periods(schedule: WorkSchedule) -> list[tuple[int, int]]:
    """Split a shift into [start, end] minute periods around its break."""
    start = time_to_minutes(schedule.start_time)
    end = time_to_minutes(schedule.end_time)
    if not schedule.has_break:
        return [(start, end)]

    break_start = time_to_minutes(schedule.break_start)
    break_end = time_to_minutes(schedule.break_end)
    periods = []
    if break_start > start:
        periods.append((start, break_start))
    if end > break_end:
        periods.append((break_end, end))
    return periods


class AvailabilityCalculator:
    """
    Computes the explainable slot grid of a barber for a date and service.

    Read-only; safe to call concurrently.
    """

    def __init__(
        self,
        policy: Optional[BookingPolicy] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.policy = policy or BookingPolicy.from_settings()
        self.clock = clock

    def get_available_slots(self, barber_id, target_date, service_id, client_id=None) -> DayAvailability:
        """
        Grid for a bookable date.

        Raises:
            InvalidInputError: malformed date or a date before today.
            NotFoundError: barber or service missing or inactive.
        """
        target_date = parse_target_date(target_date)
        if target_date < local_today(self.clock(), self.policy.tz):
            raise InvalidInputError("Cannot view slots for past dates.", code="past_date")

        barber = Barber.objects.filter(pk=barber_id, is_active=True).first()
        if barber is None:
            raise NotFoundError("Barber not found or inactive.", code="barber_not_found")

        service = Service.objects.filter(pk=service_id, is_active=True).first()
        if service is None:
            raise NotFoundError("Service not found or inactive.", code="service_not_found")

        return self.compute(barber, service, target_date, client_id=client_id)

    def compute(self, barber: Barber, service: Service, target_date: date, client_id=None) -> DayAvailability:
        """Grid for already validated barber, service and date."""
        result = DayAvailability(
            date=target_date,
            barber_id=barber.pk,
            service_id=service.pk,
            duration_minutes=service.duration_minutes,
        )

        if ScheduleException.closes_day(barber.pk, target_date):
            return result

        schedule = get_schedule_for_date(barber.pk, target_date)
        if schedule is None:
            return result

        duration = service.duration_minutes
        shift_start = time_to_minutes(schedule.start_time)
        shift_end = time_to_minutes(schedule.end_time)
        break_start = time_to_minutes(schedule.break_start) if schedule.has_break else None
        break_end = time_to_minutes(schedule.break_end) if schedule.has_break else None

        blocked_ranges = self._blocked_ranges(barber.pk, target_date)
        locked_starts = self._locked_starts(barber.pk, target_date, client_id)

        for period_start, period_end in working_periods(schedule):
            slot_start = period_start
            while slot_start + duration <= period_end:
                slot_end = slot_start + duration

                if slot_start < shift_start or slot_end > shift_end:
                    reason = SlotReason.OUT_OF_WORKING_HOURS
                elif break_start is not None and ranges_overlap(slot_start, slot_end, break_start, break_end):
                    reason = SlotReason.BARBER_BREAK
                elif any(ranges_overlap(slot_start, slot_end, b_start, b_end) for b_start, b_end in blocked_ranges):
                    reason = SlotReason.OCCUPIED_BY_APPOINTMENT
                elif slot_start in locked_starts:
                    reason = SlotReason.TEMPORARILY_LOCKED
                else:
                    reason = SlotReason.AVAILABLE

                result.slots.append(Slot(minutes_to_time(slot_start), slot_start, reason))
                slot_start += duration

        result.slots.sort(key=lambda slot: slot.start_minutes)
        return result

    def _blocked_ranges(self, barber_id, target_date) -> list[tuple[int, int]]:
        """[start, start + duration + buffer) of every live appointment that day."""
        tz = self.policy.tz
        day_start, day_end = day_bounds(target_date, tz)
        appointments = (
            Appointment.objects.filter(barber_id=barber_id, date__gte=day_start, date__lt=day_end)
            .exclude(status__in=Appointment.INACTIVE_STATUSES)
            .select_related("service")
        )
        ranges = []
        for appointment in appointments:
            start = minutes_of_day(appointment.date, tz)
            end = start + appointment.service.duration_minutes + self.policy.buffer_minutes
            ranges.append((start, end))
        return ranges

    def _locked_starts(self, barber_id, target_date, client_id) -> set[int]:
        """Start minutes of live locks held by anyone but client_id."""
        tz = self.policy.tz
        day_start, day_end = day_bounds(target_date, tz)
        locks = SlotLock.objects.filter(
            barber_id=barber_id,
            slot_start__gte=day_start,
            slot_start__lt=day_end,
            expires_at__gt=self.clock(),
        )
        if client_id is not None:
            locks = locks.exclude(locked_by_id=client_id)
        return {minutes_of_day(lock.slot_start, tz) for lock in locks}
