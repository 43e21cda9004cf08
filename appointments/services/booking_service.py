"""
Appointment booking service.

Handles the complete booking flow:
1. Refuse clients serving a cancellation penalty
2. Validate the requested start (parseable, not in the past, enough notice)
3. Re-check the slot on the availability grid
4. Refuse slots held by another client's live lock
5. Refuse services that would end after the barber's shift
6. In a serializable transaction, under a row lock on the barber:
   - refuse overlaps with the client's own open appointments
   - refuse overlaps with other clients' appointments (buffer applied)
   - create the PENDING appointment and release the caller's lock
7. After commit, send the confirmation (best effort)

Concurrent-write conflicts from the database are reported as
SlotUnavailableError and never retried automatically.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from appointments.db import is_serialization_failure, serializable_atomic
from appointments.exceptions import (
    InsufficientAdvanceNoticeError,
    InvalidInputError,
    OverlappingOwnAppointmentError,
    ServiceExceedsWorkingHoursError,
    SlotTemporarilyLockedError,
    SlotUnavailableError,
)
from appointments.models import Appointment, SlotLock
from appointments.policy import BookingPolicy
from appointments.services.notification_service import AppointmentNotifier
from appointments.services.penalty_service import CancellationPenaltyEvaluator
from appointments.services.slot_lock_service import (
    SlotLockManager,
    parse_slot_start,
    raise_for_reason,
)
from barbers.models import Barber
from barbers.services import AvailabilityCalculator, get_schedule_for_date
from barbers.timegrid import (
    day_bounds,
    local_today,
    minutes_of_day,
    minutes_to_time,
    ranges_overlap,
    time_to_minutes,
)

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        policy: Optional[BookingPolicy] = None,
        calculator: Optional[AvailabilityCalculator] = None,
        lock_manager: Optional[SlotLockManager] = None,
        penalty_evaluator: Optional[CancellationPenaltyEvaluator] = None,
        notifier: Optional[AppointmentNotifier] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.policy = policy or BookingPolicy.from_settings()
        self.clock = clock
        self.calculator = calculator or AvailabilityCalculator(policy=self.policy, clock=clock)
        self.lock_manager = lock_manager or SlotLockManager(
            policy=self.policy, calculator=self.calculator, clock=clock
        )
        self.penalty_evaluator = penalty_evaluator or CancellationPenaltyEvaluator(
            policy=self.policy, clock=clock
        )
        self.notifier = notifier or AppointmentNotifier(policy=self.policy)

    def book(self, *, client_id, barber_id, service_id, start, notes=None) -> Appointment:
        """
        Book an appointment for a client.

        This is the single entry point for creating appointments. It
        validates everything again, whatever the client saw earlier.

        Args:
            client_id: ID of the booking user.
            barber_id: The barber's ID.
            service_id: The service's ID.
            start: Requested start (aware datetime, naive local datetime
                or ISO 8601 string).
            notes: Optional notes for the barber (max 500 chars).

        Returns:
            The created PENDING Appointment.

        Raises:
            BookingBlockedError: The client is serving a cancellation penalty.
            InvalidInputError: Malformed start or a past calendar day.
            InsufficientAdvanceNoticeError: Start is less than 30 minutes away.
            NotFoundError: Barber or service missing or inactive.
            SlotTemporarilyLockedError: Another client holds the slot.
            SlotUnavailableError: Slot taken or lost to a concurrent booking.
            ServiceExceedsWorkingHoursError: Service ends after the shift.
            OverlappingOwnAppointmentError: Client already booked this time.
        """
        # ── 1. Cancellation penalty ───────────────────────────────────────
        self.penalty_evaluator.ensure_can_book(client_id)

        # ── 2. Start validation ───────────────────────────────────────────
        tz = self.policy.tz
        start = parse_slot_start(start, tz)
        now = self.clock()
        local_start = start.astimezone(tz)

        if local_start.date() < local_today(now, tz):
            raise InvalidInputError("Cannot book appointments in the past.", code="past_date")
        if start < now + self.policy.min_advance:
            raise InsufficientAdvanceNoticeError()

        notes = (notes or "").strip()
        if len(notes) > Appointment.NOTES_MAX_LENGTH:
            raise InvalidInputError(
                f"Notes cannot exceed {Appointment.NOTES_MAX_LENGTH} characters.",
                code="notes_too_long",
            )

        # ── 3. Availability at the exact time ─────────────────────────────
        start_minutes = minutes_of_day(start, tz)
        availability = self.calculator.get_available_slots(
            barber_id, local_start.date(), service_id, client_id=client_id
        )
        raise_for_reason(availability.reason_for(minutes_to_time(start_minutes)))

        # ── 4. Soft lock held by someone else ─────────────────────────────
        lock = self.lock_manager.live_lock(barber_id, start)
        if lock is not None and lock.locked_by_id != client_id:
            raise SlotTemporarilyLockedError()

        # ── 5. Service must end within the shift ──────────────────────────
        duration = availability.duration_minutes
        schedule = get_schedule_for_date(barber_id, local_start.date())
        if schedule is not None and start_minutes + duration > time_to_minutes(schedule.end_time):
            raise ServiceExceedsWorkingHoursError()

        # ── 6. Serializable re-check and insert ───────────────────────────
        try:
            appointment = self._create_under_lock(
                client_id=client_id,
                barber_id=barber_id,
                service_id=service_id,
                start=start,
                duration=duration,
                notes=notes,
            )
        except DatabaseError as exc:
            if is_serialization_failure(exc):
                logger.info(
                    "[BOOKING] Concurrent booking conflict barber=%s start=%s client=%s: %s",
                    barber_id, start.isoformat(), client_id, exc,
                )
                raise SlotUnavailableError()
            raise

        logger.info(
            "[BOOKING] Appointment %s created barber=%s start=%s client=%s",
            appointment.pk, barber_id, start.isoformat(), client_id,
        )

        # ── 7. Confirmation after commit ──────────────────────────────────
        appointment_id = appointment.pk
        transaction.on_commit(lambda: self._send_confirmation(appointment_id))

        return appointment

    def _create_under_lock(self, *, client_id, barber_id, service_id, start, duration, notes):
        tz = self.policy.tz
        buffer_minutes = self.policy.buffer_minutes
        new_start = minutes_of_day(start, tz)
        new_end = new_start + duration
        day_start, day_end = day_bounds(start.astimezone(tz).date(), tz)

        with serializable_atomic():
            # Serializes concurrent bookings for the same barber
            Barber.objects.select_for_update().get(pk=barber_id)

            same_day = Appointment.objects.filter(
                barber_id=barber_id,
                date__gte=day_start,
                date__lt=day_end,
            ).select_related("service")

            own = same_day.filter(client_id=client_id, status__in=Appointment.OPEN_STATUSES)
            for existing in own:
                existing_start = minutes_of_day(existing.date, tz)
                existing_end = existing_start + existing.service.duration_minutes
                if ranges_overlap(new_start, new_end, existing_start, existing_end):
                    raise OverlappingOwnAppointmentError()

            others = same_day.exclude(status__in=Appointment.INACTIVE_STATUSES).exclude(client_id=client_id)
            for existing in others:
                existing_start = minutes_of_day(existing.date, tz)
                existing_end = existing_start + existing.service.duration_minutes + buffer_minutes
                if ranges_overlap(new_start, new_end + buffer_minutes, existing_start, existing_end):
                    raise SlotUnavailableError()

            appointment = Appointment.objects.create(
                client_id=client_id,
                barber_id=barber_id,
                service_id=service_id,
                date=start,
                status=Appointment.Status.PENDING,
                notes=notes,
            )

            SlotLock.objects.filter(
                barber_id=barber_id,
                slot_start=start,
                locked_by_id=client_id,
            ).delete()

        return appointment

    def _send_confirmation(self, appointment_id):
        try:
            self.notifier.notify_confirmation(appointment_id)
        except Exception as exc:
            # Provider or network failure; the booking itself stands
            logger.error(
                "[WHATSAPP] Failed to send confirmation for appointment_id=%s: %r",
                appointment_id,
                exc,
            )
