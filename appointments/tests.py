"""
Tests for the appointment booking feature.

Covers:
- Booking service (happy path, validations, lock handling)
- Overlap re-checks inside the booking transaction
- Concurrent-write conflict mapping
- Confirmation sent after commit
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from unittest.mock import Mock, patch
from zoneinfo import ZoneInfo

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, OperationalError
from django.test import TestCase

from appointments.db import is_serialization_failure
from appointments.exceptions import (
    BookingBlockedError,
    InsufficientAdvanceNoticeError,
    InvalidInputError,
    NotFoundError,
    OverlappingOwnAppointmentError,
    ServiceExceedsWorkingHoursError,
    SlotTemporarilyLockedError,
    SlotUnavailableError,
)
from appointments.models import Appointment, SlotLock
from appointments.policy import BookingPolicy
from appointments.services import (
    AppointmentNotifier,
    BookingService,
    CancellationPenaltyEvaluator,
    SlotLockManager,
    StatusTransitionEngine,
)
from barbers.models import Barber, Service, WorkSchedule
from barbers.services import AvailabilityCalculator, DayAvailability, Slot, SlotReason
from barbers.timegrid import time_to_minutes

User = get_user_model()

# Service-level tests run against a fixed business-time-zone clock:
# Sunday 2030-01-06 12:00 America/Mexico_City, so "next Monday" is 2030-01-07.
TZ = ZoneInfo("America/Mexico_City")
SUNDAY = date(2030, 1, 6)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)


def local(day, hour, minute=0):
    """Aware datetime at a business-time-zone wall-clock time."""
    return datetime.combine(day, time(hour, minute), tzinfo=TZ)


def available_grid(day, clock_time, service):
    """A one-slot grid reporting clock_time as AVAILABLE."""
    return DayAvailability(
        date=day,
        barber_id=0,
        service_id=service.pk,
        duration_minutes=service.duration_minutes,
        slots=[Slot(clock_time, time_to_minutes(clock_time), SlotReason.AVAILABLE)],
    )


class BookingTestMixin:
    """Shared setup: one working barber, two services, a fixed clock."""

    def setUp(self):
        self.now = local(SUNDAY, 12, 0)
        self.policy = BookingPolicy(time_zone="America/Mexico_City")

        # Users
        self.client_user = User.objects.create_user(
            phone="+5215512340001",
            password="testpass123",
            name="Carlos Client",
            role=User.Role.CLIENT,
        )
        self.client_user2 = User.objects.create_user(
            phone="+5215512340002",
            password="testpass123",
            name="Sara Client",
            role=User.Role.CLIENT,
        )
        self.barber_user = User.objects.create_user(
            phone="+5215512340003",
            password="testpass123",
            name="Matvei Barber",
            role=User.Role.BARBER,
        )
        self.other_barber_user = User.objects.create_user(
            phone="+5215512340004",
            password="testpass123",
            name="Evgenii Barber",
            role=User.Role.BARBER,
        )
        self.admin_user = User.objects.create_user(
            phone="+5215512340005",
            password="testpass123",
            name="Shop Admin",
            role=User.Role.ADMIN,
        )

        # Barbers
        self.barber = Barber.objects.create(user=self.barber_user, name="Matvei")
        self.other_barber = Barber.objects.create(user=self.other_barber_user, name="Evgenii")

        # Monday 09:00-18:00 with a 14:00-15:00 break
        for barber in (self.barber, self.other_barber):
            WorkSchedule.objects.create(
                barber=barber,
                day_of_week=0,
                start_time=time(9, 0),
                end_time=time(18, 0),
                break_start=time(14, 0),
                break_end=time(15, 0),
            )

        # Services
        self.haircut = Service.objects.create(
            name="Haircut", duration_minutes=45, price=Decimal("200.00")
        )
        self.beard = Service.objects.create(
            name="Beard trim", duration_minutes=30, price=Decimal("120.00")
        )

        # Components wired to the fixed clock
        clock = lambda: self.now  # noqa: E731
        self.calculator = AvailabilityCalculator(policy=self.policy, clock=clock)
        self.lock_manager = SlotLockManager(policy=self.policy, calculator=self.calculator, clock=clock)
        self.penalty = CancellationPenaltyEvaluator(policy=self.policy, clock=clock)
        self.notifier = Mock(spec=AppointmentNotifier)
        self.booking = BookingService(
            policy=self.policy,
            calculator=self.calculator,
            lock_manager=self.lock_manager,
            penalty_evaluator=self.penalty,
            notifier=self.notifier,
            clock=clock,
        )
        self.engine = StatusTransitionEngine(policy=self.policy, clock=clock)

    def make_appointment(self, client, start, service=None, status=Appointment.Status.PENDING, barber=None, **extra):
        return Appointment.objects.create(
            client=client,
            barber=barber or self.barber,
            service=service or self.haircut,
            date=start,
            status=status,
            **extra,
        )

    def make_lock(self, client, start, barber=None, ttl=timedelta(minutes=5)):
        return SlotLock.objects.create(
            barber=barber or self.barber,
            slot_start=start,
            locked_by=client,
            expires_at=self.now + ttl,
        )

    def book(self, client=None, start=None, service=None, **kwargs):
        return self.booking.book(
            client_id=(client or self.client_user).pk,
            barber_id=kwargs.pop("barber_id", self.barber.pk),
            service_id=(service or self.haircut).pk,
            start=start or local(MONDAY, 9, 0),
            **kwargs,
        )


# ═══════════════════════════════════════════════════════════════════
#  Booking Service Tests
# ═══════════════════════════════════════════════════════════════════


class BookingServiceTests(BookingTestMixin, TestCase):
    """Tests for BookingService.book()."""

    def test_successful_booking(self):
        """A free slot is booked as PENDING for the requesting client."""
        appointment = self.book(notes="  Short on the sides  ")

        self.assertEqual(appointment.status, Appointment.Status.PENDING)
        self.assertEqual(appointment.client, self.client_user)
        self.assertEqual(appointment.barber, self.barber)
        self.assertEqual(appointment.service, self.haircut)
        self.assertEqual(appointment.date, local(MONDAY, 9, 0))
        self.assertEqual(appointment.notes, "Short on the sides")
        self.assertFalse(appointment.reminder_sent)

    def test_naive_iso_string_is_business_wall_clock(self):
        appointment = self.book(start="2030-01-07T10:30")
        self.assertEqual(appointment.date, local(MONDAY, 10, 30))

    def test_malformed_start_raises_error(self):
        with self.assertRaises(InvalidInputError):
            self.book(start="next monday at nine")

    def test_notes_too_long_raises_error(self):
        with self.assertRaises(InvalidInputError) as ctx:
            self.book(notes="x" * 501)
        self.assertEqual(ctx.exception.code, "notes_too_long")

    def test_past_day_raises_error(self):
        with self.assertRaises(InvalidInputError) as ctx:
            self.book(start=local(SUNDAY - timedelta(days=1), 10, 0))
        self.assertEqual(ctx.exception.code, "past_date")

    def test_earlier_today_is_insufficient_notice(self):
        """A start that already passed today fails the notice check, not the date check."""
        with self.assertRaises(InsufficientAdvanceNoticeError) as ctx:
            self.book(start=local(SUNDAY, 11, 0))
        self.assertEqual(ctx.exception.code, "insufficient_advance_notice")

    def test_start_too_soon_raises_error(self):
        """Less than 30 minutes of notice is refused before the grid is read."""
        with self.assertRaises(InsufficientAdvanceNoticeError):
            self.book(start=self.now + timedelta(minutes=20))

    def test_start_off_the_grid_raises_error(self):
        """09:15 is not a 45-minute slot start."""
        with self.assertRaises(SlotUnavailableError):
            self.book(start=local(MONDAY, 9, 15))

    def test_inactive_barber_raises_error(self):
        self.barber.is_active = False
        self.barber.save()
        with self.assertRaises(NotFoundError):
            self.book()

    def test_slot_already_booked_raises_error(self):
        """Booking an already-taken slot should raise SlotUnavailableError."""
        self.book(client=self.client_user2)

        with self.assertRaises(SlotUnavailableError) as ctx:
            self.book()
        self.assertEqual(ctx.exception.reason, SlotReason.OCCUPIED_BY_APPOINTMENT)
        self.assertEqual(Appointment.objects.count(), 1)

    def test_cancelled_slot_can_be_rebooked(self):
        """A cancelled appointment's slot should become available again."""
        self.make_appointment(self.client_user2, local(MONDAY, 9, 0), status=Appointment.Status.CANCELLED)

        appointment = self.book()
        self.assertEqual(appointment.status, Appointment.Status.PENDING)

    def test_different_time_same_day_ok(self):
        self.book(client=self.client_user2, start=local(MONDAY, 9, 0))
        appointment = self.book(start=local(MONDAY, 10, 30))
        self.assertIsNotNone(appointment.pk)

    def test_blocked_client_cannot_book(self):
        for hour in (9, 10, 11):
            self.make_appointment(
                self.client_user,
                local(MONDAY, hour, 0),
                barber=self.other_barber,
                status=Appointment.Status.CANCELLED,
            )
        Appointment.objects.update(updated_at=self.now - timedelta(days=1))

        with self.assertRaises(BookingBlockedError) as ctx:
            self.book()
        self.assertEqual(ctx.exception.blocked_until, self.now + timedelta(days=13))
        self.assertFalse(Appointment.objects.exclude(status=Appointment.Status.CANCELLED).exists())

    # ── Slot locks ────────────────────────────────────────────────────

    def test_slot_locked_by_other_client_raises_error(self):
        self.make_lock(self.client_user2, local(MONDAY, 9, 0))

        with self.assertRaises(SlotTemporarilyLockedError):
            self.book()

    def test_own_lock_is_released_on_booking(self):
        self.make_lock(self.client_user, local(MONDAY, 9, 0))

        self.book()

        self.assertFalse(SlotLock.objects.exists())

    def test_expired_lock_of_other_client_does_not_block(self):
        self.make_lock(self.client_user2, local(MONDAY, 9, 0), ttl=timedelta(minutes=-1))

        appointment = self.book()

        self.assertIsNotNone(appointment.pk)
        # Only the caller's own lock is released by a booking
        self.assertTrue(SlotLock.objects.filter(locked_by=self.client_user2).exists())

    def test_other_clients_locks_are_kept(self):
        self.make_lock(self.client_user2, local(MONDAY, 10, 30))
        self.book()
        self.assertEqual(SlotLock.objects.count(), 1)


# ═══════════════════════════════════════════════════════════════════
#  Transactional Re-checks
# ═══════════════════════════════════════════════════════════════════


class BookingRecheckTests(BookingTestMixin, TestCase):
    """
    Checks that only trip when the grid read earlier in the request is
    stale. The grid is patched to report the requested time as free.
    """

    def book_with_stale_grid(self, clock_time, start, service=None, client=None):
        service = service or self.haircut
        with patch.object(
            self.calculator,
            "get_available_slots",
            return_value=available_grid(MONDAY, clock_time, service),
        ):
            return self.book(client=client, start=start, service=service)

    def test_overlapping_own_appointment_raises_error(self):
        self.make_appointment(self.client_user, local(MONDAY, 9, 0))

        with self.assertRaises(OverlappingOwnAppointmentError):
            self.book_with_stale_grid("09:30", local(MONDAY, 9, 30), service=self.beard)

    def test_own_appointment_ignores_buffer(self):
        """Own appointments block only their duration: 09:45 right after a 09:00 haircut is fine."""
        self.make_appointment(self.client_user, local(MONDAY, 9, 0))

        appointment = self.book_with_stale_grid("09:45", local(MONDAY, 9, 45))

        self.assertEqual(appointment.date, local(MONDAY, 9, 45))

    def test_own_cancelled_appointment_does_not_overlap(self):
        self.make_appointment(self.client_user, local(MONDAY, 9, 0), status=Appointment.Status.CANCELLED)

        appointment = self.book_with_stale_grid("09:30", local(MONDAY, 9, 30), service=self.beard)

        self.assertIsNotNone(appointment.pk)

    def test_other_client_appointment_within_buffer_raises_error(self):
        """A 09:00 beard trim blocks until 09:40 with the buffer."""
        self.make_appointment(self.client_user2, local(MONDAY, 9, 0), service=self.beard)

        with self.assertRaises(SlotUnavailableError):
            self.book_with_stale_grid("09:35", local(MONDAY, 9, 35))

    def test_buffer_applies_after_the_new_appointment(self):
        """A 09:00 haircut plus buffer runs to 09:55 and collides with 09:50."""
        self.make_appointment(self.client_user2, local(MONDAY, 9, 50), service=self.beard)

        with self.assertRaises(SlotUnavailableError):
            self.book_with_stale_grid("09:00", local(MONDAY, 9, 0))

    def test_service_exceeding_shift_raises_error(self):
        with self.assertRaises(ServiceExceedsWorkingHoursError):
            self.book_with_stale_grid("17:30", local(MONDAY, 17, 30))

    def test_service_ending_at_closing_time_is_ok(self):
        appointment = self.book(start=local(MONDAY, 17, 15))
        self.assertEqual(appointment.end, local(MONDAY, 18, 0))


# ═══════════════════════════════════════════════════════════════════
#  Concurrency Conflict Mapping
# ═══════════════════════════════════════════════════════════════════


class BookingConflictTests(BookingTestMixin, TestCase):
    def test_serialization_failure_becomes_slot_unavailable(self):
        with patch.object(
            BookingService,
            "_create_under_lock",
            side_effect=OperationalError("could not serialize access due to concurrent update"),
        ):
            with self.assertRaises(SlotUnavailableError):
                self.book()

    def test_unique_violation_becomes_slot_unavailable(self):
        with patch.object(
            BookingService,
            "_create_under_lock",
            side_effect=IntegrityError("duplicate key value violates unique constraint"),
        ):
            with self.assertRaises(SlotUnavailableError):
                self.book()

    def test_foreign_key_violation_propagates(self):
        with patch.object(
            BookingService,
            "_create_under_lock",
            side_effect=IntegrityError("FOREIGN KEY constraint failed"),
        ):
            with self.assertRaises(IntegrityError):
                self.book()

    def test_other_database_errors_propagate(self):
        with patch.object(BookingService, "_create_under_lock", side_effect=DatabaseError("disk I/O error")):
            with self.assertRaises(DatabaseError):
                self.book()

    def test_conflict_does_not_send_confirmation(self):
        with patch.object(BookingService, "_create_under_lock", side_effect=IntegrityError("duplicate key")):
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                with self.assertRaises(SlotUnavailableError):
                    self.book()
        self.assertEqual(callbacks, [])
        self.notifier.notify_confirmation.assert_not_called()


class SerializationFailureTests(TestCase):
    def test_unique_violation(self):
        self.assertTrue(is_serialization_failure(IntegrityError("UNIQUE constraint failed: appointments_appointment.barber_id")))

    def test_unique_violation_sqlstate(self):
        driver_error = Exception("violates constraint")
        driver_error.sqlstate = "23505"
        try:
            raise IntegrityError("wrapped") from driver_error
        except IntegrityError as exc:
            self.assertTrue(is_serialization_failure(exc))

    def test_foreign_key_violation_is_not_a_conflict(self):
        self.assertFalse(is_serialization_failure(IntegrityError("FOREIGN KEY constraint failed")))

        driver_error = Exception('insert violates foreign key constraint "client_id_fk"')
        driver_error.sqlstate = "23503"
        try:
            raise IntegrityError("wrapped") from driver_error
        except IntegrityError as exc:
            self.assertFalse(is_serialization_failure(exc))

    def test_sqlstate_on_driver_error(self):
        driver_error = Exception("conflict")
        driver_error.sqlstate = "40001"
        self.assertTrue(is_serialization_failure(driver_error))

    def test_deadlock_in_cause_chain(self):
        try:
            try:
                raise RuntimeError("deadlock detected")
            except RuntimeError as inner:
                raise OperationalError("wrapped") from inner
        except OperationalError as exc:
            self.assertTrue(is_serialization_failure(exc))

    def test_sqlite_busy(self):
        self.assertTrue(is_serialization_failure(OperationalError("database is locked")))

    def test_unrelated_error(self):
        self.assertFalse(is_serialization_failure(OperationalError("no such table: appointments")))


# ═══════════════════════════════════════════════════════════════════
#  Confirmation After Commit
# ═══════════════════════════════════════════════════════════════════


class BookingConfirmationTests(BookingTestMixin, TestCase):
    def test_confirmation_sent_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            appointment = self.book()

        self.assertEqual(len(callbacks), 1)
        self.notifier.notify_confirmation.assert_called_once_with(appointment.pk)

    def test_confirmation_not_sent_before_commit(self):
        with self.captureOnCommitCallbacks(execute=False):
            self.book()
        self.notifier.notify_confirmation.assert_not_called()

    def test_confirmation_failure_keeps_booking(self):
        self.notifier.notify_confirmation.side_effect = RuntimeError("provider down")

        with self.assertLogs("appointments.services.booking_service", level="ERROR") as logs:
            with self.captureOnCommitCallbacks(execute=True):
                appointment = self.book()

        self.assertTrue(Appointment.objects.filter(pk=appointment.pk).exists())
        self.assertIn("[WHATSAPP]", logs.output[0])
