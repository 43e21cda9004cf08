"""
Tests for barber schedules and the availability engine.

Covers:
- Time-grid helpers
- WorkSchedule validation
- Slot grid generation (periods, buffer, exceptions, locks, reasons)
- API endpoint (GET /barbers/api/<id>/available-slots/)
"""

from datetime import time, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from appointments.exceptions import InvalidInputError, NotFoundError
from appointments.models import Appointment
from appointments.tests import MONDAY, SUNDAY, TUESDAY, TZ, BookingTestMixin, local
from barbers.models import Barber, ScheduleException, Service, WorkSchedule
from barbers.services import SlotReason, working_periods
from barbers.timegrid import minutes_of_day, minutes_to_time, ranges_overlap, time_to_minutes


# ═══════════════════════════════════════════════════════════════════
#  Time-Grid Helpers
# ═══════════════════════════════════════════════════════════════════


class TimeGridTests(TestCase):
    def test_clock_string_to_minutes(self):
        self.assertEqual(time_to_minutes("09:30"), 570)
        self.assertEqual(time_to_minutes("00:00"), 0)
        self.assertEqual(time_to_minutes("23:59"), 1439)

    def test_time_object_to_minutes(self):
        self.assertEqual(time_to_minutes(time(14, 0)), 840)

    def test_invalid_clock_string_raises(self):
        for value in ("9h30", "24:00", "12:60", ""):
            with self.assertRaises(ValueError):
                time_to_minutes(value)

    def test_minutes_to_clock_string_is_zero_padded(self):
        self.assertEqual(minutes_to_time(545), "09:05")
        self.assertEqual(minutes_to_time(1035), "17:15")

    def test_minutes_of_day_uses_business_time_zone(self):
        # 15:00 UTC is 09:00 in Mexico City (UTC-6)
        moment = local(MONDAY, 9, 0).astimezone(dt_timezone.utc)
        self.assertEqual(moment.hour, 15)
        self.assertEqual(minutes_of_day(moment, TZ), 540)

    def test_ranges_overlap_is_half_open(self):
        self.assertTrue(ranges_overlap(540, 585, 570, 600))
        self.assertFalse(ranges_overlap(540, 585, 585, 630))


# ═══════════════════════════════════════════════════════════════════
#  WorkSchedule Validation
# ═══════════════════════════════════════════════════════════════════


class WorkScheduleValidationTests(BookingTestMixin, TestCase):
    def _schedule(self, **overrides):
        values = {
            "barber": self.barber,
            "day_of_week": 2,
            "start_time": time(9, 0),
            "end_time": time(18, 0),
        }
        values.update(overrides)
        return WorkSchedule(**values)

    def test_valid_schedule_without_break(self):
        schedule = self._schedule()
        schedule.save()
        self.assertEqual(working_periods(schedule), [(540, 1080)])

    def test_end_before_start_rejected(self):
        with self.assertRaises(ValidationError):
            self._schedule(start_time=time(18, 0), end_time=time(9, 0)).save()

    def test_break_requires_both_ends(self):
        with self.assertRaises(ValidationError):
            self._schedule(break_start=time(14, 0)).save()

    def test_break_outside_shift_rejected(self):
        with self.assertRaises(ValidationError):
            self._schedule(break_start=time(17, 30), break_end=time(18, 30)).save()

    def test_break_covering_whole_shift_rejected(self):
        with self.assertRaises(ValidationError):
            self._schedule(break_start=time(9, 0), break_end=time(18, 0)).save()

    def test_one_schedule_per_day(self):
        with self.assertRaises(ValidationError):
            self._schedule(day_of_week=0).save()

    def test_break_splits_shift_into_two_periods(self):
        schedule = WorkSchedule.objects.get(barber=self.barber, day_of_week=0)
        self.assertEqual(working_periods(schedule), [(540, 840), (900, 1080)])

    def test_break_at_shift_start_leaves_one_period(self):
        schedule = self._schedule(break_start=time(9, 0), break_end=time(10, 0))
        self.assertEqual(working_periods(schedule), [(600, 1080)])


class ServiceValidationTests(BookingTestMixin, TestCase):
    def test_zero_duration_rejected_on_save(self):
        with self.assertRaises(ValidationError):
            Service.objects.create(name="Consultation", duration_minutes=0, price=Decimal("0.00"))
        self.assertFalse(Service.objects.filter(name="Consultation").exists())

    def test_zero_duration_rejected_by_database(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Service.objects.filter(pk=self.haircut.pk).update(duration_minutes=0)

        self.haircut.refresh_from_db()
        self.assertEqual(self.haircut.duration_minutes, 45)

    def test_grid_for_shortest_service(self):
        quick = Service.objects.create(name="Line up", duration_minutes=1, price=Decimal("50.00"))
        availability = self.calculator.get_available_slots(self.barber.pk, MONDAY, quick.pk)
        self.assertEqual(len(availability.slots), 480)


# ═══════════════════════════════════════════════════════════════════
#  Availability Calculator
# ═══════════════════════════════════════════════════════════════════


class AvailabilityCalculatorTests(BookingTestMixin, TestCase):
    def grid(self, service=None, day=MONDAY, client=None, barber=None):
        return self.calculator.get_available_slots(
            (barber or self.barber).pk,
            day,
            (service or self.haircut).pk,
            client_id=client.pk if client else None,
        )

    def test_forty_five_minute_grid_around_break(self):
        availability = self.grid()
        self.assertEqual(
            [slot.time for slot in availability.slots],
            ["09:00", "09:45", "10:30", "11:15", "12:00", "12:45",
             "15:00", "15:45", "16:30", "17:15"],
        )
        self.assertEqual(availability.available, [slot.time for slot in availability.slots])
        self.assertEqual(availability.occupied, [])
        self.assertEqual(availability.duration_minutes, 45)

    def test_slot_that_would_cross_the_break_is_not_offered(self):
        availability = self.grid()
        # 13:30 + 45 min would end at 14:15, inside the break
        self.assertIsNone(availability.reason_for("13:30"))
        # Last slot of the day ends exactly at closing time
        self.assertEqual(availability.reason_for("17:15"), SlotReason.AVAILABLE)

    def test_date_string_is_accepted(self):
        availability = self.grid(day="2030-01-07")
        self.assertEqual(availability.date, MONDAY)

    def test_existing_appointment_blocks_duration_plus_buffer(self):
        # 09:00 beard trim (30 min) + 10 min buffer blocks until 09:40
        self.make_appointment(self.client_user2, local(MONDAY, 9, 0), service=self.beard)

        availability = self.grid(service=self.beard)

        self.assertEqual(availability.reason_for("09:00"), SlotReason.OCCUPIED_BY_APPOINTMENT)
        self.assertEqual(availability.reason_for("09:30"), SlotReason.OCCUPIED_BY_APPOINTMENT)
        self.assertEqual(availability.reason_for("10:00"), SlotReason.AVAILABLE)

    def test_buffer_blocks_the_next_forty_five_minute_slot(self):
        # 09:00-09:45 + buffer -> 09:55, so 09:45 is occupied
        self.make_appointment(self.client_user2, local(MONDAY, 9, 0))

        availability = self.grid()

        self.assertEqual(availability.reason_for("09:45"), SlotReason.OCCUPIED_BY_APPOINTMENT)
        self.assertEqual(availability.reason_for("10:30"), SlotReason.AVAILABLE)

    def test_cancelled_and_rejected_appointments_do_not_block(self):
        self.make_appointment(self.client_user2, local(MONDAY, 9, 0), status=Appointment.Status.CANCELLED)
        self.make_appointment(
            self.client_user2, local(MONDAY, 10, 30),
            status=Appointment.Status.REJECTED, rejection_reason="Sick",
        )

        availability = self.grid()

        self.assertEqual(availability.reason_for("09:00"), SlotReason.AVAILABLE)
        self.assertEqual(availability.reason_for("10:30"), SlotReason.AVAILABLE)

    def test_completed_appointment_still_blocks(self):
        self.make_appointment(self.client_user2, local(MONDAY, 12, 0), status=Appointment.Status.COMPLETED)
        self.assertEqual(self.grid().reason_for("12:00"), SlotReason.OCCUPIED_BY_APPOINTMENT)

    def test_other_barbers_appointments_do_not_block(self):
        self.make_appointment(self.client_user2, local(MONDAY, 9, 0), barber=self.other_barber)
        self.assertEqual(self.grid().reason_for("09:00"), SlotReason.AVAILABLE)

    def test_shop_wide_holiday_closes_the_day(self):
        ScheduleException.objects.create(date=MONDAY, type=ScheduleException.Type.HOLIDAY)
        self.assertEqual(self.grid().slots, [])

    def test_barber_closure_only_affects_that_barber(self):
        ScheduleException.objects.create(
            barber=self.other_barber, date=MONDAY, type=ScheduleException.Type.CLOSED
        )
        self.assertEqual(self.grid(barber=self.other_barber).slots, [])
        self.assertEqual(len(self.grid().slots), 10)

    def test_special_hours_do_not_close_the_day(self):
        ScheduleException.objects.create(date=MONDAY, type=ScheduleException.Type.SPECIAL_HOURS)
        self.assertEqual(len(self.grid().slots), 10)

    def test_day_without_schedule_is_empty(self):
        self.assertEqual(self.grid(day=TUESDAY).slots, [])

    def test_inactive_schedule_is_ignored(self):
        WorkSchedule.objects.filter(barber=self.barber, day_of_week=0).update(is_active=False)
        self.assertEqual(self.grid().slots, [])

    def test_lock_held_by_someone_else_reads_as_locked(self):
        self.make_lock(self.client_user2, local(MONDAY, 10, 30))

        self.assertEqual(
            self.grid(client=self.client_user).reason_for("10:30"),
            SlotReason.TEMPORARILY_LOCKED,
        )
        self.assertEqual(
            self.grid().reason_for("10:30"),
            SlotReason.TEMPORARILY_LOCKED,
        )

    def test_own_lock_reads_as_available(self):
        self.make_lock(self.client_user2, local(MONDAY, 10, 30))
        self.assertEqual(
            self.grid(client=self.client_user2).reason_for("10:30"),
            SlotReason.AVAILABLE,
        )

    def test_expired_lock_is_ignored(self):
        self.make_lock(self.client_user2, local(MONDAY, 10, 30), ttl=timedelta(minutes=-1))
        self.assertEqual(self.grid(client=self.client_user).reason_for("10:30"), SlotReason.AVAILABLE)

    def test_appointment_takes_priority_over_lock(self):
        self.make_appointment(self.client_user2, local(MONDAY, 10, 30))
        self.make_lock(self.client_user2, local(MONDAY, 10, 30))
        self.assertEqual(
            self.grid(client=self.client_user).reason_for("10:30"),
            SlotReason.OCCUPIED_BY_APPOINTMENT,
        )

    def test_today_is_allowed(self):
        WorkSchedule.objects.create(
            barber=self.barber, day_of_week=6, start_time=time(9, 0), end_time=time(18, 0)
        )
        availability = self.grid(day=SUNDAY)
        self.assertEqual(availability.date, SUNDAY)
        self.assertTrue(availability.slots)

    def test_past_date_raises(self):
        with self.assertRaises(InvalidInputError):
            self.grid(day=SUNDAY - timedelta(days=1))

    def test_malformed_date_raises(self):
        with self.assertRaises(InvalidInputError):
            self.grid(day="07/01/2030")

    def test_inactive_barber_raises_not_found(self):
        self.barber.is_active = False
        self.barber.save()
        with self.assertRaises(NotFoundError):
            self.grid()

    def test_inactive_service_raises_not_found(self):
        self.haircut.is_active = False
        self.haircut.save()
        with self.assertRaises(NotFoundError):
            self.grid()


# ═══════════════════════════════════════════════════════════════════
#  API Endpoint Tests
# ═══════════════════════════════════════════════════════════════════


class AvailableSlotsAPITests(BookingTestMixin, TestCase):
    """Tests for GET /barbers/api/<barber_id>/available-slots/ (real clock)."""

    def setUp(self):
        super().setUp()
        self.api = APIClient()
        today = timezone.now().astimezone(TZ).date()
        days_ahead = 0 - today.weekday()  # Monday is 0
        if days_ahead <= 0:
            days_ahead += 7
        self.next_monday = today + timedelta(days=days_ahead)
        self.url = reverse("barbers:api_barber_available_slots", args=[self.barber.pk])

    def test_returns_grid_with_reasons(self):
        response = self.api.get(
            self.url, {"date": self.next_monday.isoformat(), "service_id": self.haircut.pk}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["available"][0], "09:00")
        self.assertEqual(len(response.data["slots"]), 10)
        self.assertEqual(response.data["slots"][0]["reason"], "AVAILABLE")

    def test_missing_params_returns_400(self):
        response = self.api.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("date", response.data)
        self.assertIn("service_id", response.data)

    def test_past_date_returns_400(self):
        yesterday = timezone.now().astimezone(TZ).date() - timedelta(days=1)
        response = self.api.get(self.url, {"date": yesterday.isoformat(), "service_id": self.haircut.pk})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "past_date")

    def test_unknown_barber_returns_404(self):
        url = reverse("barbers:api_barber_available_slots", args=[99999])
        response = self.api.get(url, {"date": self.next_monday.isoformat(), "service_id": self.haircut.pk})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_schedule_endpoint_lists_working_days(self):
        response = self.api.get(reverse("barbers:api_barber_schedule", args=[self.barber.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"][0]["start_time"], "09:00")
        self.assertEqual(response.data["results"][0]["break_start"], "14:00")

    def test_services_endpoint_lists_active_services(self):
        self.beard.is_active = False
        self.beard.save()
        response = self.api.get(reverse("barbers:api_services"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([s["name"] for s in response.data["results"]], ["Haircut"])


# ═══════════════════════════════════════════════════════════════════
#  Demo Data
# ═══════════════════════════════════════════════════════════════════


class SeedBarbershopCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command("seed_barbershop", stdout=StringIO())
        call_command("seed_barbershop", stdout=StringIO())

        self.assertEqual(Service.objects.count(), 5)
        self.assertEqual(Barber.objects.count(), 3)
        self.assertEqual(Barber.objects.filter(is_active=True).count(), 2)
        matvei = Barber.objects.get(name="Matvei Efimov")
        self.assertEqual(
            list(matvei.work_schedules.values_list("day_of_week", flat=True)), [0, 1, 2]
        )
