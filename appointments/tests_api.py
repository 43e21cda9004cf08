"""
API endpoint tests for appointments.

Covers:
- POST  /appointments/api/slot-lock/
- POST  /appointments/api/book/
- PATCH /appointments/api/<id>/status/
- GET   /appointments/api/my/
- GET   /appointments/api/barber/

These run against the real clock, booking on the next Monday.
"""

from datetime import datetime, time, timedelta

from django.urls import reverse
from django.utils import timezone
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from appointments.models import Appointment, SlotLock
from appointments.tests import TZ, BookingTestMixin


class AppointmentAPITestMixin(BookingTestMixin):
    def setUp(self):
        super().setUp()
        self.client = APIClient()

        today = timezone.now().astimezone(TZ).date()
        days_ahead = 0 - today.weekday()  # Monday is 0
        if days_ahead <= 0:
            days_ahead += 7
        self.next_monday = today + timedelta(days=days_ahead)

    def at(self, hour, minute=0, day=None):
        return datetime.combine(day or self.next_monday, time(hour, minute), tzinfo=TZ)

    def payload(self, **overrides):
        data = {
            "barber_id": self.barber.id,
            "service_id": self.haircut.id,
            "date": self.at(9).isoformat(),
        }
        data.update(overrides)
        return data


# ═══════════════════════════════════════════════════════════════════
#  Slot Lock
# ═══════════════════════════════════════════════════════════════════


class SlotLockAPITests(AppointmentAPITestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse("appointments:api_slot_lock")

    def test_client_acquires_lock(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.post(self.url, self.payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["renewed"])
        lock = SlotLock.objects.get()
        self.assertEqual(str(lock.id), response.data["lock_id"])
        self.assertEqual(lock.slot_start, self.at(9))

    def test_naive_date_is_business_wall_clock(self):
        self.client.force_authenticate(user=self.client_user)
        naive = f"{self.next_monday.isoformat()}T09:00"
        response = self.client.post(self.url, self.payload(date=naive), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(SlotLock.objects.get().slot_start, self.at(9))

    def test_second_client_gets_409(self):
        self.client.force_authenticate(user=self.client_user)
        self.client.post(self.url, self.payload(), format="json")

        self.client.force_authenticate(user=self.client_user2)
        response = self.client.post(self.url, self.payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "TEMPORARILY_LOCKED")

    def test_barber_cannot_lock(self):
        self.client.force_authenticate(user=self.barber_user)
        response = self.client.post(self.url, self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unauthenticated_rejected(self):
        response = self.client.post(self.url, self.payload(), format="json")
        self.assertIn(response.status_code, [
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        ])

    def test_missing_fields_returns_400(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.post(self.url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("barber_id", response.data)


# ═══════════════════════════════════════════════════════════════════
#  Booking
# ═══════════════════════════════════════════════════════════════════


class BookAppointmentAPITests(AppointmentAPITestMixin, TestCase):
    """Tests for POST /appointments/api/book/ endpoint."""

    def setUp(self):
        super().setUp()
        self.url = reverse("appointments:api_book_appointment")

    def test_successful_api_booking(self):
        """POST with valid data returns 201 and appointment details."""
        self.client.force_authenticate(user=self.client_user)
        response = self.client.post(self.url, self.payload(notes="Fade"), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["status"], "PENDING")
        self.assertEqual(response.data["barber_name"], "Matvei")
        self.assertEqual(response.data["service_name"], "Haircut")
        self.assertEqual(response.data["service_duration"], 45)
        self.assertEqual(response.data["notes"], "Fade")
        self.assertEqual(response.data["date"], self.at(9).isoformat())

    def test_response_includes_all_fields(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.post(self.url, self.payload(), format="json")

        expected_fields = [
            "id", "client_id", "client_name", "barber_id", "barber_name",
            "service_id", "service_name", "service_duration", "service_price",
            "date", "status", "status_display", "notes", "rejection_reason",
            "reminder_sent", "created_at", "updated_at",
        ]
        for field in expected_fields:
            self.assertIn(field, response.data, f"Missing field: {field}")

    def test_slot_unavailable_returns_409(self):
        """Booking an already-taken slot via API should return 409."""
        self.client.force_authenticate(user=self.client_user)
        self.client.post(self.url, self.payload(), format="json")

        self.client.force_authenticate(user=self.client_user2)
        response = self.client.post(self.url, self.payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "slot_unavailable")

    def test_past_date_returns_400(self):
        self.client.force_authenticate(user=self.client_user)
        yesterday = timezone.now().astimezone(TZ).date() - timedelta(days=1)
        response = self.client.post(
            self.url, self.payload(date=self.at(9, day=yesterday).isoformat()), format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "past_date")

    def test_off_grid_time_returns_409(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.post(self.url, self.payload(date=self.at(9, 15).isoformat()), format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_blocked_client_returns_403_with_blocked_until(self):
        for hour in (10, 11, 12):
            self.make_appointment(
                self.client_user, self.at(hour), barber=self.other_barber,
                status=Appointment.Status.CANCELLED,
            )
        self.client.force_authenticate(user=self.client_user)

        response = self.client.post(self.url, self.payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "booking_blocked")
        self.assertIn("blocked_until", response.data)

    def test_non_client_returns_403(self):
        self.client.force_authenticate(user=self.barber_user)
        response = self.client.post(self.url, self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_notes_too_long_returns_400(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.post(self.url, self.payload(notes="x" * 501), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("notes", response.data)

    def test_lock_then_book_releases_lock(self):
        self.client.force_authenticate(user=self.client_user)
        self.client.post(reverse("appointments:api_slot_lock"), self.payload(), format="json")

        response = self.client.post(self.url, self.payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(SlotLock.objects.exists())


# ═══════════════════════════════════════════════════════════════════
#  Status Changes
# ═══════════════════════════════════════════════════════════════════


class AppointmentStatusAPITests(AppointmentAPITestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.appointment = self.make_appointment(self.client_user, self.at(9))
        self.url = reverse("appointments:api_appointment_status", args=[self.appointment.id])

    def test_barber_accepts(self):
        self.client.force_authenticate(user=self.barber_user)
        response = self.client.patch(self.url, {"status": "ACCEPTED"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "ACCEPTED")

    def test_client_cancels(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.patch(self.url, {"status": "CANCELLED"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status_display"], "Cancelled")

    def test_client_cannot_accept(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.patch(self.url, {"status": "ACCEPTED"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reject_requires_reason(self):
        self.client.force_authenticate(user=self.barber_user)
        response = self.client.patch(self.url, {"status": "REJECTED"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "rejection_reason_required")

    def test_reject_with_reason(self):
        self.client.force_authenticate(user=self.barber_user)
        response = self.client.patch(
            self.url, {"status": "REJECTED", "rejection_reason": "Out sick"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["rejection_reason"], "Out sick")

    def test_pending_is_not_a_target(self):
        self.client.force_authenticate(user=self.barber_user)
        response = self.client.patch(self.url, {"status": "PENDING"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("status", response.data)

    def test_complete_future_day_returns_400(self):
        Appointment.objects.filter(pk=self.appointment.pk).update(status=Appointment.Status.ACCEPTED)
        self.client.force_authenticate(user=self.barber_user)
        response = self.client.patch(self.url, {"status": "COMPLETED"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "completion_in_future")

    def test_unknown_appointment_returns_404(self):
        self.client.force_authenticate(user=self.admin_user)
        url = reverse("appointments:api_appointment_status", args=[99999])
        response = self.client.patch(url, {"status": "ACCEPTED"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


# ═══════════════════════════════════════════════════════════════════
#  Listings
# ═══════════════════════════════════════════════════════════════════


class AppointmentListAPITests(AppointmentAPITestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.first = self.make_appointment(self.client_user, self.at(9))
        self.second = self.make_appointment(
            self.client_user, self.at(10, 30, day=self.next_monday + timedelta(days=7))
        )
        self.other = self.make_appointment(self.client_user2, self.at(12), barber=self.other_barber)

    def test_my_appointments_newest_first(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.get(reverse("appointments:api_my_appointments"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([a["id"] for a in response.data["results"]], [self.second.id, self.first.id])

    def test_my_appointments_filtered_by_date(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.get(
            reverse("appointments:api_my_appointments"), {"date": self.next_monday.isoformat()}
        )
        self.assertEqual([a["id"] for a in response.data["results"]], [self.first.id])

    def test_invalid_date_returns_400(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.get(reverse("appointments:api_my_appointments"), {"date": "tomorrow"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_barber_sees_assigned_appointments(self):
        self.client.force_authenticate(user=self.other_barber_user)
        response = self.client.get(reverse("appointments:api_barber_appointments"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([a["id"] for a in response.data["results"]], [self.other.id])

    def test_client_cannot_use_barber_listing(self):
        self.client.force_authenticate(user=self.client_user)
        response = self.client.get(reverse("appointments:api_barber_appointments"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
