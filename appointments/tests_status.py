"""
Tests for appointment status transitions.

Covers:
- State machine (allowed and terminal moves)
- Role rules (client, barber, admin)
- Guards (rejection reason, completion day, cancellation notice)
- Loyalty points awarded exactly once
- Admin is view-only
"""

from datetime import timedelta

from django.contrib import admin
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from django.urls import reverse

from appointments.exceptions import (
    CancellationWindowClosedError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from appointments.models import Appointment
from appointments.services import ActorContext
from appointments.tests import MONDAY, SUNDAY, BookingTestMixin, local

Status = Appointment.Status
User = get_user_model()


class StatusTransitionTestMixin(BookingTestMixin):
    def setUp(self):
        super().setUp()
        self.appointment = self.make_appointment(self.client_user, local(MONDAY, 9, 0))
        self.as_client = ActorContext.from_user(self.client_user)
        self.as_other_client = ActorContext.from_user(self.client_user2)
        self.as_barber = ActorContext.from_user(self.barber_user)
        self.as_other_barber = ActorContext.from_user(self.other_barber_user)
        self.as_admin = ActorContext.from_user(self.admin_user)

    def move(self, target, actor=None, appointment=None, **kwargs):
        return self.engine.transition(
            (appointment or self.appointment).pk,
            target,
            actor or self.as_barber,
            **kwargs,
        )

    def reload(self):
        self.appointment.refresh_from_db()
        return self.appointment


# ═══════════════════════════════════════════════════════════════════
#  State Machine
# ═══════════════════════════════════════════════════════════════════


class StateMachineTests(StatusTransitionTestMixin, TestCase):
    def test_barber_accepts_pending(self):
        self.move(Status.ACCEPTED)
        self.assertEqual(self.reload().status, Status.ACCEPTED)

    def test_barber_rejects_with_reason(self):
        self.move(Status.REJECTED, rejection_reason="  Fully booked  ")

        appointment = self.reload()
        self.assertEqual(appointment.status, Status.REJECTED)
        self.assertEqual(appointment.rejection_reason, "Fully booked")

    def test_reject_without_reason_raises_error(self):
        with self.assertRaises(InvalidInputError) as ctx:
            self.move(Status.REJECTED, rejection_reason="   ")
        self.assertEqual(ctx.exception.code, "rejection_reason_required")
        self.assertEqual(self.reload().status, Status.PENDING)

    def test_pending_cannot_be_completed(self):
        with self.assertRaises(InvalidTransitionError):
            self.move(Status.COMPLETED)

    def test_terminal_statuses_refuse_every_move(self):
        for terminal in (Status.REJECTED, Status.CANCELLED):
            Appointment.objects.filter(pk=self.appointment.pk).update(status=terminal)
            for target in (Status.PENDING, Status.ACCEPTED, Status.COMPLETED):
                with self.assertRaises(InvalidTransitionError):
                    self.move(target, actor=self.as_admin)

    def test_completed_cannot_be_cancelled(self):
        Appointment.objects.filter(pk=self.appointment.pk).update(status=Status.COMPLETED)

        with self.assertRaises(InvalidTransitionError) as ctx:
            self.move(Status.CANCELLED, actor=self.as_admin)
        self.assertEqual(ctx.exception.code, "already_completed")

    def test_unknown_status_raises_error(self):
        with self.assertRaises(InvalidInputError) as ctx:
            self.move("NO_SHOW")
        self.assertEqual(ctx.exception.code, "invalid_status")

    def test_missing_appointment_raises_error(self):
        with self.assertRaises(NotFoundError):
            self.engine.transition(99999, Status.ACCEPTED, self.as_admin)

    def test_accepting_leaves_reason_and_loyalty_unset(self):
        self.move(Status.ACCEPTED)
        appointment = self.reload()
        self.assertIsNone(appointment.rejection_reason)
        self.assertFalse(appointment.loyalty_points_awarded)


# ═══════════════════════════════════════════════════════════════════
#  Roles
# ═══════════════════════════════════════════════════════════════════


class RoleRuleTests(StatusTransitionTestMixin, TestCase):
    def test_client_can_cancel_own_appointment(self):
        self.move(Status.CANCELLED, actor=self.as_client)
        self.assertEqual(self.reload().status, Status.CANCELLED)

    def test_client_cannot_accept(self):
        with self.assertRaises(ForbiddenError):
            self.move(Status.ACCEPTED, actor=self.as_client)

    def test_client_cannot_cancel_someone_elses(self):
        with self.assertRaises(ForbiddenError):
            self.move(Status.CANCELLED, actor=self.as_other_client)

    def test_barber_limited_to_own_appointments(self):
        with self.assertRaises(ForbiddenError):
            self.move(Status.ACCEPTED, actor=self.as_other_barber)

    def test_barber_without_profile_is_forbidden(self):
        with self.assertRaises(ForbiddenError):
            self.move(Status.ACCEPTED, actor=ActorContext(user_id=self.barber_user.pk, role="BARBER"))

    def test_admin_can_manage_any_appointment(self):
        self.move(Status.ACCEPTED, actor=self.as_admin)
        self.assertEqual(self.reload().status, Status.ACCEPTED)

    def test_actor_context_from_user(self):
        self.assertEqual(self.as_barber.barber_id, self.barber.pk)
        self.assertIsNone(self.as_client.barber_id)
        self.assertEqual(self.as_client.role, "CLIENT")


# ═══════════════════════════════════════════════════════════════════
#  Time Guards
# ═══════════════════════════════════════════════════════════════════


class TimeGuardTests(StatusTransitionTestMixin, TestCase):
    def test_cancel_ninety_minutes_before_is_rejected(self):
        self.now = local(MONDAY, 7, 30)

        with self.assertRaises(CancellationWindowClosedError):
            self.move(Status.CANCELLED, actor=self.as_client)
        self.assertEqual(self.reload().status, Status.PENDING)

    def test_cancel_three_hours_before_is_allowed(self):
        self.now = local(MONDAY, 6, 0)
        self.move(Status.CANCELLED, actor=self.as_client)
        self.assertEqual(self.reload().status, Status.CANCELLED)

    def test_cancel_window_applies_to_barbers_too(self):
        self.move(Status.ACCEPTED)
        self.now = local(MONDAY, 8, 0)
        with self.assertRaises(CancellationWindowClosedError):
            self.move(Status.CANCELLED)

    def test_cannot_complete_future_day(self):
        self.move(Status.ACCEPTED)

        with self.assertRaises(InvalidTransitionError) as ctx:
            self.move(Status.COMPLETED)
        self.assertEqual(ctx.exception.code, "completion_in_future")

    def test_can_complete_on_the_day(self):
        self.move(Status.ACCEPTED)
        self.now = local(MONDAY, 8, 0)

        self.move(Status.COMPLETED)

        self.assertEqual(self.reload().status, Status.COMPLETED)


# ═══════════════════════════════════════════════════════════════════
#  Loyalty
# ═══════════════════════════════════════════════════════════════════


class LoyaltyTests(StatusTransitionTestMixin, TestCase):
    def test_completion_awards_one_point_and_visit(self):
        self.move(Status.ACCEPTED)
        self.now = local(MONDAY, 10, 0)

        self.move(Status.COMPLETED)

        self.client_user.refresh_from_db()
        self.assertEqual(self.client_user.loyalty_points, 1)
        self.assertEqual(self.client_user.total_visits, 1)
        self.assertTrue(self.reload().loyalty_points_awarded)

    def test_points_awarded_only_once(self):
        """An appointment already flagged as awarded does not pay out again."""
        past = self.make_appointment(
            self.client_user,
            local(SUNDAY, 9, 0),
            status=Status.ACCEPTED,
            loyalty_points_awarded=True,
        )

        self.move(Status.COMPLETED, appointment=past)

        self.client_user.refresh_from_db()
        self.assertEqual(self.client_user.loyalty_points, 0)
        self.assertEqual(self.client_user.total_visits, 0)

    def test_completed_is_terminal(self):
        past = self.make_appointment(self.client_user, local(SUNDAY, 9, 0), status=Status.ACCEPTED)
        self.move(Status.COMPLETED, appointment=past)

        with self.assertRaises(InvalidTransitionError):
            self.move(Status.COMPLETED, appointment=past)

        self.client_user.refresh_from_db()
        self.assertEqual(self.client_user.loyalty_points, 1)

    def test_transition_is_logged(self):
        with self.assertLogs("appointments.services.status_service", level="INFO") as logs:
            self.move(Status.ACCEPTED)
        self.assertIn("[STATUS]", logs.output[0])

    def test_cancel_stamps_updated_at(self):
        before = self.appointment.updated_at
        self.move(Status.CANCELLED, actor=self.as_client)
        self.assertGreaterEqual(self.reload().updated_at, before)
        self.assertLess(self.reload().updated_at - before, timedelta(minutes=1))


# ═══════════════════════════════════════════════════════════════════
#  Admin
# ═══════════════════════════════════════════════════════════════════


class AppointmentAdminTests(StatusTransitionTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.staff = User.objects.create_superuser(
            phone="+5215512340009", password="testpass123", name="Shop Owner"
        )
        self.client.force_login(self.staff)
        self.change_url = reverse("admin:appointments_appointment_change", args=[self.appointment.pk])

    def test_admin_is_view_only(self):
        model_admin = admin.site._registry[Appointment]
        request = RequestFactory().get(self.change_url)
        request.user = self.staff

        self.assertTrue(model_admin.has_view_permission(request, self.appointment))
        self.assertFalse(model_admin.has_add_permission(request))
        self.assertFalse(model_admin.has_change_permission(request, self.appointment))
        self.assertFalse(model_admin.has_delete_permission(request, self.appointment))

    def test_change_form_cannot_move_or_restamp_a_cancellation(self):
        self.move(Status.CANCELLED, actor=self.as_client)
        before = self.reload().updated_at

        response = self.client.post(
            self.change_url,
            {
                "client": self.client_user.pk,
                "barber": self.barber.pk,
                "service": self.haircut.pk,
                "date_0": "2030-01-07",
                "date_1": "10:30:00",
                "notes": "moved",
            },
        )

        self.assertEqual(response.status_code, 403)
        appointment = self.reload()
        self.assertEqual(appointment.date, local(MONDAY, 9, 0))
        self.assertEqual(appointment.updated_at, before)
        self.assertEqual(appointment.status, Status.CANCELLED)

    def test_change_page_still_renders(self):
        response = self.client.get(self.change_url)
        self.assertEqual(response.status_code, 200)
