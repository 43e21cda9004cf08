"""
Tests for WhatsApp notifications, day-before reminders and the
periodic job scheduler.
"""

from datetime import timedelta
from io import StringIO
from unittest.mock import Mock, patch

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from appointments.models import Appointment
from appointments.scheduler import create_scheduler, reminders_job, sweep_locks_job
from appointments.services import AppointmentNotifier, ReminderQuery, dispatch_due_reminders
from appointments.tests import MONDAY, BookingTestMixin, local

Status = Appointment.Status

MOCK_PROVIDER = override_settings(WHATSAPP_PROVIDER="")
META_PROVIDER = override_settings(
    WHATSAPP_PROVIDER="META",
    WHATSAPP_ACCESS_TOKEN="test-token",
    WHATSAPP_PHONE_ID="1234567890",
    WHATSAPP_API_VERSION="v21.0",
    WHATSAPP_TEMPLATE_LANGUAGE="es",
)
TWILIO_PROVIDER = override_settings(
    WHATSAPP_PROVIDER="TWILIO",
    TWILIO_ACCOUNT_SID="ACtest",
    TWILIO_AUTH_TOKEN="secret",
    TWILIO_WHATSAPP_FROM="+14155238886",
)


# ═══════════════════════════════════════════════════════════════════
#  Reminder Query
# ═══════════════════════════════════════════════════════════════════


class ReminderQueryTests(BookingTestMixin, TestCase):
    """Clock is Sunday 12:00, so the window is Monday [11:00, 13:00)."""

    def setUp(self):
        super().setUp()
        self.query = ReminderQuery(policy=self.policy, clock=lambda: self.now)

    def test_window_bounds(self):
        at_start = self.make_appointment(self.client_user, local(MONDAY, 11, 0))
        inside = self.make_appointment(self.client_user2, local(MONDAY, 12, 0))
        self.make_appointment(self.client_user, local(MONDAY, 13, 0))
        self.make_appointment(self.client_user2, local(MONDAY, 10, 45))

        self.assertEqual(self.query.due_appointment_ids(), [at_start.pk, inside.pk])

    def test_excludes_already_reminded(self):
        self.make_appointment(self.client_user, local(MONDAY, 12, 0), reminder_sent=True)
        self.assertEqual(self.query.due_appointment_ids(), [])

    def test_includes_only_open_statuses(self):
        accepted = self.make_appointment(self.client_user, local(MONDAY, 11, 15), status=Status.ACCEPTED)
        self.make_appointment(self.client_user2, local(MONDAY, 12, 0), status=Status.CANCELLED)
        self.make_appointment(
            self.client_user2, local(MONDAY, 12, 30),
            status=Status.REJECTED, rejection_reason="Closed",
        )

        self.assertEqual(self.query.due_appointment_ids(), [accepted.pk])


# ═══════════════════════════════════════════════════════════════════
#  Reminder Dispatch
# ═══════════════════════════════════════════════════════════════════


@MOCK_PROVIDER
class ReminderDispatchTests(BookingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.query = ReminderQuery(policy=self.policy, clock=lambda: self.now)
        self.real_notifier = AppointmentNotifier(policy=self.policy)

    def test_pending_reminder_sent_once(self):
        appointment = self.make_appointment(self.client_user, local(MONDAY, 12, 0))

        self.assertEqual(dispatch_due_reminders(self.query, self.real_notifier), 1)
        appointment.refresh_from_db()
        self.assertTrue(appointment.reminder_sent)

        self.assertEqual(dispatch_due_reminders(self.query, self.real_notifier), 0)

    def test_accepted_appointment_is_not_reminded(self):
        appointment = self.make_appointment(self.client_user, local(MONDAY, 12, 0), status=Status.ACCEPTED)

        self.assertEqual(dispatch_due_reminders(self.query, self.real_notifier), 0)
        appointment.refresh_from_db()
        self.assertFalse(appointment.reminder_sent)

    def test_failure_does_not_stop_the_batch(self):
        first = self.make_appointment(self.client_user, local(MONDAY, 11, 15))
        second = self.make_appointment(self.client_user2, local(MONDAY, 12, 0))
        notifier = Mock(spec=AppointmentNotifier)
        notifier.notify_reminder.side_effect = [RuntimeError("provider down"), True]

        with self.assertLogs("appointments.services.reminder_service", level="ERROR"):
            sent = dispatch_due_reminders(self.query, notifier)

        self.assertEqual(sent, 1)
        self.assertEqual(
            [c.args[0] for c in notifier.notify_reminder.call_args_list],
            [first.pk, second.pk],
        )

    def test_failed_send_leaves_flag_unset(self):
        appointment = self.make_appointment(self.client_user, local(MONDAY, 12, 0))

        with patch.object(AppointmentNotifier, "_send", side_effect=RuntimeError("timeout")):
            with self.assertLogs("appointments.services.reminder_service", level="ERROR"):
                dispatch_due_reminders(self.query, self.real_notifier)

        appointment.refresh_from_db()
        self.assertFalse(appointment.reminder_sent)

    def test_management_command(self):
        appointment = self.make_appointment(
            self.client_user, timezone.now() + timedelta(hours=24)
        )
        out = StringIO()

        call_command("send_due_reminders", stdout=out)

        appointment.refresh_from_db()
        self.assertTrue(appointment.reminder_sent)
        self.assertIn("Sent 1 reminder(s).", out.getvalue())


# ═══════════════════════════════════════════════════════════════════
#  Providers
# ═══════════════════════════════════════════════════════════════════


class NotifierProviderTests(BookingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.appointment = self.make_appointment(self.client_user, local(MONDAY, 9, 0))
        self.real_notifier = AppointmentNotifier(policy=self.policy)

    @MOCK_PROVIDER
    def test_unconfigured_provider_only_logs(self):
        with self.assertLogs("appointments.services.notification_service", level="INFO") as logs:
            self.assertTrue(self.real_notifier.notify_confirmation(self.appointment.pk))
        self.assertIn("MOCK appointment_confirmation", logs.output[0])

    @META_PROVIDER
    @patch("appointments.services.meta_whatsapp.requests.post")
    def test_meta_confirmation_template(self, mock_post):
        mock_post.return_value = Mock(status_code=200, text="{}")

        self.real_notifier.notify_confirmation(self.appointment.pk)

        url = mock_post.call_args.args[0]
        payload = mock_post.call_args.kwargs["json"]
        self.assertEqual(url, "https://graph.facebook.com/v21.0/1234567890/messages")
        self.assertEqual(mock_post.call_args.kwargs["headers"], {"Authorization": "Bearer test-token"})
        self.assertEqual(payload["to"], "5215512340001")
        self.assertEqual(payload["template"]["name"], "appointment_confirmation")
        self.assertEqual(
            [p["text"] for p in payload["template"]["components"][0]["parameters"]],
            ["Carlos", "Matvei", "Haircut", "07 Jan 2030, 09:00"],
        )

    @META_PROVIDER
    @patch("appointments.services.meta_whatsapp.requests.post")
    def test_meta_error_raises(self, mock_post):
        mock_post.return_value = Mock(status_code=401, text="invalid token")

        with self.assertLogs("appointments.services.meta_whatsapp", level="ERROR"):
            with self.assertRaises(RuntimeError):
                self.real_notifier.notify_confirmation(self.appointment.pk)

    @TWILIO_PROVIDER
    @patch("appointments.services.twilio_whatsapp.Client")
    def test_twilio_reminder_text(self, mock_client_cls):
        mock_client_cls.return_value.messages.create.return_value = Mock(sid="SM123")

        self.assertTrue(self.real_notifier.notify_reminder(self.appointment.pk))

        mock_client_cls.assert_called_once_with("ACtest", "secret")
        kwargs = mock_client_cls.return_value.messages.create.call_args.kwargs
        self.assertEqual(kwargs["from_"], "whatsapp:+14155238886")
        self.assertEqual(kwargs["to"], "whatsapp:+5215512340001")
        self.assertIn("Matvei", kwargs["body"])
        self.assertIn("07 Jan 2030, 09:00", kwargs["body"])

    @MOCK_PROVIDER
    def test_reminder_skips_already_sent(self):
        Appointment.objects.filter(pk=self.appointment.pk).update(reminder_sent=True)
        self.assertFalse(self.real_notifier.notify_reminder(self.appointment.pk))

    def test_missing_appointment(self):
        with self.assertLogs("appointments.services.notification_service", level="WARNING"):
            self.assertFalse(self.real_notifier.notify_confirmation(99999))


# ═══════════════════════════════════════════════════════════════════
#  Scheduler
# ═══════════════════════════════════════════════════════════════════


class SchedulerTests(BookingTestMixin, TestCase):
    def test_jobs_registered_with_policy_intervals(self):
        scheduler = create_scheduler(self.policy)

        jobs = {job.id: job for job in scheduler.get_jobs()}

        self.assertEqual(set(jobs), {"sweep_expired_slot_locks", "dispatch_due_reminders"})
        self.assertEqual(jobs["sweep_expired_slot_locks"].trigger.interval, timedelta(seconds=60))
        self.assertEqual(jobs["dispatch_due_reminders"].trigger.interval, timedelta(minutes=60))

    @patch("appointments.scheduler.close_old_connections")
    def test_sweep_job(self, _close):
        self.make_lock(self.client_user, local(MONDAY, 9, 0), ttl=timedelta(days=-3650))
        self.assertEqual(sweep_locks_job(self.policy), 1)

    @MOCK_PROVIDER
    @patch("appointments.scheduler.close_old_connections")
    def test_reminders_job(self, _close):
        self.make_appointment(self.client_user, timezone.now() + timedelta(hours=24))
        self.assertEqual(reminders_job(self.policy), 1)
