"""
Tests for the cancellation penalty.
"""

from datetime import datetime, timedelta

from django.test import TestCase

from appointments.exceptions import BookingBlockedError
from appointments.models import Appointment
from appointments.policy import BookingPolicy
from appointments.services import CancellationPenaltyEvaluator
from appointments.tests import MONDAY, TZ, BookingTestMixin, local


class CancellationPenaltyTests(BookingTestMixin, TestCase):
    def cancel(self, client, cancelled_at, hour):
        appointment = self.make_appointment(
            client, local(MONDAY, hour, 0), status=Appointment.Status.CANCELLED
        )
        Appointment.objects.filter(pk=appointment.pk).update(updated_at=cancelled_at)
        return appointment

    def evaluator_at(self, moment):
        return CancellationPenaltyEvaluator(policy=self.policy, clock=lambda: moment)

    def test_two_cancellations_do_not_block(self):
        self.cancel(self.client_user, self.now - timedelta(days=2), 9)
        self.cancel(self.client_user, self.now - timedelta(days=1), 10)

        penalty = self.penalty.evaluate(self.client_user.pk)

        self.assertFalse(penalty.blocked)
        self.assertEqual(penalty.cancellation_count, 2)
        self.assertIsNone(penalty.blocked_until)

    def test_three_cancellations_block_for_fourteen_days(self):
        """Three cancellations on 2026-02-01 block until 2026-02-15."""
        cancelled_at = datetime(2026, 2, 1, 10, 0, tzinfo=TZ)
        for hour in (9, 10, 11):
            self.cancel(self.client_user, cancelled_at, hour)

        penalty = self.evaluator_at(datetime(2026, 2, 10, 10, 0, tzinfo=TZ)).evaluate(self.client_user.pk)
        self.assertTrue(penalty.blocked)
        self.assertEqual(penalty.blocked_until, datetime(2026, 2, 15, 10, 0, tzinfo=TZ))

        penalty = self.evaluator_at(datetime(2026, 2, 16, 10, 0, tzinfo=TZ)).evaluate(self.client_user.pk)
        self.assertFalse(penalty.blocked)

    def test_block_anchored_on_third_most_recent(self):
        """With four cancellations the third newest starts the block."""
        for days_ago, hour in ((1, 9), (3, 10), (5, 11), (7, 12)):
            self.cancel(self.client_user, self.now - timedelta(days=days_ago), hour)

        penalty = self.penalty.evaluate(self.client_user.pk)

        self.assertTrue(penalty.blocked)
        self.assertEqual(penalty.cancellation_count, 4)
        self.assertEqual(penalty.blocked_until, self.now - timedelta(days=5) + timedelta(days=14))

    def test_cancellations_outside_window_are_ignored(self):
        self.cancel(self.client_user, self.now - timedelta(days=31), 9)
        self.cancel(self.client_user, self.now - timedelta(days=2), 10)
        self.cancel(self.client_user, self.now - timedelta(days=1), 11)

        self.assertFalse(self.penalty.evaluate(self.client_user.pk).blocked)

    def test_other_statuses_do_not_count(self):
        self.cancel(self.client_user, self.now - timedelta(days=1), 9)
        self.cancel(self.client_user, self.now - timedelta(days=1), 10)
        self.make_appointment(
            self.client_user, local(MONDAY, 11, 0),
            status=Appointment.Status.REJECTED, rejection_reason="Closed",
        )

        self.assertFalse(self.penalty.evaluate(self.client_user.pk).blocked)

    def test_penalty_is_per_client(self):
        for hour in (9, 10, 11):
            self.cancel(self.client_user2, self.now - timedelta(days=1), hour)

        self.assertFalse(self.penalty.evaluate(self.client_user.pk).blocked)
        self.assertTrue(self.penalty.evaluate(self.client_user2.pk).blocked)

    def test_ensure_can_book_raises_with_blocked_until(self):
        for hour in (9, 10, 11):
            self.cancel(self.client_user, self.now - timedelta(days=2), hour)

        with self.assertRaises(BookingBlockedError) as ctx:
            self.penalty.ensure_can_book(self.client_user.pk)

        self.assertEqual(ctx.exception.blocked_until, self.now + timedelta(days=12))
        self.assertEqual(ctx.exception.code, "booking_blocked")

    def test_thresholds_come_from_policy(self):
        strict = CancellationPenaltyEvaluator(
            policy=BookingPolicy(penalty_cancellation_count=1, penalty_block_days=1),
            clock=lambda: self.now,
        )
        self.cancel(self.client_user, self.now - timedelta(hours=2), 9)

        penalty = strict.evaluate(self.client_user.pk)

        self.assertTrue(penalty.blocked)
        self.assertEqual(penalty.blocked_until, self.now + timedelta(hours=22))
