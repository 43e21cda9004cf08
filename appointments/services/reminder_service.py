"""
Day-before reminders.

The query lists appointments starting 23 to 25 hours from now that have
not been reminded yet. The two-hour window tolerates an hourly job
running late or early without missing anyone; reminder_sent prevents
duplicates.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from django.utils import timezone

from appointments.models import Appointment
from appointments.policy import BookingPolicy
from appointments.services.notification_service import AppointmentNotifier

logger = logging.getLogger(__name__)


class ReminderQuery:
    def __init__(
        self,
        policy: Optional[BookingPolicy] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.policy = policy or BookingPolicy.from_settings()
        self.clock = clock

    def due_appointment_ids(self) -> list[int]:
        now = self.clock()
        window_start = now + timedelta(hours=self.policy.reminder_window_start_hours)
        window_end = now + timedelta(hours=self.policy.reminder_window_end_hours)
        return list(
            Appointment.objects.filter(
                status__in=Appointment.OPEN_STATUSES,
                reminder_sent=False,
                date__gte=window_start,
                date__lt=window_end,
            )
            .order_by("date")
            .values_list("id", flat=True)
        )


def dispatch_due_reminders(query: Optional[ReminderQuery] = None, notifier: Optional[AppointmentNotifier] = None) -> int:
    """
    Send every due reminder; returns how many were sent.

    A failure for one appointment is logged and does not stop the rest.
    """
    query = query or ReminderQuery()
    notifier = notifier or AppointmentNotifier(policy=query.policy)

    sent = 0
    for appointment_id in query.due_appointment_ids():
        try:
            if notifier.notify_reminder(appointment_id):
                sent += 1
        except Exception as exc:
            logger.error(
                "[WHATSAPP] Failed to send reminder for appointment_id=%s: %r",
                appointment_id,
                exc,
            )
    if sent:
        logger.info("[REMINDER] Sent %s reminder(s)", sent)
    return sent
