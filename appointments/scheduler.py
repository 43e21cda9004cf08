"""
Periodic booking jobs using APScheduler.

- sweep_expired_slot_locks: every LOCK_SWEEP_INTERVAL_SECONDS
- dispatch_due_reminders:   every REMINDER_INTERVAL_MINUTES

Run with ``python manage.py run_booking_scheduler`` in a single process.
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from django.db import close_old_connections

from appointments.policy import BookingPolicy
from appointments.services.reminder_service import ReminderQuery, dispatch_due_reminders
from appointments.services.slot_lock_service import SlotLockManager

logger = logging.getLogger(__name__)


def sweep_locks_job(policy: BookingPolicy) -> int:
    close_old_connections()
    try:
        return SlotLockManager(policy=policy).sweep_expired()
    finally:
        close_old_connections()


def reminders_job(policy: BookingPolicy) -> int:
    close_old_connections()
    try:
        return dispatch_due_reminders(query=ReminderQuery(policy=policy))
    finally:
        close_old_connections()


def create_scheduler(policy: BookingPolicy = None) -> BlockingScheduler:
    policy = policy or BookingPolicy.from_settings()
    scheduler = BlockingScheduler(timezone=policy.tz)

    scheduler.add_job(
        sweep_locks_job,
        trigger=IntervalTrigger(seconds=policy.lock_sweep_interval_seconds),
        args=[policy],
        id="sweep_expired_slot_locks",
        name="Sweep expired slot locks",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        reminders_job,
        trigger=IntervalTrigger(minutes=policy.reminder_interval_minutes),
        args=[policy],
        id="dispatch_due_reminders",
        name="Send day-before reminders",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "[SCHEDULER] Jobs registered: lock sweep every %ss, reminders every %smin",
        policy.lock_sweep_interval_seconds,
        policy.reminder_interval_minutes,
    )
    return scheduler
