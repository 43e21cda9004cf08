"""
Tests for temporary slot locks.

Covers:
- Acquire, renew, steal-after-expiry
- Rejections (other client's lock, occupied slot, off-grid time)
- Expired-lock sweep
"""

from datetime import timedelta
from unittest.mock import patch

from django.core.management import call_command
from django.db import IntegrityError
from django.test import TestCase

from appointments.exceptions import (
    InvalidInputError,
    NotFoundError,
    SlotTemporarilyLockedError,
    SlotUnavailableError,
)
from appointments.models import SlotLock
from appointments.services.slot_lock_service import parse_slot_start
from appointments.tests import MONDAY, TZ, BookingTestMixin, local
from barbers.services import SlotReason


class SlotLockAcquireTests(BookingTestMixin, TestCase):
    def acquire(self, client=None, start=None, service=None, barber=None):
        return self.lock_manager.acquire(
            client_id=(client or self.client_user).pk,
            barber_id=(barber or self.barber).pk,
            service_id=(service or self.haircut).pk,
            start=start or local(MONDAY, 10, 30),
        )

    def test_acquire_creates_lock_with_ttl(self):
        grant = self.acquire()

        lock = SlotLock.objects.get(pk=grant.lock_id)
        self.assertEqual(lock.locked_by, self.client_user)
        self.assertEqual(lock.slot_start, local(MONDAY, 10, 30))
        self.assertEqual(grant.expires_at, self.now + timedelta(minutes=5))
        self.assertFalse(grant.renewed)

    def test_reacquire_extends_own_lock(self):
        """The same client locking again keeps the lock id and pushes the expiry."""
        first = self.acquire()
        self.now += timedelta(minutes=3)

        second = self.acquire()

        self.assertEqual(second.lock_id, first.lock_id)
        self.assertTrue(second.renewed)
        self.assertEqual(second.expires_at, self.now + timedelta(minutes=5))
        self.assertEqual(SlotLock.objects.count(), 1)

    def test_other_client_live_lock_rejected(self):
        self.acquire(client=self.client_user2)

        with self.assertRaises(SlotTemporarilyLockedError) as ctx:
            self.acquire()
        self.assertEqual(ctx.exception.code, "TEMPORARILY_LOCKED")

    def test_expired_lock_can_be_taken_over(self):
        stale = self.make_lock(self.client_user2, local(MONDAY, 10, 30), ttl=timedelta(minutes=-1))

        grant = self.acquire()

        self.assertNotEqual(grant.lock_id, stale.pk)
        self.assertFalse(SlotLock.objects.filter(pk=stale.pk).exists())
        self.assertEqual(SlotLock.objects.get().locked_by, self.client_user)

    def test_occupied_slot_rejected(self):
        self.make_appointment(self.client_user2, local(MONDAY, 10, 30))

        with self.assertRaises(SlotUnavailableError) as ctx:
            self.acquire()
        self.assertEqual(ctx.exception.reason, SlotReason.OCCUPIED_BY_APPOINTMENT)
        self.assertFalse(SlotLock.objects.exists())

    def test_off_grid_time_rejected(self):
        with self.assertRaises(SlotUnavailableError):
            self.acquire(start=local(MONDAY, 10, 0))

    def test_locks_are_per_barber(self):
        self.acquire(client=self.client_user2, barber=self.other_barber)
        grant = self.acquire()
        self.assertEqual(SlotLock.objects.count(), 2)
        self.assertFalse(grant.renewed)

    def test_unknown_service_rejected(self):
        self.haircut.is_active = False
        self.haircut.save()
        with self.assertRaises(NotFoundError):
            self.acquire()

    def test_insert_race_reported_as_locked(self):
        with patch.object(SlotLock.objects, "create", side_effect=IntegrityError("duplicate key")):
            with self.assertRaises(SlotTemporarilyLockedError):
                self.acquire()


class ParseSlotStartTests(TestCase):
    def test_naive_string_is_local(self):
        self.assertEqual(parse_slot_start("2030-01-07T10:30", TZ), local(MONDAY, 10, 30))

    def test_offset_string_is_kept(self):
        moment = parse_slot_start("2030-01-07T16:30:00Z", TZ)
        self.assertEqual(moment, local(MONDAY, 10, 30))

    def test_seconds_are_dropped(self):
        self.assertEqual(parse_slot_start("2030-01-07T10:30:45", TZ), local(MONDAY, 10, 30))

    def test_invalid_values(self):
        for value in ("", "tomorrow", None, 1234):
            with self.assertRaises(InvalidInputError):
                parse_slot_start(value, TZ)


class SlotLockSweepTests(BookingTestMixin, TestCase):
    def test_sweep_removes_only_expired_locks(self):
        live = self.make_lock(self.client_user, local(MONDAY, 9, 0))
        self.make_lock(self.client_user2, local(MONDAY, 9, 45), ttl=timedelta(minutes=-1))
        self.make_lock(self.client_user2, local(MONDAY, 10, 30), ttl=timedelta(0))

        with self.assertLogs("appointments.services.slot_lock_service", level="INFO"):
            deleted = self.lock_manager.sweep_expired()

        self.assertEqual(deleted, 2)
        self.assertEqual(list(SlotLock.objects.values_list("pk", flat=True)), [live.pk])

    def test_sweep_with_nothing_to_do(self):
        self.make_lock(self.client_user, local(MONDAY, 9, 0))
        self.assertEqual(self.lock_manager.sweep_expired(), 0)

    def test_management_command(self):
        # Real clock: locks expiring in the past are removed
        SlotLock.objects.create(
            barber=self.barber,
            slot_start=local(MONDAY, 9, 0),
            locked_by=self.client_user,
            expires_at=local(MONDAY, 9, 0) - timedelta(days=3650),
        )
        call_command("sweep_slot_locks", verbosity=0)
        self.assertFalse(SlotLock.objects.exists())
