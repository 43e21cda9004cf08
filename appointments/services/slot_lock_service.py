"""
Slot lock service.

A client holds a slot for a few minutes while completing checkout:
1. Re-check the slot on the availability grid (the caller's own lock
   counts as available)
2. Under a row lock on the (barber, slot_start) key:
   - expired lock    -> replace it
   - own live lock   -> extend it, keeping its id
   - other's lock    -> SlotTemporarilyLockedError
   - no lock         -> create it
3. A unique-constraint race on create is reported as locked

Locks are advisory. The booking transaction re-validates everything.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from appointments.exceptions import (
    InvalidInputError,
    SlotTemporarilyLockedError,
    SlotUnavailableError,
)
from appointments.models import SlotLock
from appointments.policy import BookingPolicy
from barbers.services import AvailabilityCalculator, SlotReason
from barbers.timegrid import minutes_of_day, minutes_to_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotLockGrant:
    lock_id: UUID
    expires_at: datetime
    renewed: bool = False


def parse_slot_start(value, tz) -> datetime:
    """
    Aware start timestamp from a datetime or ISO 8601 string.

    Naive values are business-time-zone wall clock. Seconds are dropped
    so that lock keys and grid times line up.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        try:
            moment = parse_datetime(value.strip())
        except ValueError:
            moment = None
        if moment is None:
            raise InvalidInputError("Invalid date. Use ISO 8601 (YYYY-MM-DDTHH:MM).", code="invalid_date")
    else:
        raise InvalidInputError("A start date and time is required.", code="invalid_date")

    if timezone.is_naive(moment):
        moment = moment.replace(tzinfo=tz)
    return moment.replace(second=0, microsecond=0)


def raise_for_reason(reason: Optional[str]) -> None:
    """Map a non-available grid reason to the matching booking error."""
    if reason == SlotReason.AVAILABLE:
        return
    if reason == SlotReason.TEMPORARILY_LOCKED:
        raise SlotTemporarilyLockedError()
    if reason is None:
        raise SlotUnavailableError("The selected time is not a valid slot for this barber.")
    raise SlotUnavailableError(
        f"This time slot is not available ({reason}).",
        reason=reason,
    )


class SlotLockManager:
    def __init__(
        self,
        policy: Optional[BookingPolicy] = None,
        calculator: Optional[AvailabilityCalculator] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.policy = policy or BookingPolicy.from_settings()
        self.clock = clock
        self.calculator = calculator or AvailabilityCalculator(policy=self.policy, clock=clock)

    def acquire(self, *, client_id, barber_id, service_id, start) -> SlotLockGrant:
        """
        Acquire or renew the caller's lock on a slot start.

        Raises:
            InvalidInputError / NotFoundError: from availability validation.
            SlotTemporarilyLockedError: another client holds a live lock.
            SlotUnavailableError: the slot is not on the grid or not available.
        """
        tz = self.policy.tz
        slot_start = parse_slot_start(start, tz)
        local_start = slot_start.astimezone(tz)

        availability = self.calculator.get_available_slots(
            barber_id, local_start.date(), service_id, client_id=client_id
        )
        raise_for_reason(availability.reason_for(minutes_to_time(minutes_of_day(slot_start, tz))))

        now = self.clock()
        expires_at = now + self.policy.slot_lock_ttl

        try:
            with transaction.atomic():
                existing = (
                    SlotLock.objects.select_for_update()
                    .filter(barber_id=barber_id, slot_start=slot_start)
                    .first()
                )
                if existing is not None:
                    if not existing.is_live(now):
                        existing.delete()
                    elif existing.locked_by_id != client_id:
                        raise SlotTemporarilyLockedError()
                    else:
                        existing.expires_at = expires_at
                        existing.save(update_fields=["expires_at"])
                        logger.info(
                            "[SLOT_LOCK] Renewed lock=%s barber=%s start=%s client=%s",
                            existing.id, barber_id, slot_start.isoformat(), client_id,
                        )
                        return SlotLockGrant(existing.id, expires_at, renewed=True)

                lock = SlotLock.objects.create(
                    barber_id=barber_id,
                    slot_start=slot_start,
                    locked_by_id=client_id,
                    expires_at=expires_at,
                )
        except IntegrityError:
            # Another client created the lock between our read and insert
            raise SlotTemporarilyLockedError()

        logger.info(
            "[SLOT_LOCK] Acquired lock=%s barber=%s start=%s client=%s",
            lock.id, barber_id, slot_start.isoformat(), client_id,
        )
        return SlotLockGrant(lock.id, expires_at)

    def live_lock(self, barber_id, slot_start) -> Optional[SlotLock]:
        return SlotLock.objects.filter(
            barber_id=barber_id,
            slot_start=slot_start,
            expires_at__gt=self.clock(),
        ).first()

    def sweep_expired(self) -> int:
        """Delete expired locks; returns how many were removed."""
        deleted, _ = SlotLock.objects.filter(expires_at__lte=self.clock()).delete()
        if deleted:
            logger.info("[SLOT_LOCK] Swept %s expired lock(s)", deleted)
        return deleted
