"""
Cancellation penalty.

A client who cancelled too often within the trailing window is blocked
from new bookings for a fixed period, anchored on the cancellation that
reached the threshold (the Nth most recent one).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from django.utils import timezone

from appointments.exceptions import BookingBlockedError
from appointments.models import Appointment
from appointments.policy import BookingPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PenaltyStatus:
    blocked: bool
    cancellation_count: int
    blocked_until: Optional[datetime] = None


class CancellationPenaltyEvaluator:
    def __init__(
        self,
        policy: Optional[BookingPolicy] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.policy = policy or BookingPolicy.from_settings()
        self.clock = clock

    def evaluate(self, client_id) -> PenaltyStatus:
        now = self.clock()
        window_start = now - timedelta(days=self.policy.penalty_window_days)

        cancelled_at = list(
            Appointment.objects.filter(
                client_id=client_id,
                status=Appointment.Status.CANCELLED,
                updated_at__gte=window_start,
            )
            .order_by("-updated_at")
            .values_list("updated_at", flat=True)
        )

        threshold = self.policy.penalty_cancellation_count
        if len(cancelled_at) < threshold:
            return PenaltyStatus(blocked=False, cancellation_count=len(cancelled_at))

        blocked_until = cancelled_at[threshold - 1] + timedelta(days=self.policy.penalty_block_days)
        return PenaltyStatus(
            blocked=now < blocked_until,
            cancellation_count=len(cancelled_at),
            blocked_until=blocked_until,
        )

    def ensure_can_book(self, client_id) -> None:
        """Raise BookingBlockedError while the client is serving a penalty."""
        penalty = self.evaluate(client_id)
        if penalty.blocked:
            logger.info(
                "[PENALTY] Client %s blocked until %s (%s cancellations)",
                client_id,
                penalty.blocked_until.isoformat(),
                penalty.cancellation_count,
            )
            raise BookingBlockedError(penalty.blocked_until)
