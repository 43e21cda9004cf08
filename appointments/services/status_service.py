"""
Appointment status transitions.

Allowed moves:
    PENDING  -> ACCEPTED | REJECTED | CANCELLED
    ACCEPTED -> COMPLETED | CANCELLED
Every other status is terminal.

Who may move what:
    CLIENT -> only CANCELLED, only on their own appointments
    BARBER -> any allowed move on appointments assigned to them
    ADMIN  -> any allowed move

The first ACCEPTED -> COMPLETED move awards one loyalty point and one
visit to the client inside the same transaction as the status update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from accounts.models import CustomUser
from appointments.exceptions import (
    CancellationWindowClosedError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from appointments.models import Appointment
from appointments.policy import BookingPolicy
from barbers.timegrid import local_today

logger = logging.getLogger(__name__)

Status = Appointment.Status

ALLOWED_TRANSITIONS = {
    Status.PENDING: {Status.ACCEPTED, Status.REJECTED, Status.CANCELLED},
    Status.ACCEPTED: {Status.COMPLETED, Status.CANCELLED},
    Status.REJECTED: set(),
    Status.CANCELLED: set(),
    Status.COMPLETED: set(),
}


@dataclass(frozen=True)
class ActorContext:
    """Identity of whoever requests a change."""

    user_id: int
    role: str
    barber_id: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> "ActorContext":
        barber_profile = getattr(user, "barber_profile", None)
        return cls(
            user_id=user.pk,
            role=user.role,
            barber_id=barber_profile.pk if barber_profile is not None else None,
        )


class StatusTransitionEngine:
    def __init__(
        self,
        policy: Optional[BookingPolicy] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.policy = policy or BookingPolicy.from_settings()
        self.clock = clock

    def transition(self, appointment_id, target_status, actor: ActorContext, rejection_reason=None) -> Appointment:
        """
        Move an appointment to target_status.

        Raises:
            NotFoundError: No such appointment.
            ForbiddenError: The actor may not make this change.
            InvalidInputError: Unknown status, or REJECTED without a reason.
            InvalidTransitionError: The state machine or a guard refuses it.
        """
        if target_status not in Status.values:
            raise InvalidInputError(f"Unknown status: {target_status!r}.", code="invalid_status")
        target_status = Status(target_status)

        with transaction.atomic():
            appointment = (
                Appointment.objects.select_for_update()
                .filter(pk=appointment_id)
                .first()
            )
            if appointment is None:
                raise NotFoundError("Appointment not found.", code="appointment_not_found")

            self._authorize(appointment, target_status, actor)
            reason = self._validate(appointment, target_status, rejection_reason)

            previous_status = appointment.status
            award_loyalty = (
                previous_status == Status.ACCEPTED
                and target_status == Status.COMPLETED
                and not appointment.loyalty_points_awarded
            )

            appointment.status = target_status
            appointment.rejection_reason = reason if target_status == Status.REJECTED else None
            update_fields = ["status", "rejection_reason", "updated_at"]

            if award_loyalty:
                appointment.loyalty_points_awarded = True
                update_fields.append("loyalty_points_awarded")
                get_user_model().objects.filter(pk=appointment.client_id).update(
                    loyalty_points=F("loyalty_points") + 1,
                    total_visits=F("total_visits") + 1,
                )

            appointment.save(update_fields=update_fields)

        logger.info(
            "[STATUS] Appointment %s %s -> %s by user=%s role=%s%s",
            appointment.pk,
            previous_status,
            target_status,
            actor.user_id,
            actor.role,
            " (loyalty awarded)" if award_loyalty else "",
        )
        return appointment

    def _authorize(self, appointment, target_status, actor):
        if actor.role == CustomUser.Role.ADMIN:
            return
        if actor.role == CustomUser.Role.CLIENT:
            if appointment.client_id != actor.user_id:
                raise ForbiddenError("You can only manage your own appointments.")
            if target_status != Status.CANCELLED:
                raise ForbiddenError("Clients can only cancel their appointments.")
            return
        if actor.role == CustomUser.Role.BARBER:
            if actor.barber_id is None or appointment.barber_id != actor.barber_id:
                raise ForbiddenError("You can only manage appointments assigned to you.")
            return
        raise ForbiddenError()

    def _validate(self, appointment, target_status, rejection_reason):
        """Apply the state machine and guards; returns the cleaned rejection reason."""
        current = Status(appointment.status)

        if target_status == Status.CANCELLED and current == Status.COMPLETED:
            raise InvalidTransitionError(
                "A completed appointment cannot be cancelled.",
                code="already_completed",
            )
        if target_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot change status from {current} to {target_status}."
            )

        reason = (rejection_reason or "").strip()
        if target_status == Status.REJECTED and not reason:
            raise InvalidInputError(
                "A rejection reason is required.", code="rejection_reason_required"
            )

        now = self.clock()
        if target_status == Status.COMPLETED:
            appointment_day = appointment.date.astimezone(self.policy.tz).date()
            if appointment_day > local_today(now, self.policy.tz):
                raise InvalidTransitionError(
                    "Cannot complete an appointment scheduled for a future day.",
                    code="completion_in_future",
                )

        if target_status == Status.CANCELLED and appointment.date < now + self.policy.min_cancel_notice:
            raise CancellationWindowClosedError(
                f"Appointments can only be cancelled at least "
                f"{self.policy.min_cancel_hours} hours in advance."
            )

        return reason
