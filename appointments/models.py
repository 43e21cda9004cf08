import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q

from barbers.models import Barber, Service


class Appointment(models.Model):
    """
    Core appointment booking record.

    Created PENDING by the booking service and only mutated through the
    status transition engine. Appointments are never deleted.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ACCEPTED = "ACCEPTED", "Accepted"
        REJECTED = "REJECTED", "Rejected"
        CANCELLED = "CANCELLED", "Cancelled"
        COMPLETED = "COMPLETED", "Completed"

    # Statuses that no longer occupy the barber's time
    INACTIVE_STATUSES = (Status.CANCELLED, Status.REJECTED)
    # Statuses a client may not overlap with another booking of their own
    OPEN_STATUSES = (Status.PENDING, Status.ACCEPTED)

    NOTES_MAX_LENGTH = 500

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="appointments",
    )
    barber = models.ForeignKey(Barber, on_delete=models.PROTECT, related_name="appointments")
    service = models.ForeignKey(Service, on_delete=models.PROTECT, related_name="appointments")
    date = models.DateTimeField(help_text="Start of the appointment.")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    notes = models.TextField(blank=True, default="", max_length=NOTES_MAX_LENGTH)
    rejection_reason = models.TextField(null=True, blank=True)
    loyalty_points_awarded = models.BooleanField(default=False)
    reminder_sent = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date"]
        indexes = [
            models.Index(fields=["barber", "date"], name="appointment_barber_date"),
            models.Index(fields=["client", "status", "updated_at"], name="appointment_client_status_upd"),
            models.Index(fields=["status", "reminder_sent", "date"], name="appointment_reminder_due"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["barber", "date"],
                condition=~Q(status__in=["CANCELLED", "REJECTED"]),
                name="unique_live_appointment_per_barber_start",
            )
        ]

    def __str__(self):
        return f"Appointment #{self.pk} - {self.client.name} with {self.barber.name} on {self.date:%Y-%m-%d %H:%M}"

    @property
    def end(self):
        return self.date + timedelta(minutes=self.service.duration_minutes)


class SlotLock(models.Model):
    """
    Short-lived soft reservation of a barber's slot start.

    A lock is live while expires_at is in the future. Expired rows are
    ignored by every read and removed by the periodic sweep.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    barber = models.ForeignKey(Barber, on_delete=models.CASCADE, related_name="slot_locks")
    slot_start = models.DateTimeField()
    locked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="slot_locks",
    )
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Slot Lock"
        verbose_name_plural = "Slot Locks"
        ordering = ["slot_start"]
        indexes = [models.Index(fields=["expires_at"], name="slot_lock_expires_at")]
        constraints = [
            models.UniqueConstraint(
                fields=["barber", "slot_start"],
                name="unique_slot_lock_per_barber_start",
            )
        ]

    def __str__(self):
        return f"Lock {self.barber.name} @ {self.slot_start:%Y-%m-%d %H:%M} by {self.locked_by_id}"

    def is_live(self, now):
        return self.expires_at > now
