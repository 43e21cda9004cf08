from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q


class Barber(models.Model):
    """A provider who performs services. Only active barbers are bookable."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="barber_profile",
        help_text="Login account of this barber (role BARBER).",
    )
    name = models.CharField(max_length=150)
    bio = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Service(models.Model):
    """A bookable service. Its duration defines the slot length."""

    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=8, decimal_places=2)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=Q(duration_minutes__gt=0),
                name="service_duration_positive",
            )
        ]

    def __str__(self):
        return f"{self.name} ({self.duration_minutes}min, ${self.price})"

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class WorkSchedule(models.Model):
    """
    Recurring weekly working hours of a barber, with an optional break.

    day_of_week uses Python's weekday() convention:
        0 = Monday, 1 = Tuesday, ..., 6 = Sunday
    """

    DAY_CHOICES = [
        (0, "Monday"),
        (1, "Tuesday"),
        (2, "Wednesday"),
        (3, "Thursday"),
        (4, "Friday"),
        (5, "Saturday"),
        (6, "Sunday"),
    ]

    barber = models.ForeignKey(
        Barber,
        on_delete=models.CASCADE,
        related_name="work_schedules",
    )
    day_of_week = models.IntegerField(choices=DAY_CHOICES)
    start_time = models.TimeField()
    end_time = models.TimeField()
    break_start = models.TimeField(null=True, blank=True)
    break_end = models.TimeField(null=True, blank=True)
    is_active = models.BooleanField(
        default=True,
        help_text="Temporarily disable this day without deleting it.",
    )

    class Meta:
        verbose_name = "Work Schedule"
        verbose_name_plural = "Work Schedules"
        ordering = ["barber", "day_of_week"]
        constraints = [
            models.UniqueConstraint(
                fields=["barber", "day_of_week"],
                name="unique_barber_day_of_week",
            )
        ]

    def __str__(self):
        day = self.get_day_of_week_display()
        return f"{self.barber.name} - {day} ({self.start_time:%H:%M}-{self.end_time:%H:%M})"

    @property
    def has_break(self):
        return self.break_start is not None and self.break_end is not None

    def clean(self):
        """
        Validate:
        1. start_time < end_time
        2. break_start and break_end are given together
        3. The break lies strictly inside the shift and is shorter than it
        """
        super().clean()

        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValidationError({"end_time": "End time must be after start time."})

        if (self.break_start is None) != (self.break_end is None):
            raise ValidationError(
                {"break_end": "Break start and break end must be provided together."}
            )

        if self.has_break and self.start_time and self.end_time:
            if self.break_start >= self.break_end:
                raise ValidationError({"break_end": "Break end must be after break start."})
            if self.break_start < self.start_time or self.break_end > self.end_time:
                raise ValidationError({"break_start": "The break must fall within working hours."})
            if self.break_start == self.start_time and self.break_end == self.end_time:
                raise ValidationError({"break_start": "The break cannot cover the whole shift."})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class ScheduleException(models.Model):
    """
    A calendar date that overrides the weekly schedule.

    HOLIDAY and CLOSED close the whole day. A null barber applies the
    exception to the entire shop. SPECIAL_HOURS is informational only.
    """

    class Type(models.TextChoices):
        HOLIDAY = "HOLIDAY", "Holiday"
        CLOSED = "CLOSED", "Closed"
        SPECIAL_HOURS = "SPECIAL_HOURS", "Special hours"

    CLOSING_TYPES = (Type.HOLIDAY, Type.CLOSED)

    barber = models.ForeignKey(
        Barber,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="schedule_exceptions",
        help_text="Leave empty for a shop-wide exception.",
    )
    date = models.DateField()
    type = models.CharField(max_length=20, choices=Type.choices)
    reason = models.CharField(max_length=255, blank=True)
    start_time = models.TimeField(null=True, blank=True)
    end_time = models.TimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Schedule Exception"
        verbose_name_plural = "Schedule Exceptions"
        ordering = ["date"]
        indexes = [models.Index(fields=["date", "type"], name="schedule_exception_date_type")]

    def __str__(self):
        scope = self.barber.name if self.barber else "Whole shop"
        return f"{self.date} {self.get_type_display()} ({scope})"

    @classmethod
    def closes_day(cls, barber_id, target_date):
        """True if a HOLIDAY/CLOSED exception applies to this barber on target_date."""
        return cls.objects.filter(
            Q(barber__isnull=True) | Q(barber_id=barber_id),
            date=target_date,
            type__in=cls.CLOSING_TYPES,
        ).exists()
